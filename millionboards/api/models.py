"""Requests and Response models"""

from typing import Optional

from pydantic import BaseModel, field_validator

from millionboards.core.config import (
    MAX_CENTER_COORD,
    MAX_MOVE_TOKEN,
    MAX_PIECE_COORD,
    MIN_CENTER_COORD,
    MIN_PIECE_COORD,
)
from millionboards.core.exceptions import InvalidRequestError
from millionboards.core.shared_types import MoveType


# --- REQUEST MODELS ---
class MoveRequest(BaseModel):
    piece_id: int
    from_x: int
    from_y: int
    to_x: int
    to_y: int
    move_type: MoveType = MoveType.NORMAL
    move_token: int

    @field_validator(*["from_x", "from_y", "to_x", "to_y"])
    @classmethod
    def validate_coordinate(cls, value: int) -> int:
        if not MIN_PIECE_COORD <= value <= MAX_PIECE_COORD:
            raise InvalidRequestError(f"Coordinate {value!r} lies outside of the grid.")
        return value

    @field_validator("move_token")
    @classmethod
    def validate_move_token(cls, value: int) -> int:
        if not 1 <= value <= MAX_MOVE_TOKEN:
            raise InvalidRequestError(
                f"Move token must lie in [1, {MAX_MOVE_TOKEN}], got: {value!r}"
            )
        return value


class SubscribeRequest(BaseModel):
    center_x: int
    center_y: int

    @field_validator(*["center_x", "center_y"])
    @classmethod
    def validate_center(cls, value: int) -> int:
        if not MIN_CENTER_COORD <= value <= MAX_CENTER_COORD:
            raise InvalidRequestError(f"Can't move view to: {value!r}")
        return value


class PingRequest(BaseModel):
    pass


# --- RESPONSE MODELS ---
class MoveResult(BaseModel):
    move_token: int
    captured_piece_id: Optional[int] = None
