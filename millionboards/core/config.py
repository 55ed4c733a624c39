"""
Client configuration.

All durations are in seconds. `max_rps=None` disables rate limiting.
"""

from typing import Optional

from pydantic import BaseModel, field_validator

from millionboards.core.exceptions import InvalidRequestError

# --- Grid geometry ---
BOARD_SIZE = 8
BOARD_COUNT = 1000 * 1000
TOTAL_SIZE = BOARD_SIZE * 1000  # sqrt(BOARD_COUNT) boards per side

MIN_PIECE_COORD = 0
MAX_PIECE_COORD = TOTAL_SIZE - 1

MIN_CENTER_COORD = BOARD_SIZE // 4
MAX_CENTER_COORD = TOTAL_SIZE - BOARD_SIZE // 2 + 1

DEFAULT_VIEW_LENGTH = 95

# --- Game rules the client checks before bothering the server ---
MAX_MOVE_DISTANCE = 25
MIN_VIEW_DISTANCE = 12

# --- Protocol ---
MAX_MOVE_TOKEN = 2**16 - 1
SERVER_DOMAIN = "onemillionchessboards.com"


class ClientOptions(BaseModel):
    """Options of the generic websocket client."""

    # optional tag, shown in front of every log line of this client
    k: Optional[int] = None

    default_jitter: float = 1.0
    max_rps: Optional[float] = None

    reconnect_delay: float = 1.0

    retry_delay: float = 1.0
    max_retry_count: int = 5

    ping_interval: float = 1.2
    pong_timeout: float = 20.0
    move_timeout: float = 20.0

    @field_validator(
        *[
            "default_jitter",
            "reconnect_delay",
            "retry_delay",
            "ping_interval",
            "pong_timeout",
            "move_timeout",
        ]
    )
    @classmethod
    def validate_duration(cls, value: float) -> float:
        if value < 0:
            raise InvalidRequestError(f"Durations cannot be negative, got: {value!r}")
        return value

    @field_validator("max_rps")
    @classmethod
    def validate_max_rps(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise InvalidRequestError(
                f"max_rps must be positive (or None for no limit), got: {value!r}"
            )
        return value

    @field_validator("max_retry_count")
    @classmethod
    def validate_retry_count(cls, value: int) -> int:
        if value < 0:
            raise InvalidRequestError(f"max_retry_count cannot be negative, got: {value!r}")
        return value

    @property
    def auto_reconnect(self) -> bool:
        return self.reconnect_delay > 0

    @property
    def enable_retry(self) -> bool:
        return self.retry_delay > 0 and self.max_retry_count > 0


class ChessClientOptions(ClientOptions):
    """Same options, with the defaults the chessboards server tolerates."""

    default_jitter: float = 4.0
    max_rps: Optional[float] = 2.0
    reconnect_delay: float = 15.0
