"""
Decoded server messages.

A closed set of plain dataclasses: the codec turns every valid ServerMessage into exactly one of them,
and the client dispatches on the class.
"""

from dataclasses import dataclass, field
from typing import Optional

from millionboards.core.shared_types import PieceType


@dataclass
class PieceData:
    """A piece as described by the server (no position: that is given by the surrounding record)"""

    id: int
    type: PieceType
    is_white: bool
    move_count: int = 0
    capture_count: int = 0
    flags: dict[str, bool] = field(default_factory=dict)


@dataclass
class SnapshotPiece:
    """Piece position relative to the snapshot center"""

    dx: int
    dy: int
    piece: PieceData


@dataclass
class Snapshot:
    x_coord: int
    y_coord: int
    pieces: list[SnapshotPiece] = field(default_factory=list)


@dataclass
class InitialState:
    snapshot: Snapshot


@dataclass
class PieceMove:
    x: int
    y: int
    piece: PieceData


@dataclass
class MovesAndCaptures:
    moves: list[PieceMove] = field(default_factory=list)
    captured_ids: list[int] = field(default_factory=list)


@dataclass
class BulkCapture:
    captured_ids: list[int] = field(default_factory=list)


@dataclass
class ValidMove:
    move_token: int
    captured_piece_id: Optional[int] = None


@dataclass
class InvalidMove:
    move_token: int


@dataclass
class Pong:
    pass


ServerMessage = (
    InitialState
    | Snapshot
    | MovesAndCaptures
    | BulkCapture
    | ValidMove
    | InvalidMove
    | Pong
)
