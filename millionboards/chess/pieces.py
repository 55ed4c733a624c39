"""Defines the pieces living on the board"""

from dataclasses import asdict, dataclass, field, is_dataclass
from math import floor
from typing import Any, Mapping, Self

from millionboards.chess.moves import is_legal_move
from millionboards.core.exceptions import ChessError, ErrorReason
from millionboards.core.shared_types import Color, MoveType, PieceType

# Numbers used for the enums on the wire
WIRE_TO_PIECE: dict[int, PieceType] = {
    0: PieceType.PAWN,
    1: PieceType.KNIGHT,
    2: PieceType.BISHOP,
    3: PieceType.ROOK,
    4: PieceType.QUEEN,
    5: PieceType.KING,
    6: PieceType.PROMOTED_PAWN,
}
PIECE_TO_WIRE: dict[PieceType, int] = {value: key for key, value in WIRE_TO_PIECE.items()}

WIRE_TO_MOVE_TYPE: dict[int, MoveType] = {
    0: MoveType.NORMAL,
    1: MoveType.CASTLE,
    2: MoveType.EN_PASSANT,
}
MOVE_TYPE_TO_WIRE: dict[MoveType, int] = {
    value: key for key, value in WIRE_TO_MOVE_TYPE.items()
}

# Colors used to be numbered by their index in this list
COLOR_ORDER: list[Color] = [Color.BLACK, Color.WHITE]

# Boolean bookkeeping the server attaches to each piece. The client just carries them around.
PIECE_FLAGS: tuple[str, ...] = (
    "just_double_moved",
    "king_killer",
    "king_pawner",
    "queen_killer",
    "queen_pawner",
    "adopted_killer",
    "adopted",
    "has_captured_piece_type_other_than_own",
)

EMPTY_SYMBOL = "·"
PIECE_SYMBOLS: dict[PieceType, dict[Color, str]] = {
    PieceType.PAWN: {Color.WHITE: "♙", Color.BLACK: "♟"},
    PieceType.KNIGHT: {Color.WHITE: "♘", Color.BLACK: "♞"},
    PieceType.BISHOP: {Color.WHITE: "♗", Color.BLACK: "♝"},
    PieceType.ROOK: {Color.WHITE: "♖", Color.BLACK: "♜"},
    PieceType.QUEEN: {Color.WHITE: "♕", Color.BLACK: "♛"},
    PieceType.KING: {Color.WHITE: "♔", Color.BLACK: "♚"},
    PieceType.PROMOTED_PAWN: {Color.WHITE: "♕", Color.BLACK: "♛"},
}


# --- Coercion of user input ---
def to_piece_type(value: PieceType | str | int) -> PieceType:
    """Accept the enum, its short name ("knight") or its wire number"""
    if isinstance(value, PieceType):
        return value
    if isinstance(value, bool):
        raise ChessError(f"Invalid piece type: {value!r}", ErrorReason.INVALID_VALUE, value)
    if isinstance(value, int):
        if value not in WIRE_TO_PIECE:
            raise ChessError(f"Invalid piece type: {value}", ErrorReason.INVALID_VALUE, value)
        return WIRE_TO_PIECE[value]
    if isinstance(value, str):
        try:
            return PieceType(value.lower())
        except ValueError as err:
            raise ChessError(
                f"Invalid piece type: {value}", ErrorReason.INVALID_VALUE, value
            ) from err
    raise ChessError("Invalid type value", ErrorReason.INVALID_VALUE, value)


def to_color(value: Color | str | int) -> Color:
    """Accept the enum, "white"/"black" or the color number (0: black, 1: white)"""
    if isinstance(value, Color):
        return value
    if isinstance(value, bool):
        raise ChessError(f"Invalid color: {value!r}", ErrorReason.INVALID_VALUE, value)
    if isinstance(value, int):
        if not 0 <= value < len(COLOR_ORDER):
            raise ChessError(f"Invalid color: {value}", ErrorReason.INVALID_VALUE, value)
        return COLOR_ORDER[value]
    if isinstance(value, str):
        try:
            return Color(value)
        except ValueError as err:
            raise ChessError(f"Invalid color: {value}", ErrorReason.INVALID_VALUE, value) from err
    raise ChessError("Invalid color value", ErrorReason.INVALID_VALUE, value)


def to_move_type(value: MoveType | str | int) -> MoveType:
    if isinstance(value, MoveType):
        return value
    if isinstance(value, int) and not isinstance(value, bool) and value in WIRE_TO_MOVE_TYPE:
        return WIRE_TO_MOVE_TYPE[value]
    if isinstance(value, str):
        try:
            return MoveType(value)
        except ValueError:
            pass
    raise ChessError(f"Invalid move type: {value!r}", ErrorReason.INVALID_VALUE, value)


@dataclass
class Piece:
    id: int
    type: PieceType
    color: Color
    x: int
    y: int
    move_count: int = 0
    capture_count: int = 0
    flags: dict[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        # NOTE: lets callers pass "knight" / 1 etc. and still end up with the enums
        self.type = to_piece_type(self.type)
        self.color = to_color(self.color)

    @classmethod
    def from_data(cls, x: int, y: int, data: Mapping[str, Any] | Any) -> Self:
        """
        Build a piece from a plain record (a decoded wire record, or a dict as produced by `to_dict()`).

        Color may be given either as `color` or as the wire's `is_white` boolean.
        """
        if is_dataclass(data) and not isinstance(data, type):
            data = asdict(data)
        if not isinstance(data, Mapping):
            raise ChessError("Invalid piece data", ErrorReason.INVALID_VALUE, data)

        if "color" in data:
            color = to_color(data["color"])
        else:
            color = Color.WHITE if data.get("is_white", False) else Color.BLACK

        flags = {name: bool(data[name]) for name in PIECE_FLAGS if name in data}
        flags.update(data.get("flags") or {})
        return cls(
            id=int(data.get("id", 0)),
            type=to_piece_type(data.get("type", PieceType.PAWN)),
            color=color,
            x=floor(x),
            y=floor(y),
            move_count=int(data.get("move_count", 0)),
            capture_count=int(data.get("capture_count", 0)),
            flags=flags,
        )

    @property
    def symbol(self) -> str:
        return PIECE_SYMBOLS[self.type][self.color]

    @property
    def is_white(self) -> bool:
        return self.color == Color.WHITE

    def can_move_to(
        self, x: int, y: int, move_type: MoveType = MoveType.NORMAL
    ) -> bool:
        return is_legal_move(
            self.type,
            self.color,
            floor(x) - self.x,
            floor(y) - self.y,
            move_type,
            first_move=self.move_count < 1,
        )

    def move(self, x: int, y: int) -> None:
        self.x, self.y = floor(x), floor(y)
        self.move_count += 1

    def capture(self, x: int, y: int) -> None:
        self.x, self.y = floor(x), floor(y)
        self.capture_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "type": str(self.type),
            "color": str(self.color),
            "symbol": self.symbol,
            "move_count": self.move_count,
            "capture_count": self.capture_count,
            **self.flags,
        }
