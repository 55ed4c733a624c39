"""
The local mirror of the (huge, shared) board.

Only a square window around the view center (the *viewport*) is materialized: the server sends the pieces
inside of it, and the client only lets user code touch pieces inside of it.
Every coordinate taking method has a `validate` switch. Leave it on for user input;
turn it off when replaying state the server already confirmed.
"""

import json
from math import ceil, floor
from typing import Any, Iterator, Mapping, Optional, Self

from millionboards.chess.moves import distance
from millionboards.chess.pieces import EMPTY_SYMBOL, Piece, to_color, to_move_type, to_piece_type
from millionboards.core.config import (
    BOARD_SIZE,
    DEFAULT_VIEW_LENGTH,
    MAX_CENTER_COORD,
    MAX_PIECE_COORD,
    MIN_CENTER_COORD,
    MIN_PIECE_COORD,
)
from millionboards.core.exceptions import ChessError, ErrorReason
from millionboards.core.models import SnapshotModel
from millionboards.core.shared_types import Color, MoveType, PieceType

# Keys pack (x, y) into a single integer. Unvalidated y may be negative, so it has to lie
# within +-KEY_STRIDE / 2 to decode back to the same square.
KEY_STRIDE = 1 << 16
KEY_OFFSET = KEY_STRIDE // 2

Coords = tuple[int, int]


def coords_key(x: int, y: int) -> int:
    return floor(x) * KEY_STRIDE + floor(y)


def key_coords(key: int) -> Coords:
    x, y = divmod(key + KEY_OFFSET, KEY_STRIDE)
    return x, y - KEY_OFFSET


def piece_in_global_bounds(x: int, y: int) -> bool:
    return (MIN_PIECE_COORD <= x <= MAX_PIECE_COORD) and (
        MIN_PIECE_COORD <= y <= MAX_PIECE_COORD
    )


def center_in_bounds(x: int, y: int) -> bool:
    return (MIN_CENTER_COORD <= x <= MAX_CENTER_COORD) and (
        MIN_CENTER_COORD <= y <= MAX_CENTER_COORD
    )


def board_corner(x: int, y: int) -> Coords:
    """Top left square of the 8x8 sub-board that (x, y) lies on"""
    return (floor(x / BOARD_SIZE) * BOARD_SIZE, floor(y / BOARD_SIZE) * BOARD_SIZE)


def validate_center_coords(
    x: Optional[int], y: Optional[int], message: str = "Invalid center"
) -> None:
    """Raise if a (non-None) center coordinate is not an integer within the allowed range"""

    def _is_valid(value: Any) -> bool:
        return (
            isinstance(value, int)
            and not isinstance(value, bool)
            and MIN_CENTER_COORD <= value <= MAX_CENTER_COORD
        )

    errors: list[str] = []
    ref: dict[str, Any] = {}
    if x is not None:
        ref["x0"] = x
        if not _is_valid(x):
            errors.append(f"x={x}")
    if y is not None:
        ref["y0"] = y
        if not _is_valid(y):
            errors.append(f"y={y}")

    if errors:
        raise ChessError(f"{message}: {', '.join(errors)}", ErrorReason.INVALID_COORDS, ref)


class Board:
    """Sparse store of pieces, keyed by their (packed) coordinates."""

    def __init__(
        self,
        center_x: Optional[int] = None,
        center_y: Optional[int] = None,
        length: int = DEFAULT_VIEW_LENGTH,
    ) -> None:
        validate_center_coords(center_x, center_y)
        if length < 1 or length % 2 == 0:
            raise ChessError(
                f"Viewport length must be a positive odd number, got: {length}",
                ErrorReason.INVALID_VALUE,
                length,
            )

        self.length = length
        self.radius = (length - 1) // 2
        self._pieces: dict[int, Piece] = {}

        self._init_coords()
        self._set_coords(center_x, center_y)

    # --- Viewport ---
    @property
    def center_x(self) -> Optional[int]:
        return self._center_x

    @center_x.setter
    def center_x(self, value: int) -> None:
        validate_center_coords(value, None)
        self._set_coords(value, None)

    @property
    def center_y(self) -> Optional[int]:
        return self._center_y

    @center_y.setter
    def center_y(self, value: int) -> None:
        validate_center_coords(None, value)
        self._set_coords(None, value)

    def in_viewport(self, x: int, y: int) -> bool:
        if None in (self.left_x, self.top_y, self.right_x, self.bottom_y):
            return False
        return (self.left_x <= x <= self.right_x) and (self.top_y <= y <= self.bottom_y)

    def piece_in_bounds(self, x: int | Piece, y: Optional[int] = None) -> bool:
        """Inside the grid AND inside the viewport. Accepts either coordinates or a piece."""
        if isinstance(x, Piece):
            x, y = x.x, x.y
        if y is None:
            return False
        return piece_in_global_bounds(x, y) and self.in_viewport(x, y)

    # --- Basic access ---
    def has(self, x: int, y: int, validate: bool = True) -> bool:
        if validate and not self.piece_in_bounds(x, y):
            return False
        return coords_key(x, y) in self._pieces

    def get(self, x: int, y: int, validate: bool = True) -> Optional[Piece]:
        if validate and not self.piece_in_bounds(x, y):
            return None
        return self._pieces.get(coords_key(x, y))

    def set(
        self, x: int, y: int, piece: Piece | Mapping[str, Any] | Any, validate: bool = True
    ) -> Self:
        """
        Place a piece. Plain records get turned into a Piece standing on (x, y).

        A Piece already on the board is taken off its old square, and its own x/y follow it.
        """
        if validate and not self.piece_in_bounds(x, y):
            return self

        self._place(x, y, piece)
        return self

    def delete(self, x: int, y: int, validate: bool = True) -> bool:
        if validate and not self.piece_in_bounds(x, y):
            return False
        return self._pieces.pop(coords_key(x, y), None) is not None

    def has_key(self, key: int) -> bool:
        return key in self._pieces

    def get_by_key(self, key: int) -> Optional[Piece]:
        return self._pieces.get(key)

    def set_by_key(self, key: int, piece: Piece | Mapping[str, Any] | Any) -> Self:
        x, y = key_coords(key)
        self._place(x, y, piece)
        return self

    def delete_by_key(self, key: int) -> bool:
        return self._pieces.pop(key, None) is not None

    def clear(self) -> None:
        self._pieces.clear()
        self._init_coords()

    def __len__(self) -> int:
        return len(self._pieces)

    def keys(self) -> Iterator[Coords]:
        for key in self._pieces:
            yield key_coords(key)

    def values(self) -> Iterator[Piece]:
        yield from self._pieces.values()

    def items(self) -> Iterator[tuple[Coords, Piece]]:
        for key, piece in self._pieces.items():
            yield key_coords(key), piece

    # --- Searching ---
    def get_by_id(self, piece_id: int) -> Optional[Piece]:
        for piece in self._pieces.values():
            if piece.id == piece_id:
                return piece
        return None

    def find(
        self,
        piece_type: Optional[PieceType | str | int] = None,
        color: Optional[Color | str | int] = None,
    ) -> Optional[Piece]:
        """First piece matching the (optional) type and color"""
        matches = _piece_filter(piece_type, color)
        for piece in self._pieces.values():
            if matches(piece):
                return piece
        return None

    def find_in_area(
        self,
        piece_type: Optional[PieceType | str | int],
        color: Optional[Color | str | int],
        x: int,
        y: int,
        w: int,
        h: int,
    ) -> Optional[Piece]:
        """Like `find()`, restricted to the w x h rectangle with top left corner (x, y)"""
        matches = _piece_filter(piece_type, color)

        x1, y1 = x, y
        x2, y2 = x1 + w - 1, y1 + h - 1
        if w <= 0 or h <= 0:
            return None
        if not self.piece_in_bounds(x1, y1) or not self.piece_in_bounds(x2, y2):
            return None

        for (px, py), piece in self.items():
            if not matches(piece):
                continue
            if x1 <= px <= x2 and y1 <= py <= y2:
                return piece
        return None

    def find_in_board(
        self,
        piece_type: Optional[PieceType | str | int],
        color: Optional[Color | str | int],
        x: int,
        y: int,
    ) -> Optional[Piece]:
        """Like `find()`, restricted to the 8x8 sub-board containing (x, y)"""
        corner_x, corner_y = board_corner(x, y)
        return self.find_in_area(piece_type, color, corner_x, corner_y, BOARD_SIZE, BOARD_SIZE)

    # --- Moving / capturing ---
    def validate_piece_move(
        self,
        piece: Piece,
        to_x: int,
        to_y: int,
        move_type: MoveType | str | int = MoveType.NORMAL,
    ) -> None:
        """Raise a ChessError if the move can be rejected without asking the server"""
        move_type = to_move_type(move_type)

        if not self.piece_in_bounds(piece):
            raise ChessError(
                "Can't move piece that's outside of board bounds",
                ErrorReason.ILLEGAL_MOVE,
                {"x": piece.x, "y": piece.y},
            )

        if not self.piece_in_bounds(to_x, to_y):
            raise ChessError(
                "Can't move piece to outside of board bounds",
                ErrorReason.ILLEGAL_MOVE,
                {"to_x": to_x, "to_y": to_y},
            )

        if not piece.can_move_to(to_x, to_y, move_type):
            raise ChessError(
                f"Can't move piece to: {to_x}, {to_y}",
                ErrorReason.ILLEGAL_MOVE,
                {"to_x": to_x, "to_y": to_y},
            )

    def move_piece(
        self,
        piece: Optional[Piece],
        to_x: int,
        to_y: int,
        move_type: MoveType | str | int = MoveType.NORMAL,
        capture: bool = False,
        validate: bool = True,
    ) -> Optional[Piece]:
        """
        Move a piece to (to_x, to_y).
        ---

        The piece counts a capture when it lands on an occupied square (or when asked to).
        Whatever stood on the destination is replaced. When replaying a confirmed capture,
        remove the captured piece first (`capture_with_id()`), as it may not stand on the destination (en passant).
        """
        if piece is None:
            if validate:
                raise ChessError("No piece provided", ErrorReason.NO_PIECE)
            return None

        if validate:
            self.validate_piece_move(piece, to_x, to_y, move_type)

        self._remove(piece)

        if capture or self.has(to_x, to_y, validate):
            piece.capture(to_x, to_y)
        else:
            piece.move(to_x, to_y)

        self._pieces[coords_key(piece.x, piece.y)] = piece
        return piece

    def move_from_position(
        self,
        from_x: int,
        from_y: int,
        to_x: int,
        to_y: int,
        move_type: MoveType | str | int = MoveType.NORMAL,
        capture: bool = False,
        validate: bool = True,
    ) -> Optional[Piece]:
        piece = self._resolve(self.get(from_x, from_y, validate), validate)
        return self.move_piece(piece, to_x, to_y, move_type, capture, validate)

    def move_with_id(
        self,
        piece_id: int,
        to_x: int,
        to_y: int,
        move_type: MoveType | str | int = MoveType.NORMAL,
        capture: bool = False,
        validate: bool = True,
    ) -> Optional[Piece]:
        piece = self._resolve(self.get_by_id(piece_id), validate)
        return self.move_piece(piece, to_x, to_y, move_type, capture, validate)

    def capture_piece(self, piece: Optional[Piece], validate: bool = True) -> Optional[Piece]:
        """Take a piece off the board (nothing else moves)"""
        if piece is None:
            if validate:
                raise ChessError("No piece provided", ErrorReason.NO_PIECE)
            return None

        self._remove(piece)
        return piece

    def capture_on_position(self, x: int, y: int, validate: bool = True) -> Optional[Piece]:
        piece = self._resolve(self.get(x, y, validate), validate)
        return self.capture_piece(piece, validate)

    def capture_with_id(self, piece_id: int, validate: bool = True) -> Optional[Piece]:
        piece = self._resolve(self.get_by_id(piece_id), validate)
        return self.capture_piece(piece, validate)

    # --- Serialization ---
    def to_string(self, pretty: bool = True) -> str:
        """
        pretty: the viewport drawn with piece symbols (column numbers on top, row numbers on the left).
        otherwise: JSON list of all pieces.
        """
        if not pretty:
            return json.dumps(
                [piece.to_dict() for piece in self._pieces.values()],
                ensure_ascii=False,
                indent=4,
            )

        if len(self) < 1 or self.left_x is None or self.top_y is None:
            return ""

        header = "   " + " ".join(
            str(x).rjust(2) for x in range(self.left_x, self.right_x + 1)
        )
        rows = [header]
        for y in range(self.top_y, self.bottom_y + 1):
            symbols = []
            for x in range(self.left_x, self.right_x + 1):
                piece = self.get(x, y)
                symbols.append(piece.symbol if piece else EMPTY_SYMBOL)
            rows.append(f"{str(y).rjust(2)} " + " ".join(s.rjust(2) for s in symbols))
        return "\n".join(rows)

    def __str__(self) -> str:
        return self.to_string(pretty=True)

    def to_model(self) -> SnapshotModel:
        if self.center_x is None or self.center_y is None:
            raise ChessError(
                "Board has no center yet: nothing to snapshot",
                ErrorReason.INVALID_COORDS,
            )
        return SnapshotModel(
            center_x=self.center_x,
            center_y=self.center_y,
            pieces=[piece.to_dict() for piece in self._pieces.values()],
        )

    @classmethod
    def from_model(cls, model: SnapshotModel, length: int = DEFAULT_VIEW_LENGTH) -> Self:
        board = cls(model.center_x, model.center_y, length)
        for record in model.pieces:
            board.set(record["x"], record["y"], record, validate=False)
        return board

    def distance_to_center(self, x: int, y: int) -> Optional[int]:
        if self.center_x is None or self.center_y is None:
            return None
        return distance(self.center_x, self.center_y, x, y)

    # -- Internal helpers --
    def _init_coords(self) -> None:
        self._center_x: Optional[int] = None
        self._center_y: Optional[int] = None
        self.left_x: Optional[int] = None
        self.top_y: Optional[int] = None
        self.right_x: Optional[int] = None
        self.bottom_y: Optional[int] = None

    def _set_coords(self, x: Optional[int], y: Optional[int]) -> None:
        if x is not None:
            self._center_x = x
            self.left_x = floor(x - self.radius)
            self.right_x = ceil(x + self.radius)
        if y is not None:
            self._center_y = y
            self.top_y = floor(y - self.radius)
            self.bottom_y = ceil(y + self.radius)

    def _place(self, x: int, y: int, piece: Piece | Mapping[str, Any] | Any) -> Piece:
        if isinstance(piece, Piece):
            self._remove(piece)
            piece.x, piece.y = floor(x), floor(y)
        else:
            piece = Piece.from_data(x, y, piece)
        self._pieces[coords_key(piece.x, piece.y)] = piece
        return piece

    def _remove(self, piece: Piece) -> None:
        """Remove the piece from the key it is stored under (and only if it really is that piece)"""
        key = coords_key(piece.x, piece.y)
        if self._pieces.get(key) is piece:
            del self._pieces[key]

    @staticmethod
    def _resolve(piece: Optional[Piece], validate: bool) -> Optional[Piece]:
        if validate and piece is None:
            raise ChessError("No piece at starting position", ErrorReason.NO_PIECE)
        return piece


def _piece_filter(
    piece_type: Optional[PieceType | str | int], color: Optional[Color | str | int]
):
    """Coerce the search parameters once, return the predicate used while scanning"""
    wanted_type = to_piece_type(piece_type) if piece_type is not None else None
    wanted_color = to_color(color) if color is not None else None

    def _matches(piece: Piece) -> bool:
        type_matches = wanted_type is None or piece.type == wanted_type
        color_matches = wanted_color is None or piece.color == wanted_color
        return type_matches and color_matches

    return _matches
