"""
Geometry of piece movement.

Key idea: Use strategy pattern to define the legal move shape for each piece type.

The board is effectively unbounded and shared with everyone else, so the client only checks
the *shape* of a move (given its delta). Occupancy, checks, pins etc. are the server's business.
"""

from typing import Callable

from millionboards.core.config import MAX_MOVE_DISTANCE
from millionboards.core.shared_types import Color, MoveType, PieceType

Vector = tuple[int, int]


def distance(x1: int, y1: int, x2: int, y2: int) -> int:
    """Chebyshev distance: the number of king steps between two squares"""
    return max(abs(x2 - x1), abs(y2 - y1))


def pawn_direction(color: Color) -> int:
    """White pawns walk up the grid (towards y=0), black pawns walk down"""
    return -1 if color == Color.WHITE else 1


# --- MOVEMENT RULES ---
def pawn_rule(dx: int, dy: int, color: Color, first_move: bool) -> bool:
    """
    A pawn:
    - moves by a single square forward.
    - It can move by two in its first move
    - takes diagonally (one square forward, one sideways). En passant has the same shape.
    """
    direction = pawn_direction(color)
    if dx == 0:
        return dy == direction or (first_move and dy == 2 * direction)
    return abs(dx) == 1 and dy == direction


def knight_rule(dx: int, dy: int, color: Color, first_move: bool) -> bool:
    """Knights always move such that {|dx|, |dy|} = {1, 2}"""
    return (abs(dx), abs(dy)) in {(2, 1), (1, 2)}


def bishop_rule(dx: int, dy: int, color: Color, first_move: bool) -> bool:
    """Bishops move diagonally: |dx| = |dy|"""
    return abs(dx) == abs(dy)


def rook_rule(dx: int, dy: int, color: Color, first_move: bool) -> bool:
    """Rooks move either horizontally or vertically"""
    return dx == 0 or dy == 0


def queen_rule(dx: int, dy: int, color: Color, first_move: bool) -> bool:
    """The Queen combines the rook moves and bishop moves"""
    return rook_rule(dx, dy, color, first_move) or bishop_rule(
        dx, dy, color, first_move
    )


def king_rule(dx: int, dy: int, color: Color, first_move: bool) -> bool:
    """The king can move by a single square at the time (castling is checked separately)"""
    return distance(0, 0, dx, dy) == 1


# -- STRATEGY PATTERN: MOVEMENT RULES ---
MovementRule = Callable[[int, int, Color, bool], bool]
MOVEMENT_RULES: dict[PieceType, MovementRule] = {
    PieceType.PAWN: pawn_rule,
    PieceType.KNIGHT: knight_rule,
    PieceType.BISHOP: bishop_rule,
    PieceType.ROOK: rook_rule,
    PieceType.QUEEN: queen_rule,
    PieceType.KING: king_rule,
    # a promoted pawn is a queen in everything but name
    PieceType.PROMOTED_PAWN: queen_rule,
}


def is_legal_move(
    piece_type: PieceType,
    color: Color,
    dx: int,
    dy: int,
    move_type: MoveType = MoveType.NORMAL,
    first_move: bool = False,
) -> bool:
    """
    Decide if a piece may move by (dx, dy).

    ---
    * Anything further than MAX_MOVE_DISTANCE, or not moving at all, is never legal.
    * Castling is a king moving two columns sideways.
    * En passant is a pawn capture, so only pawns may do it (its shape is the normal diagonal pawn step).
    """
    if distance(0, 0, dx, dy) > MAX_MOVE_DISTANCE:
        return False

    if dx == 0 and dy == 0:
        return False

    if move_type == MoveType.CASTLE:
        return piece_type == PieceType.KING and abs(dx) == 2 and dy == 0

    if move_type == MoveType.EN_PASSANT and piece_type != PieceType.PAWN:
        return False

    rule = MOVEMENT_RULES.get(piece_type)
    if rule is None:
        return False
    return rule(dx, dy, color, first_move)
