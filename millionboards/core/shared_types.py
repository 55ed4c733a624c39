"""
Type definitions used across layers
"""

from enum import StrEnum


class Color(StrEnum):
    WHITE = "white"
    BLACK = "black"


class PieceType(StrEnum):
    PAWN = "pawn"
    KNIGHT = "knight"
    BISHOP = "bishop"
    ROOK = "rook"
    QUEEN = "queen"
    KING = "king"
    PROMOTED_PAWN = "promoted_pawn"


class MoveType(StrEnum):
    NORMAL = "normal"
    CASTLE = "castle"
    EN_PASSANT = "en_passant"
