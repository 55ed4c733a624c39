"""
Boundary layer data model(s).

The board is handed to the outside world (persistence, image export, scripts) as a SnapshotModel:
a plain record of the view center plus the serialized pieces, so none of them depend on the Board class itself.
"""

from dataclasses import dataclass, field
from typing import Any

# Type alias to make SnapshotModel easier to read
PieceRecord = dict[str, Any]


@dataclass
class SnapshotModel:
    """Transport-safe representation of the materialized part of the board."""

    center_x: int
    center_y: int
    pieces: list[PieceRecord] = field(default_factory=list)

    @property
    def piece_count(self) -> int:
        return len(self.pieces)
