"""Protocol repository (the scan service only needs somewhere to put board snapshots)"""

from typing import Protocol

from millionboards.core.models import SnapshotModel


class SnapshotRepository(Protocol):
    """Persistence layer orchestration"""

    def save_snapshot(self, snapshot: SnapshotModel) -> tuple[SnapshotModel, int]:
        """Store a snapshot and return the stored data + newly created snapshot ID."""
        ...

    def get_snapshot(self, center_x: int, center_y: int) -> SnapshotModel | None:
        """Latest snapshot taken around the given center, if any."""
        ...

    def list_snapshots(self) -> list[SnapshotModel]:
        """All snapshots, oldest first."""
        ...

    def delete_snapshot(self, snapshot_id: int) -> SnapshotModel | None:
        """Remove a snapshot's record."""
        ...
