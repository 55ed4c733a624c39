"""Implementation of (Snapshot)Repository using SQLAlchemy"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from millionboards.core.models import SnapshotModel
from millionboards.db.schema import DBSnapshot


class SQLSnapshotRepository:
    """Data stored using SQL / methods implemented using SQLAlchemy"""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def save_snapshot(self, snapshot: SnapshotModel) -> tuple[SnapshotModel, int]:
        """Store a snapshot and return the stored data + newly created snapshot ID."""
        snapshot_db = DBSnapshot(
            center_x=snapshot.center_x,
            center_y=snapshot.center_y,
            piece_count=snapshot.piece_count,
            pieces=list(snapshot.pieces),
        )
        self.db.add(snapshot_db)
        self.db.commit()
        self.db.refresh(snapshot_db)
        return self._to_model(snapshot_db), snapshot_db.id

    def get_snapshot(self, center_x: int, center_y: int) -> SnapshotModel | None:
        """Latest snapshot taken around the given center, if any."""
        query = (
            select(DBSnapshot)
            .where(DBSnapshot.center_x == center_x, DBSnapshot.center_y == center_y)
            .order_by(DBSnapshot.id.desc())
            .limit(1)
        )
        snapshot_db = self.db.scalar(query)
        if snapshot_db:
            return self._to_model(snapshot_db)
        return None

    def list_snapshots(self) -> list[SnapshotModel]:
        query = select(DBSnapshot).order_by(DBSnapshot.id)
        return [self._to_model(snapshot_db) for snapshot_db in self.db.scalars(query)]

    def delete_snapshot(self, snapshot_id: int) -> SnapshotModel | None:
        """Remove a snapshot's record."""
        snapshot_db = self.db.get(DBSnapshot, snapshot_id)
        if not snapshot_db:
            return None
        snapshot_model = self._to_model(snapshot_db)
        self.db.delete(snapshot_db)
        self.db.commit()
        return snapshot_model

    def _to_model(self, snapshot_db: DBSnapshot) -> SnapshotModel:
        """Convert SQLAlchemy model to data transfer model."""
        return SnapshotModel(
            center_x=snapshot_db.center_x,
            center_y=snapshot_db.center_y,
            pieces=list(snapshot_db.pieces),
        )
