"""Unit tests for millionboards/db/sql_repository.py"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from millionboards.db.schema import DBSnapshot
from millionboards.db.sql_repository import SnapshotModel, SQLSnapshotRepository

PIECES = [
    {"id": 1, "x": 99, "y": 100, "type": "king", "color": "white", "move_count": 0},
    {"id": 2, "x": 103, "y": 98, "type": "pawn", "color": "black", "adopted": True},
]


def test_save_snapshot(db_session_repo: Session) -> None:
    """Conversion from a SnapshotModel to DBSnapshot for a new entry to the database."""
    model = SnapshotModel(center_x=100, center_y=100, pieces=PIECES)

    repo = SQLSnapshotRepository(db_session_repo)
    record_in_db, snapshot_id = repo.save_snapshot(model)
    assert isinstance(record_in_db, SnapshotModel)
    assert record_in_db == model

    row = db_session_repo.scalar(select(DBSnapshot).where(DBSnapshot.id == snapshot_id))
    assert row is not None
    assert row.piece_count == 2
    assert row.created_at is not None


def test_get_latest_snapshot(db_session_repo: Session) -> None:
    """The most recent snapshot around a center wins."""
    repo = SQLSnapshotRepository(db_session_repo)
    repo.save_snapshot(SnapshotModel(center_x=100, center_y=100, pieces=PIECES))
    newer, _ = repo.save_snapshot(SnapshotModel(center_x=100, center_y=100, pieces=PIECES[:1]))
    repo.save_snapshot(SnapshotModel(center_x=200, center_y=100))

    found = repo.get_snapshot(100, 100)
    assert found == newer
    assert found.piece_count == 1


def test_get_unknown_snapshot(db_session_repo: Session) -> None:
    """
    Should return None if no snapshot was taken around the center.

    NOTE with an empty database, any center is a valid test case.
    """
    repo = SQLSnapshotRepository(db_session_repo)
    assert repo.get_snapshot(123, 456) is None


def test_list_snapshots(db_session_repo: Session) -> None:
    repo = SQLSnapshotRepository(db_session_repo)
    centers = [(100, 100), (195, 100), (100, 195)]
    for x, y in centers:
        repo.save_snapshot(SnapshotModel(center_x=x, center_y=y))

    stored = repo.list_snapshots()
    assert [(s.center_x, s.center_y) for s in stored] == centers


def test_delete_snapshot(db_session_repo: Session) -> None:
    repo = SQLSnapshotRepository(db_session_repo)
    stored, snapshot_id = repo.save_snapshot(SnapshotModel(center_x=100, center_y=100, pieces=PIECES))

    deleted = repo.delete_snapshot(snapshot_id)
    assert deleted == stored
    assert repo.get_snapshot(100, 100) is None
    assert repo.delete_snapshot(snapshot_id) is None
