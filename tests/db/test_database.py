"""Unit tests for millionboards/db/database.py"""

from sqlalchemy.orm import Session

from millionboards.core.models import SnapshotModel
from millionboards.db.database import DEFAULT_DATABASE_URL, create_session_factory, get_db
from millionboards.db.sql_repository import SQLSnapshotRepository


def test_default_url_is_sqlite_file() -> None:
    assert DEFAULT_DATABASE_URL.startswith("sqlite:///")


def test_session_factory_creates_tables() -> None:
    """A fresh database can store snapshots right away."""
    session_factory = create_session_factory("sqlite://")
    sessions = get_db(session_factory)
    db = next(sessions)
    assert isinstance(db, Session)

    repo = SQLSnapshotRepository(db)
    _, snapshot_id = repo.save_snapshot(SnapshotModel(center_x=100, center_y=100))
    assert snapshot_id == 1

    sessions.close()
