"""Database tables / schema"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DBSnapshot(Base):
    __tablename__ = "snapshots"
    __table_args__ = (Index("ix_snapshots_center", "center_x", "center_y"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    center_x: Mapped[int]
    center_y: Mapped[int]
    piece_count: Mapped[int] = mapped_column(default=0)
    pieces: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
