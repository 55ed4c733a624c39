"""Generate database sessions"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from millionboards.db.schema import Base

DEFAULT_DATABASE_URL = "sqlite:///millionboards.db"


def create_session_factory(
    database_url: str = DEFAULT_DATABASE_URL, echo: bool = False
) -> sessionmaker[Session]:
    engine = create_engine(database_url, echo=echo)
    # Ensure all tables are created
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine)


def get_db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
