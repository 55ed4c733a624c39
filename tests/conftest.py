"""
Pytest will auto-discover / import this file called 'conftest.py'.
This file defines fixtures/variables required for testing multiple layers.
"""

import asyncio
from typing import Any, Callable, Generator, Optional

import pytest
from google.protobuf import json_format
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from millionboards.client.chess_client import ChessClient
from millionboards.client.connection import NORMAL_CLOSURE, WsClient
from millionboards.db.schema import Base
from millionboards.protocol.schema import ServerMessage

# Setup an in-memory SQLite database for testing
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)


@pytest.fixture
def db_session_repo() -> Generator[Session, None, None]:
    """Connection to a test database. Tables are removed at teardown to make unit tests of repository independent of each other."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        Base.metadata.drop_all(bind=engine)
        db.close()


# --- MOCK WEBSOCKET ---
_END = object()


class FakeTransport:
    """Stands in for a websocket connection: records what is sent, replays what is fed."""

    def __init__(self) -> None:
        self.sent: list[bytes] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.send_error: Optional[BaseException] = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: bytes) -> None:
        if self.send_error is not None:
            raise self.send_error
        if self.closed:
            raise OSError("transport closed")
        self.sent.append(data)

    async def close(self, code: int = NORMAL_CLOSURE) -> None:
        if not self.closed:
            self.closed = True
            self.close_code = code
            self._inbox.put_nowait(_END)

    def feed(self, data: bytes) -> None:
        """Message from the 'server'"""
        self._inbox.put_nowait(data)

    def fail(self, error: BaseException) -> None:
        """Make the read loop blow up with `error`"""
        self._inbox.put_nowait(error)

    def end(self, code: int = NORMAL_CLOSURE) -> None:
        """Server side close"""
        self.close_code = code
        self._inbox.put_nowait(_END)

    def __aiter__(self) -> "FakeTransport":
        return self

    async def __anext__(self) -> bytes:
        item = await self._inbox.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    """Hands out a fresh FakeTransport per connection attempt (or raises `error`)."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.transports: list[FakeTransport] = []
        self.error: Optional[BaseException] = None

    async def __call__(self, url: str, headers: dict[str, str]) -> FakeTransport:
        self.calls.append((url, headers))
        if self.error is not None:
            raise self.error
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture(autouse=True)
def reset_connections() -> Generator[None, None, None]:
    """Connection counters are per class and global: start and end every test at zero."""
    WsClient.reset_connections()
    ChessClient.reset_connections()
    yield
    WsClient.reset_connections()
    ChessClient.reset_connections()


@pytest.fixture
def encode_server() -> Callable[[dict[str, Any]], bytes]:
    """Call the inner function with a ServerMessage shaped dict to get the bytes the server would send"""

    def _encode(payload: dict[str, Any]) -> bytes:
        return json_format.ParseDict(payload, ServerMessage()).SerializeToString()

    return _encode


async def settle(rounds: int = 5) -> None:
    """Let background tasks (read loop, spawned sends) run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def run_pending() -> Callable[..., Any]:
    return settle
