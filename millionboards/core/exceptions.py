"""
Errors raised by the client.

Every error carries a `reason` so callers can decide what to do (retry, give up, reconnect)
without looking at the message text. `ref` holds whatever value caused the error (coordinates, token, ...).
"""

from enum import StrEnum
from typing import Any


class ErrorReason(StrEnum):
    INVALID_VALUE = "invalid_value"
    INVALID_COORDS = "invalid_coords"
    ILLEGAL_MOVE = "illegal_move"
    NO_PIECE = "no_piece"
    VIEW_PENDING = "view_pending"
    VIEW_TOO_SHORT = "view_too_short"
    TIMEOUT = "timeout"
    CONNECTION_CLOSED = "connection_closed"
    CONNECTION_FAILED = "connection_failed"
    NOT_CONNECTED = "not_connected"
    DESTROYED = "destroyed"
    MAX_CONNECTIONS = "max_connections"
    RETRY_EXHAUSTED = "retry_exhausted"
    MOVE_REJECTED = "move_rejected"
    INVALID_MESSAGE = "invalid_message"


# Failures caused by the network rather than by the request itself
TRANSIENT_REASONS: frozenset[ErrorReason] = frozenset(
    {
        ErrorReason.TIMEOUT,
        ErrorReason.CONNECTION_CLOSED,
        ErrorReason.CONNECTION_FAILED,
        ErrorReason.NOT_CONNECTED,
        ErrorReason.RETRY_EXHAUSTED,
    }
)


class ClientError(Exception):
    """Connection / transport level errors."""

    def __init__(
        self,
        message: str = "",
        reason: ErrorReason = ErrorReason.INVALID_VALUE,
        ref: Any = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.ref = ref

    @property
    def is_transient(self) -> bool:
        return self.reason in TRANSIENT_REASONS


class ChessError(ClientError):
    """Errors about the board itself: coordinates, pieces, moves."""


class InvalidRequestError(Exception):
    """A request model was filled in with values that can never be sent."""
