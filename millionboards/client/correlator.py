"""
Bookkeeping of requests that were sent but not answered yet.

Moves are matched to their answer through a move token. Only one view move can be in flight,
and it is answered by the next full snapshot. Each pending entry owns a future and a deadline timer,
and leaves the table exactly once: answered, timed out, or failed together with the connection.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

from millionboards.chess.pieces import Piece
from millionboards.core.config import MAX_MOVE_TOKEN
from millionboards.core.exceptions import ChessError, ErrorReason

VIEW_TIMEOUT_FACTOR = 4


@dataclass
class PendingMove:
    token: int
    piece: Piece
    from_x: int
    from_y: int
    to_x: int
    to_y: int
    future: asyncio.Future = field(repr=False)
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)


@dataclass
class PendingView:
    center_x: int
    center_y: int
    future: asyncio.Future = field(repr=False)
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)


class RequestCorrelator:
    def __init__(self, move_timeout: float) -> None:
        self.move_timeout = move_timeout
        self.view_timeout = VIEW_TIMEOUT_FACTOR * move_timeout

        self._move_token = 0
        self._moves: dict[int, PendingMove] = {}
        self._view: Optional[PendingView] = None

    # --- Move requests ---
    @property
    def pending_moves(self) -> dict[int, PendingMove]:
        return dict(self._moves)

    def next_token(self) -> int:
        """Next move token: 1, 2, ..., 65535, 1, ... (tokens of moves still in flight are skipped)"""
        for _ in range(MAX_MOVE_TOKEN):
            if self._move_token >= MAX_MOVE_TOKEN:
                self._move_token = 0
            self._move_token += 1
            if self._move_token not in self._moves:
                return self._move_token
        raise ChessError(
            "No free move token: too many moves in flight", ErrorReason.INVALID_VALUE
        )

    def track_move(
        self, piece: Piece, from_x: int, from_y: int, to_x: int, to_y: int
    ) -> PendingMove:
        """Allocate a token and start waiting for its answer"""
        loop = asyncio.get_running_loop()
        token = self.next_token()
        pending = PendingMove(
            token=token,
            piece=piece,
            from_x=from_x,
            from_y=from_y,
            to_x=to_x,
            to_y=to_y,
            future=loop.create_future(),
        )
        pending.timer = loop.call_later(self.move_timeout, self._move_timed_out, token)
        self._moves[token] = pending
        return pending

    def get_move(self, token: int) -> Optional[PendingMove]:
        return self._moves.get(token)

    def pop_move(self, token: int) -> Optional[PendingMove]:
        """Take the entry out of the table (stopping its timer). None for unknown tokens."""
        pending = self._moves.pop(token, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
        return pending

    def discard_move(self, pending: PendingMove) -> None:
        """Drop the entry if it is still the one waiting under its token"""
        if self._moves.get(pending.token) is pending:
            self.pop_move(pending.token)
        _settle(pending.future)

    def resolve_move(self, token: int, result: Any) -> Optional[PendingMove]:
        pending = self.pop_move(token)
        if pending is not None:
            _set_result(pending.future, result)
        return pending

    def reject_move(self, token: int, error: BaseException) -> Optional[PendingMove]:
        pending = self.pop_move(token)
        if pending is not None:
            _set_exception(pending.future, error)
        return pending

    def _move_timed_out(self, token: int) -> None:
        self.reject_move(
            token, ChessError(f"Move timed out: {token}", ErrorReason.TIMEOUT, token)
        )

    # --- View requests ---
    @property
    def view_pending(self) -> bool:
        return self._view is not None

    def track_view(self, center_x: int, center_y: int) -> PendingView:
        if self._view is not None:
            raise ChessError("Already waiting for view move", ErrorReason.VIEW_PENDING)

        loop = asyncio.get_running_loop()
        pending = PendingView(center_x=center_x, center_y=center_y, future=loop.create_future())
        pending.timer = loop.call_later(self.view_timeout, self._view_timed_out)
        self._view = pending
        return pending

    def pop_view(self) -> Optional[PendingView]:
        pending, self._view = self._view, None
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
        return pending

    def discard_view(self, pending: PendingView) -> None:
        if self._view is pending:
            self.pop_view()
        _settle(pending.future)

    def resolve_view(self) -> Optional[PendingView]:
        pending = self.pop_view()
        if pending is not None:
            _set_result(pending.future, None)
        return pending

    def reject_view(self, error: BaseException) -> Optional[PendingView]:
        pending = self.pop_view()
        if pending is not None:
            _set_exception(pending.future, error)
        return pending

    def _view_timed_out(self) -> None:
        self.reject_view(ChessError("View move timed out", ErrorReason.TIMEOUT, "view"))

    # --- Everything ---
    def reject_all(self, error_message: str = "Connection closed") -> None:
        """Fail every pending request (each gets its own error instance)"""
        for token in list(self._moves):
            self.reject_move(
                token, ChessError(error_message, ErrorReason.CONNECTION_CLOSED, token)
            )
        self.reject_view(ChessError(error_message, ErrorReason.CONNECTION_CLOSED, "view"))


def _set_result(future: asyncio.Future, result: Any) -> None:
    if not future.done():
        future.set_result(result)


def _set_exception(future: asyncio.Future, error: BaseException) -> None:
    if not future.done():
        future.set_exception(error)


def _settle(future: asyncio.Future) -> None:
    """Nobody is going to await this future anymore: keep asyncio from warning about it"""
    if not future.done():
        future.cancel()
    elif not future.cancelled():
        future.exception()

