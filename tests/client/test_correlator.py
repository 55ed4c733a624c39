"""Unit tests for millionboards/client/correlator.py"""

import asyncio

import pytest

from millionboards.chess.pieces import Piece
from millionboards.client.correlator import RequestCorrelator
from millionboards.core.config import MAX_MOVE_TOKEN
from millionboards.core.exceptions import ChessError, ErrorReason
from millionboards.core.shared_types import Color, PieceType


@pytest.fixture
def piece() -> Piece:
    return Piece(id=1, type=PieceType.ROOK, color=Color.WHITE, x=100, y=100)


def test_tokens_start_at_one() -> None:
    requests = RequestCorrelator(move_timeout=1.0)
    assert [requests.next_token() for _ in range(3)] == [1, 2, 3]


def test_tokens_wrap_around() -> None:
    requests = RequestCorrelator(move_timeout=1.0)
    requests._move_token = MAX_MOVE_TOKEN - 1
    assert requests.next_token() == MAX_MOVE_TOKEN
    assert requests.next_token() == 1


async def test_tokens_skip_pending_moves(piece: Piece) -> None:
    requests = RequestCorrelator(move_timeout=10.0)
    first = requests.track_move(piece, 100, 100, 100, 90)
    assert first.token == 1

    requests._move_token = MAX_MOVE_TOKEN
    # 1 is still waiting for its answer
    assert requests.next_token() == 2
    requests.discard_move(first)


async def test_resolve_move(piece: Piece) -> None:
    requests = RequestCorrelator(move_timeout=10.0)
    pending = requests.track_move(piece, 100, 100, 100, 90)
    assert pending.token in requests.pending_moves

    assert requests.resolve_move(pending.token, "ok") is pending
    assert await pending.future == "ok"
    assert pending.timer.cancelled()
    assert requests.pending_moves == {}

    # late / duplicate answers are ignored
    assert requests.resolve_move(pending.token, "again") is None


async def test_reject_move(piece: Piece) -> None:
    requests = RequestCorrelator(move_timeout=10.0)
    pending = requests.track_move(piece, 100, 100, 100, 90)

    requests.reject_move(pending.token, ChessError("Invalid move: 1", ErrorReason.MOVE_REJECTED))
    with pytest.raises(ChessError, match="Invalid move: 1"):
        await pending.future


async def test_move_times_out(piece: Piece) -> None:
    requests = RequestCorrelator(move_timeout=0.01)
    pending = requests.track_move(piece, 100, 100, 100, 90)

    with pytest.raises(ChessError, match=f"Move timed out: {pending.token}") as exc:
        await pending.future
    assert exc.value.reason == ErrorReason.TIMEOUT
    assert exc.value.ref == pending.token
    assert requests.get_move(pending.token) is None


async def test_discard_only_drops_own_entry(piece: Piece) -> None:
    requests = RequestCorrelator(move_timeout=10.0)
    pending = requests.track_move(piece, 100, 100, 100, 90)
    requests.pop_move(pending.token)

    requests._move_token = 0
    replacement = requests.track_move(piece, 100, 100, 100, 80)
    assert replacement.token == pending.token

    requests.discard_move(pending)
    assert requests.get_move(replacement.token) is replacement
    assert pending.future.cancelled()
    requests.discard_move(replacement)


async def test_only_one_view_at_a_time() -> None:
    requests = RequestCorrelator(move_timeout=10.0)
    pending = requests.track_view(200, 200)
    assert requests.view_pending

    with pytest.raises(ChessError) as exc:
        requests.track_view(300, 300)
    assert exc.value.reason == ErrorReason.VIEW_PENDING

    requests.resolve_view()
    assert await pending.future is None
    assert not requests.view_pending


async def test_view_timeout_is_longer_than_move_timeout() -> None:
    requests = RequestCorrelator(move_timeout=0.025)
    assert requests.view_timeout == pytest.approx(0.1)

    pending = requests.track_view(200, 200)
    await asyncio.sleep(0.02)
    assert not pending.future.done()

    with pytest.raises(ChessError, match="View move timed out"):
        await pending.future


async def test_reject_all(piece: Piece) -> None:
    requests = RequestCorrelator(move_timeout=10.0)
    moves = [requests.track_move(piece, 100, 100, 100, y) for y in (90, 91, 92)]
    view = requests.track_view(300, 300)

    requests.reject_all()

    for pending in [*moves, view]:
        with pytest.raises(ChessError, match="Connection closed") as exc:
            await pending.future
        assert exc.value.reason == ErrorReason.CONNECTION_CLOSED
        assert pending.timer.cancelled()
    assert requests.pending_moves == {}
    assert not requests.view_pending
