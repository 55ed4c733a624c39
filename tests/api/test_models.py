from typing import Any

import pytest

from millionboards.api.models import MoveRequest, MoveResult, PingRequest, SubscribeRequest
from millionboards.core.exceptions import InvalidRequestError
from millionboards.core.shared_types import MoveType


def move_request(**overrides: Any) -> MoveRequest:
    fields = {
        "piece_id": 1,
        "from_x": 100,
        "from_y": 100,
        "to_x": 100,
        "to_y": 99,
        "move_token": 1,
    }
    fields.update(overrides)
    return MoveRequest(**fields)


# -- Validation - MoveRequest --
def test_valid_move_request() -> None:
    """Move type defaults to a normal move."""
    request = move_request()
    assert request.move_type == MoveType.NORMAL
    assert request.to_y == 99


def test_move_type_from_string() -> None:
    request = move_request(move_type="castle")
    assert request.move_type == MoveType.CASTLE


@pytest.mark.parametrize("field", ["from_x", "from_y", "to_x", "to_y"])
@pytest.mark.parametrize("value", [-1, 8000])
def test_coordinates_outside_grid(field: str, value: int) -> None:
    with pytest.raises(InvalidRequestError):
        move_request(**{field: value})


@pytest.mark.parametrize("token", [0, 65536])
def test_invalid_move_token(token: int) -> None:
    with pytest.raises(InvalidRequestError):
        move_request(move_token=token)


def test_move_token_limits() -> None:
    assert move_request(move_token=65535).move_token == 65535


# -- Validation - SubscribeRequest --
def test_valid_subscribe_request() -> None:
    request = SubscribeRequest(center_x=2, center_y=7997)
    assert (request.center_x, request.center_y) == (2, 7997)


@pytest.mark.parametrize("center_x, center_y", [(1, 100), (100, 7998)])
def test_subscribe_outside_range(center_x: int, center_y: int) -> None:
    """View centers must keep the viewport's core on the grid."""
    with pytest.raises(InvalidRequestError, match="Can't move view to"):
        SubscribeRequest(center_x=center_x, center_y=center_y)


# -- Responses --
def test_move_result() -> None:
    assert MoveResult(move_token=3).captured_piece_id is None
    assert PingRequest() == PingRequest()
