"""
Translation between the wire (protobuf bytes, possibly zstd compressed) and the client's own types.

Broken inbound data is never fatal: it gets logged and decodes to None, so the connection keeps going.
"""

import logging
from typing import Any, Mapping, Optional

import zstandard
from google.protobuf import json_format
from google.protobuf.message import DecodeError

from millionboards.api.models import MoveRequest, PingRequest, SubscribeRequest
from millionboards.chess.pieces import MOVE_TYPE_TO_WIRE, PIECE_FLAGS, WIRE_TO_PIECE
from millionboards.core.exceptions import ChessError, ErrorReason
from millionboards.protocol import messages
from millionboards.protocol.schema import PAYLOAD_ONEOF, ClientMessage, ServerMessage

logger = logging.getLogger(__name__)

ZSTD_MAGIC_BYTES = bytes([0x28, 0xB5, 0x2F, 0xFD])

Command = MoveRequest | SubscribeRequest | PingRequest | Mapping[str, Any]


# --- OUTBOUND ---
def encode_move(request: MoveRequest) -> bytes:
    message = ClientMessage()
    move = message.move
    move.piece_id = request.piece_id
    move.from_x = request.from_x
    move.from_y = request.from_y
    move.to_x = request.to_x
    move.to_y = request.to_y
    move.move_type = MOVE_TYPE_TO_WIRE[request.move_type]
    move.move_token = request.move_token
    return message.SerializeToString()


def encode_subscribe(request: SubscribeRequest) -> bytes:
    message = ClientMessage()
    message.subscribe.center_x = request.center_x
    message.subscribe.center_y = request.center_y
    return message.SerializeToString()


def encode_ping() -> bytes:
    message = ClientMessage()
    message.ping.SetInParent()
    return message.SerializeToString()


def encode_command(command: Command) -> bytes:
    """
    Encode any outbound command.

    Raw commands are dicts shaped like the ClientMessage, e.g. {"subscribe": {"center_x": 10, "center_y": 10}}
    (protobuf JSON names such as "centerX" work as well).
    """
    if isinstance(command, MoveRequest):
        return encode_move(command)
    if isinstance(command, SubscribeRequest):
        return encode_subscribe(command)
    if isinstance(command, PingRequest):
        return encode_ping()

    try:
        message = json_format.ParseDict(dict(command), ClientMessage())
    except (json_format.ParseError, TypeError, ValueError) as err:
        raise ChessError(
            f"Cannot encode command: {err}", ErrorReason.INVALID_MESSAGE, command
        ) from err

    if message.WhichOneof(PAYLOAD_ONEOF) is None:
        raise ChessError(
            "Command does not contain any known payload", ErrorReason.INVALID_MESSAGE, command
        )
    return message.SerializeToString()


# --- INBOUND ---
def is_zstd_compressed(data: bytes) -> bool:
    return data[: len(ZSTD_MAGIC_BYTES)] == ZSTD_MAGIC_BYTES


def decompress(data: bytes) -> Optional[bytes]:
    """Undo zstd compression if the magic prefix says so. None if decompressing fails."""
    if not is_zstd_compressed(data):
        return data

    try:
        # decompressobj copes with frames that do not announce their content size
        return zstandard.ZstdDecompressor().decompressobj().decompress(data)
    except zstandard.ZstdError:
        logger.exception("Decompressing data failed")
        return None


def decode_server_message(data: bytes) -> Optional[messages.ServerMessage]:
    """bytes -> one of the dataclasses in `messages`, or None if the payload is unusable"""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        # text frames are not part of the protocol
        logger.warning("Ignoring non-binary message of type %s", type(data).__name__)
        return None

    raw = decompress(bytes(data))
    if raw is None:
        return None

    message = ServerMessage()
    try:
        message.ParseFromString(raw)
    except DecodeError:
        logger.exception("Decoding message failed")
        return None

    payload = message.WhichOneof(PAYLOAD_ONEOF)
    if payload is None:
        logger.warning("Received message without payload")
        return None

    try:
        return _PAYLOAD_CONVERTERS[payload](getattr(message, payload))
    except (KeyError, ValueError) as err:
        logger.error("Converting %s message failed: %s", payload, err)
        return None


def _piece_data(proto: Any) -> messages.PieceData:
    return messages.PieceData(
        id=proto.id,
        type=WIRE_TO_PIECE[proto.type],
        is_white=proto.is_white,
        move_count=proto.move_count,
        capture_count=proto.capture_count,
        flags={name: getattr(proto, name) for name in PIECE_FLAGS},
    )


def _snapshot(proto: Any) -> messages.Snapshot:
    return messages.Snapshot(
        x_coord=proto.x_coord,
        y_coord=proto.y_coord,
        pieces=[
            messages.SnapshotPiece(dx=entry.dx, dy=entry.dy, piece=_piece_data(entry.piece))
            for entry in proto.pieces
        ],
    )


def _initial_state(proto: Any) -> messages.InitialState:
    return messages.InitialState(snapshot=_snapshot(proto.snapshot))


def _moves_and_captures(proto: Any) -> messages.MovesAndCaptures:
    return messages.MovesAndCaptures(
        moves=[
            messages.PieceMove(x=move.x, y=move.y, piece=_piece_data(move.piece))
            for move in proto.moves
        ],
        captured_ids=[capture.captured_piece_id for capture in proto.captures],
    )


def _bulk_capture(proto: Any) -> messages.BulkCapture:
    return messages.BulkCapture(captured_ids=list(proto.captured_ids))


def _valid_move(proto: Any) -> messages.ValidMove:
    return messages.ValidMove(
        move_token=proto.move_token,
        captured_piece_id=proto.captured_piece_id or None,
    )


def _invalid_move(proto: Any) -> messages.InvalidMove:
    return messages.InvalidMove(move_token=proto.move_token)


def _pong(proto: Any) -> messages.Pong:
    return messages.Pong()


_PAYLOAD_CONVERTERS = {
    "initial_state": _initial_state,
    "snapshot": _snapshot,
    "moves_and_captures": _moves_and_captures,
    "bulk_capture": _bulk_capture,
    "valid_move": _valid_move,
    "invalid_move": _invalid_move,
    "pong": _pong,
}
