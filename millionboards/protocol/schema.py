"""
Wire schema (protobuf, proto3).

The message types are described here with descriptor protos and turned into message classes at import time,
so no generated `_pb2` module (and no protoc run) is needed.

Client -> server: ClientMessage { oneof payload: move | subscribe | ping }
Server -> client: ServerMessage { oneof payload: initial_state | snapshot | moves_and_captures
                                                  | bulk_capture | valid_move | invalid_move | pong }
"""

from typing import Optional

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "chess"

_Field = descriptor_pb2.FieldDescriptorProto

# (field name, field number, field type, type name for messages/enums, repeated)
FieldSpec = tuple[str, int, int, Optional[str], bool]

_ENUMS: dict[str, list[tuple[str, int]]] = {
    "PieceType": [
        ("PIECE_TYPE_PAWN", 0),
        ("PIECE_TYPE_KNIGHT", 1),
        ("PIECE_TYPE_BISHOP", 2),
        ("PIECE_TYPE_ROOK", 3),
        ("PIECE_TYPE_QUEEN", 4),
        ("PIECE_TYPE_KING", 5),
        ("PIECE_TYPE_PROMOTED_PAWN", 6),
    ],
    "MoveType": [
        ("MOVE_TYPE_NORMAL", 0),
        ("MOVE_TYPE_CASTLE", 1),
        ("MOVE_TYPE_EN_PASSANT", 2),
    ],
}

_MESSAGES: dict[str, list[FieldSpec]] = {
    "PieceData": [
        ("id", 1, _Field.TYPE_UINT32, None, False),
        ("type", 2, _Field.TYPE_ENUM, "PieceType", False),
        ("is_white", 3, _Field.TYPE_BOOL, None, False),
        ("just_double_moved", 4, _Field.TYPE_BOOL, None, False),
        ("king_killer", 5, _Field.TYPE_BOOL, None, False),
        ("king_pawner", 6, _Field.TYPE_BOOL, None, False),
        ("queen_killer", 7, _Field.TYPE_BOOL, None, False),
        ("queen_pawner", 8, _Field.TYPE_BOOL, None, False),
        ("adopted_killer", 9, _Field.TYPE_BOOL, None, False),
        ("adopted", 10, _Field.TYPE_BOOL, None, False),
        ("has_captured_piece_type_other_than_own", 11, _Field.TYPE_BOOL, None, False),
        ("move_count", 12, _Field.TYPE_UINT32, None, False),
        ("capture_count", 13, _Field.TYPE_UINT32, None, False),
    ],
    # --- server -> client ---
    "SnapshotPiece": [
        ("dx", 1, _Field.TYPE_SINT32, None, False),
        ("dy", 2, _Field.TYPE_SINT32, None, False),
        ("piece", 3, _Field.TYPE_MESSAGE, "PieceData", False),
    ],
    "Snapshot": [
        ("x_coord", 1, _Field.TYPE_UINT32, None, False),
        ("y_coord", 2, _Field.TYPE_UINT32, None, False),
        ("pieces", 3, _Field.TYPE_MESSAGE, "SnapshotPiece", True),
    ],
    "InitialState": [
        ("snapshot", 1, _Field.TYPE_MESSAGE, "Snapshot", False),
    ],
    "PieceMove": [
        ("x", 1, _Field.TYPE_UINT32, None, False),
        ("y", 2, _Field.TYPE_UINT32, None, False),
        ("piece", 3, _Field.TYPE_MESSAGE, "PieceData", False),
    ],
    "PieceCapture": [
        ("captured_piece_id", 1, _Field.TYPE_UINT32, None, False),
    ],
    "MovesAndCaptures": [
        ("moves", 1, _Field.TYPE_MESSAGE, "PieceMove", True),
        ("captures", 2, _Field.TYPE_MESSAGE, "PieceCapture", True),
    ],
    "BulkCapture": [
        ("captured_ids", 1, _Field.TYPE_UINT32, None, True),
    ],
    "ValidMove": [
        ("move_token", 1, _Field.TYPE_UINT32, None, False),
        # 0: nothing was captured
        ("captured_piece_id", 2, _Field.TYPE_UINT32, None, False),
    ],
    "InvalidMove": [
        ("move_token", 1, _Field.TYPE_UINT32, None, False),
    ],
    "Pong": [],
    # --- client -> server ---
    "MoveRequest": [
        ("piece_id", 1, _Field.TYPE_UINT32, None, False),
        ("from_x", 2, _Field.TYPE_UINT32, None, False),
        ("from_y", 3, _Field.TYPE_UINT32, None, False),
        ("to_x", 4, _Field.TYPE_UINT32, None, False),
        ("to_y", 5, _Field.TYPE_UINT32, None, False),
        ("move_type", 6, _Field.TYPE_ENUM, "MoveType", False),
        ("move_token", 7, _Field.TYPE_UINT32, None, False),
    ],
    "SubscribeRequest": [
        ("center_x", 1, _Field.TYPE_UINT32, None, False),
        ("center_y", 2, _Field.TYPE_UINT32, None, False),
    ],
    "Ping": [],
}

# Envelopes: every field belongs to the `payload` oneof
_ENVELOPES: dict[str, list[tuple[str, int, str]]] = {
    "ClientMessage": [
        ("move", 1, "MoveRequest"),
        ("subscribe", 2, "SubscribeRequest"),
        ("ping", 3, "Ping"),
    ],
    "ServerMessage": [
        ("initial_state", 1, "InitialState"),
        ("snapshot", 2, "Snapshot"),
        ("moves_and_captures", 3, "MovesAndCaptures"),
        ("bulk_capture", 4, "BulkCapture"),
        ("valid_move", 5, "ValidMove"),
        ("invalid_move", 6, "InvalidMove"),
        ("pong", 7, "Pong"),
    ],
}

PAYLOAD_ONEOF = "payload"


def _qualified(type_name: str) -> str:
    return f".{PACKAGE}.{type_name}"


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Describe the whole schema as a single .proto file"""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="millionboards/chess.proto", package=PACKAGE, syntax="proto3"
    )

    for enum_name, values in _ENUMS.items():
        enum_proto = file_proto.enum_type.add(name=enum_name)
        for value_name, number in values:
            enum_proto.value.add(name=value_name, number=number)

    for message_name, fields in _MESSAGES.items():
        message_proto = file_proto.message_type.add(name=message_name)
        for field_name, number, field_type, type_name, repeated in fields:
            field = message_proto.field.add(
                name=field_name,
                number=number,
                type=field_type,
                label=_Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL,
            )
            if type_name is not None:
                field.type_name = _qualified(type_name)

    for envelope_name, fields in _ENVELOPES.items():
        message_proto = file_proto.message_type.add(name=envelope_name)
        message_proto.oneof_decl.add(name=PAYLOAD_ONEOF)
        for field_name, number, type_name in fields:
            message_proto.field.add(
                name=field_name,
                number=number,
                type=_Field.TYPE_MESSAGE,
                label=_Field.LABEL_OPTIONAL,
                type_name=_qualified(type_name),
                oneof_index=0,
            )

    return file_proto


# Own pool, so the schema never clashes with other protobuf users in the same process
_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(build_file_descriptor().SerializeToString())


def message_class(name: str) -> type:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.{name}"))


ClientMessage = message_class("ClientMessage")
ServerMessage = message_class("ServerMessage")
