"""
Client for the one million chessboards server.

Keeps a local mirror of the pieces around the view center up to date, and turns
piece / view moves into requests that resolve once the server has answered them.
"""

import asyncio
from math import floor
from typing import Any, Callable, Optional

from millionboards.api.models import MoveRequest, MoveResult, SubscribeRequest
from millionboards.chess.board import Board, validate_center_coords
from millionboards.chess.pieces import Piece, to_color, to_move_type
from millionboards.client.connection import Connector, WsClient
from millionboards.client.correlator import RequestCorrelator
from millionboards.core.config import (
    MIN_VIEW_DISTANCE,
    SERVER_DOMAIN,
    ChessClientOptions,
    ClientOptions,
)
from millionboards.core.exceptions import ChessError, ErrorReason
from millionboards.core.shared_types import Color, MoveType
from millionboards.protocol import messages
from millionboards.protocol.codec import Command, decode_server_message, encode_command, encode_ping


def server_url(x0: int, y0: int, color: Color | str = Color.WHITE) -> str:
    return f"wss://{SERVER_DOMAIN}/ws?x={x0}&y={y0}&colorPref={to_color(color)}"


class ChessClient(WsClient):
    max_connections = 20

    def __init__(
        self,
        x0: int,
        y0: int,
        color: Color | str = Color.WHITE,
        options: Optional[ClientOptions] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.color = to_color(color)
        validate_center_coords(x0, y0, "Invalid starting position")
        self.x0 = x0
        self.y0 = y0

        options = options or ChessClientOptions()
        super().__init__(server_url(x0, y0, self.color), options, connector)

        self.board = Board()
        self.total_moves = 0
        self.total_captures = 0

        self.requests = RequestCorrelator(self.options.move_timeout)
        self._board_ready: Optional[asyncio.Future] = None

        self._message_handlers: dict[type, Callable[[Any], None]] = {
            messages.Pong: self._on_pong_message,
            messages.InitialState: self._on_initial_state,
            messages.Snapshot: self._on_snapshot,
            messages.ValidMove: self._on_valid_move,
            messages.InvalidMove: self._on_invalid_move,
            messages.MovesAndCaptures: self._on_moves_and_captures,
            messages.BulkCapture: self._on_bulk_capture,
        }

    # --- Public API ---
    async def init(self) -> None:
        """Connect and wait for the first full snapshot of the board"""
        await super().init()

        ready = self._board_ready
        if ready is None:
            return
        try:
            board_arrived = await asyncio.wait_for(
                asyncio.shield(ready), self.requests.view_timeout
            )
        except asyncio.TimeoutError as err:
            raise ChessError(
                "No initial board state received", ErrorReason.TIMEOUT, self.url
            ) from err
        if not board_arrived:
            raise ChessError(
                "Connection closed before the board arrived", ErrorReason.CONNECTION_CLOSED
            )

    async def send_request(self, command: Command | bytes) -> None:
        """Send a request model, a raw command dict, or already encoded bytes"""
        if isinstance(command, (bytes, bytearray)):
            data = bytes(command)
        else:
            data = encode_command(command)
        await super().send_request(data)

    async def move_piece(
        self,
        piece: Optional[Piece],
        to_x: int,
        to_y: int,
        move_type: MoveType | str | int = MoveType.NORMAL,
    ) -> MoveResult:
        """
        Ask the server to move a piece.
        ---

        Moves that can never be valid fail right away, without contacting the server.
        Otherwise resolves once the server accepted the move (and the local board shows it),
        or fails when it is rejected, times out or the connection drops.
        """
        move_type = to_move_type(move_type)
        if piece is None:
            raise ChessError("No piece provided", ErrorReason.NO_PIECE)
        self.board.validate_piece_move(piece, to_x, to_y, move_type)

        to_x, to_y = floor(to_x), floor(to_y)
        pending = self.requests.track_move(piece, piece.x, piece.y, to_x, to_y)
        try:
            request = MoveRequest(
                piece_id=piece.id,
                from_x=piece.x,
                from_y=piece.y,
                to_x=to_x,
                to_y=to_y,
                move_type=move_type,
                move_token=pending.token,
            )
            await self.send_request(request)
            return await pending.future
        finally:
            self.requests.discard_move(pending)

    async def move_view(self, center_x: int, center_y: int) -> None:
        """Move the viewport; resolves once the snapshot around the new center arrived"""
        if self.requests.view_pending:
            raise ChessError("Already waiting for view move", ErrorReason.VIEW_PENDING)

        validate_center_coords(center_x, center_y, "Can't move view to")

        distance = self.board.distance_to_center(center_x, center_y)
        if distance is not None and distance < MIN_VIEW_DISTANCE:
            raise ChessError(
                f"View move too short: {distance} (at least {MIN_VIEW_DISTANCE})",
                ErrorReason.VIEW_TOO_SHORT,
                {"x": center_x, "y": center_y},
            )

        pending = self.requests.track_view(center_x, center_y)
        try:
            await self.send_request(SubscribeRequest(center_x=center_x, center_y=center_y))
            await pending.future
        finally:
            self.requests.discard_view(pending)

    def destroy(self) -> None:
        super().destroy()
        self.board.clear()
        self.log.info("Client destroyed.")

    # --- Connection hooks ---
    async def _connect(self) -> None:
        connecting = self._connection_ready is not None and not self._connection_ready.done()
        if not (self.connected or connecting or self.destroyed):
            # come back where the view was last
            self.url = server_url(self.x0, self.y0, self.color)
            self._board_ready = asyncio.get_running_loop().create_future()
        await super()._connect()

    async def _on_websocket_message(self, data: bytes) -> None:
        try:
            message = decode_server_message(data)
        except Exception:
            self.log.exception("Decoding message failed")
            return
        if message is None:
            return

        handler = self._message_handlers.get(type(message))
        if handler is None:
            self.log.warning("Unknown message type received: %s", type(message).__name__)
            return

        try:
            handler(message)
        except Exception:
            self.log.exception("Handling %s message failed", type(message).__name__)

    def _reject_pending_requests(self) -> None:
        self.requests.reject_all()
        if self._board_ready is not None and not self._board_ready.done():
            self._board_ready.set_result(False)

    def _build_ping(self) -> Optional[bytes]:
        return encode_ping()

    # --- Message handlers ---
    def _on_pong_message(self, message: messages.Pong) -> None:
        self._on_pong()

    def _on_initial_state(self, message: messages.InitialState) -> None:
        self._reset_board(message.snapshot)
        if self._board_ready is not None and not self._board_ready.done():
            self._board_ready.set_result(True)

    def _on_snapshot(self, message: messages.Snapshot) -> None:
        self._reset_board(message)
        self.requests.resolve_view()

    def _on_valid_move(self, message: messages.ValidMove) -> None:
        pending = self.requests.get_move(message.move_token)
        if pending is None:
            return

        captured = message.captured_piece_id
        if captured is not None:
            self.board.capture_with_id(captured, validate=False)

        # the board may hold a fresher copy of the piece than the one the request was made with
        piece = self.board.get_by_id(pending.piece.id) or pending.piece
        self.board.move_piece(
            piece,
            pending.to_x,
            pending.to_y,
            capture=captured is not None,
            validate=False,
        )

        self.total_moves += 1
        if captured is not None:
            self.total_captures += 1

        self.requests.resolve_move(
            message.move_token,
            MoveResult(move_token=message.move_token, captured_piece_id=captured),
        )

    def _on_invalid_move(self, message: messages.InvalidMove) -> None:
        token = message.move_token
        self.requests.reject_move(
            token, ChessError(f"Invalid move: {token}", ErrorReason.MOVE_REJECTED, token)
        )

    def _on_moves_and_captures(self, message: messages.MovesAndCaptures) -> None:
        for piece_id in message.captured_ids:
            self.board.capture_with_id(piece_id, validate=False)

        for move in message.moves:
            stale = self.board.get_by_id(move.piece.id)
            if stale is not None:
                self.board.capture_piece(stale, validate=False)
            self.board.set(move.x, move.y, move.piece, validate=False)

    def _on_bulk_capture(self, message: messages.BulkCapture) -> None:
        for piece_id in message.captured_ids:
            self.board.capture_with_id(piece_id, validate=False)

    # -- Internal helpers --
    def _reset_board(self, snapshot: messages.Snapshot) -> None:
        center_x, center_y = snapshot.x_coord, snapshot.y_coord

        self.board.clear()
        self.board.center_x = center_x
        self.board.center_y = center_y
        self.x0, self.y0 = center_x, center_y

        for entry in snapshot.pieces:
            self.board.set(center_x + entry.dx, center_y + entry.dy, entry.piece, validate=False)
