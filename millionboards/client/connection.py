"""
Persistent websocket connection that keeps itself alive.

State machine: disconnected -> connecting -> connected -> (error/close) -> reconnect scheduled -> connecting ...
`disconnect()` stops the reconnecting, `destroy()` stops everything for good.

Subclasses plug in through the hooks `_on_websocket_message`, `_reject_pending_requests` and `_build_ping`.
"""

import asyncio
import random
from collections import defaultdict
from typing import AsyncIterator, Awaitable, Callable, ClassVar, Coroutine, Optional, Protocol

from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from millionboards.client.rate_limit import TokenBucket
from millionboards.core.config import ClientOptions
from millionboards.core.exceptions import ClientError, ErrorReason
from millionboards.core.log import client_logger

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006


class Transport(Protocol):
    """Just the parts of a websocket connection the client needs"""

    async def send(self, data: bytes) -> None: ...
    async def close(self, code: int = NORMAL_CLOSURE) -> None: ...
    def __aiter__(self) -> AsyncIterator[bytes]: ...


Connector = Callable[[str, dict[str, str]], Awaitable[Transport]]


async def websocket_connector(url: str, headers: dict[str, str]) -> Transport:
    # the protocol has its own ping/pong messages, so the websocket level keepalive is turned off
    return await websocket_connect(
        url, additional_headers=headers, max_size=None, ping_interval=None
    )


def retry_time(base: float, jitter: float, error: bool = False) -> float:
    """`base` +- jitter/2. After an error, stretch it by up to 40% more."""
    delay = base + (random.random() * jitter - jitter / 2)
    if error:
        delay *= 1 + random.random() * 0.4
    return max(0.0, delay)


# Open connections per client class
_open_connections: dict[type, int] = defaultdict(int)


class WsClient:
    # None: no limit
    max_connections: ClassVar[Optional[int]] = None

    user_agent: ClassVar[str] = ""
    cookies: ClassVar[dict[str, str]] = {}

    def __init__(
        self,
        url: str,
        options: Optional[ClientOptions] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        if not isinstance(url, str) or len(url) < 1:
            raise ClientError("Invalid websocket URL provided", ErrorReason.INVALID_VALUE, url)

        self.url = url
        self.options = options or ClientOptions()
        self.log = client_logger(__name__, self.options.k)

        self._connector = connector or websocket_connector
        self._limiter = TokenBucket(self.options.max_rps)

        self._ws: Optional[Transport] = None
        self._reader: Optional[asyncio.Task] = None
        self._connection_ready: Optional[asyncio.Future] = None
        self._holds_slot = False

        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._ping_handle: Optional[asyncio.TimerHandle] = None
        self._pong_handle: Optional[asyncio.TimerHandle] = None
        self._background: set[asyncio.Task] = set()

        self.destroyed = False
        self._reset_state()

    # --- Connection counting (per client class) ---
    @classmethod
    def open_connections(cls) -> int:
        return _open_connections[cls]

    @classmethod
    def reset_connections(cls) -> None:
        """Forget all counted connections of this class (for test isolation)"""
        _open_connections.pop(cls, None)

    def _take_slot(self) -> None:
        cls = type(self)
        if cls.max_connections is not None and _open_connections[cls] >= cls.max_connections:
            raise ClientError(
                f"Maximum connections ({cls.max_connections}) exceeded for {cls.__name__}",
                ErrorReason.MAX_CONNECTIONS,
                cls.max_connections,
            )
        _open_connections[cls] += 1
        self._holds_slot = True

    def _release_slot(self) -> None:
        if not self._holds_slot:
            return
        cls = type(self)
        _open_connections[cls] = max(0, _open_connections[cls] - 1)
        self._holds_slot = False

    # --- Public API ---
    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_handle is not None

    async def init(self) -> None:
        if self.destroyed:
            raise ClientError("Client destroyed", ErrorReason.DESTROYED)
        if not self.connected:
            self._reset_state()
        await self._connect()

    async def send_request(self, data: bytes) -> None:
        if not self.options.enable_retry:
            return await self._attempt_send(data)
        return await self._send_with_retry(data)

    def disconnect(self) -> None:
        """Close the connection and do not come back"""
        self.auto_reconnect = False
        self._on_websocket_close(NORMAL_CLOSURE)

    def destroy(self) -> None:
        """Close the connection; the client cannot be used anymore"""
        self.destroyed = True
        self._on_websocket_close(NORMAL_CLOSURE)

    # --- Connecting ---
    def _reset_state(self) -> None:
        self.connected = False
        self.auto_reconnect = self.options.auto_reconnect
        self._reset_reconnecting(True)

    def _reset_reconnecting(self, success: bool) -> None:
        self._reconnecting = False
        if success:
            self._reconnect_attempts = 0

    def _websocket_headers(self) -> dict[str, str]:
        cls = type(self)
        headers: dict[str, str] = {}
        if cls.user_agent:
            headers["User-Agent"] = cls.user_agent
        cookies = [f"{key}={value}" for key, value in cls.cookies.items() if value]
        if cookies:
            headers["Cookie"] = "; ".join(cookies)
        return headers

    async def _connect(self) -> None:
        if self.destroyed:
            raise ClientError("Client destroyed", ErrorReason.DESTROYED)
        if self.connected:
            return

        if self._connection_ready is not None and not self._connection_ready.done():
            # someone else is connecting already: wait for that attempt
            if not await asyncio.shield(self._connection_ready):
                raise ClientError("Connection failed", ErrorReason.CONNECTION_FAILED, self.url)
            return

        # raises before anything else happens: no slot is used up
        self._take_slot()

        self._reconnecting = True
        loop = asyncio.get_running_loop()
        ready = self._connection_ready = loop.create_future()

        try:
            ws = await self._connector(self.url, self._websocket_headers())
        except (OSError, WebSocketException) as err:
            self._reset_reconnecting(False)
            _set_ready(ready, False)
            self._on_websocket_error(err)
            raise ClientError("Connection failed", ErrorReason.CONNECTION_FAILED, self.url) from err

        if ready.done():
            # torn down (disconnect/destroy) while the handshake was running
            self._reset_reconnecting(False)
            self._spawn(self._close_transport(ws))
            reason = ErrorReason.DESTROYED if self.destroyed else ErrorReason.CONNECTION_CLOSED
            raise ClientError("Connection closed while connecting", reason, self.url)

        self._ws = ws
        self._reset_reconnecting(True)
        self._on_websocket_open()
        self._reader = loop.create_task(self._read_loop(ws))
        _set_ready(ready, True)

    def _schedule_reconnect(self, was_error: bool) -> None:
        if self._reconnecting or self.destroyed:
            return

        self._reconnect_attempts += 1
        if self._reconnect_attempts > self.options.max_retry_count:
            self.log.warning(
                "Not reconnecting: %d attempts exceed the limit of %d",
                self._reconnect_attempts,
                self.options.max_retry_count,
            )
            return

        base_delay = self._reconnect_attempts * self.options.reconnect_delay / 2
        delay = retry_time(base_delay, 5 * self.options.default_jitter, was_error)
        self.log.info("Reconnecting in %.1fs (attempt %d)", delay, self._reconnect_attempts)

        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._start_reconnect)

    def _start_reconnect(self) -> None:
        self._reconnect_handle = None
        self._spawn(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self._connect()
        except ClientError as err:
            self.log.error("Reconnecting failed: %s", err)

    # --- Disconnecting ---
    def _handle_disconnect(self, code: int) -> None:
        self.connected = False
        self._release_slot()
        if self._connection_ready is not None:
            _set_ready(self._connection_ready, False)

        self.log.info("Websocket closed with code: %s", code)

        self._reject_pending_requests()
        self._clear_timers()
        self._cleanup_socket()

        if self.auto_reconnect:
            self._schedule_reconnect(was_error=code != NORMAL_CLOSURE)

    def _cleanup_socket(self) -> None:
        ws, self._ws = self._ws, None
        reader, self._reader = self._reader, None
        if ws is None and reader is None:
            return

        try:
            current = asyncio.current_task()
        except RuntimeError:
            # the event loop is gone, and the socket with it
            return

        if reader is not None and reader is not current:
            reader.cancel()
        if ws is not None:
            self._spawn(self._close_transport(ws))

    async def _close_transport(self, ws: Transport) -> None:
        try:
            await ws.close()
        except (ConnectionClosed, OSError) as err:
            self.log.debug("Closing websocket failed: %s", err)

    def _clear_timers(self) -> None:
        for handle in (self._reconnect_handle, self._ping_handle, self._pong_handle):
            if handle is not None:
                handle.cancel()
        self._reconnect_handle = None
        self._ping_handle = None
        self._pong_handle = None

    # --- Socket events ---
    def _on_websocket_open(self) -> None:
        self.connected = True
        self.log.info("Websocket opened.")
        self._schedule_ping()

    def _on_websocket_error(self, err: BaseException) -> None:
        self.log.error("Websocket error: %s", err)
        self._handle_disconnect(ABNORMAL_CLOSURE)

    def _on_websocket_close(self, code: int = NORMAL_CLOSURE) -> None:
        self._handle_disconnect(code)

    async def _read_loop(self, ws: Transport) -> None:
        """Handle inbound messages one at a time, in the order they arrive"""
        try:
            async for data in ws:
                try:
                    await self._on_websocket_message(data)
                except Exception:
                    # one bad message must not stop the reader
                    self.log.exception("Processing message failed")
        except ConnectionClosed as err:
            code = err.rcvd.code if err.rcvd is not None else ABNORMAL_CLOSURE
        except OSError as err:
            if ws is self._ws:
                self._on_websocket_error(err)
            return
        else:
            code = getattr(ws, "close_code", None) or NORMAL_CLOSURE

        if ws is self._ws:
            self._on_websocket_close(code)

    # --- Heartbeat ---
    def _schedule_ping(self) -> None:
        self._cancel_heartbeat()
        if not self.connected:
            return

        delay = retry_time(self.options.ping_interval, self.options.default_jitter / 2)
        self._ping_handle = asyncio.get_running_loop().call_later(delay, self._send_ping)

    def _send_ping(self) -> None:
        self._ping_handle = None
        data = self._build_ping()
        if data is None or self._ws is None:
            return

        self._spawn(self._write_ping(self._ws, data))
        self._pong_handle = asyncio.get_running_loop().call_later(
            self.options.pong_timeout, self._on_pong_timeout
        )

    async def _write_ping(self, ws: Transport, data: bytes) -> None:
        try:
            await ws.send(data)
        except (ConnectionClosed, OSError) as err:
            # the pong timeout takes care of the dead connection
            self.log.warning("Sending ping failed: %s", err)

    def _on_pong(self) -> None:
        self._schedule_ping()

    def _on_pong_timeout(self) -> None:
        self._pong_handle = None
        self.log.error("No pong within %.1fs, dropping connection", self.options.pong_timeout)
        self._handle_disconnect(ABNORMAL_CLOSURE)

    def _cancel_heartbeat(self) -> None:
        for handle in (self._ping_handle, self._pong_handle):
            if handle is not None:
                handle.cancel()
        self._ping_handle = None
        self._pong_handle = None

    # --- Sending ---
    async def _wait_ready(self) -> None:
        ready = self._connection_ready
        if ready is not None and not ready.done():
            await asyncio.shield(ready)

    def _check_sendable(self) -> None:
        if self.destroyed:
            raise ClientError("Client destroyed", ErrorReason.DESTROYED)
        if not self.connected or self._ws is None:
            raise ClientError("Connection not open", ErrorReason.NOT_CONNECTED)

    async def _attempt_send(self, data: bytes) -> None:
        await self._wait_ready()
        # failed attempts must not use up the rate budget
        self._check_sendable()
        await self._limiter.acquire()
        self._check_sendable()

        try:
            await self._ws.send(data)
        except (ConnectionClosed, OSError) as err:
            raise ClientError("Sending failed", ErrorReason.CONNECTION_CLOSED) from err

    async def _send_with_retry(self, data: bytes) -> None:
        retries = 0
        while True:
            try:
                return await self._attempt_send(data)
            except ClientError as err:
                if err.reason == ErrorReason.DESTROYED:
                    raise

                retries += 1
                if retries > self.options.max_retry_count:
                    raise ClientError(
                        f"Sending failed after {self.options.max_retry_count} retries: {err}",
                        ErrorReason.RETRY_EXHAUSTED,
                        retries - 1,
                    ) from err

                delay = retry_time(self.options.retry_delay, self.options.default_jitter)
                self.log.debug("Send failed (%s), retry %d in %.1fs", err, retries, delay)
                await asyncio.sleep(delay)

    # --- Hooks ---
    async def _on_websocket_message(self, data: bytes) -> None:
        """Called for every inbound message"""

    def _reject_pending_requests(self) -> None:
        """Called whenever the connection goes down"""

    def _build_ping(self) -> Optional[bytes]:
        """Keepalive message. None: no heartbeat."""
        return None

    # -- Internal helpers --
    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        """Run a coroutine in the background, keeping a reference until it is done"""
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task


def _set_ready(future: asyncio.Future, connected: bool) -> None:
    if not future.done():
        future.set_result(connected)
