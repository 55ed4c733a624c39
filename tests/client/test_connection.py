"""Unit tests for millionboards/client/connection.py"""

import asyncio
import logging
from typing import Optional

import pytest

from millionboards.client.connection import WsClient, retry_time
from millionboards.core.config import ClientOptions
from millionboards.core.exceptions import ClientError, ErrorReason

URL = "wss://example.test/ws"


class PingingClient(WsClient):
    """Sends a keepalive, and treats b"pong" as its answer"""

    async def _on_websocket_message(self, data: bytes) -> None:
        if data == b"pong":
            self._on_pong()

    def _build_ping(self) -> Optional[bytes]:
        return b"ping"


class LimitedClient(WsClient):
    max_connections = 1


class BrowserClient(WsClient):
    user_agent = "Mozilla/5.0"
    cookies = {"session": "abc", "empty": ""}


class PickyClient(WsClient):
    """Chokes on anything but bytes"""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.received: list[bytes] = []

    async def _on_websocket_message(self, data: bytes) -> None:
        self.received.append(bytes(data))


class SlowConnector:
    """Connector whose handshake only finishes once `release` is set"""

    def __init__(self, connector) -> None:
        self.connector = connector
        self.release = asyncio.Event()

    async def __call__(self, url: str, headers: dict[str, str]):
        transport = await self.connector(url, headers)
        await self.release.wait()
        return transport


def quiet_options(**kwargs) -> ClientOptions:
    """No jitter, no reconnects, no retries unless asked for"""
    defaults = {"default_jitter": 0.0, "reconnect_delay": 0.0, "retry_delay": 0.0}
    defaults.update(kwargs)
    return ClientOptions(**defaults)


# --- Helpers ---
@pytest.mark.parametrize("base, jitter", [(1.0, 0.0), (10.0, 3.0), (0.5, 4.0)])
def test_retry_time_bounds(base: float, jitter: float) -> None:
    for _ in range(50):
        delay = retry_time(base, jitter)
        assert max(0.0, base - jitter / 2) <= delay <= base + jitter / 2

        stretched = retry_time(base, jitter, error=True)
        assert 0.0 <= stretched <= (base + jitter / 2) * 1.4


def test_invalid_url() -> None:
    with pytest.raises(ClientError) as exc:
        WsClient("")
    assert exc.value.reason == ErrorReason.INVALID_VALUE


# --- Connecting ---
async def test_init_connects(connector, run_pending) -> None:
    client = WsClient(URL, quiet_options(), connector)
    await client.init()

    assert client.connected
    assert connector.calls == [(URL, {})]
    assert WsClient.open_connections() == 1

    client.disconnect()
    await run_pending()
    assert not client.connected
    assert connector.last.closed
    assert WsClient.open_connections() == 0
    assert not client.reconnect_scheduled


async def test_concurrent_inits_share_one_connection(connector) -> None:
    client = WsClient(URL, quiet_options(), connector)
    await asyncio.gather(client.init(), client.init())

    assert len(connector.calls) == 1
    assert WsClient.open_connections() == 1
    client.destroy()


async def test_headers(connector) -> None:
    client = BrowserClient(URL, quiet_options(), connector)
    await client.init()

    _, headers = connector.calls[0]
    assert headers == {"User-Agent": "Mozilla/5.0", "Cookie": "session=abc"}
    client.destroy()


async def test_max_connections_per_class(connector) -> None:
    first = LimitedClient(URL, quiet_options(), connector)
    second = LimitedClient(URL, quiet_options(), connector)
    other = WsClient(URL, quiet_options(), connector)

    await first.init()
    with pytest.raises(ClientError) as exc:
        await second.init()
    assert exc.value.reason == ErrorReason.MAX_CONNECTIONS
    assert len(connector.calls) == 1

    # other classes are counted separately
    await other.init()
    assert LimitedClient.open_connections() == 1
    assert WsClient.open_connections() == 1

    first.destroy()
    await second.init()
    assert second.connected

    second.destroy()
    other.destroy()


async def test_connection_failure(connector) -> None:
    connector.error = OSError("refused")
    client = WsClient(URL, quiet_options(), connector)

    with pytest.raises(ClientError) as exc:
        await client.init()
    assert exc.value.reason == ErrorReason.CONNECTION_FAILED
    assert isinstance(exc.value.__cause__, OSError)
    assert WsClient.open_connections() == 0


async def test_destroy_is_permanent(connector) -> None:
    client = WsClient(URL, quiet_options(), connector)
    await client.init()
    client.destroy()

    with pytest.raises(ClientError) as exc:
        await client.init()
    assert exc.value.reason == ErrorReason.DESTROYED
    assert len(connector.calls) == 1


async def test_destroy_during_handshake(connector, run_pending) -> None:
    slow = SlowConnector(connector)
    client = WsClient(URL, quiet_options(), slow)

    init = asyncio.ensure_future(client.init())
    await run_pending()
    client.destroy()
    slow.release.set()

    with pytest.raises(ClientError) as exc:
        await init
    assert exc.value.reason == ErrorReason.DESTROYED

    await run_pending()
    assert connector.last.closed
    assert not client.connected
    assert WsClient.open_connections() == 0


# --- Reconnecting ---
async def test_reconnects_after_server_close(connector) -> None:
    client = WsClient(URL, quiet_options(reconnect_delay=0.01), connector)
    await client.init()

    connector.last.end(1006)
    await asyncio.sleep(0.1)

    assert len(connector.calls) == 2
    assert client.connected
    assert client.reconnect_attempts == 0
    assert WsClient.open_connections() == 1
    client.destroy()


async def test_reconnecting_stops_at_attempt_limit(
    connector, caplog: pytest.LogCaptureFixture
) -> None:
    client = WsClient(URL, quiet_options(reconnect_delay=0.01, max_retry_count=2), connector)
    await client.init()

    connector.error = OSError("refused")
    with caplog.at_level(logging.WARNING):
        connector.last.end(1006)
        await asyncio.sleep(0.2)

    # the first connection plus two attempts
    assert len(connector.calls) == 3
    assert client.reconnect_attempts == 3
    assert not client.reconnect_scheduled
    assert not client.connected
    assert "Not reconnecting" in caplog.text
    assert WsClient.open_connections() == 0


async def test_disconnect_stops_reconnecting(connector, run_pending) -> None:
    client = WsClient(URL, quiet_options(reconnect_delay=0.01), connector)
    await client.init()

    client.disconnect()
    await asyncio.sleep(0.05)
    assert len(connector.calls) == 1
    assert not client.auto_reconnect


# --- Heartbeat ---
async def test_missing_pong_drops_connection(connector) -> None:
    client = PingingClient(
        URL, quiet_options(ping_interval=0.01, pong_timeout=0.03), connector
    )
    await client.init()
    await asyncio.sleep(0.15)

    assert b"ping" in connector.last.sent
    assert not client.connected
    assert PingingClient.open_connections() == 0


async def test_pong_keeps_connection(connector) -> None:
    client = PingingClient(
        URL, quiet_options(ping_interval=0.01, pong_timeout=0.05), connector
    )
    await client.init()
    transport = connector.last

    for _ in range(10):
        await asyncio.sleep(0.015)
        transport.feed(b"pong")

    assert client.connected
    assert transport.sent.count(b"ping") > 1
    client.destroy()


async def test_failing_message_does_not_stop_reader(
    connector, run_pending, caplog: pytest.LogCaptureFixture
) -> None:
    client = PickyClient(URL, quiet_options(), connector)
    await client.init()

    with caplog.at_level(logging.ERROR):
        connector.last.feed("text")
        connector.last.feed(b"binary")
        await run_pending()

    assert "Processing message failed" in caplog.text
    assert client.received == [b"binary"]
    assert client.connected
    client.destroy()


# --- Sending ---
async def test_send(connector) -> None:
    client = WsClient(URL, quiet_options(), connector)
    await client.init()

    await client.send_request(b"hello")
    assert connector.last.sent == [b"hello"]
    client.destroy()


async def test_send_without_connection() -> None:
    client = WsClient(URL, quiet_options())
    with pytest.raises(ClientError) as exc:
        await client.send_request(b"hello")
    assert exc.value.reason == ErrorReason.NOT_CONNECTED


async def test_send_retries_until_exhausted() -> None:
    client = WsClient(URL, quiet_options(retry_delay=0.001, max_retry_count=2))
    with pytest.raises(ClientError) as exc:
        await client.send_request(b"hello")

    assert exc.value.reason == ErrorReason.RETRY_EXHAUSTED
    assert exc.value.__cause__.reason == ErrorReason.NOT_CONNECTED
    assert exc.value.is_transient


async def test_failed_sends_keep_rate_budget(connector) -> None:
    options = quiet_options(max_rps=1, retry_delay=0.001, max_retry_count=3)
    client = WsClient(URL, options, connector)
    with pytest.raises(ClientError) as exc:
        await client.send_request(b"hello")
    assert exc.value.reason == ErrorReason.RETRY_EXHAUSTED
    assert client._limiter.tokens == 1.0

    await client.init()
    await asyncio.wait_for(client.send_request(b"hello"), timeout=0.5)
    assert connector.last.sent == [b"hello"]
    client.destroy()


async def test_send_does_not_retry_destroyed_client() -> None:
    client = WsClient(URL, quiet_options(retry_delay=1.0, max_retry_count=5))
    client.destroy()

    with pytest.raises(ClientError) as exc:
        await asyncio.wait_for(client.send_request(b"hello"), timeout=0.5)
    assert exc.value.reason == ErrorReason.DESTROYED


async def test_send_failure_is_connection_closed(connector) -> None:
    client = WsClient(URL, quiet_options(), connector)
    await client.init()
    connector.last.send_error = OSError("broken pipe")

    with pytest.raises(ClientError) as exc:
        await client.send_request(b"hello")
    assert exc.value.reason == ErrorReason.CONNECTION_CLOSED
    client.destroy()


async def test_send_waits_for_rate_limit(connector) -> None:
    client = WsClient(URL, quiet_options(max_rps=20), connector)
    await client.init()

    loop = asyncio.get_running_loop()
    started = loop.time()
    for i in range(22):
        await client.send_request(bytes([i]))

    assert len(connector.last.sent) == 22
    assert loop.time() - started >= 0.9
    client.destroy()
