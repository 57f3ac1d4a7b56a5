"""Unit tests for WebSocketTransport against an in-memory socket."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosedError

from qr_autofetch.errors import TransportError
from qr_autofetch.session.client import ProtocolSession
from qr_autofetch.session.state import SessionState
from qr_autofetch.session.transport import WebSocketTransport

ENDPOINT = "wss://service.example.com/websocket"


class FakeWebSocket:
    """Async-iterable stand-in for a ``websockets`` client connection."""

    def __init__(self, incoming: list[Any]) -> None:
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        for item in incoming:
            self._incoming.put_nowait(item)
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.close_reason = ""

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> Any:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    def feed(self, item: Any) -> None:
        self._incoming.put_nowait(item)

    async def send(self, frame: str) -> None:
        self.sent.append(frame)

    async def close(self) -> None:
        self.close_code = 1000
        await self._incoming.put(None)


class RecordingListener:
    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []
        self.on_open_hook = None
        self.on_message_hook = None

    def on_open(self) -> None:
        self.events.append(("open", None))
        if self.on_open_hook:
            self.on_open_hook()

    def on_message(self, raw) -> None:
        self.events.append(("message", raw))
        if self.on_message_hook:
            self.on_message_hook(raw)

    def on_close(self, code=None, reason="") -> None:
        self.events.append(("close", (code, reason)))

    def on_error(self, error: TransportError) -> None:
        self.events.append(("error", error))


def _connector(ws: FakeWebSocket, seen: list[str]):
    async def _connect(endpoint: str, **kwargs: Any) -> FakeWebSocket:
        seen.append(endpoint)
        return ws

    return _connect


@pytest.mark.anyio
async def test_round_trip_and_close():
    ws = FakeWebSocket(['{"msg":"connected","session":"s"}'])
    seen: list[str] = []
    transport = WebSocketTransport(connect=_connector(ws, seen))
    listener = RecordingListener()
    listener.on_open_hook = lambda: transport.send('{"msg":"connect"}')
    listener.on_message_hook = lambda raw: transport.close()

    transport.open(ENDPOINT, listener)
    await asyncio.wait_for(transport.wait_closed(), timeout=2)

    assert seen == [ENDPOINT]
    assert [kind for kind, _ in listener.events] == ["open", "message", "close"]
    assert listener.events[-1] == ("close", (1000, ""))
    assert ws.sent == ['{"msg":"connect"}']
    assert not transport.is_open


@pytest.mark.anyio
async def test_connect_failure_reported():
    async def _refuse(endpoint: str, **kwargs: Any):
        raise OSError("connection refused")

    transport = WebSocketTransport(connect=_refuse)
    listener = RecordingListener()
    transport.open(ENDPOINT, listener)
    await asyncio.wait_for(transport.wait_closed(), timeout=2)

    assert len(listener.events) == 1
    kind, error = listener.events[0]
    assert kind == "error"
    assert isinstance(error, TransportError)
    assert "connection refused" in str(error)


@pytest.mark.anyio
async def test_abnormal_close_reported_as_error():
    ws = FakeWebSocket([ConnectionClosedError(None, None)])
    transport = WebSocketTransport(connect=_connector(ws, []))
    listener = RecordingListener()
    transport.open(ENDPOINT, listener)
    await asyncio.wait_for(transport.wait_closed(), timeout=2)

    assert [kind for kind, _ in listener.events] == ["open", "error"]


@pytest.mark.anyio
async def test_close_while_connecting():
    never = asyncio.Event()

    async def _hang(endpoint: str, **kwargs: Any):
        await never.wait()

    transport = WebSocketTransport(connect=_hang)
    listener = RecordingListener()
    transport.open(ENDPOINT, listener)
    transport.close()
    await asyncio.wait_for(transport.wait_closed(), timeout=2)

    assert listener.events == [("close", (None, "closed before open"))]


@pytest.mark.anyio
async def test_send_requires_open_connection():
    transport = WebSocketTransport(connect=_connector(FakeWebSocket([]), []))
    with pytest.raises(TransportError):
        transport.send("{}")


@pytest.mark.anyio
async def test_open_twice_rejected():
    ws = FakeWebSocket([])
    transport = WebSocketTransport(connect=_connector(ws, []))
    transport.open(ENDPOINT, RecordingListener())
    with pytest.raises(TransportError):
        transport.open(ENDPOINT, RecordingListener())
    transport.close()
    await asyncio.wait_for(transport.wait_closed(), timeout=2)


async def _until(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        assert asyncio.get_running_loop().time() < deadline, "condition never became true"
        await asyncio.sleep(0.01)


@pytest.mark.anyio
async def test_listener_exception_becomes_transport_error():
    ws = FakeWebSocket(['{"msg":"connected"}', '{"msg":"ping"}'])
    transport = WebSocketTransport(connect=_connector(ws, []))
    listener = RecordingListener()

    def _explode(raw) -> None:
        raise OSError("disk full")

    listener.on_message_hook = _explode
    transport.open(ENDPOINT, listener)
    await asyncio.wait_for(transport.wait_closed(), timeout=2)

    assert [kind for kind, _ in listener.events] == ["open", "message", "error"]
    error = listener.events[-1][1]
    assert isinstance(error, TransportError)
    assert "disk full" in str(error)
    assert ws.close_code == 1000
    assert not transport.is_open


@pytest.mark.anyio
async def test_failing_active_callback_fails_session():
    ws = FakeWebSocket([])
    transport = WebSocketTransport(connect=_connector(ws, []))

    def _unwritable_png(generator) -> None:
        raise OSError("read-only file system")

    session = ProtocolSession(
        transport, asyncio.get_running_loop(), active_callback=_unwritable_png
    )
    session.start(ENDPOINT, "tok")
    ws.feed(json.dumps({"msg": "connected", "session": "s1"}))
    await _until(lambda: any('"method":"login"' in frame for frame in ws.sent))

    ws.feed(json.dumps({"msg": "result", "id": "1", "result": {"id": "u1", "token": "t1"}}))
    ws.feed(
        json.dumps(
            {
                "msg": "added",
                "collection": "users",
                "id": "u1",
                "fields": {"profile": {"gestixiIds": ["g1"]}, "qrCodeTokens": {"hashed": "h1"}},
            }
        )
    )
    await asyncio.wait_for(transport.wait_closed(), timeout=2)

    assert session.state is SessionState.FAILED
    assert isinstance(session.last_error, TransportError)
    assert "read-only file system" in str(session.last_error)
    assert session.pending_timers == ()
