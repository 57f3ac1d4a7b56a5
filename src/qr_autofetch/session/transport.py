"""Duplex, message-oriented transport used by the protocol session.

The session never awaits anything: it hands outgoing frames to
:meth:`Transport.send` and is called back through a
:class:`TransportListener` for every transport event, one at a time and in
arrival order.

:class:`WebSocketTransport` is the production implementation on top of the
``websockets`` asyncio client.  Tests substitute scripted transports.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Protocol, runtime_checkable
from urllib.parse import urlparse

import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException

from qr_autofetch.errors import TransportError

_LOG = logging.getLogger("qr-autofetch.session.transport")


@runtime_checkable
class TransportListener(Protocol):
    def on_open(self) -> None: ...
    def on_message(self, raw: str | bytes) -> None: ...
    def on_close(self, code: int | None = None, reason: str = "") -> None: ...
    def on_error(self, error: TransportError) -> None: ...


@runtime_checkable
class Transport(Protocol):
    def open(self, endpoint: str, listener: TransportListener) -> None: ...
    def send(self, frame: str) -> None: ...
    def close(self) -> None: ...


class WebSocketTransport(Transport):
    """``websockets``-backed transport; must be opened inside a running loop."""

    def __init__(self, *, connect: Callable[..., Any] | None = None, **connect_kwargs: Any) -> None:
        self._connect = connect or websockets.connect
        self._connect_kwargs = connect_kwargs
        self._listener: TransportListener | None = None
        self._ws: Any = None
        self._outbox: asyncio.Queue[str] | None = None
        self._reader: asyncio.Task | None = None
        self._writer: asyncio.Task | None = None
        self._closing = False
        self._closed_notified = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closing

    def open(self, endpoint: str, listener: TransportListener) -> None:
        if self._reader is not None:
            raise TransportError("transport already opened")
        loop = asyncio.get_running_loop()
        self._listener = listener
        self._outbox = asyncio.Queue()
        _LOG.debug("Opening WebSocket to host=%s", urlparse(endpoint).hostname)
        self._reader = loop.create_task(self._run(endpoint))

    def send(self, frame: str) -> None:
        if not self.is_open or self._outbox is None:
            raise TransportError("cannot send: WebSocket not connected")
        self._outbox.put_nowait(frame)

    def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        if self._ws is None:
            # still connecting
            if self._reader is not None:
                self._reader.cancel()
            self._notify_close(None, "closed before open")
            return
        asyncio.get_running_loop().create_task(self._ws.close())

    async def wait_closed(self) -> None:
        """Wait until the reader task has finished (used on shutdown)."""
        if self._reader is not None:
            try:
                await self._reader
            except asyncio.CancelledError:
                pass

    # ---------------- internals ------------------------------------------ #
    async def _run(self, endpoint: str) -> None:
        assert self._listener is not None
        try:
            self._ws = await self._connect(endpoint, **self._connect_kwargs)
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            self._closing = True
            self._listener.on_error(TransportError(f"could not connect: {exc}"))
            return

        self._writer = asyncio.get_running_loop().create_task(self._write_loop())
        try:
            self._listener.on_open()
            async for raw in self._ws:
                self._listener.on_message(raw)
        except ConnectionClosedError as exc:
            if not self._closing:
                self._closing = True
                self._listener.on_error(TransportError(f"connection lost: {exc}"))
                return
        except Exception as exc:  # noqa: BLE001
            # a listener bug must end the session, not just the reader task
            _LOG.exception("Listener failed while handling a WebSocket event")
            self._closing = True
            self._listener.on_error(TransportError(f"event handler failed: {exc!r}"))
            await self._ws.close()
            return
        finally:
            if self._writer is not None:
                self._writer.cancel()
        self._notify_close(
            getattr(self._ws, "close_code", None), getattr(self._ws, "close_reason", "") or ""
        )

    async def _write_loop(self) -> None:
        assert self._outbox is not None
        while True:
            frame = await self._outbox.get()
            try:
                await self._ws.send(frame)
            except WebSocketException as exc:
                if not self._closing and self._listener is not None:
                    self._closing = True
                    self._listener.on_error(TransportError(f"send failed: {exc}"))
                return

    def _notify_close(self, code: int | None, reason: str) -> None:
        if self._closed_notified or self._listener is None:
            return
        self._closed_notified = True
        self._closing = True
        self._listener.on_close(code, reason)
