"""Shared fixtures: a manual scheduler and a scripted transport.

Neither touches the network or the real clock, so session and scheduler tests
advance time explicitly and play the server side frame by frame.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from qr_autofetch.errors import TransportError
from qr_autofetch.session.transport import TransportListener


# --------------------------------------------------------------------------- #
# command line                                                                #
# --------------------------------------------------------------------------- #
def pytest_addoption(parser):
    """Add integration option to pytest."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly requested.

    Tests marked with 'ci_safe' are always run because they script every
    server frame and are safe for CI.
    """
    if not config.getoption("--integration", default=False):
        skip_integration = pytest.mark.skip(reason="Need --integration option to run")
        for item in items:
            if "integration" in item.keywords and "ci_safe" not in item.keywords:
                item.add_marker(skip_integration)


# --------------------------------------------------------------------------- #
# manual scheduler                                                            #
# --------------------------------------------------------------------------- #
@dataclass
class FakeTimerHandle:
    when: float
    seq: int
    callback: Callable[..., Any]
    args: tuple[Any, ...] = ()
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class FakeScheduler:
    """``call_later`` look-alike driven by :meth:`advance`."""

    now: float = 0.0
    _queue: list[FakeTimerHandle] = field(default_factory=list)
    _seq: int = 0

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeTimerHandle:
        handle = FakeTimerHandle(self.now + delay, self._seq, callback, args)
        self._seq += 1
        self._queue.append(handle)
        return handle

    def clock(self) -> float:
        """Clock reading (seconds) matching the scheduler's notion of now."""
        return round(self.now, 6)

    @property
    def pending(self) -> list[FakeTimerHandle]:
        return [h for h in self._queue if not h.cancelled]

    def advance(self, seconds: float) -> None:
        """Move time forward, running every timer that falls due on the way."""
        target = self.now + seconds
        while True:
            due = [h for h in self._queue if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._queue.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
        self.now = target
        self._queue = self.pending


# --------------------------------------------------------------------------- #
# scripted transport                                                          #
# --------------------------------------------------------------------------- #
class ScriptedTransport:
    """Records client frames; tests push server frames through the listener."""

    def __init__(self, *, open_immediately: bool = False) -> None:
        self.open_immediately = open_immediately
        self.endpoint: str | None = None
        self.listener: TransportListener | None = None
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0
        self.fail_on_send = False

    # Transport
    def open(self, endpoint: str, listener: TransportListener) -> None:
        self.endpoint = endpoint
        self.listener = listener
        if self.open_immediately:
            listener.on_open()

    def send(self, frame: str) -> None:
        if self.fail_on_send:
            raise TransportError("socket is gone")
        self.sent.append(json.loads(frame))

    def close(self) -> None:
        self.close_calls += 1
        if self.close_calls == 1 and self.listener is not None:
            self.listener.on_close(1000, "")

    # server side
    def accept(self) -> None:
        assert self.listener is not None
        self.listener.on_open()

    def push(self, message: dict[str, Any]) -> None:
        assert self.listener is not None
        self.listener.on_message(json.dumps(message))

    def push_raw(self, raw: str | bytes) -> None:
        assert self.listener is not None
        self.listener.on_message(raw)

    def drop(self, code: int = 1006, reason: str = "abnormal closure") -> None:
        assert self.listener is not None
        self.listener.on_close(code, reason)

    # inspection
    def methods(self, name: str | None = None) -> list[dict[str, Any]]:
        return [
            m for m in self.sent if m["msg"] == "method" and (name is None or m["method"] == name)
        ]

    def kinds(self) -> list[str]:
        return [m["msg"] for m in self.sent]


@pytest.fixture()
def fake_scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture()
def scripted_transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture()
def anyio_backend() -> str:
    """The code under test is asyncio-based; run anyio-marked tests on asyncio."""
    return "asyncio"
