"""Keyed, cancellable continuations on top of an event loop.

Both the session (staggered logins, auto-close) and the refresh scheduler
(countdown and boundary ticks) arm timers through a :class:`TimerGroup` so
that tearing an owner down cancels *everything* it scheduled.

Any object exposing ``call_later(delay, callback) -> handle`` with
``handle.cancel()`` works as the underlying scheduler; an
:class:`asyncio.AbstractEventLoop` is the production one.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, runtime_checkable

_LOG = logging.getLogger("qr-autofetch.timers")


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class Scheduler(Protocol):
    """Subset of :class:`asyncio.AbstractEventLoop` used for timers."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class TimerGroup:
    """Named one-shot and repeating timers owned by one component."""

    def __init__(self, scheduler: Scheduler, *, name: str = "timers") -> None:
        self._scheduler = scheduler
        self._name = name
        self._handles: dict[str, TimerHandle] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    @property
    def pending(self) -> tuple[str, ...]:
        return tuple(self._handles)

    def schedule(self, key: str, delay_s: float, callback: Callable[[], None]) -> None:
        """Run *callback* once after *delay_s*; replaces a timer with the same key."""
        self.cancel(key)

        def _fire() -> None:
            self._handles.pop(key, None)
            callback()

        self._handles[key] = self._scheduler.call_later(max(0.0, delay_s), _fire)

    def schedule_repeating(
        self,
        key: str,
        interval_s: float,
        callback: Callable[[], None],
        *,
        first_delay_s: float | None = None,
    ) -> None:
        """Run *callback* every *interval_s*, first after *first_delay_s*."""
        if interval_s <= 0:
            raise ValueError("repeat interval must be positive")

        def _tick() -> None:
            # re-arm before the callback runs
            self._handles[key] = self._scheduler.call_later(interval_s, _tick)
            callback()

        self.cancel(key)
        delay = interval_s if first_delay_s is None else max(0.0, first_delay_s)
        self._handles[key] = self._scheduler.call_later(delay, _tick)

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_matching(self, prefix: str) -> int:
        keys = [k for k in self._handles if k.startswith(prefix)]
        for key in keys:
            self.cancel(key)
        return len(keys)

    def cancel_all(self) -> int:
        count = len(self._handles)
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        if count:
            _LOG.debug("%s: cancelled %d pending timer(s)", self._name, count)
        return count
