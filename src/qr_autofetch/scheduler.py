"""Periodic recomputation of the code.

Two cadences run side by side and are never merged:

* the **countdown** tick (every 100 ms) only recomputes the time left in the
  current window, through :meth:`CodeGenerator.remaining_ms`, so it cannot
  disturb the generator's new-window notifications;
* the **boundary** tick fires once at the end of the current window and then
  every interval, and is the only one that calls
  :meth:`CodeGenerator.generate`.  Its output is authoritative.
"""

from __future__ import annotations

import logging
from typing import Callable, Final

from qr_autofetch.codegen.clock import Clock, default_clock, now_ms
from qr_autofetch.codegen.generator import CodeGenerator
from qr_autofetch.codegen.models import GeneratedCode
from qr_autofetch.timers import Scheduler, TimerGroup

_LOG = logging.getLogger("qr-autofetch.scheduler")

COUNTDOWN_INTERVAL_S: Final[float] = 0.1

CodeListener = Callable[[GeneratedCode], None]
CountdownListener = Callable[[int], None]


class RefreshScheduler:
    """Drive a generator on window boundaries plus a fast countdown."""

    def __init__(
        self,
        generator: CodeGenerator,
        scheduler: Scheduler,
        *,
        clock: Clock = default_clock,
        on_code: CodeListener | None = None,
        on_countdown: CountdownListener | None = None,
        countdown_interval_s: float = COUNTDOWN_INTERVAL_S,
    ) -> None:
        self._generator = generator
        self._timers = TimerGroup(scheduler, name="refresh")
        self._clock = clock
        self._code_listeners: list[CodeListener] = [on_code] if on_code else []
        self._countdown_listeners: list[CountdownListener] = (
            [on_countdown] if on_countdown else []
        )
        self._countdown_interval_s = countdown_interval_s
        self._latest: GeneratedCode | None = None
        self._remaining_ms: int | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def latest(self) -> GeneratedCode | None:
        """Most recent authoritative code."""
        return self._latest

    @property
    def remaining_ms(self) -> int | None:
        """Most recent countdown sample."""
        return self._remaining_ms

    @property
    def generator(self) -> CodeGenerator:
        return self._generator

    def add_code_listener(self, listener: CodeListener) -> None:
        self._code_listeners.append(listener)

    def add_countdown_listener(self, listener: CountdownListener) -> None:
        self._countdown_listeners.append(listener)

    def start(self) -> GeneratedCode:
        """Publish the current code now and arm both cadences."""
        if self._running:
            raise RuntimeError("refresh scheduler already running")
        self._running = True
        first = self._refresh()
        self._publish_countdown(first.remaining_ms)

        self._timers.schedule_repeating(
            "countdown", self._countdown_interval_s, self._countdown_tick
        )
        self._timers.schedule_repeating(
            "boundary",
            self._generator.interval_ms / 1000,
            self._boundary_tick,
            first_delay_s=first.remaining_ms / 1000,
        )
        _LOG.info(
            "Refresh scheduled: first rollover in %d ms, then every %d ms",
            first.remaining_ms,
            self._generator.interval_ms,
        )
        return first

    def stop(self) -> None:
        """Cancel both cadences."""
        if not self._running:
            return
        self._running = False
        self._timers.cancel_all()
        _LOG.info("Refresh stopped")

    # ---------------- internals ------------------------------------------ #
    def _countdown_tick(self) -> None:
        self._publish_countdown(self._generator.remaining_ms(now_ms(self._clock)))

    def _boundary_tick(self) -> None:
        self._refresh()

    def _refresh(self) -> GeneratedCode:
        result = self._generator.generate("current", now_ms(self._clock))
        self._latest = result
        for listener in list(self._code_listeners):
            listener(result)
        return result

    def _publish_countdown(self, remaining_ms: int) -> None:
        self._remaining_ms = remaining_ms
        for listener in list(self._countdown_listeners):
            listener(remaining_ms)
