"""Mapping wall-clock time to fixed refresh windows.

A window is the half-open interval ``[window_start_ms, boundary_seconds*1000)``.
Its *boundary* (the end, in whole UNIX seconds) is what gets hashed, so the
interval length must be a whole number of seconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

DEFAULT_INTERVAL_MS: Final[int] = 10_000


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """One refresh window."""

    boundary_seconds: int
    window_start_ms: int
    interval_ms: int = DEFAULT_INTERVAL_MS

    @property
    def end_ms(self) -> int:
        return self.boundary_seconds * 1000

    def contains(self, at_ms: int) -> bool:
        return self.window_start_ms <= at_ms < self.end_ms

    def remaining_ms(self, at_ms: int) -> int:
        """Milliseconds from *at_ms* until the boundary (never negative)."""
        return max(0, self.end_ms - at_ms)


def validate_interval(interval_ms: int) -> int:
    """Return *interval_ms* if it is a positive whole number of seconds."""
    if interval_ms <= 0:
        raise ValueError("interval must be positive")
    if interval_ms % 1000:
        raise ValueError("interval must be a whole number of seconds")
    return interval_ms


def window_for(interval_ms: int, timestamp_ms: int, *, advance: bool = False) -> TimeWindow:
    """Return the window containing *timestamp_ms*.

    With ``advance=True`` the timestamp is pushed forward by one interval first,
    yielding the window that follows the current one.
    """
    validate_interval(interval_ms)
    if advance:
        timestamp_ms += interval_ms
    interval_s = interval_ms // 1000
    bucket = timestamp_ms // interval_ms
    return TimeWindow(
        boundary_seconds=bucket * interval_s + interval_s,
        window_start_ms=bucket * interval_ms,
        interval_ms=interval_ms,
    )
