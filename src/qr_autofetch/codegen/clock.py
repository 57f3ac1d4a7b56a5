"""Clock abstraction for testable time handling in code generation.

This module defines a `Clock` protocol representing callables that return the
current UNIX timestamp as ``float`` seconds.  Everything time-based inside
``qr_autofetch`` MUST depend on an injected ``Clock`` instance rather than
calling ``time.time()`` directly, so windows can be pinned in tests.

Example
-------
>>> from qr_autofetch.codegen.clock import default_clock, now_ms
>>> isinstance(now_ms(default_clock), int)
True
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable protocol returning *seconds* since the UNIX epoch."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    """Default implementation that delegates to ``time.time()``."""
    return time.time()


def now_ms(clock: Clock = default_clock) -> int:
    """Return the clock reading as whole milliseconds."""
    return int(clock() * 1000)
