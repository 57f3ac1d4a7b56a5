"""Time-windowed code generator.

A :class:`CodeGenerator` is bound to one identity/secret pair for its whole
lifetime.  Callers poll :meth:`CodeGenerator.generate` (or let the
:class:`~qr_autofetch.scheduler.RefreshScheduler` do it) and receive a fresh
:class:`~qr_autofetch.codegen.models.GeneratedCode` each time.

Logging
-------
A single INFO line is emitted the first time a window boundary is produced.
Only the first 50 characters of the code are logged; the secret and the
derivation input never are.
"""

from __future__ import annotations

import logging
from typing import Callable

from qr_autofetch.codegen.clock import Clock, default_clock, now_ms
from qr_autofetch.codegen.codec import (
    DEFAULT_STATIC_KEY,
    assemble_code,
    derivation_input,
    derive,
)
from qr_autofetch.codegen.models import (
    Credentials,
    GeneratedCode,
    Mode,
    datetime_from_ms,
)
from qr_autofetch.codegen.window import DEFAULT_INTERVAL_MS, validate_interval, window_for

_LOG = logging.getLogger("qr-autofetch.codegen.generator")

_LOGGED_CODE_CHARS = 50

NewWindowCallback = Callable[[GeneratedCode], None]


class CodeGenerator:
    """Produce the current (or next) code for a fixed credential pair."""

    def __init__(
        self,
        identity: str,
        secret: str,
        *,
        static_key: str = DEFAULT_STATIC_KEY,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        clock: Clock = default_clock,
        on_new_window: NewWindowCallback | None = None,
    ) -> None:
        self._identity = str(identity)
        self._secret = secret
        self._static_key = static_key
        self._interval_ms = validate_interval(interval_ms)
        self._clock = clock
        self._on_new_window = on_new_window
        self._last_boundary: int | None = None

    @classmethod
    def from_credentials(cls, credentials: Credentials, **kwargs) -> "CodeGenerator":
        return cls(credentials.identity, credentials.secret, **kwargs)

    # read-only configuration
    @property
    def identity(self) -> str:
        return self._identity

    @property
    def secret(self) -> str:
        return self._secret

    @property
    def static_key(self) -> str:
        return self._static_key

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def generate(self, mode: Mode = "current", at_ms: int | None = None) -> GeneratedCode:
        """Return the code for the window containing *at_ms*.

        Parameters
        ----------
        mode:
            ``"current"`` for the window containing *at_ms*, ``"next"`` for the
            one after it.
        at_ms:
            UNIX milliseconds; defaults to the injected clock.

        The result's ``remaining_ms`` is always the time left until the next
        rollover, in either mode.
        """
        if mode not in ("current", "next"):
            raise ValueError(f"unknown generation mode: {mode!r}")
        if at_ms is None:
            at_ms = now_ms(self._clock)

        window = window_for(self._interval_ms, at_ms, advance=mode == "next")
        boundary = window.boundary_seconds
        digest = derive(self._static_key, self._secret, boundary)
        result = GeneratedCode(
            code=assemble_code(self._identity, digest),
            window=window,
            remaining_ms=self.remaining_ms(at_ms),
            derivation_input=derivation_input(self._static_key, self._secret, boundary),
            digest=digest,
            generated_at=datetime_from_ms(at_ms),
        )

        if self._last_boundary != boundary:
            self._last_boundary = boundary
            _LOG.info(
                "New code generated for window %s: %s...",
                boundary,
                result.code[:_LOGGED_CODE_CHARS],
            )
            if self._on_new_window is not None:
                self._on_new_window(result)
        return result

    def remaining_ms(self, at_ms: int | None = None) -> int:
        """Countdown for the current window; leaves notification state alone."""
        if at_ms is None:
            at_ms = now_ms(self._clock)
        return window_for(self._interval_ms, at_ms).remaining_ms(at_ms)

    def __repr__(self) -> str:
        return (
            f"CodeGenerator(identity={self._identity!r}, "
            f"interval_ms={self._interval_ms}, secret=<redacted>)"
        )
