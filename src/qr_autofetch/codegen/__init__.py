"""Code generation core package.

Pure, **I/O-free** building blocks that turn an identity/secret pair and the
current time into the code a remote verifier expects.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
codec
    Digest derivation and code assembly.
window
    Wall-clock to refresh-window mapping.
models
    Immutable dataclasses for credentials and generated codes.
generator
    Stateful generator bound to one credential pair.

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock, now_ms  # noqa: F401
from .codec import (  # noqa: F401
    CODE_SUFFIX,
    DEFAULT_STATIC_KEY,
    assemble_code,
    derivation_input,
    derive,
)
from .window import DEFAULT_INTERVAL_MS, TimeWindow, window_for  # noqa: F401
from .models import Credentials, GeneratedCode  # noqa: F401
from .generator import CodeGenerator  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "default_clock",
    "now_ms",
    # codec
    "CODE_SUFFIX",
    "DEFAULT_STATIC_KEY",
    "assemble_code",
    "derivation_input",
    "derive",
    # window
    "DEFAULT_INTERVAL_MS",
    "TimeWindow",
    "window_for",
    # models
    "Credentials",
    "GeneratedCode",
    # generator
    "CodeGenerator",
]
