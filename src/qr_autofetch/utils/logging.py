"""Logging helpers shared across the package."""

from __future__ import annotations

import logging
import sys
from typing import Final

_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s %(message)s"


def mask_sensitive(value: str | None, keep_chars: int = 4) -> str:
    """Mask all but the last *keep_chars* characters of *value*.

    >>> mask_sensitive("abcdefgh", 2)
    '******gh'
    """
    if not value:
        return ""
    if len(value) <= keep_chars:
        return "*" * len(value)
    return "*" * (len(value) - keep_chars) + value[-keep_chars:]


def setup_logging(level: int | str = logging.INFO, stream=None) -> logging.Logger:  # noqa: ANN001
    """Configure the ``qr-autofetch`` logger tree and return its root."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level: {level}")
        level = resolved

    root = logging.getLogger("qr-autofetch")
    # handlers filter; the logger itself passes everything through
    root.setLevel(logging.DEBUG)
    for handler in root.handlers:
        if getattr(handler, "_qr_autofetch", False):
            handler.setLevel(level)
            return root
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._qr_autofetch = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    return root
