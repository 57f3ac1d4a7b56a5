"""Structured logging helpers for the protocol session.

This module restricts **which** contextual attributes are attached to log
records so that tokens never leak.  Helpers ONLY inject the following
*non-sensitive* fields:

- ``session_id``    – server-assigned session identifier (first 6 chars kept)
- ``endpoint_host`` – host part of the endpoint URL (no path, no query)
- ``state``         – current session state name

Usage
-----
>>> from qr_autofetch.session.log_utils import get_session_logger
>>> log = get_session_logger(endpoint="wss://example.com/websocket")
>>> log.info("Opening connection")

The adapter is a thin wrapper around :class:`logging.LoggerAdapter`.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping
from urllib.parse import urlparse


class _SessionLoggerAdapter(logging.LoggerAdapter):
    """Inject whitelisted session context into log records."""

    extra_keys = ("session_id", "endpoint_host", "state")

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        super().__init__(logger, {})
        self.bind(**(extra or {}))

    def bind(self, **context: Any) -> None:
        """Update context in place; unknown keys are dropped."""
        clean: MutableMapping[str, Any] = dict(self.extra or {})
        for k in self.extra_keys:
            if k not in context:
                continue
            value = context[k]
            if value is None:
                clean.pop(k, None)
            elif k == "session_id":
                clean[k] = str(value)[:6]
            else:
                clean[k] = value
        self.extra = clean

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        if "extra" not in kwargs or kwargs["extra"] is None:
            kwargs["extra"] = {}
        # merge but do not overwrite call-site provided extras
        for k, v in self.extra.items():
            kwargs["extra"].setdefault(k, v)
        return msg, kwargs


def get_session_logger(
    *,
    base_logger_name: str = "qr-autofetch.session",
    endpoint: str | None = None,
    session_id: str | None = None,
    state: str | None = None,
) -> _SessionLoggerAdapter:
    """Return a LoggerAdapter pre-filled with session context."""
    logger = logging.getLogger(base_logger_name)
    return _SessionLoggerAdapter(
        logger,
        {
            "session_id": session_id,
            "endpoint_host": urlparse(endpoint).hostname if endpoint else None,
            "state": state,
        },
    )
