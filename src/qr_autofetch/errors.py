"""Exception types raised or reported by the fetcher.

Only lightweight, **data-carrying** exceptions live here so that CLI and HTTP
layers can transform them into exit codes, JSON bodies or status lines.

Inside the event-driven session most of these are *reported* (logged, pushed
to the display and stored as ``last_error``) rather than raised; only
:class:`ConfigError` escapes from :meth:`ProtocolSession.start`.
"""

from __future__ import annotations

from typing import Any


class QrAutofetchError(RuntimeError):
    """Base class; ``kind`` is the stable identifier used in payloads."""

    kind = "error"

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.kind, "message": str(self)}


class ConfigError(QrAutofetchError):
    """Missing or invalid credential, endpoint or setting. Nothing was attempted."""

    kind = "config_error"


class TransportError(QrAutofetchError):
    """The connection failed or dropped; the session is finished."""

    kind = "transport_error"


class ProtocolError(QrAutofetchError):
    """A message could not be parsed or did not fit the protocol; it was dropped."""

    kind = "protocol_error"

    def __init__(self, message: str, *, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class ServerError(QrAutofetchError):
    """The remote peer reported an error."""

    kind = "server_error"

    def __init__(
        self,
        message: str,
        *,
        payload: Any = None,
        fatal: bool = False,
    ) -> None:
        super().__init__(message)
        self.payload = payload
        self.fatal = fatal

    def to_payload(self) -> dict[str, Any]:
        body = super().to_payload()
        body["fatal"] = self.fatal
        body["detail"] = self.payload
        return body


class ExtractionError(QrAutofetchError):
    """Pushed profile data lacked the identity or the secret."""

    kind = "extraction_error"

    def __init__(self, message: str, *, missing: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.missing = missing

    def to_payload(self) -> dict[str, Any]:
        body = super().to_payload()
        body["missing"] = list(self.missing)
        return body
