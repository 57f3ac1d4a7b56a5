"""Read-only JSON endpoints for the display side.

Handlers are thin: they read from :class:`StatusSources` and
serialise.  The secret and the derivation input are never returned.
"""

from __future__ import annotations

import logging
from typing import Any

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from qr_autofetch.display import format_countdown
from qr_autofetch.servers.context import StatusSources
from qr_autofetch.servers.correlation import CorrelationIdMiddleware

_LOG = logging.getLogger("qr-autofetch.servers.status")

_DEFAULT_ENTRY_LIMIT = 20


async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def create_status_app(sources: StatusSources) -> Starlette:
    """Build the Starlette app bound to *sources*."""

    async def _status(request: Request) -> JSONResponse:
        try:
            limit = int(request.query_params.get("limit", _DEFAULT_ENTRY_LIMIT))
        except ValueError:
            return JSONResponse({"error": "limit must be an integer"}, status_code=400)
        limit = max(0, min(limit, sources.display.max_entries))

        session = sources.session
        current = sources.display.status
        body: dict[str, Any] = {
            "state": session.state.value if session else None,
            "session_id": session.session_id if session else None,
            "status": current.to_dict() if current else None,
            "last_error": (
                session.last_error.to_payload() if session and session.last_error else None
            ),
            "entries": [e.to_dict() for e in sources.display.entries()[:limit]],
        }
        return JSONResponse(body)

    async def _code(request: Request) -> JSONResponse:
        refresh = sources.refresh
        latest = refresh.latest if refresh else None
        if refresh is None or latest is None:
            return JSONResponse({"error": "no code generated yet"}, status_code=503)
        remaining = refresh.generator.remaining_ms()
        body = latest.to_public_dict()
        body["identity"] = refresh.generator.identity
        body["countdown_ms"] = remaining
        body["countdown"] = format_countdown(remaining)
        _LOG.debug(
            "Served code for window %s correlation_id=%s",
            latest.window.boundary_seconds,
            getattr(request.state, "correlation_id", "-"),
        )
        return JSONResponse(body)

    return Starlette(
        routes=[
            Route("/healthz", health_check, methods=["GET"]),
            Route("/status", _status, methods=["GET"]),
            Route("/code", _code, methods=["GET"]),
        ],
        middleware=[Middleware(CorrelationIdMiddleware)],
    )
