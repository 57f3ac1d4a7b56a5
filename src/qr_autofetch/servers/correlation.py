"""Request tracing for the status endpoints.

Each request gets a correlation ID (the caller's ``X-Correlation-ID`` or a
fresh UUID4 hex), exposed as ``request.state.correlation_id``, echoed in the
response and attached to one access log line per request.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_HEADER_NAME = "X-Correlation-ID"
_logger = logging.getLogger("qr-autofetch.servers.access")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every status request and log it once it completes."""

    def __init__(self, app, header_name: str = _HEADER_NAME) -> None:  # type: ignore[override]  # noqa: ANN001
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]  # noqa: ANN001
        correlation_id = request.headers.get(self.header_name) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        started = time.perf_counter()
        response = await call_next(request)
        response.headers[self.header_name] = correlation_id
        _logger.debug(
            "%s %s -> %d in %.1f ms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            extra={"correlation_id": correlation_id},
        )
        return response
