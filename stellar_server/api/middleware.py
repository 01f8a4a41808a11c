"""Request auditing for the build API."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "X-Request-ID"


class AuditLoggerMiddleware(BaseHTTPMiddleware):
    """Tag each HTTP request with an id and log its outcome.

    A caller-supplied ``X-Request-ID`` is reused; otherwise one is generated.
    The id is echoed on the response so build clients can correlate their
    calls with the server log. Server errors log at WARNING, the rest at INFO.
    """

    def __init__(self, app: ASGIApp, *, logger_name: str = "stellar_server.api.audit") -> None:
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._record(request, request_id, started, status_code=500)
            raise
        response.headers[REQUEST_ID_HEADER] = request_id
        self._record(request, request_id, started, status_code=response.status_code)
        return response

    def _record(
        self, request: Request, request_id: str, started: float, *, status_code: int
    ) -> None:
        level = logging.WARNING if status_code >= 500 else logging.INFO
        self.logger.log(
            level,
            "api.request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "build_id": request.path_params.get("build_id"),
                "status": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                "client": request.client.host if request.client else None,
            },
        )


__all__ = ["REQUEST_ID_HEADER", "AuditLoggerMiddleware"]
