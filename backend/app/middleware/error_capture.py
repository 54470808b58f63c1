"""FastAPI middleware that captures unhandled exceptions and records them.

Every 5xx response is recorded through the central error logger so admins
can monitor system health from /api/error-logs.  Validation answers (404,
422) are expected outcomes of the payroll workflow and are not recorded.
"""

from __future__ import annotations

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from app.services.error_logger import ErrorSeverity, log_error

logger = logging.getLogger("backoffice.middleware")

_QUIET_CLIENT_ERRORS = {401, 403, 404, 422}


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """Catches unhandled exceptions, returns 500, and records the error."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()

        try:
            response = await call_next(request)
            elapsed_ms = round((time.time() - start) * 1000, 2)

            if response.status_code >= 500:
                log_error(
                    Exception(f"HTTP {response.status_code} on {request.method} {request.url.path}"),
                    severity=ErrorSeverity.ERROR,
                    module="middleware.error_capture",
                    function_name="dispatch",
                    request_method=request.method,
                    request_path=str(request.url.path),
                    status_code=response.status_code,
                    response_time_ms=elapsed_ms,
                )
            elif response.status_code >= 400 and response.status_code not in _QUIET_CLIENT_ERRORS:
                log_error(
                    Exception(f"HTTP {response.status_code} on {request.method} {request.url.path}"),
                    severity=ErrorSeverity.WARNING,
                    module="middleware.error_capture",
                    function_name="dispatch",
                    request_method=request.method,
                    request_path=str(request.url.path),
                    status_code=response.status_code,
                    response_time_ms=elapsed_ms,
                )

            return response

        except Exception as exc:
            elapsed_ms = round((time.time() - start) * 1000, 2)

            log_error(
                exc,
                severity=ErrorSeverity.ERROR,
                module="middleware.error_capture",
                request_method=request.method,
                request_path=str(request.url.path),
                status_code=500,
                response_time_ms=elapsed_ms,
            )

            logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error"},
            )
