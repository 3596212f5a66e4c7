"""
MasterMinds Backend — Request Logging Middleware
=================================================

What:  One access-log line per HTTP request with status and duration.
How:   Measures from middleware entry to response return and logs through
       the `masterminds.access` logger with the request ID from the
       RequestIDMiddleware.

Logged: method, path, status, duration, client IP, request ID.
Never logged: request bodies, query strings (may carry ?token=), headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from masterminds.middleware.rate_limit import client_ip_of
from masterminds.middleware.request_id import request_id_var

logger = logging.getLogger("masterminds.access")

QUIET_PATHS = {"/health", "/api/health", "/api/v1/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log level follows the status code: 5xx → ERROR, 4xx → WARNING,
    everything else → INFO. Health probes are not logged.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        client_ip = client_ip_of(request)
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
