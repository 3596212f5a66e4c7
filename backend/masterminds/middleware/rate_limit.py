"""
MasterMinds Backend — Global Rate Limiting Middleware
======================================================

What:  Per-IP sliding window rate limiter for the /api/ surface.
Why:   Protects the API (and bcrypt CPU time in particular) from abuse.
How:   Tracks request timestamps per IP in memory using a sliding window.
Who:   Applied to every request via Starlette middleware.
When:  Outermost in the middleware chain (rejects abuse before any processing).

Algorithm: Sliding Window Log
    1. Each IP gets a list of request timestamps
    2. On each request, drop timestamps older than the window
    3. If remaining count >= limit, reject with 429
    4. Otherwise, record the timestamp and let the request through

    Time complexity: O(k) where k = requests in the window for that IP
    Space complexity: O(n × k) where n = distinct IPs

Headers (draft IETF RateLimit fields):
    RateLimit-Limit, RateLimit-Remaining, RateLimit-Reset on every limited
    response; Retry-After on 429.

Single-process only. Each uvicorn worker keeps its own windows.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from masterminds.config import settings
from masterminds.exceptions import RateLimitExceededError
from masterminds.middleware.request_id import new_request_id

logger = logging.getLogger(__name__)


def client_ip_of(request: Request) -> str:
    # Behind a proxy this is the proxy's address unless uvicorn runs with --proxy-headers
    return getattr(request.client, "host", "unknown") if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Configuration (from settings unless passed explicitly):
        rate_limit_requests: Max requests per window (default: 100)
        rate_limit_window: Window duration in seconds (default: 900)

    Only paths under /api/ are limited; health checks never are.
    """

    EXCLUDED_PATHS = {"/health", "/api/health", "/api/v1/health"}
    LIMITED_PREFIX = "/api/"

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self._clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS or not path.startswith(self.LIMITED_PREFIX):
            return await call_next(request)

        client_ip = client_ip_of(request)
        now = self._clock()
        window_start = now - self.window_seconds

        # ── Sliding Window: drop old entries ──────────────────────────────
        timestamps = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = timestamps

        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                self.window_seconds,
            )
            error = RateLimitExceededError(
                retry_after=retry_after,
                message="Too many requests from this IP, please try again later.",
            )
            # Runs before RequestIDMiddleware, so the ID is resolved here
            rid = request.headers.get("X-Request-ID") or new_request_id()
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_response(rid),
                headers={
                    "Retry-After": str(retry_after),
                    "X-Request-ID": rid,
                    **self._headers(0, retry_after),
                },
            )

        timestamps.append(now)

        # Periodic cleanup of inactive IPs (amortized)
        if sum(len(v) for v in self._requests.values()) % 1000 == 0:
            self._cleanup_inactive_ips(window_start)

        response = await call_next(request)
        reset = int(timestamps[0] + self.window_seconds - now) + 1
        response.headers.update(self._headers(self.max_requests - len(timestamps), reset))
        return response

    def _headers(self, remaining: int, reset: int) -> Dict[str, str]:
        return {
            "RateLimit-Limit": str(self.max_requests),
            "RateLimit-Remaining": str(max(0, remaining)),
            "RateLimit-Reset": str(reset),
        }

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
