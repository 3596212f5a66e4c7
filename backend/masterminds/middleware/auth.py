"""
MasterMinds Backend — Authentication Dependencies
==================================================

What:  FastAPI dependencies that turn a bearer token into an identity, check
       roles, prepare ownership checks and rate limit per identity.
How:   Per request, `get_current_user` runs
           token extracted → verified → not revoked → user loaded → attached
       and stops at the first failing step with a specific 401 code.
Who:   Declared on the /auth and /applications routers.

Token sources (first match wins):
    1. Authorization: Bearer <token>
    2. ?token=<token> query parameter
    3. authToken cookie

Dependency order:
    require_roles() and ownership_context() read the identity attached by
    get_current_user, so routers declare get_current_user first.
"""

import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from fastapi import Depends, Request, Response

from masterminds.config import settings
from masterminds.exceptions import (
    AuthenticationError,
    AuthorizationError,
    MasterMindsError,
    RateLimitExceededError,
)
from masterminds.identity import AuthenticatedUser, ClientInfo, OwnershipCheck
from masterminds.middleware.rate_limit import client_ip_of
from masterminds.services.credentials import token_service
from masterminds.storage import storage

logger = logging.getLogger(__name__)


def extract_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return request.query_params.get("token") or request.cookies.get("authToken") or None


async def get_current_user(request: Request) -> AuthenticatedUser:
    """
    Raises:
        AuthenticationError: NO_TOKEN, TOKEN_REVOKED or USER_NOT_FOUND
        TokenExpiredError:   TOKEN_EXPIRED
        MalformedTokenError: MALFORMED_TOKEN
    """
    token = extract_token(request)
    if token is None:
        raise AuthenticationError("Access denied. No token provided.", code="NO_TOKEN")

    claims = token_service.verify_access_token(token)

    if token_service.is_revoked(claims["jti"]):
        raise AuthenticationError("Access denied. Token has been revoked.", code="TOKEN_REVOKED")

    user = await storage.find_user_by_id(claims["userId"])
    if user is None:
        raise AuthenticationError("Access denied. User not found.", code="USER_NOT_FOUND")

    identity = AuthenticatedUser(
        user_id=user.id,
        email=user.email,
        role=user.role,
        token=token,
        token_id=claims["jti"],
        issued_at=datetime.fromtimestamp(claims["iat"], timezone.utc),
        expires_at=datetime.fromtimestamp(claims["exp"], timezone.utc),
        profile=user,
        session_id=claims["sid"],
    )
    request.state.user = identity
    request.state.last_access = datetime.now(timezone.utc)
    return identity


async def get_optional_user(request: Request) -> Optional[AuthenticatedUser]:
    """Same pipeline as get_current_user; any failure means "anonymous"."""
    try:
        return await get_current_user(request)
    except MasterMindsError as e:
        logger.debug("Optional authentication skipped: %s", e.code)
        return None


def attached_user(request: Request) -> Optional[AuthenticatedUser]:
    return getattr(request.state, "user", None)


def require_roles(*roles: str) -> Callable:
    """
    Dependency factory: 401 AUTH_REQUIRED without an identity, 403 when the
    identity's role is not one of `roles`.
    """

    async def check_role(
        user: Optional[AuthenticatedUser] = Depends(attached_user),
    ) -> AuthenticatedUser:
        if user is None:
            raise AuthenticationError()
        if user.role not in roles:
            raise AuthorizationError(context={"required": list(roles), "current": user.role})
        return user

    return check_role


async def ownership_context(
    application_id: int,
    user: Optional[AuthenticatedUser] = Depends(attached_user),
) -> OwnershipCheck:
    """Pre-populates the ownership comparison; the service compares once the record is loaded."""
    if user is None:
        raise AuthenticationError("Authentication required.", code="AUTH_REQUIRED")
    return OwnershipCheck(user_id=user.user_id, resource_id=application_id, is_admin=user.is_admin)


class UserRateLimiter:
    """
    Sliding-window limiter keyed by identity (user id, else client IP).

    Every call prunes timestamps older than the window for all keys, then
    rejects with 429 once the caller's count meets `max_requests`. Accepted
    calls are recorded; both outcomes report X-RateLimit-* headers.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, List[float]] = defaultdict(list)

    def key_for(self, request: Request) -> str:
        user = attached_user(request)
        return f"user:{user.user_id}" if user else f"ip:{client_ip_of(request)}"

    def hit(self, key: str, response: Optional[Response] = None) -> int:
        """Records one request for `key`; returns how many remain in the window."""
        now = self._clock()
        window_start = now - self.window_seconds

        for existing in list(self._hits):
            recent = [ts for ts in self._hits[existing] if ts > window_start]
            if recent:
                self._hits[existing] = recent
            else:
                del self._hits[existing]

        timestamps = self._hits[key]
        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window_seconds - now) + 1
            logger.warning("Per-identity limit reached for %s", key)
            raise RateLimitExceededError(
                retry_after=retry_after,
                message="Too many requests. Please try again later.",
                headers=self._headers(0, timestamps[0] + self.window_seconds),
            )

        timestamps.append(now)
        remaining = self.max_requests - len(timestamps)
        if response is not None:
            response.headers.update(self._headers(remaining, now + self.window_seconds))
        return remaining

    def _headers(self, remaining: int, reset_at: float) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.max_requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": datetime.fromtimestamp(reset_at, timezone.utc).isoformat(),
        }

    async def __call__(self, request: Request, response: Response) -> None:
        self.hit(self.key_for(request), response)

    def reset(self) -> None:
        self._hits.clear()


# 10 submissions per hour per user
submission_limiter = UserRateLimiter(
    max_requests=settings.application_rate_limit,
    window_seconds=settings.application_rate_window,
)


def client_info(request: Request) -> ClientInfo:
    return ClientInfo(ip_address=client_ip_of(request), user_agent=request.headers.get("user-agent"))
