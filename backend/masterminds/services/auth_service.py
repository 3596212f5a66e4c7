"""
MasterMinds Backend — Auth Service
===================================

What:  Registration, login, token refresh, logout and profile lookup.
How:   Composes the storage adapter with the credential utilities. Every
       failure is raised as an application exception; the route layer only
       shapes successful results.
Who:   Called by the /auth route handlers.

Login Flow:
    ┌──────────┐   ┌───────────┐   ┌───────────┐   ┌──────────┐   ┌──────────┐
    │ Tracker  │──▶│ Load user │──▶│ Persisted │──▶│ Password │──▶│ Tokens + │
    │ lockout  │   │ by email  │   │ lockUntil │   │ compare  │   │ session  │
    └──────────┘   └───────────┘   └───────────┘   └──────────┘   └──────────┘
       423            401              423            401

    Failures at "load user" and "password compare" are recorded against the
    email in the tracker. Wrong passwords are also counted on the user record;
    reaching the limit persists lock_until so the lock survives a restart of
    the in-process tracker when the SQL backend is active.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from masterminds.config import settings
from masterminds.exceptions import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)
from masterminds.identity import ClientInfo
from masterminds.schemas.auth import RegisterRequest
from masterminds.services.credentials import (
    IssuedToken,
    LoginAttemptTracker,
    TokenService,
    check_password_strength,
    hash_password,
    login_tracker,
    token_service,
    verify_password,
)
from masterminds.storage import StorageAdapter, UserRecord, storage

logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    user: UserRecord
    access: IssuedToken
    refresh_token: str


class AuthService:
    """
    Responsibilities:
        - register(): throttle by IP, enforce unique email and strong password
        - login(): lockout, credential check, attempt bookkeeping
        - refresh(): exchange a refresh token for a new access token
        - logout(): revoke the access token and drop its session
        - get_profile(): current user's record
    """

    def __init__(
        self,
        store: StorageAdapter = storage,
        tokens: TokenService = token_service,
        tracker: LoginAttemptTracker = login_tracker,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.tracker = tracker

    # ── Registration ──────────────────────────────────────────────────────
    async def register(self, payload: RegisterRequest, client: ClientInfo) -> AuthResult:
        """
        validate (schema) → IP throttle → uniqueness → password strength →
        hash → create user → tokens → session → clear IP record

        Raises:
            RateLimitExceededError: too many failed registrations from this IP
            ConflictError(USER_EXISTS): email already registered
            ValidationError(WEAK_PASSWORD): strength rules not met
        """
        throttle = self.tracker.check(client.ip_address)
        if not throttle.allowed:
            raise RateLimitExceededError(
                retry_after=throttle.retry_after,
                message="Too many registration attempts. Please try again later.",
            )

        if await self.store.find_user_by_email(payload.email):
            self.tracker.record_failure(client.ip_address)
            raise ConflictError("User with this email already exists", code="USER_EXISTS")

        strength = check_password_strength(payload.password)
        if not strength.is_valid:
            raise ValidationError(
                "Password does not meet security requirements",
                code="WEAK_PASSWORD",
                errors=[{"field": "password", "message": msg} for msg in strength.errors],
                context={"strength": strength.strength},
            )

        password_hash = await hash_password(payload.password)

        try:
            user = await self.store.create_user(
                {
                    "first_name": payload.first_name,
                    "last_name": payload.last_name,
                    "email": payload.email,
                    "password_hash": password_hash,
                    "phone": payload.phone,
                    "date_of_birth": payload.date_of_birth,
                    "role": "user",
                    "is_verified": False,
                    "failed_login_attempts": 0,
                }
            )
        except ConflictError:
            # Lost a race against a concurrent registration for the same email
            self.tracker.record_failure(client.ip_address)
            raise

        result = await self._open_session(user, client)
        self.tracker.clear(client.ip_address)
        logger.info("Registered user %s", user.id)
        return result

    # ── Login ─────────────────────────────────────────────────────────────
    async def login(self, email: str, password: str, client: ClientInfo) -> AuthResult:
        email = email.lower()
        attempt = self.tracker.check(email)
        if not attempt.allowed:
            raise AccountLockedError(retry_after=attempt.retry_after)

        user = await self.store.find_user_by_email(email)
        if user is None:
            self.tracker.record_failure(email)
            raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")

        now = self.tracker.now()
        if user.lock_until is not None and user.lock_until > now:
            raise AccountLockedError(
                retry_after=math.ceil((user.lock_until - now).total_seconds()),
                message="Account is temporarily locked due to too many failed login attempts",
            )

        if not await verify_password(password, user.password_hash):
            self.tracker.record_failure(email)
            await self._record_failed_password(user, now)
            raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")

        self.tracker.clear(email)
        user = await self.store.update_user(
            user.id,
            {"failed_login_attempts": 0, "lock_until": None, "last_login": now},
        ) or user

        result = await self._open_session(user, client)
        logger.info("User %s logged in", user.id)
        return result

    async def _record_failed_password(self, user: UserRecord, now: datetime) -> None:
        lock_elapsed = user.lock_until is not None and user.lock_until <= now
        failures = (0 if lock_elapsed else user.failed_login_attempts) + 1
        changes: Dict[str, Any] = {"failed_login_attempts": failures}
        if failures >= self.tracker.max_attempts:
            changes["lock_until"] = now + timedelta(seconds=self.tracker.lock_seconds)
            logger.warning("User %s locked after %d failed logins", user.id, failures)
        elif lock_elapsed:
            changes["lock_until"] = None
        await self.store.update_user(user.id, changes)

    # ── Tokens & Sessions ─────────────────────────────────────────────────
    async def _open_session(self, user: UserRecord, client: ClientInfo) -> AuthResult:
        """
        The session row is written first: every access token issued for it,
        refreshed ones included, carries its id in the `sid` claim.
        """
        refresh_token = self.tokens.issue_refresh_token()
        session = await self.store.create_session(
            user.id,
            {
                "token": "",
                "refresh_token": refresh_token,
                "user_agent": client.user_agent,
                "ip_address": client.ip_address,
                "expires_at": datetime.now(timezone.utc) + timedelta(seconds=settings.session_ttl),
            },
        )
        access = self.tokens.issue_access_token(user, session_id=session.id)
        await self.store.update_session(session.id, {"token": access.token})
        return AuthResult(user=user, access=access, refresh_token=refresh_token)

    async def refresh(self, refresh_token: Optional[str]) -> IssuedToken:
        """
        Raises:
            ValidationError(REFRESH_TOKEN_REQUIRED): nothing supplied
            AuthenticationError(INVALID_REFRESH_TOKEN): unknown or expired session
            AuthenticationError(USER_NOT_FOUND): session owner no longer exists
        """
        if not refresh_token:
            raise ValidationError("Refresh token is required", code="REFRESH_TOKEN_REQUIRED")

        session = await self.store.find_session_by_refresh_token(refresh_token)
        now = datetime.now(timezone.utc)
        if session is None or session.expires_at < now:
            if session is not None:
                await self.store.delete_session(session.id)
            raise AuthenticationError("Invalid or expired refresh token", code="INVALID_REFRESH_TOKEN")

        user = await self.store.find_user_by_id(session.user_id)
        if user is None:
            raise AuthenticationError("User not found", code="USER_NOT_FOUND")

        access = self.tokens.issue_access_token(user, session_id=session.id)
        await self.store.update_session(session.id, {"token": access.token, "last_accessed": now})
        return access

    async def logout(
        self,
        token: str,
        token_id: str,
        expires_at: datetime,
        session_id: Optional[int] = None,
    ) -> None:
        """
        Revoke the presented access token and delete the session it belongs to.

        The session is found through the token's `sid` claim, so a token issued
        before a refresh still ends the session. Tokens without the claim fall
        back to a lookup by the stored access token.
        """
        self.tokens.revoke(token_id, expires_at.timestamp())
        if session_id is None:
            session = await self.store.find_session_by_token(token)
            session_id = session.id if session is not None else None
        if session_id is not None:
            await self.store.delete_session(session_id)

    async def get_profile(self, user_id: int) -> UserRecord:
        user = await self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("user", code="USER_NOT_FOUND")
        return user


# ── Singleton Instance ────────────────────────────────────────────────────
auth_service = AuthService()
