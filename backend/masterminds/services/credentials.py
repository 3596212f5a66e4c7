"""
MasterMinds Backend — Credential & Token Utilities
===================================================

What:  Password hashing, bearer/refresh token issuance and verification,
       access-token revocation, failed-login tracking and password strength
       scoring.
How:   bcrypt for hashes (run in a worker thread since it is CPU-bound),
       PyJWT HS256 for bearer tokens, `secrets` for opaque refresh tokens.
Who:   Used by AuthService and the auth dependencies.

State:
    `token_service` (revocation list) and `login_tracker` (attempt counts)
    are process-local singletons. Neither is shared between server
    processes; a multi-node deployment needs a shared store for both.
"""

import asyncio
import logging
import math
import re
import secrets
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import bcrypt
import jwt

from masterminds.config import settings
from masterminds.exceptions import MalformedTokenError, TokenExpiredError
from masterminds.storage.records import UserRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# bcrypt ignores (newer releases reject) anything past 72 bytes
BCRYPT_MAX_BYTES = 72


# ══════════════════════════════════════════════════════════════════════════
# Password Hashing
# ══════════════════════════════════════════════════════════════════════════

def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:BCRYPT_MAX_BYTES]


def _hash_sync(plain: str, rounds: int) -> str:
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _verify_sync(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # Corrupt or foreign hash format
        logger.warning("Stored password hash could not be parsed")
        return False


async def hash_password(plain: str, rounds: Optional[int] = None) -> str:
    """Salted bcrypt hash with the configured cost factor."""
    return await asyncio.to_thread(_hash_sync, plain, rounds or settings.bcrypt_rounds)


async def verify_password(plain: str, hashed: str) -> bool:
    return await asyncio.to_thread(_verify_sync, plain, hashed)


# ══════════════════════════════════════════════════════════════════════════
# Bearer & Refresh Tokens
# ══════════════════════════════════════════════════════════════════════════

@dataclass
class IssuedToken:
    token: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """
    Issues and verifies HS256 access tokens and keeps a revocation list.

    Claims:
        sub (user id as string), userId, email, role, firstName, lastName,
        iat, exp, jti (random UUID), iss, aud, and sid (id of the login
        session the token belongs to; kept across refreshes)

    The revocation list maps jti → expiry timestamp. Entries are dropped once
    the token would have expired anyway, so the list stays bounded by the
    number of tokens revoked within one token lifetime.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        expires_in: Optional[int] = None,
        clock: Clock = time.time,
    ) -> None:
        self.secret = secret or settings.jwt_secret
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expires_in = expires_in or settings.jwt_expires_in
        self.issuer = settings.jwt_issuer
        self.audience = settings.jwt_audience
        self._clock = clock
        self._revoked: Dict[str, float] = {}

    def issue_access_token(
        self,
        user: UserRecord,
        expires_in: Optional[int] = None,
        session_id: Optional[int] = None,
    ) -> IssuedToken:
        now = int(self._clock())
        lifetime = self.expires_in if expires_in is None else expires_in
        token_id = str(uuid.uuid4())
        claims = {
            "sub": str(user.id),
            "userId": user.id,
            "email": user.email,
            "role": user.role,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "iat": now,
            "exp": now + lifetime,
            "jti": token_id,
            "iss": self.issuer,
            "aud": self.audience,
        }
        if session_id is not None:
            claims["sid"] = session_id
        token = jwt.encode(claims, self.secret, algorithm=self.algorithm)
        return IssuedToken(
            token=token,
            token_id=token_id,
            issued_at=datetime.fromtimestamp(now, timezone.utc),
            expires_at=datetime.fromtimestamp(now + lifetime, timezone.utc),
        )

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Returns the decoded claims.

        Raises:
            TokenExpiredError:   signature valid, `exp` in the past
            MalformedTokenError: anything else (bad signature, garbage,
                                 wrong issuer/audience, missing claims)
        """
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError()
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected bearer token: %s", e)
            raise MalformedTokenError()

        try:
            claims["userId"] = int(claims["sub"])
            claims["sid"] = int(claims["sid"]) if claims.get("sid") is not None else None
        except (TypeError, ValueError):
            raise MalformedTokenError()
        return claims

    @staticmethod
    def issue_refresh_token() -> str:
        """64 random bytes, hex-encoded. Carries no claims; validity is the Session row."""
        return secrets.token_hex(64)

    # ── Revocation ────────────────────────────────────────────────────────
    def _prune(self) -> None:
        now = self._clock()
        for token_id in [jti for jti, exp in self._revoked.items() if exp <= now]:
            del self._revoked[token_id]

    def revoke(self, token_id: str, expires_at: float) -> None:
        self._prune()
        self._revoked[token_id] = expires_at

    def is_revoked(self, token_id: str) -> bool:
        self._prune()
        return token_id in self._revoked

    def reset(self) -> None:
        self._revoked.clear()


# ══════════════════════════════════════════════════════════════════════════
# Failed-Login Tracking
# ══════════════════════════════════════════════════════════════════════════

@dataclass
class AttemptRecord:
    count: int = 0
    locked_until: Optional[float] = None
    last_attempt: Optional[float] = None


@dataclass
class AttemptStatus:
    allowed: bool
    remaining: int = 0
    locked: bool = False
    retry_after: int = 0


class LoginAttemptTracker:
    """
    Per-identifier failure counter with a temporary lock.

    check(identifier):
        locked, lock not elapsed  → denied, retry_after = seconds left
        locked, lock elapsed      → record dropped, allowed
        count reached the maximum → new lock set, denied
        otherwise                 → allowed, remaining = max - count

    Identifiers are emails for login and client IPs for registration.
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        lock_seconds: Optional[int] = None,
        clock: Clock = time.time,
    ) -> None:
        self.max_attempts = max_attempts or settings.max_login_attempts
        self.lock_seconds = lock_seconds or settings.account_lock_time
        self.clock = clock
        self._attempts: Dict[str, AttemptRecord] = {}

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), timezone.utc)

    def check(self, identifier: str) -> AttemptStatus:
        record = self._attempts.get(identifier)
        if record is None:
            return AttemptStatus(allowed=True, remaining=self.max_attempts)

        now = self.clock()
        if record.locked_until is not None:
            if record.locked_until > now:
                return AttemptStatus(
                    allowed=False, locked=True, retry_after=math.ceil(record.locked_until - now)
                )
            del self._attempts[identifier]
            return AttemptStatus(allowed=True, remaining=self.max_attempts)

        remaining = self.max_attempts - record.count
        if remaining <= 0:
            record.locked_until = now + self.lock_seconds
            logger.warning("Locking %s for %ds after %d failures", identifier, self.lock_seconds, record.count)
            return AttemptStatus(allowed=False, locked=True, retry_after=self.lock_seconds)

        return AttemptStatus(allowed=True, remaining=remaining)

    def record_failure(self, identifier: str) -> None:
        record = self._attempts.setdefault(identifier, AttemptRecord())
        record.count += 1
        record.last_attempt = self.clock()

    def clear(self, identifier: str) -> None:
        self._attempts.pop(identifier, None)

    def reset(self) -> None:
        self._attempts.clear()


# ══════════════════════════════════════════════════════════════════════════
# Password Strength
# ══════════════════════════════════════════════════════════════════════════

SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")
REPEATED_RUN = re.compile(r"(.)\1{2,}")
COMMON_SEQUENCE = re.compile(r"123|abc|qwe", re.IGNORECASE)
MIN_PASSWORD_LENGTH = 8


@dataclass
class PasswordStrength:
    is_valid: bool
    strength: str
    score: int
    errors: List[str] = field(default_factory=list)


def password_score(password: str) -> int:
    score = min(len(password) * 2, 20)
    if re.search(r"[a-z]", password):
        score += 5
    if re.search(r"[A-Z]", password):
        score += 5
    if re.search(r"\d", password):
        score += 5
    if SPECIAL_CHARACTERS.search(password):
        score += 10
    if REPEATED_RUN.search(password):
        score -= 10
    if COMMON_SEQUENCE.search(password):
        score -= 10
    return max(0, min(100, score))


def strength_label(score: int) -> str:
    if score >= 80:
        return "Very Strong"
    if score >= 60:
        return "Strong"
    if score >= 40:
        return "Medium"
    if score >= 20:
        return "Weak"
    return "Very Weak"


def check_password_strength(password: str) -> PasswordStrength:
    errors = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not SPECIAL_CHARACTERS.search(password):
        errors.append("Password must contain at least one special character")

    score = password_score(password)
    return PasswordStrength(
        is_valid=not errors,
        strength=strength_label(score),
        score=score,
        errors=errors,
    )


# ── Singleton Instances ───────────────────────────────────────────────────
token_service = TokenService()
login_tracker = LoginAttemptTracker()
