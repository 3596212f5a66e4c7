"""
MasterMinds Backend — Auth Service Unit Tests
==============================================

What:  Tests for AuthService: register, login, lockout, refresh, logout.
How:   Each test builds its own service over a private MemoryStorage and a
       tracker with a fake clock (no HTTP, no shared state).

What we test:
    ✅ Registration creates a user, tokens and a session
    ✅ Duplicate email and weak password rejections
    ✅ Registration throttling per IP
    ✅ Invalid credentials, lockout after repeated failures and its expiry
    ✅ Refresh token exchange and logout revocation
"""

import pytest

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
from masterminds.services.auth_service import AuthService
from masterminds.services.credentials import LoginAttemptTracker, TokenService
from masterminds.storage import MemoryStorage, StorageAdapter

CLIENT = ClientInfo(ip_address="10.0.0.1", user_agent="pytest")


class FakeClock:
    def __init__(self, start: float = 1_800_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def registration(email: str = "ada@example.com", password: str = "Str0ng!Pass") -> RegisterRequest:
    return RegisterRequest(first_name="Ada", last_name="Lovelace", email=email, password=password)


class TestRegister:

    def setup_method(self):
        self.store = StorageAdapter(MemoryStorage())
        self.tracker = LoginAttemptTracker(max_attempts=5, lock_seconds=1800, clock=FakeClock())
        self.service = AuthService(store=self.store, tokens=TokenService(), tracker=self.tracker)

    @pytest.mark.asyncio
    async def test_register_creates_user_and_session(self):
        result = await self.service.register(registration(), CLIENT)

        assert result.user.id == 1
        assert result.user.role == "user"
        assert not result.user.is_verified
        assert result.user.password_hash != "Str0ng!Pass"
        session = await self.store.find_session_by_refresh_token(result.refresh_token)
        assert session.user_id == result.user.id
        assert session.token == result.access.token
        assert session.ip_address == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_duplicate_email(self):
        await self.service.register(registration(), CLIENT)
        with pytest.raises(ConflictError) as excinfo:
            await self.service.register(registration("ADA@example.com"), CLIENT)
        assert excinfo.value.code == "USER_EXISTS"

    @pytest.mark.asyncio
    async def test_weak_password(self):
        with pytest.raises(ValidationError) as excinfo:
            await self.service.register(registration(password="password1"), CLIENT)

        error = excinfo.value
        assert error.code == "WEAK_PASSWORD"
        messages = [entry["message"] for entry in error.context["errors"]]
        assert "Password must contain at least one uppercase letter" in messages
        assert error.context["strength"] in ("Very Weak", "Weak", "Medium")
        assert await self.store.find_user_by_email("ada@example.com") is None

    @pytest.mark.asyncio
    async def test_repeated_failures_throttle_the_ip(self):
        await self.service.register(registration(), CLIENT)
        for _ in range(5):
            with pytest.raises(ConflictError):
                await self.service.register(registration(), CLIENT)

        with pytest.raises(RateLimitExceededError):
            await self.service.register(registration("new@example.com"), CLIENT)

        other_ip = ClientInfo(ip_address="10.0.0.2")
        result = await self.service.register(registration("new@example.com"), other_ip)
        assert result.user.email == "new@example.com"


class TestLogin:

    def setup_method(self):
        self.clock = FakeClock()
        self.store = StorageAdapter(MemoryStorage())
        self.tracker = LoginAttemptTracker(max_attempts=5, lock_seconds=1800, clock=self.clock)
        self.service = AuthService(store=self.store, tokens=TokenService(), tracker=self.tracker)

    async def _register(self):
        return await self.service.register(registration(), CLIENT)

    @pytest.mark.asyncio
    async def test_login_success_resets_bookkeeping(self):
        registered = await self._register()
        with pytest.raises(AuthenticationError):
            await self.service.login("ada@example.com", "Wr0ng!Pass", CLIENT)

        result = await self.service.login("ADA@example.com", "Str0ng!Pass", CLIENT)

        assert result.user.id == registered.user.id
        assert result.user.failed_login_attempts == 0
        assert result.user.last_login is not None
        assert result.refresh_token != registered.refresh_token
        assert self.tracker.check("ada@example.com").remaining == 5

    @pytest.mark.asyncio
    async def test_unknown_email_and_wrong_password_look_the_same(self):
        await self._register()
        with pytest.raises(AuthenticationError) as unknown:
            await self.service.login("nobody@example.com", "Str0ng!Pass", CLIENT)
        with pytest.raises(AuthenticationError) as wrong:
            await self.service.login("ada@example.com", "Wr0ng!Pass", CLIENT)

        assert unknown.value.code == wrong.value.code == "INVALID_CREDENTIALS"
        assert unknown.value.message == wrong.value.message

    @pytest.mark.asyncio
    async def test_lockout_after_five_failures(self):
        await self._register()
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                await self.service.login("ada@example.com", "Wr0ng!Pass", CLIENT)

        user = await self.store.find_user_by_email("ada@example.com")
        assert user.failed_login_attempts == 5
        assert user.lock_until is not None

        # Even the right password is refused while locked
        with pytest.raises(AccountLockedError) as excinfo:
            await self.service.login("ada@example.com", "Str0ng!Pass", CLIENT)
        assert excinfo.value.status_code == 423
        assert excinfo.value.retry_after == 1800

    @pytest.mark.asyncio
    async def test_lock_expires(self):
        await self._register()
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                await self.service.login("ada@example.com", "Wr0ng!Pass", CLIENT)
        with pytest.raises(AccountLockedError):
            await self.service.login("ada@example.com", "Str0ng!Pass", CLIENT)

        self.clock.now += 1801
        result = await self.service.login("ada@example.com", "Str0ng!Pass", CLIENT)
        assert result.user.lock_until is None

    @pytest.mark.asyncio
    async def test_persisted_lock_survives_a_fresh_tracker(self):
        await self._register()
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                await self.service.login("ada@example.com", "Wr0ng!Pass", CLIENT)

        restarted = AuthService(
            store=self.store,
            tokens=TokenService(),
            tracker=LoginAttemptTracker(max_attempts=5, lock_seconds=1800, clock=self.clock),
        )
        with pytest.raises(AccountLockedError):
            await restarted.login("ada@example.com", "Str0ng!Pass", CLIENT)


class TestTokensAndProfile:

    def setup_method(self):
        self.store = StorageAdapter(MemoryStorage())
        self.tokens = TokenService()
        self.service = AuthService(
            store=self.store, tokens=self.tokens, tracker=LoginAttemptTracker(clock=FakeClock())
        )

    @pytest.mark.asyncio
    async def test_refresh_issues_new_access_token(self):
        registered = await self.service.register(registration(), CLIENT)
        access = await self.service.refresh(registered.refresh_token)

        claims = self.tokens.verify_access_token(access.token)
        assert claims["userId"] == registered.user.id
        session = await self.store.find_session_by_refresh_token(registered.refresh_token)
        assert session.token == access.token

    @pytest.mark.asyncio
    async def test_refresh_requires_a_token(self):
        with pytest.raises(ValidationError) as excinfo:
            await self.service.refresh(None)
        assert excinfo.value.code == "REFRESH_TOKEN_REQUIRED"

    @pytest.mark.asyncio
    async def test_unknown_refresh_token(self):
        with pytest.raises(AuthenticationError) as excinfo:
            await self.service.refresh("f" * 128)
        assert excinfo.value.code == "INVALID_REFRESH_TOKEN"

    @pytest.mark.asyncio
    async def test_logout_revokes_and_drops_session(self):
        registered = await self.service.register(registration(), CLIENT)
        access = registered.access

        await self.service.logout(access.token, access.token_id, access.expires_at)

        assert self.tokens.is_revoked(access.token_id)
        assert await self.store.find_session_by_refresh_token(registered.refresh_token) is None
        with pytest.raises(AuthenticationError):
            await self.service.refresh(registered.refresh_token)

    @pytest.mark.asyncio
    async def test_tokens_carry_the_session_id_across_refresh(self):
        registered = await self.service.register(registration(), CLIENT)
        session = await self.store.find_session_by_refresh_token(registered.refresh_token)

        refreshed = await self.service.refresh(registered.refresh_token)

        assert self.tokens.verify_access_token(registered.access.token)["sid"] == session.id
        assert self.tokens.verify_access_token(refreshed.token)["sid"] == session.id

    @pytest.mark.asyncio
    async def test_logout_with_pre_refresh_token_drops_session(self):
        registered = await self.service.register(registration(), CLIENT)
        original = registered.access
        await self.service.refresh(registered.refresh_token)

        claims = self.tokens.verify_access_token(original.token)
        await self.service.logout(
            original.token, original.token_id, original.expires_at, session_id=claims["sid"]
        )

        assert await self.store.find_session_by_refresh_token(registered.refresh_token) is None
        with pytest.raises(AuthenticationError) as excinfo:
            await self.service.refresh(registered.refresh_token)
        assert excinfo.value.code == "INVALID_REFRESH_TOKEN"

    @pytest.mark.asyncio
    async def test_profile_of_missing_user(self):
        with pytest.raises(NotFoundError) as excinfo:
            await self.service.get_profile(404)
        assert excinfo.value.code == "USER_NOT_FOUND"
