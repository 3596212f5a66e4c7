"""
MasterMinds Backend — Storage Backend Tests
============================================

What:  Contract tests run against both backends (in-memory and SQLite through
       SQLAlchemy), plus the adapter's backend selection.
How:   `any_storage` is parametrized, so every contract test runs twice.

What we test:
    ✅ Unique email, unique (user, program), unique refresh token
    ✅ Ids from 1 and the MM-<year>-<id> reference number
    ✅ Newest-first application listing
    ✅ Partial updates, deletes and the user cascade
    ✅ Entity counts and adapter mode selection / fallback
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from masterminds.config import settings
from masterminds.exceptions import ConflictError, StorageError
from masterminds.storage import MemoryStorage, SQLStorage, StorageAdapter


def user_data(email: str = "ada@example.com", **overrides):
    data = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": email,
        "password_hash": "$2b$04$hash",
        "role": "user",
        "is_verified": False,
        "failed_login_attempts": 0,
    }
    data.update(overrides)
    return data


def application_data(program: str = "Cybersecurity", **overrides):
    data = {
        "program": program,
        "motivation": "m" * 120,
        "experience": "e" * 60,
        "goals": "g" * 60,
        "start_date": date.today() + timedelta(days=10),
        "time_commitment": "Flexible",
        "technical_skills": [{"skill": "Python", "level": "Expert", "added_at": "2026-01-01T00:00:00"}],
        "projects": [],
        "submission_metadata": {"ip_address": "127.0.0.1", "submission_source": "web"},
    }
    data.update(overrides)
    return data


def session_data(refresh_token: str = "r" * 128, token: str = "access-token"):
    return {
        "token": token,
        "refresh_token": refresh_token,
        "user_agent": "pytest",
        "ip_address": "127.0.0.1",
        "expires_at": datetime.now(timezone.utc) + timedelta(days=7),
    }


class TestUsers:

    @pytest.mark.asyncio
    async def test_create_and_find(self, any_storage):
        user = await any_storage.create_user(user_data("Ada@Example.com"))

        assert user.id == 1
        assert user.email == "ada@example.com"
        assert user.created_at.tzinfo is not None
        assert (await any_storage.find_user_by_email("ADA@example.com")).id == user.id
        assert (await any_storage.find_user_by_id(user.id)).full_name == "Ada Lovelace"
        assert await any_storage.find_user_by_id(99) is None

    @pytest.mark.asyncio
    async def test_duplicate_email_is_a_conflict(self, any_storage):
        await any_storage.create_user(user_data())
        with pytest.raises(ConflictError) as excinfo:
            await any_storage.create_user(user_data("ADA@example.com"))
        assert excinfo.value.code == "USER_EXISTS"

    @pytest.mark.asyncio
    async def test_partial_update(self, any_storage):
        user = await any_storage.create_user(user_data())
        lock = datetime.now(timezone.utc) + timedelta(minutes=30)

        updated = await any_storage.update_user(
            user.id, {"failed_login_attempts": 5, "lock_until": lock, "password_hash": "new"}
        )

        assert updated.failed_login_attempts == 5
        assert updated.lock_until == lock
        assert updated.first_name == "Ada"
        assert await any_storage.update_user(42, {"role": "admin"}) is None

    @pytest.mark.asyncio
    async def test_delete_cascades(self, any_storage):
        user = await any_storage.create_user(user_data())
        other = await any_storage.create_user(user_data("grace@example.com"))
        await any_storage.create_application(user.id, application_data())
        await any_storage.create_application(other.id, application_data())
        await any_storage.create_session(user.id, session_data())

        assert await any_storage.delete_user(user.id)
        assert not await any_storage.delete_user(user.id)
        assert await any_storage.find_applications_by_user(user.id) == []
        assert await any_storage.find_session_by_refresh_token("r" * 128) is None
        assert len(await any_storage.find_applications_by_user(other.id)) == 1


class TestApplications:

    @pytest.mark.asyncio
    async def test_create_assigns_reference_number(self, any_storage):
        user = await any_storage.create_user(user_data())
        application = await any_storage.create_application(
            user.id, application_data(status="accepted")
        )

        assert application.id == 1
        assert application.status == "pending"
        year = application.submission_date.year
        assert application.reference_number == f"MM-{year}-000001"
        assert application.technical_skills[0]["skill"] == "Python"
        assert application.submission_metadata["submission_source"] == "web"

    @pytest.mark.asyncio
    async def test_one_application_per_program(self, any_storage):
        user = await any_storage.create_user(user_data())
        await any_storage.create_application(user.id, application_data())

        with pytest.raises(ConflictError) as excinfo:
            await any_storage.create_application(user.id, application_data())
        assert excinfo.value.code == "DUPLICATE_APPLICATION"

        other = await any_storage.create_application(user.id, application_data("UI/UX Design"))
        assert other.id == 2

    @pytest.mark.asyncio
    async def test_listing_is_newest_first_and_owned(self, any_storage):
        ada = await any_storage.create_user(user_data())
        grace = await any_storage.create_user(user_data("grace@example.com"))
        first = await any_storage.create_application(ada.id, application_data("Cybersecurity"))
        second = await any_storage.create_application(ada.id, application_data("UI/UX Design"))
        await any_storage.create_application(grace.id, application_data("Cybersecurity"))

        listed = await any_storage.find_applications_by_user(ada.id)
        assert [a.id for a in listed] == [second.id, first.id]

        found = await any_storage.find_application_by_user_and_program(ada.id, "UI/UX Design")
        assert found.id == second.id
        assert await any_storage.find_application_by_user_and_program(grace.id, "UI/UX Design") is None

    @pytest.mark.asyncio
    async def test_update_and_delete(self, any_storage):
        user = await any_storage.create_user(user_data())
        application = await any_storage.create_application(user.id, application_data())

        updated = await any_storage.update_application(
            application.id, {"status": "under_review", "review_notes": "Promising", "user_id": 999}
        )
        assert updated.status == "under_review"
        assert updated.review_notes == "Promising"
        assert updated.user_id == user.id
        assert updated.last_updated >= application.last_updated

        assert await any_storage.delete_application(application.id)
        assert await any_storage.find_application_by_id(application.id) is None
        assert not await any_storage.delete_application(application.id)
        assert await any_storage.update_application(application.id, {"goals": "x"}) is None


class TestSessions:

    @pytest.mark.asyncio
    async def test_session_lifecycle(self, any_storage):
        user = await any_storage.create_user(user_data())
        session = await any_storage.create_session(user.id, session_data())

        assert (await any_storage.find_session_by_token("access-token")).id == session.id

        updated = await any_storage.update_session(
            session.id, {"token": "rotated", "refresh_token": "ignored"}
        )
        assert updated.token == "rotated"
        assert updated.refresh_token == "r" * 128

        assert await any_storage.delete_session(session.id)
        assert await any_storage.find_session_by_refresh_token("r" * 128) is None

    @pytest.mark.asyncio
    async def test_refresh_token_is_unique(self, any_storage):
        user = await any_storage.create_user(user_data())
        await any_storage.create_session(user.id, session_data())
        with pytest.raises(ConflictError):
            await any_storage.create_session(user.id, session_data(token="other"))

    @pytest.mark.asyncio
    async def test_delete_sessions_for_user(self, any_storage):
        user = await any_storage.create_user(user_data())
        await any_storage.create_session(user.id, session_data("a" * 128))
        await any_storage.create_session(user.id, session_data("b" * 128))
        assert await any_storage.delete_sessions_for_user(user.id) == 2


class TestStats:

    @pytest.mark.asyncio
    async def test_counts(self, any_storage):
        user = await any_storage.create_user(user_data())
        await any_storage.create_application(user.id, application_data())
        await any_storage.create_session(user.id, session_data())

        assert await any_storage.stats() == {"users": 1, "applications": 1, "sessions": 1}

    @pytest.mark.asyncio
    async def test_clear_resets_counters(self):
        memory = MemoryStorage()
        await memory.create_user(user_data())
        memory.clear()
        assert (await memory.create_user(user_data())).id == 1


class TestStorageAdapter:

    @pytest.mark.asyncio
    async def test_memory_mode_never_probes(self, monkeypatch):
        monkeypatch.setattr(settings, "storage_backend", "memory")
        adapter = StorageAdapter()
        assert await adapter.connect() == "memory"
        assert not adapter.connected

    @pytest.mark.asyncio
    async def test_auto_mode_uses_reachable_database(self, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "storage_backend", "auto")
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'mm.db'}")
        adapter = StorageAdapter()
        mode = await adapter.connect(engine=engine, session_factory=async_sessionmaker(engine))
        try:
            assert mode == "database"
            assert adapter.connected
            stats = await adapter.stats()
            assert stats == {
                "mode": "database",
                "status": "connected",
                "data": {"users": 0, "applications": 0, "sessions": 0},
            }
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_auto_mode_falls_back_to_memory(self, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "storage_backend", "auto")
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'mm.db'}")

        adapter = StorageAdapter()
        try:
            assert await adapter.connect(engine=engine) == "memory"
            assert (await adapter.stats())["status"] == "active"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_database_mode_refuses_to_fall_back(self, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "storage_backend", "database")
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'mm.db'}")

        adapter = StorageAdapter()
        try:
            with pytest.raises(StorageError):
                await adapter.connect(engine=engine)
        finally:
            await engine.dispose()
