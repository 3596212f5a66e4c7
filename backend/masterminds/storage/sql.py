"""
MasterMinds Backend — SQL Storage Backend
==========================================

What:  StorageBackend implementation on the async SQLAlchemy ORM
       (PostgreSQL via asyncpg in deployments, SQLite via aiosqlite in tests).
How:   One AsyncSession per storage operation, committed before returning.
       ORM rows are converted to plain records before they leave this module.

Error Translation:
    IntegrityError  → ConflictError (unique email, unique user+program,
                      unique refresh token)
    SQLAlchemyError → StorageError (generic message; details logged here)
    Nothing is retried. The caller sees the failure of this one attempt.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from masterminds.exceptions import ConflictError, StorageError
from masterminds.models import Application, User, UserSession
from masterminds.storage.base import StorageBackend
from masterminds.storage.records import (
    APPLICATION_FIELDS,
    SESSION_FIELDS,
    USER_FIELDS,
    ApplicationRecord,
    SessionRecord,
    UserRecord,
    reference_number_for,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back; every stored timestamp is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _user_conflict() -> ConflictError:
    return ConflictError("User with this email already exists", code="USER_EXISTS")


def _application_conflict() -> ConflictError:
    return ConflictError(
        "You have already submitted an application for this program",
        code="DUPLICATE_APPLICATION",
    )


def _session_conflict() -> ConflictError:
    return ConflictError("Session already exists", code="SESSION_EXISTS")


def to_user_record(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        password_hash=row.password_hash,
        phone=row.phone,
        date_of_birth=row.date_of_birth,
        role=row.role,
        is_verified=row.is_verified,
        failed_login_attempts=row.failed_login_attempts,
        lock_until=_aware(row.lock_until),
        last_login=_aware(row.last_login),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def to_application_record(row: Application) -> ApplicationRecord:
    return ApplicationRecord(
        id=row.id,
        user_id=row.user_id,
        program=row.program,
        motivation=row.motivation,
        experience=row.experience,
        goals=row.goals,
        start_date=row.start_date,
        time_commitment=row.time_commitment,
        technical_skills=list(row.technical_skills or []),
        projects=list(row.projects or []),
        status=row.status,
        review_notes=row.review_notes,
        interview_date=_aware(row.interview_date),
        submission_date=_aware(row.submission_date),
        last_updated=_aware(row.last_updated),
        reference_number=row.reference_number or "",
        submission_metadata=dict(row.submission_metadata or {}),
    )


def to_session_record(row: UserSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        refresh_token=row.refresh_token,
        user_agent=row.user_agent,
        ip_address=row.ip_address,
        expires_at=_aware(row.expires_at),
        created_at=_aware(row.created_at),
        last_accessed=_aware(row.last_accessed),
    )


class SQLStorage(StorageBackend):
    """
    Durable backend. Uniqueness lives in the schema (see models/), so a
    concurrent duplicate insert fails at commit instead of slipping through
    a read-then-write check.
    """

    mode = "database"

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(
        self,
        operation: str,
        conflict: Optional[Callable[[], ConflictError]] = None,
    ) -> AsyncGenerator[AsyncSession, None]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if conflict is None:
                    logger.error("Integrity error during %s: %s", operation, e.orig)
                    raise StorageError(context={"operation": operation}) from e
                logger.info("Unique constraint rejected %s", operation)
                raise conflict() from e
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Storage failure during %s: %s", operation, str(e), exc_info=True)
                raise StorageError(
                    context={"operation": operation, "error_type": type(e).__name__}
                ) from e

    # ── Users ─────────────────────────────────────────────────────────────
    async def create_user(self, data: Dict[str, Any]) -> UserRecord:
        fields = {key: value for key, value in data.items() if key in USER_FIELDS}
        fields["email"] = fields["email"].lower()
        async with self._session("create_user", conflict=_user_conflict) as session:
            row = User(**fields)
            session.add(row)
            await session.flush()
        return to_user_record(row)

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._session("find_user_by_email") as session:
            result = await session.execute(select(User).where(User.email == email.lower()))
            row = result.scalar_one_or_none()
        return to_user_record(row) if row else None

    async def find_user_by_id(self, user_id: int) -> Optional[UserRecord]:
        async with self._session("find_user_by_id") as session:
            row = await session.get(User, user_id)
        return to_user_record(row) if row else None

    async def update_user(self, user_id: int, changes: Dict[str, Any]) -> Optional[UserRecord]:
        async with self._session("update_user", conflict=_user_conflict) as session:
            row = await session.get(User, user_id)
            if row is None:
                return None
            for key, value in changes.items():
                if key in USER_FIELDS:
                    setattr(row, key, value.lower() if key == "email" else value)
            row.updated_at = _utcnow()
        return to_user_record(row)

    async def delete_user(self, user_id: int) -> bool:
        async with self._session("delete_user") as session:
            row = await session.get(User, user_id)
            if row is None:
                return False
            # Explicit, since SQLite only honours ON DELETE CASCADE with a pragma
            await session.execute(delete(Application).where(Application.user_id == user_id))
            await session.execute(delete(UserSession).where(UserSession.user_id == user_id))
            await session.delete(row)
        return True

    # ── Applications ──────────────────────────────────────────────────────
    async def create_application(self, user_id: int, data: Dict[str, Any]) -> ApplicationRecord:
        fields = {key: value for key, value in data.items() if key in APPLICATION_FIELDS}
        fields["status"] = "pending"
        now = _utcnow()
        async with self._session("create_application", conflict=_application_conflict) as session:
            row = Application(user_id=user_id, submission_date=now, last_updated=now, **fields)
            session.add(row)
            # The reference number embeds the primary key, known only after the INSERT
            await session.flush()
            row.reference_number = reference_number_for(row.id, now)
        return to_application_record(row)

    async def find_applications_by_user(self, user_id: int) -> List[ApplicationRecord]:
        async with self._session("find_applications_by_user") as session:
            result = await session.execute(
                select(Application)
                .where(Application.user_id == user_id)
                .order_by(Application.submission_date.desc(), Application.id.desc())
            )
            rows = list(result.scalars().all())
        return [to_application_record(row) for row in rows]

    async def find_application_by_id(self, application_id: int) -> Optional[ApplicationRecord]:
        async with self._session("find_application_by_id") as session:
            row = await session.get(Application, application_id)
        return to_application_record(row) if row else None

    async def find_application_by_user_and_program(
        self, user_id: int, program: str
    ) -> Optional[ApplicationRecord]:
        async with self._session("find_application_by_user_and_program") as session:
            result = await session.execute(
                select(Application).where(
                    Application.user_id == user_id, Application.program == program
                )
            )
            row = result.scalar_one_or_none()
        return to_application_record(row) if row else None

    async def update_application(
        self, application_id: int, changes: Dict[str, Any]
    ) -> Optional[ApplicationRecord]:
        async with self._session("update_application", conflict=_application_conflict) as session:
            row = await session.get(Application, application_id)
            if row is None:
                return None
            for key, value in changes.items():
                if key in APPLICATION_FIELDS:
                    setattr(row, key, value)
            row.last_updated = _utcnow()
        return to_application_record(row)

    async def delete_application(self, application_id: int) -> bool:
        async with self._session("delete_application") as session:
            result = await session.execute(
                delete(Application).where(Application.id == application_id)
            )
        return result.rowcount > 0

    # ── Sessions ──────────────────────────────────────────────────────────
    async def create_session(self, user_id: int, data: Dict[str, Any]) -> SessionRecord:
        fields = {key: value for key, value in data.items() if key in SESSION_FIELDS}
        now = _utcnow()
        fields.setdefault("last_accessed", now)
        async with self._session("create_session", conflict=_session_conflict) as session:
            row = UserSession(user_id=user_id, created_at=now, **fields)
            session.add(row)
            await session.flush()
        return to_session_record(row)

    async def find_session_by_refresh_token(self, refresh_token: str) -> Optional[SessionRecord]:
        async with self._session("find_session_by_refresh_token") as session:
            result = await session.execute(
                select(UserSession).where(UserSession.refresh_token == refresh_token)
            )
            row = result.scalar_one_or_none()
        return to_session_record(row) if row else None

    async def find_session_by_token(self, token: str) -> Optional[SessionRecord]:
        async with self._session("find_session_by_token") as session:
            result = await session.execute(
                select(UserSession).where(UserSession.token == token).limit(1)
            )
            row = result.scalar_one_or_none()
        return to_session_record(row) if row else None

    async def update_session(self, session_id: int, changes: Dict[str, Any]) -> Optional[SessionRecord]:
        async with self._session("update_session") as session:
            row = await session.get(UserSession, session_id)
            if row is None:
                return None
            for key, value in changes.items():
                if key in SESSION_FIELDS and key != "refresh_token":
                    setattr(row, key, value)
        return to_session_record(row)

    async def delete_session(self, session_id: int) -> bool:
        async with self._session("delete_session") as session:
            result = await session.execute(
                delete(UserSession).where(UserSession.id == session_id)
            )
        return result.rowcount > 0

    async def delete_sessions_for_user(self, user_id: int) -> int:
        async with self._session("delete_sessions_for_user") as session:
            result = await session.execute(
                delete(UserSession).where(UserSession.user_id == user_id)
            )
        return result.rowcount

    # ── Introspection ─────────────────────────────────────────────────────
    async def stats(self) -> Dict[str, int]:
        async with self._session("stats") as session:
            users = await session.scalar(select(func.count(User.id)))
            applications = await session.scalar(select(func.count(Application.id)))
            sessions = await session.scalar(select(func.count(UserSession.id)))
        return {
            "users": users or 0,
            "applications": applications or 0,
            "sessions": sessions or 0,
        }
