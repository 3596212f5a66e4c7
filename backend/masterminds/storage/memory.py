"""
MasterMinds Backend — In-Memory Storage Backend
================================================

What:  Dict-backed implementation of StorageBackend for development, demos
       and the test suite.
How:   One dict per entity kind keyed by an integer id taken from a per-kind
       counter starting at 1. Counters only go back to 1 through clear().
       Lookups by non-key fields are linear scans, except the three unique
       keys, which have index dicts.

Concurrency:
    The event loop runs one coroutine's synchronous segment at a time. Every
    "check unique key, then insert" below happens without an await in
    between, so two concurrent requests cannot both pass the check.

Records are deep-copied on the way in and out; callers mutating a returned
record never change stored state, which matches the SQL backend.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from masterminds.exceptions import ConflictError
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


def _pick(data: Dict[str, Any], allowed) -> Dict[str, Any]:
    return {key: copy.deepcopy(value) for key, value in data.items() if key in allowed}


class MemoryStorage(StorageBackend):

    mode = "memory"

    def __init__(self) -> None:
        self._users: Dict[int, UserRecord] = {}
        self._applications: Dict[int, ApplicationRecord] = {}
        self._sessions: Dict[int, SessionRecord] = {}
        self._counters = {"users": 1, "applications": 1, "sessions": 1}

        # Unique-key indexes
        self._user_ids_by_email: Dict[str, int] = {}
        self._application_ids_by_key: Dict[Tuple[int, str], int] = {}
        self._session_ids_by_refresh: Dict[str, int] = {}

    def _next_id(self, kind: str) -> int:
        value = self._counters[kind]
        self._counters[kind] = value + 1
        return value

    def clear(self) -> None:
        """Drop every record and reset the id counters. Test use only."""
        self._users.clear()
        self._applications.clear()
        self._sessions.clear()
        self._user_ids_by_email.clear()
        self._application_ids_by_key.clear()
        self._session_ids_by_refresh.clear()
        self._counters = {"users": 1, "applications": 1, "sessions": 1}

    # ── Users ─────────────────────────────────────────────────────────────
    async def create_user(self, data: Dict[str, Any]) -> UserRecord:
        email = data["email"].lower()
        if email in self._user_ids_by_email:
            raise ConflictError("User with this email already exists", code="USER_EXISTS")

        now = _utcnow()
        fields = _pick(data, USER_FIELDS)
        fields["email"] = email
        user = UserRecord(id=self._next_id("users"), created_at=now, updated_at=now, **fields)
        self._users[user.id] = user
        self._user_ids_by_email[email] = user.id
        return copy.deepcopy(user)

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        user_id = self._user_ids_by_email.get(email.lower())
        if user_id is None:
            return None
        return copy.deepcopy(self._users[user_id])

    async def find_user_by_id(self, user_id: int) -> Optional[UserRecord]:
        user = self._users.get(user_id)
        return copy.deepcopy(user) if user else None

    async def update_user(self, user_id: int, changes: Dict[str, Any]) -> Optional[UserRecord]:
        user = self._users.get(user_id)
        if user is None:
            return None

        fields = _pick(changes, USER_FIELDS)
        new_email = fields.get("email")
        if new_email is not None:
            new_email = new_email.lower()
            owner = self._user_ids_by_email.get(new_email)
            if owner is not None and owner != user_id:
                raise ConflictError("User with this email already exists", code="USER_EXISTS")
            del self._user_ids_by_email[user.email]
            self._user_ids_by_email[new_email] = user_id
            fields["email"] = new_email

        for key, value in fields.items():
            setattr(user, key, value)
        user.updated_at = _utcnow()
        return copy.deepcopy(user)

    async def delete_user(self, user_id: int) -> bool:
        user = self._users.pop(user_id, None)
        if user is None:
            return False
        del self._user_ids_by_email[user.email]
        # Owned records go with their user, like the SQL cascade
        for application in [a for a in self._applications.values() if a.user_id == user_id]:
            await self.delete_application(application.id)
        await self.delete_sessions_for_user(user_id)
        return True

    # ── Applications ──────────────────────────────────────────────────────
    async def create_application(self, user_id: int, data: Dict[str, Any]) -> ApplicationRecord:
        key = (user_id, data["program"])
        if key in self._application_ids_by_key:
            raise ConflictError(
                "You have already submitted an application for this program",
                code="DUPLICATE_APPLICATION",
            )

        now = _utcnow()
        fields = _pick(data, APPLICATION_FIELDS)
        fields["status"] = "pending"
        application_id = self._next_id("applications")
        application = ApplicationRecord(
            id=application_id,
            user_id=user_id,
            submission_date=now,
            last_updated=now,
            reference_number=reference_number_for(application_id, now),
            **fields,
        )
        self._applications[application_id] = application
        self._application_ids_by_key[key] = application_id
        return copy.deepcopy(application)

    async def find_applications_by_user(self, user_id: int) -> List[ApplicationRecord]:
        owned = [a for a in self._applications.values() if a.user_id == user_id]
        owned.sort(key=lambda a: (a.submission_date, a.id), reverse=True)
        return [copy.deepcopy(a) for a in owned]

    async def find_application_by_id(self, application_id: int) -> Optional[ApplicationRecord]:
        application = self._applications.get(application_id)
        return copy.deepcopy(application) if application else None

    async def find_application_by_user_and_program(
        self, user_id: int, program: str
    ) -> Optional[ApplicationRecord]:
        application_id = self._application_ids_by_key.get((user_id, program))
        if application_id is None:
            return None
        return copy.deepcopy(self._applications[application_id])

    async def update_application(
        self, application_id: int, changes: Dict[str, Any]
    ) -> Optional[ApplicationRecord]:
        application = self._applications.get(application_id)
        if application is None:
            return None

        fields = _pick(changes, APPLICATION_FIELDS)
        new_program = fields.get("program")
        if new_program is not None and new_program != application.program:
            new_key = (application.user_id, new_program)
            if new_key in self._application_ids_by_key:
                raise ConflictError(
                    "You have already submitted an application for this program",
                    code="DUPLICATE_APPLICATION",
                )
            del self._application_ids_by_key[(application.user_id, application.program)]
            self._application_ids_by_key[new_key] = application_id

        for key, value in fields.items():
            setattr(application, key, value)
        application.last_updated = _utcnow()
        return copy.deepcopy(application)

    async def delete_application(self, application_id: int) -> bool:
        application = self._applications.pop(application_id, None)
        if application is None:
            return False
        del self._application_ids_by_key[(application.user_id, application.program)]
        return True

    # ── Sessions ──────────────────────────────────────────────────────────
    async def create_session(self, user_id: int, data: Dict[str, Any]) -> SessionRecord:
        refresh_token = data["refresh_token"]
        if refresh_token in self._session_ids_by_refresh:
            raise ConflictError("Session already exists", code="SESSION_EXISTS")

        now = _utcnow()
        fields = _pick(data, SESSION_FIELDS)
        fields.setdefault("last_accessed", now)
        session = SessionRecord(
            id=self._next_id("sessions"), user_id=user_id, created_at=now, **fields
        )
        self._sessions[session.id] = session
        self._session_ids_by_refresh[refresh_token] = session.id
        return copy.deepcopy(session)

    async def find_session_by_refresh_token(self, refresh_token: str) -> Optional[SessionRecord]:
        session_id = self._session_ids_by_refresh.get(refresh_token)
        if session_id is None:
            return None
        return copy.deepcopy(self._sessions[session_id])

    async def find_session_by_token(self, token: str) -> Optional[SessionRecord]:
        for session in self._sessions.values():
            if session.token == token:
                return copy.deepcopy(session)
        return None

    async def update_session(self, session_id: int, changes: Dict[str, Any]) -> Optional[SessionRecord]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        # The refresh token is the session's identity and never changes
        fields = _pick(changes, SESSION_FIELDS)
        fields.pop("refresh_token", None)
        for key, value in fields.items():
            setattr(session, key, value)
        return copy.deepcopy(session)

    async def delete_session(self, session_id: int) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        del self._session_ids_by_refresh[session.refresh_token]
        return True

    async def delete_sessions_for_user(self, user_id: int) -> int:
        owned = [s.id for s in self._sessions.values() if s.user_id == user_id]
        for session_id in owned:
            await self.delete_session(session_id)
        return len(owned)

    # ── Introspection ─────────────────────────────────────────────────────
    async def stats(self) -> Dict[str, int]:
        return {
            "users": len(self._users),
            "applications": len(self._applications),
            "sessions": len(self._sessions),
        }
