"""
MasterMinds Backend — Abstract Storage Interface
=================================================

What:  The contract every storage backend implements for the three entity
       kinds (user, application, session).
How:   Concrete backends (MemoryStorage, SQLStorage) inherit from
       StorageBackend; the StorageAdapter holds exactly one of them, chosen
       at startup.
Who:   Called by the auth and application services through the adapter.

Contract:
    - create_* assigns the id and timestamps and returns the stored record
    - find_* returns a record or None; never raises for "missing"
    - update_* applies a dict of snake_case field changes and returns the
      updated record, or None when the id is unknown
    - delete_* returns True when something was removed
    - Uniqueness (user email, application user+program, refresh token) is
      enforced by the backend; a violation raises ConflictError
    - Any other backend failure raises StorageError; nothing is retried
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from masterminds.storage.records import ApplicationRecord, SessionRecord, UserRecord


class StorageBackend(ABC):

    #: "database" or "memory"; reported by the health endpoint
    mode: str = "memory"

    # ── Users ─────────────────────────────────────────────────────────────
    @abstractmethod
    async def create_user(self, data: Dict[str, Any]) -> UserRecord:
        """Insert a user; raises ConflictError(code=USER_EXISTS) for a taken email."""
        ...

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def find_user_by_id(self, user_id: int) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def update_user(self, user_id: int, changes: Dict[str, Any]) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def delete_user(self, user_id: int) -> bool:
        ...

    # ── Applications ──────────────────────────────────────────────────────
    @abstractmethod
    async def create_application(self, user_id: int, data: Dict[str, Any]) -> ApplicationRecord:
        """
        Insert an application in status 'pending' with a fresh reference number.

        Raises:
            ConflictError(code=DUPLICATE_APPLICATION): the user already has an
                application for this program
        """
        ...

    @abstractmethod
    async def find_applications_by_user(self, user_id: int) -> List[ApplicationRecord]:
        ...

    @abstractmethod
    async def find_application_by_id(self, application_id: int) -> Optional[ApplicationRecord]:
        ...

    @abstractmethod
    async def find_application_by_user_and_program(
        self, user_id: int, program: str
    ) -> Optional[ApplicationRecord]:
        ...

    @abstractmethod
    async def update_application(
        self, application_id: int, changes: Dict[str, Any]
    ) -> Optional[ApplicationRecord]:
        """Apply changes and refresh last_updated."""
        ...

    @abstractmethod
    async def delete_application(self, application_id: int) -> bool:
        ...

    # ── Sessions ──────────────────────────────────────────────────────────
    @abstractmethod
    async def create_session(self, user_id: int, data: Dict[str, Any]) -> SessionRecord:
        ...

    @abstractmethod
    async def find_session_by_refresh_token(self, refresh_token: str) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    async def find_session_by_token(self, token: str) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    async def update_session(self, session_id: int, changes: Dict[str, Any]) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    async def delete_session(self, session_id: int) -> bool:
        ...

    @abstractmethod
    async def delete_sessions_for_user(self, user_id: int) -> int:
        """Remove every session of a user; returns how many were removed."""
        ...

    # ── Introspection ─────────────────────────────────────────────────────
    @abstractmethod
    async def stats(self) -> Dict[str, int]:
        """Entity counts: {"users": n, "applications": n, "sessions": n}."""
        ...
