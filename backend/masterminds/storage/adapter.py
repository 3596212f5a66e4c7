"""
MasterMinds Backend — Storage Adapter
======================================

What:  The single façade the services use for every persistence operation.
How:   Holds exactly one StorageBackend. `connect()` picks it once during
       application startup: the database is probed with `SELECT 1` (bounded
       by a timeout, retried with tenacity) and SQLStorage is installed on
       success; otherwise MemoryStorage serves the process. The choice does
       not change while requests are in flight.
Who:   Imported as the `storage` singleton by services and the health route.

Backend Selection (settings.storage_backend):
    memory   → MemoryStorage, the database is never touched
    auto     → probe; SQLStorage on success, MemoryStorage on failure
    database → probe; startup fails with StorageError on failure

Until connect() runs (tests driving the ASGI app without a lifespan), the
adapter serves from a MemoryStorage.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from tenacity import before_sleep_log, retry, stop_after_attempt, wait_exponential_jitter

from masterminds import database
from masterminds.config import settings
from masterminds.exceptions import StorageError
from masterminds.storage.base import StorageBackend
from masterminds.storage.memory import MemoryStorage
from masterminds.storage.records import ApplicationRecord, SessionRecord, UserRecord
from masterminds.storage.sql import SQLStorage

logger = logging.getLogger(__name__)


@retry(
    stop=stop_after_attempt(settings.db_connect_attempts),
    wait=wait_exponential_jitter(
        initial=settings.db_connect_min_wait,
        max=settings.db_connect_max_wait,
        jitter=1,
    ),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def probe_database(engine: AsyncEngine) -> None:
    """Runs SELECT 1, each attempt bounded by db_connect_timeout seconds."""
    await asyncio.wait_for(database.ping(engine), timeout=settings.db_connect_timeout)


class StorageAdapter:

    def __init__(self, backend: Optional[StorageBackend] = None) -> None:
        self._backend: StorageBackend = backend or MemoryStorage()

    # ── Backend selection ─────────────────────────────────────────────────
    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def mode(self) -> str:
        return self._backend.mode

    @property
    def connected(self) -> bool:
        """True when the durable store is serving requests."""
        return self._backend.mode == "database"

    def use(self, backend: StorageBackend) -> None:
        self._backend = backend
        logger.info("Storage mode: %s", backend.mode)

    async def connect(
        self,
        engine: Optional[AsyncEngine] = None,
        session_factory: Optional[async_sessionmaker] = None,
    ) -> str:
        """
        Select the backend for this process.

        Args:
            engine / session_factory: defaults to the module-level objects in
                masterminds.database; tests pass their own SQLite engine.

        Returns:
            The selected mode ("database" or "memory").

        Raises:
            StorageError: storage_backend is "database" and the probe failed.
        """
        if settings.storage_backend == "memory":
            self.use(MemoryStorage())
            return self.mode

        engine = engine or database.engine
        session_factory = session_factory or database.async_session_factory

        try:
            await probe_database(engine)
            if settings.db_auto_create_tables:
                await database.create_tables(engine)
        except Exception as e:
            if settings.storage_backend == "database":
                logger.critical("Database unreachable and storage_backend=database: %s", e)
                raise StorageError(
                    message="Database is unavailable",
                    context={"error_type": type(e).__name__},
                ) from e
            logger.warning(
                "Database unreachable (%s: %s); falling back to in-memory storage",
                type(e).__name__,
                e,
            )
            self.use(MemoryStorage())
            return self.mode

        self.use(SQLStorage(session_factory))
        return self.mode

    async def stats(self) -> Dict[str, Any]:
        """Snapshot for the health endpoint."""
        return {
            "mode": self.mode,
            "status": "connected" if self.connected else "active",
            "data": await self._backend.stats(),
        }

    def clear(self) -> None:
        """Reset in-memory data and counters. No effect on the SQL backend."""
        if isinstance(self._backend, MemoryStorage):
            self._backend.clear()

    # ── Users ─────────────────────────────────────────────────────────────
    async def create_user(self, data: Dict[str, Any]) -> UserRecord:
        return await self._backend.create_user(data)

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        return await self._backend.find_user_by_email(email)

    async def find_user_by_id(self, user_id: int) -> Optional[UserRecord]:
        return await self._backend.find_user_by_id(user_id)

    async def update_user(self, user_id: int, changes: Dict[str, Any]) -> Optional[UserRecord]:
        return await self._backend.update_user(user_id, changes)

    async def delete_user(self, user_id: int) -> bool:
        return await self._backend.delete_user(user_id)

    # ── Applications ──────────────────────────────────────────────────────
    async def create_application(self, user_id: int, data: Dict[str, Any]) -> ApplicationRecord:
        return await self._backend.create_application(user_id, data)

    async def find_applications_by_user(self, user_id: int) -> List[ApplicationRecord]:
        return await self._backend.find_applications_by_user(user_id)

    async def find_application_by_id(self, application_id: int) -> Optional[ApplicationRecord]:
        return await self._backend.find_application_by_id(application_id)

    async def find_application_by_user_and_program(
        self, user_id: int, program: str
    ) -> Optional[ApplicationRecord]:
        return await self._backend.find_application_by_user_and_program(user_id, program)

    async def update_application(
        self, application_id: int, changes: Dict[str, Any]
    ) -> Optional[ApplicationRecord]:
        return await self._backend.update_application(application_id, changes)

    async def delete_application(self, application_id: int) -> bool:
        return await self._backend.delete_application(application_id)

    # ── Sessions ──────────────────────────────────────────────────────────
    async def create_session(self, user_id: int, data: Dict[str, Any]) -> SessionRecord:
        return await self._backend.create_session(user_id, data)

    async def find_session_by_refresh_token(self, refresh_token: str) -> Optional[SessionRecord]:
        return await self._backend.find_session_by_refresh_token(refresh_token)

    async def find_session_by_token(self, token: str) -> Optional[SessionRecord]:
        return await self._backend.find_session_by_token(token)

    async def update_session(self, session_id: int, changes: Dict[str, Any]) -> Optional[SessionRecord]:
        return await self._backend.update_session(session_id, changes)

    async def delete_session(self, session_id: int) -> bool:
        return await self._backend.delete_session(session_id)

    async def delete_sessions_for_user(self, user_id: int) -> int:
        return await self._backend.delete_sessions_for_user(user_id)


# ── Singleton Instance ────────────────────────────────────────────────────
storage = StorageAdapter()
