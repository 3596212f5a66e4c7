"""Persistence layer: one StorageBackend behind the `storage` façade."""

from masterminds.storage.adapter import StorageAdapter, storage
from masterminds.storage.base import StorageBackend
from masterminds.storage.memory import MemoryStorage
from masterminds.storage.records import ApplicationRecord, SessionRecord, UserRecord
from masterminds.storage.sql import SQLStorage

__all__ = [
    "ApplicationRecord",
    "MemoryStorage",
    "SQLStorage",
    "SessionRecord",
    "StorageAdapter",
    "StorageBackend",
    "UserRecord",
    "storage",
]
