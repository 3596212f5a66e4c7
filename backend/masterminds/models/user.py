"""
MasterMinds Backend — User SQLAlchemy Model
============================================

What:  ORM model representing the `users` table.
Who:   Used by SQLStorage for user CRUD and by Alembic for schema management.

Table Design:
    - Integer primary key: matches the in-memory backend's counters, so ids and
      reference numbers look the same whichever backend is active
    - email UNIQUE: the duplicate-registration invariant lives in the database
    - failed_login_attempts / lock_until: login bookkeeping persisted per user
    - created_at / updated_at: UTC with timezone
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import TIMESTAMP, Boolean, Date, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from masterminds.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Lifecycle:
        1. Created on registration (role='user', is_verified=False)
        2. Mutated by login-attempt bookkeeping and administrative updates
        3. Never hard-deleted by the API
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)

    # Stored lower-cased by the service layer
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Values: 'user' | 'admin'
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="user", server_default=text("'user'")
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    failed_login_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    lock_until: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
