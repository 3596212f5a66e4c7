"""
MasterMinds Backend — Session SQLAlchemy Model
===============================================

What:  ORM model for the `sessions` table: one row per login/registration.
How:   Holds the issued access token and the opaque refresh token. Consulted
       only for refresh-token exchange and logout; bearer tokens are verified
       statelessly on every other request.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import TIMESTAMP, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from masterminds.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserSession(Base):

    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Access token issued with this session (replaced on refresh)
    token: Mapped[str] = mapped_column(Text, nullable=False)

    # 128 hex chars (64 random bytes)
    refresh_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    last_accessed: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        return f"<UserSession(id={self.id}, user_id={self.user_id}, expires_at='{self.expires_at}')>"
