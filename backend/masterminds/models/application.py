"""
MasterMinds Backend — Application SQLAlchemy Model
===================================================

What:  ORM model representing the `applications` table (program applications).
Who:   Used by SQLStorage for CRUD and by Alembic for schema management.

Table Design:
    - UNIQUE (user_id, program): at most one application per user and program,
      enforced by the database rather than by a read-then-write in the caller
    - reference_number UNIQUE: "MM-<year>-<id:06d>", assigned right after the
      insert once the primary key is known
    - technical_skills / projects / submission_metadata: ordered nested
      documents, stored as JSON
    - status: pending → under_review → interview_scheduled → accepted | rejected | waitlisted

Indexes:
    (user_id, program) via the unique constraint, status, and submission_date
    for the per-user listing.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from masterminds.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Application(Base):

    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    program: Mapped[str] = mapped_column(String(100), nullable=False)

    motivation: Mapped[str] = mapped_column(Text, nullable=False)
    experience: Mapped[str] = mapped_column(Text, nullable=False)
    goals: Mapped[str] = mapped_column(Text, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_commitment: Mapped[str] = mapped_column(String(50), nullable=False)

    # [{"skill": str, "level": str, "added_at": iso8601}]
    technical_skills: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    # [{"name", "description", "technologies", "url", "github_url", "added_at"}]
    projects: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="pending", server_default=text("'pending'")
    )
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    interview_date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    submission_date: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    last_updated: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )

    # Nullable only between the INSERT and the follow-up UPDATE in the same transaction
    reference_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, unique=True)

    # {"user_agent", "ip_address", "submission_source"}
    submission_metadata: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("user_id", "program", name="uq_applications_user_program"),
        Index("idx_applications_status", "status"),
        Index("idx_applications_submission_date", "submission_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Application(id={self.id}, user_id={self.user_id}, "
            f"program='{self.program}', status='{self.status}')>"
        )
