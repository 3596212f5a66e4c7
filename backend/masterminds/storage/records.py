"""
Plain records returned by every storage backend.

Backends never hand out ORM instances or their internal dicts; services work
with these dataclasses whichever backend is active.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

USER_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "password_hash",
    "phone",
    "date_of_birth",
    "role",
    "is_verified",
    "failed_login_attempts",
    "lock_until",
    "last_login",
)

APPLICATION_FIELDS = (
    "program",
    "motivation",
    "experience",
    "goals",
    "start_date",
    "time_commitment",
    "technical_skills",
    "projects",
    "status",
    "review_notes",
    "interview_date",
    "submission_metadata",
)

SESSION_FIELDS = (
    "token",
    "refresh_token",
    "user_agent",
    "ip_address",
    "expires_at",
    "last_accessed",
)


def reference_number_for(application_id: int, submitted_at: datetime) -> str:
    """Human-readable reference, e.g. MM-2026-000042."""
    return f"MM-{submitted_at.year}-{application_id:06d}"


@dataclass
class UserRecord:
    id: int
    first_name: str
    last_name: str
    email: str
    password_hash: str
    created_at: datetime
    updated_at: datetime
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    role: str = "user"
    is_verified: bool = False
    failed_login_attempts: int = 0
    lock_until: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class ApplicationRecord:
    id: int
    user_id: int
    program: str
    motivation: str
    experience: str
    goals: str
    start_date: date
    time_commitment: str
    submission_date: datetime
    last_updated: datetime
    reference_number: str
    technical_skills: List[Dict[str, Any]] = field(default_factory=list)
    projects: List[Dict[str, Any]] = field(default_factory=list)
    status: str = "pending"
    review_notes: Optional[str] = None
    interview_date: Optional[datetime] = None
    submission_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionRecord:
    id: int
    user_id: int
    token: str
    refresh_token: str
    expires_at: datetime
    created_at: datetime
    last_accessed: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
