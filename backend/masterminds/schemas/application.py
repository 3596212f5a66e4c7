"""
MasterMinds Backend — Application Schemas
==========================================

What:  Request bodies, query filters and response payloads of the
       /applications endpoints.
How:   Submission and update share one set of field validators; the update
       model makes every field optional and only declares the editable ones,
       so anything else a client sends is dropped by Pydantic.
"""

from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import Field, HttpUrl, field_validator

from masterminds.schemas.common import CamelModel
from masterminds.validation import (
    ApplicationStatus,
    Program,
    SkillLevel,
    TimeCommitment,
    blank_to_none,
    check_github_url,
    check_motivation,
    check_start_date,
    check_text_length,
)

EDITABLE_FIELDS = ("motivation", "experience", "goals", "technicalSkills", "projects")


# ══════════════════════════════════════════════════════════════════════════
# Nested Request Models
# ══════════════════════════════════════════════════════════════════════════


class SkillIn(CamelModel):
    skill: str
    level: SkillLevel

    @field_validator("skill")
    @classmethod
    def validate_skill(cls, v: str) -> str:
        return check_text_length(v, 2, 50, "Skill name")


class ProjectIn(CamelModel):
    name: str
    description: str
    technologies: List[str] = Field(default_factory=list)
    url: Optional[HttpUrl] = None
    github_url: Optional[HttpUrl] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return check_text_length(v, 2, 100, "Project name")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        return check_text_length(v, 10, 500, "Project description")

    @field_validator("technologies")
    @classmethod
    def validate_technologies(cls, v: List[str]) -> List[str]:
        return [tech.strip() for tech in v if tech.strip()]

    @field_validator("url", "github_url", mode="before")
    @classmethod
    def drop_blank_urls(cls, v: Any) -> Any:
        return blank_to_none(v)

    @field_validator("github_url")
    @classmethod
    def validate_github_url(cls, v: Optional[HttpUrl]) -> Optional[HttpUrl]:
        return check_github_url(v)


class Availability(CamelModel):
    start_date: date
    time_commitment: TimeCommitment

    @field_validator("start_date")
    @classmethod
    def validate_start_date(cls, v: date) -> date:
        return check_start_date(v)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class _ContentRules(CamelModel):
    """Validators shared by submission and update (None passes through)."""

    @field_validator("motivation", check_fields=False)
    @classmethod
    def validate_motivation(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else check_motivation(v)

    @field_validator("experience", check_fields=False)
    @classmethod
    def validate_experience(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else check_text_length(v, 50, 1500, "Experience description")

    @field_validator("goals", check_fields=False)
    @classmethod
    def validate_goals(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else check_text_length(v, 50, 1000, "Goals description")


class ApplicationCreate(_ContentRules):
    program: Program
    motivation: str
    experience: str
    goals: str
    availability: Availability
    technical_skills: List[SkillIn] = Field(min_length=1, max_length=20)
    projects: List[ProjectIn] = Field(default_factory=list, max_length=10)


class ApplicationUpdate(_ContentRules):
    motivation: Optional[str] = None
    experience: Optional[str] = None
    goals: Optional[str] = None
    technical_skills: Optional[Annotated[List[SkillIn], Field(min_length=1, max_length=20)]] = None
    projects: Optional[Annotated[List[ProjectIn], Field(max_length=10)]] = None


class StatusUpdate(CamelModel):
    """Administrative review decision."""
    status: ApplicationStatus
    review_notes: Optional[str] = Field(default=None, max_length=1000)
    interview_date: Optional[datetime] = None


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class SkillOut(CamelModel):
    skill: str
    level: str
    added_at: Optional[datetime] = None


class ProjectOut(CamelModel):
    name: str
    description: str
    technologies: List[str] = Field(default_factory=list)
    url: Optional[str] = None
    github_url: Optional[str] = None
    added_at: Optional[datetime] = None


class AvailabilityOut(CamelModel):
    start_date: date
    time_commitment: str


class ApplicationAnalytics(CamelModel):
    days_submitted: int
    last_updated: datetime
    can_edit: bool
    can_withdraw: bool


class ApplicationOut(CamelModel):
    id: int
    user_id: int
    program: str
    motivation: str
    experience: str
    goals: str
    availability: AvailabilityOut
    technical_skills: List[SkillOut]
    projects: List[ProjectOut]
    status: str
    review_notes: Optional[str] = None
    interview_date: Optional[datetime] = None
    submission_date: datetime
    last_updated: datetime
    reference_number: str
    analytics: Optional[ApplicationAnalytics] = None


class ApplicationData(CamelModel):
    application: ApplicationOut


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_prev_page: bool


class ListFilters(CamelModel):
    status: Optional[str] = None
    program: Optional[str] = None
    sort: str


class ApplicationListData(CamelModel):
    applications: List[ApplicationOut]
    pagination: Pagination
    filters: ListFilters


class WithdrawnApplication(CamelModel):
    id: int
    program: str
    reference_number: str
    withdrawn_at: datetime


class WithdrawalData(CamelModel):
    withdrawn_application: WithdrawnApplication


class DuplicateApplicationDetails(CamelModel):
    """Summary of the existing application returned with DUPLICATE_APPLICATION."""
    id: int
    program: str
    status: str
    submission_date: datetime

    def as_details(self) -> Dict[str, Any]:
        return {"existingApplication": self.model_dump(mode="json", by_alias=True)}
