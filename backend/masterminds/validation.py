"""
MasterMinds Backend — Validation Rules
=======================================

What:  The declarative field rules shared by the request schemas: allowed
       enumerations, character patterns and the checks that need more than a
       Field(min_length=...) constraint.
How:   Plain functions raising ValueError; the Pydantic schemas call them from
       field validators, so a failure surfaces as a field-level entry in the
       400 validation envelope.
"""

import re
from datetime import date
from typing import Any, Literal, Optional, get_args

from pydantic import HttpUrl

Program = Literal[
    "Full Stack Development",
    "Data Science & Analytics",
    "AI & Machine Learning",
    "Mobile App Development",
    "Cloud Infrastructure",
    "Cybersecurity",
    "UI/UX Design",
    "DevOps Engineering",
]
PROGRAMS = get_args(Program)

TimeCommitment = Literal[
    "Part-time (10-20 hours/week)",
    "Full-time (40+ hours/week)",
    "Flexible",
]
TIME_COMMITMENTS = get_args(TimeCommitment)

SkillLevel = Literal["Beginner", "Intermediate", "Advanced", "Expert"]
SKILL_LEVELS = get_args(SkillLevel)

ApplicationStatus = Literal[
    "pending",
    "under_review",
    "interview_scheduled",
    "accepted",
    "rejected",
    "waitlisted",
]
APPLICATION_STATUSES = get_args(ApplicationStatus)

UserRole = Literal["user", "admin"]
USER_ROLES = get_args(UserRole)

# Sortable listing fields (wire names); prefix with "-" for descending
SORT_FIELDS = ("submissionDate", "lastUpdated", "program", "status")
SORT_PATTERN = r"^-?(" + "|".join(SORT_FIELDS) + r")$"

NAME_PATTERN = re.compile(r"^[a-zA-Z\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")
MOTIVATION_PATTERN = re.compile(r"^[a-zA-Z0-9\s.,!?;:'\"()\-]+$")

MIN_AGE = 13
MAX_AGE = 120
MAX_START_YEARS_AHEAD = 2


def check_person_name(value: str, label: str) -> str:
    value = value.strip()
    if not 2 <= len(value) <= 50:
        raise ValueError(f"{label} must be between 2 and 50 characters")
    if not NAME_PATTERN.match(value):
        raise ValueError(f"{label} can only contain letters and spaces")
    return value


def check_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not PHONE_PATTERN.match(value):
        raise ValueError("Please enter a valid phone number")
    if len(value) > 20:
        raise ValueError("Phone number is too long")
    return value


def age_on(birth_date: date, today: date) -> int:
    had_birthday = (today.month, today.day) >= (birth_date.month, birth_date.day)
    return today.year - birth_date.year - (0 if had_birthday else 1)


def check_date_of_birth(value: Optional[date], today: Optional[date] = None) -> Optional[date]:
    if value is None:
        return None
    age = age_on(value, today or date.today())
    if age < MIN_AGE or age > MAX_AGE:
        raise ValueError(f"Age must be between {MIN_AGE} and {MAX_AGE} years")
    return value


def check_text_length(value: str, minimum: int, maximum: int, label: str) -> str:
    value = value.strip()
    if not minimum <= len(value) <= maximum:
        raise ValueError(f"{label} must be between {minimum} and {maximum} characters")
    return value


def check_motivation(value: str) -> str:
    value = check_text_length(value, 100, 2000, "Motivation letter")
    if not MOTIVATION_PATTERN.match(value):
        raise ValueError("Motivation letter contains invalid characters")
    return value


def add_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return day.replace(year=day.year + years, day=28)


def check_start_date(value: date, today: Optional[date] = None) -> date:
    today = today or date.today()
    if value < today:
        raise ValueError("Start date cannot be in the past")
    if value > add_years(today, MAX_START_YEARS_AHEAD):
        raise ValueError(
            f"Start date cannot be more than {MAX_START_YEARS_AHEAD} years in the future"
        )
    return value


def blank_to_none(value: Any) -> Any:
    """Optional URL fields: an empty form input means "not provided"."""
    if isinstance(value, str):
        return value.strip() or None
    return value


def check_github_url(value: Optional[HttpUrl]) -> Optional[HttpUrl]:
    if value is None:
        return None
    host = (value.host or "").lower()
    if host != "github.com" and not host.endswith(".github.com"):
        raise ValueError("GitHub URL must be from github.com")
    return value
