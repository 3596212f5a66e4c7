"""
MasterMinds Backend — Auth Schemas
===================================

What:  Request bodies and response payloads of the /auth endpoints.
How:   Field-level rules live in masterminds.validation; the password schema
       only bounds length here so the strength check can report its own
       WEAK_PASSWORD errors.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from masterminds.schemas.common import CamelModel
from masterminds.validation import (
    check_date_of_birth,
    check_person_name,
    check_phone,
)


def _normalize_email(value: str) -> str:
    if len(value) > 255:
        raise ValueError("Email address is too long")
    return value.lower()


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(CamelModel):
    first_name: str = Field(description="2-50 letters and spaces")
    last_name: str = Field(description="2-50 letters and spaces")
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = Field(default=None, description="ISO 8601 date; age 13-120")

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v: str) -> str:
        return check_person_name(v, "First name")

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, v: str) -> str:
        return check_person_name(v, "Last name")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return check_phone(v)

    @field_validator("date_of_birth")
    @classmethod
    def validate_date_of_birth(cls, v: Optional[date]) -> Optional[date]:
        return check_date_of_birth(v)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)


class RefreshRequest(CamelModel):
    # Optional so a missing token is reported as REFRESH_TOKEN_REQUIRED
    refresh_token: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UserProfile(CamelModel):
    """Public view of a user. Never carries the password hash or lockout bookkeeping."""
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    role: str
    is_verified: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TokenBundle(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: int = Field(description="Access token lifetime in seconds")


class AuthData(CamelModel):
    user: UserProfile
    tokens: TokenBundle


class TokenInfo(CamelModel):
    issued_at: datetime
    expires_at: datetime


class SessionInfo(CamelModel):
    last_access: datetime
    token_info: TokenInfo


class CurrentUserData(CamelModel):
    user: UserProfile
    session: SessionInfo


class RefreshData(CamelModel):
    access_token: str
    expires_in: int
