"""
Request-scoped identity types passed from the auth dependencies to the services.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from masterminds.storage.records import UserRecord


@dataclass
class ClientInfo:
    """Where a request came from; stored on sessions and submissions."""
    ip_address: str
    user_agent: Optional[str] = None


@dataclass
class AuthenticatedUser:
    """Identity attached to request.state.user once a bearer token is accepted."""
    user_id: int
    email: str
    role: str
    token: str
    token_id: str
    issued_at: datetime
    expires_at: datetime
    profile: UserRecord
    session_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class OwnershipCheck:
    """
    Inputs for the per-resource ownership comparison.

    Built by the ownership dependency; compared by the service once the
    resource is loaded. Admins skip the comparison.
    """
    user_id: int
    resource_id: int
    is_admin: bool = False

    def permits(self, owner_id: int) -> bool:
        return self.is_admin or owner_id == self.user_id
