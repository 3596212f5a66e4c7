# Models package init
"""
MasterMinds Backend — SQLAlchemy Models
========================================

What:  ORM models for the durable storage backend.
Why imported here: Base.metadata only knows tables whose models were imported;
create_tables() and Alembic import this package to register all three.
"""

from masterminds.models.user import User
from masterminds.models.application import Application
from masterminds.models.session import UserSession

__all__ = ["User", "Application", "UserSession"]
