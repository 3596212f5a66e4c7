"""
MasterMinds Backend — Shared Schema Pieces
===========================================

What:  The camelCase base model, the error envelope and the health payload.
Why:   The web client speaks camelCase JSON; Python code keeps snake_case.
How:   `alias_generator=to_camel` produces the wire names, and
       `populate_by_name=True` still accepts snake_case input, so services can
       build response models with keyword arguments.
"""

from datetime import datetime
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    """
    What:  Standardized error envelope for all API errors.

    Example:
        {
            "success": false,
            "error": "invalid_state",
            "code": "APPLICATION_NOT_EDITABLE",
            "message": "Application cannot be edited in its current status",
            "details": {"currentStatus": "accepted", "allowedStatuses": ["pending"]},
            "request_id": "1f2e3d4c"
        }
    """
    success: bool = Field(default=False)
    error: str = Field(description="Error category, e.g. validation_error")
    code: str = Field(description="Machine-readable code, e.g. TOKEN_EXPIRED")
    message: str = Field(description="Human-readable error description")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class MessageResponse(CamelModel):
    success: bool = True
    message: str
    code: Optional[str] = None


class StorageHealth(CamelModel):
    mode: str = Field(description="database or memory")
    status: str = Field(description="connected, active or unavailable")
    data: Dict[str, int] = Field(default_factory=dict, description="Entity counts")


class FeatureFlags(CamelModel):
    authentication: bool = True
    rate_limit: bool = True
    security: bool = True
    cors: bool = True
    compression: bool = True


class HealthResponse(CamelModel):
    """
    What:  Health check response showing service and storage status.
    Who:   Returned by GET /health and GET /api/health.

    Status levels:
        healthy:  the selected storage backend answers
        degraded: the backend failed to report its counts
    """
    status: str = Field(description="healthy or degraded")
    version: str
    environment: str
    uptime_seconds: float = Field(description="Seconds since service started")
    timestamp: datetime
    storage: StorageHealth
    features: FeatureFlags = Field(default_factory=FeatureFlags)


DataT = TypeVar("DataT")


class Envelope(CamelModel, Generic[DataT]):
    """
    Success envelope shared by every resource endpoint:
    {"success": true, "message": ..., "data": {...}, "meta": {...}}
    """
    success: bool = True
    message: Optional[str] = None
    data: DataT
    meta: Optional[Dict[str, Any]] = None
