"""
MasterMinds Backend — Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Asks the storage adapter for its mode and entity counts and reports
       them with version, environment and uptime.
Who:   Called by Docker health checks, load balancers and the web client.

Status levels:
    - healthy:  the selected storage backend answered (HTTP 200)
    - degraded: the backend failed to report its counts (HTTP 503)
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Response

from masterminds import __version__
from masterminds.config import settings
from masterminds.exceptions import StorageError
from masterminds.schemas.common import HealthResponse, StorageHealth
from masterminds.storage import storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Initialized once when the module loads
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description=(
        "Returns the service status together with the active storage mode and "
        "its user, application and session counts."
    ),
)
async def health_check(response: Response) -> HealthResponse:
    overall = "healthy"
    try:
        stats = await storage.stats()
        storage_health = StorageHealth(**stats)
    except StorageError as e:
        logger.warning("Health check: storage unavailable: %s", e.message)
        overall = "degraded"
        storage_health = StorageHealth(mode=storage.mode, status="unavailable")
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        environment=settings.environment,
        uptime_seconds=round(time.time() - _start_time, 2),
        timestamp=datetime.now(timezone.utc),
        storage=storage_health,
    )
