"""
Health check endpoints.

- /health: Liveness check (is the process running?)
- /health/ready: Readiness check (is the configuration usable?)
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ..dependencies import SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessResponse(BaseModel):
    """Readiness check response."""
    status: str  # "ready" or "not_ready"
    version: str
    missing_fields: list[str] = []


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Liveness check. Doesn't touch the bucket."""
    return HealthResponse(
        status="ok",
        version=__version__,
        details={
            "mock_mode": settings.storage_mock_mode,
            "fallback": settings.fallback_location is not None,
        }
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    responses={503: {"description": "Service not ready", "model": ReadinessResponse}},
)
async def readiness_check(settings: SettingsDep, response: Response) -> ReadinessResponse:
    """Returns 503 when required configuration is missing."""
    missing_fields = settings.validate_required_fields()

    if missing_fields:
        logger.warning(
            "Readiness check failed",
            extra={"missing_fields": missing_fields}
        )
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(
            status="not_ready",
            version=__version__,
            missing_fields=missing_fields,
        )

    return ReadinessResponse(status="ready", version=__version__)
