"""
Health Router - liveness and readiness endpoints.

- GET /health: the process is up
- GET /health/ready: the experience store answers; 503 otherwise

Pattern: Graceful degradation (Building Microservices p. 274)
"""

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from experience_discovery import __version__
from experience_discovery.api.deps import get_store_factory
from experience_discovery.observability.logging import get_logger
from experience_discovery.store.factory import StoreFactory


logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    status: str
    checks: dict[str, bool]


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="healthy", version=__version__)


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness(
    response: Response,
    store_factory: StoreFactory = Depends(get_store_factory),
) -> ReadinessResponse:
    """
    Readiness probe.

    Returns 503 with ``status="not_ready"`` while the store is unreachable.
    """
    store_ok = await store_factory.ping()
    if not store_ok:
        logger.warning("readiness_failed", backend=store_factory.backend)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status="ready" if store_ok else "not_ready",
        checks={"store": store_ok},
    )
