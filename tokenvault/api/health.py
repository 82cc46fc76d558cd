"""Health check endpoint.

Accessible without authentication. With the PostgreSQL backend the
database is checked and 503 is returned while it is unreachable.
"""

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel

from tokenvault.core.database import check_db_connection

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    storage: str
    database: str


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        status.HTTP_200_OK: {"description": "Service is healthy"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Session store is unreachable"},
    },
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    settings = request.app.state.settings

    if settings.storage_backend == "memory":
        database = "not_used"
        healthy = True
    else:
        healthy = await check_db_connection(
            request.app.state.session_factory, timeout=settings.registry_timeout_seconds
        )
        database = "connected" if healthy else "disconnected"

    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=settings.app_version,
        storage=settings.storage_backend,
        database=database,
    )
