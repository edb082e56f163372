"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text

from storegate.core.config import settings
from storegate.core.deps import DBSession
from storegate.schemas.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: DBSession) -> HealthResponse:
    """
    Health check endpoint.

    Checks database connectivity and, when the install lock is enabled,
    Redis connectivity.
    """
    status = "healthy"
    checks: dict[str, str] = {}

    # Check database connection
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        status = "unhealthy"
        checks["database"] = f"unhealthy: {type(e).__name__}"

    if settings.install_lock_enabled:
        try:
            import redis.asyncio as redis

            redis_client = redis.from_url(str(settings.redis_url))  # type: ignore[no-untyped-call]
            await redis_client.ping()
            await redis_client.aclose()
            checks["redis"] = "healthy"
        except Exception as e:
            status = "unhealthy"
            checks["redis"] = f"unhealthy: {type(e).__name__}"

    return HealthResponse(
        status=status,
        version=settings.version,
        environment=settings.environment,
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness probe for Kubernetes/container orchestration.

    Simple check that the service is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(db: DBSession) -> dict[str, str]:
    """
    Readiness probe for Kubernetes/container orchestration.

    Checks if the service is ready to receive traffic.
    """
    await db.execute(text("SELECT 1"))

    return {"status": "ready"}
