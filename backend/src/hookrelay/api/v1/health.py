"""Health check endpoints for liveness and readiness probes."""
import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.api.deps import get_db
from hookrelay.models.base import utcnow

logger = structlog.get_logger(__name__)

router = APIRouter()

VERSION = "0.1.0"


@router.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    """
    Liveness probe.

    Returns basic health status if the process is running. Does not check
    external dependencies.
    """
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "version": VERSION,
    }


@router.get("/health/ready", tags=["Health"])
async def readiness_check(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Readiness probe.

    Returns 200 only when the database answers a trivial query, 503 otherwise.
    """
    checks = {"database": "unknown"}
    ready = True

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except Exception as exc:
        logger.error("database_health_check_failed", error=str(exc))
        checks["database"] = "disconnected"
        ready = False
        await db.rollback()

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "ready": ready,
            "checks": checks,
            "timestamp": utcnow().isoformat(),
        },
    )
