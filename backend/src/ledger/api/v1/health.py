"""Liveness and readiness checks."""
import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.deps import get_db
from ledger.config import settings
from ledger.utils.dates import utcnow

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])

VERSION = "0.1.0"


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> dict[str, str]:
    """Liveness: the process is up. Touches no dependencies."""
    return {"status": "healthy", "timestamp": utcnow().isoformat(), "version": VERSION}


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Readiness: 200 only when the database answers.

    Optional integrations are reported but never fail the check: without a
    stock API key orders return 503, without a Resend key receipts are only
    logged.
    """
    checks = {
        "database": "connected",
        "stock_provider": "configured" if settings.stock_api_key else "not_configured",
        "email": "configured" if settings.resend_api_key else "log_only",
    }

    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("database_health_check_failed", error=str(exc))
        checks["database"] = "disconnected"

    ready = checks["database"] == "connected"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ready": ready, "checks": checks, "timestamp": utcnow().isoformat()},
    )
