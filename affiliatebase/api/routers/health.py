"""Liveness and readiness checks."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from affiliatebase.core.db import get_database
from affiliatebase.core.logging import get_logger
from affiliatebase.core.time import isoformat, utc_now

logger = get_logger(__name__)

router = APIRouter(tags=["health"])

SERVICE_NAME = "affiliatebase"


@router.get("/healthz")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/api/health")
async def readiness(request: Request):
    """Database round trip; 503 when it fails."""
    try:
        await get_database(request).ping()
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"{SERVICE_NAME} health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(e),
                "timestamp": isoformat(utc_now()),
            },
        )

    return {"status": "healthy", "database": "connected", "timestamp": isoformat(utc_now())}
