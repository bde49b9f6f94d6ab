"""Prometheus scrape endpoint and per-program click totals."""

from typing import Dict

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.api.deps import get_metrics
from affiliatebase.core.db import get_db
from affiliatebase.core.logging import get_logger
from affiliatebase.core.repositories import count_visible_programs
from affiliatebase.services.metrics import AppMetrics

logger = get_logger(__name__)

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


@router.get("")
async def scrape(session: AsyncSession = Depends(get_db), metrics: AppMetrics = Depends(get_metrics)):
    """Text exposition of every collector. The active-programs gauge is refreshed per scrape."""
    try:
        metrics.active_programs.set(await count_visible_programs(session))
    except SQLAlchemyError as e:
        # keep the last value; counters are still worth exporting
        logger.warning(f"Could not refresh active programs gauge: {e}")

    return Response(content=metrics.exposition(), media_type=metrics.content_type)


@router.get("/clicks")
async def clicks(metrics: AppMetrics = Depends(get_metrics)) -> Dict[str, float]:
    """Clicks counted by this process, keyed by program id."""
    return metrics.clicks_by_program()
