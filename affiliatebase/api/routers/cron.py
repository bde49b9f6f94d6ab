"""Scheduled maintenance jobs, triggered by an external scheduler."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from affiliatebase.api.deps import get_app_settings, require_cron
from affiliatebase.core.db import get_database
from affiliatebase.core.logging import get_logger
from affiliatebase.core.settings import Settings
from affiliatebase.ranking.pipeline import job_options, prune_logs, recompute_scores, rotate_random_weights

logger = get_logger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"], dependencies=[Depends(require_cron)])

JOB_METHODS = ["GET", "POST"]


def _job_failed(job: str, error: Exception) -> JSONResponse:
    logger.error(f"Cron job {job} failed: {error}", exc_info=True, extra={"job": job})
    return JSONResponse(status_code=500, content={"success": False, "error": f"{job} failed: {error}"})


@router.api_route("/update-scores", methods=JOB_METHODS)
async def update_scores(request: Request, settings: Settings = Depends(get_app_settings)):
    """Recompute every program's trending score from its rolling window."""
    db = get_database(request)
    try:
        stats = await recompute_scores(db.session_factory, **job_options(settings))
    except Exception as e:
        return _job_failed("update-scores", e)

    logger.info("Trending scores updated", extra=stats.to_dict())
    return {"success": True, "updatedCount": stats.updated_count}


@router.api_route("/rotate", methods=JOB_METHODS)
async def rotate(request: Request):
    """Reshuffle the tiebreaker between equally scored programs."""
    db = get_database(request)
    try:
        rotated = await rotate_random_weights(db.session_factory)
    except Exception as e:
        return _job_failed("rotate", e)

    return {"success": True, "rotatedCount": rotated}


@router.api_route("/prune-logs", methods=JOB_METHODS)
async def prune(request: Request, settings: Settings = Depends(get_app_settings)):
    """Delete traffic, event and search rows past their retention."""
    db = get_database(request)
    try:
        stats = await prune_logs(
            db.session_factory,
            traffic_days=settings.traffic_retention_days,
            event_days=settings.event_retention_days,
            search_days=settings.search_retention_days,
        )
    except Exception as e:
        return _job_failed("prune-logs", e)

    return {
        "success": True,
        "prunedTraffic": stats.pruned_traffic,
        "prunedEvents": stats.pruned_events,
        "prunedSearches": stats.pruned_searches,
    }
