"""Admin panel endpoints: moderation, boosts, reports and analytics."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.api.deps import get_app_settings, require_admin
from affiliatebase.core.db import get_db
from affiliatebase.core.logging import get_logger
from affiliatebase.core.repositories import (
    delete_report, get_program, get_rolling_counts, list_programs_for_admin, list_reports,
    set_program_approval, update_program, update_report_status,
)
from affiliatebase.core.settings import Settings
from affiliatebase.core.time import days_ago, isoformat, utc_now
from affiliatebase.ranking.pipeline import job_options, recompute_program_score
from affiliatebase.ranking.score import score_breakdown
from affiliatebase.services.analytics import get_dashboard_stats, get_funnel
from affiliatebase.validation.schemas import ApprovalUpdate, BoostUpdate, ReportStatusUpdate, serialize_program

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

PROGRAM_FILTERS = ("all", "pending", "unreviewed")
REPORT_FILTERS = ("all", "pending", "resolved", "dismissed")


def _serialize_report(report, program_name: Optional[str]) -> dict:
    return {
        "id": report.id,
        "programId": report.program_id,
        "programName": program_name,
        "type": report.type,
        "reason": report.reason,
        "message": report.message,
        "email": report.email,
        "isFounder": report.is_founder,
        "status": report.status,
        "createdAt": isoformat(report.created_at),
        "resolvedAt": isoformat(report.resolved_at),
    }


@router.get("/programs")
async def admin_programs(
    status_filter: str = Query(default="all", alias="status"),
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """All programs for moderation, each with its score breakdown."""
    if status_filter not in PROGRAM_FILTERS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status filter")

    now = utc_now()
    options = job_options(settings)
    programs = await list_programs_for_admin(session, status_filter)
    counts = await get_rolling_counts(session, days_ago(options["window_days"], now), [p.id for p in programs])

    payload = []
    for program in programs:
        views, clicks = counts.get(program.id, (0, 0))
        item = serialize_program(program, now)
        item["scoreBreakdown"] = score_breakdown(program, views, clicks, now=now, weights=options["weights"])
        payload.append(item)
    return payload


@router.patch("/programs/{program_id}/approval")
async def approve_program(program_id: str, body: ApprovalUpdate, session: AsyncSession = Depends(get_db)):
    program = await set_program_approval(session, program_id, body.approved)
    if program is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")
    return serialize_program(program)


@router.patch("/programs/{program_id}/boost")
async def boost_program(
    program_id: str,
    body: BoostUpdate,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Set the manual boost and refresh the stored score right away."""
    program = await get_program(session, program_id)
    if program is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")

    program = await update_program(session, program, {"manual_score_boost": body.manualScoreBoost})
    options = job_options(settings)
    score = await recompute_program_score(
        session, program, weights=options["weights"], window_days=options["window_days"]
    )
    logger.info(f"Boost for {program_id} set to {body.manualScoreBoost}", extra={"trending_score": score})
    return serialize_program(program)


@router.get("/reports")
async def admin_reports(
    status_filter: str = Query(default="all", alias="status"),
    session: AsyncSession = Depends(get_db),
):
    status_filter = status_filter.lower()
    if status_filter not in REPORT_FILTERS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status filter")

    reports = await list_reports(session, None if status_filter == "all" else status_filter.upper())
    return [_serialize_report(report, name) for report, name in reports]


@router.patch("/reports/{report_id}")
async def change_report_status(report_id: str, body: ReportStatusUpdate, session: AsyncSession = Depends(get_db)):
    report = await update_report_status(session, report_id, body.status)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    program = await get_program(session, report.program_id)
    return _serialize_report(report, program.name if program else None)


@router.delete("/reports/{report_id}")
async def remove_report(report_id: str, session: AsyncSession = Depends(get_db)):
    if not await delete_report(session, report_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return {"success": True}


@router.get("/analytics")
async def analytics(range_key: Optional[str] = Query(default=None, alias="range"),
                    session: AsyncSession = Depends(get_db)):
    """Dashboard numbers; always answers with a complete shape."""
    return await get_dashboard_stats(session, range_key)


@router.get("/analytics/funnel")
async def funnel(
    range_key: Optional[str] = Query(default=None, alias="range"),
    program_id: Optional[str] = Query(default=None, alias="programId"),
    session: AsyncSession = Depends(get_db),
):
    return await get_funnel(session, range_key, program_id)
