"""Public program endpoints: leaderboard, submission, detail, counters and reports."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.api.deps import get_app_settings, get_metrics, get_storage, require_admin
from affiliatebase.core.db import get_db
from affiliatebase.core.logging import get_logger
from affiliatebase.core.models import EVENT_CLICK, EVENT_VIEW
from affiliatebase.core.repositories import (
    DUPLICATE_FIELDS, DUPLICATE_MESSAGES, EVENT_DUPLICATE, EVENT_TRACKED,
    create_program, create_report, delete_program, find_conflicting_field, find_duplicate,
    get_program, get_program_by_slug, log_search, record_program_event, update_program,
)
from affiliatebase.core.settings import Settings
from affiliatebase.core.time import date_key, isoformat, utc_now
from affiliatebase.ranking.listing import (
    DEFAULT_LIMIT, MAX_LIMIT, list_featured_programs, list_ranked_programs, list_similar_programs,
)
from affiliatebase.ranking.pipeline import job_options, recompute_program_score
from affiliatebase.services.analytics import get_program_stats
from affiliatebase.services.metrics import AppMetrics
from affiliatebase.services.storage import LogoStorage
from affiliatebase.validation.schemas import (
    FingerprintRequest, ProgramCreate, ProgramUpdate, ReportCreate, serialize_program,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/programs", tags=["programs"])

MIN_FINGERPRINT_LENGTH = 32


class CounterResponse(BaseModel):
    """Response model for view/click counters."""
    success: bool
    status: str
    duplicate: bool
    count: int


async def _get_program_or_404(session: AsyncSession, program_id: str):
    program = await get_program(session, program_id)
    if program is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")
    return program


async def _refresh_score(session: AsyncSession, program, settings: Settings) -> None:
    options = job_options(settings)
    await recompute_program_score(
        session, program, weights=options["weights"], window_days=options["window_days"]
    )


@router.get("")
async def list_programs(
    category: Optional[str] = None,
    q: Optional[str] = Query(default=None, max_length=200),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_db),
):
    """Ranked leaderboard of approved programs."""
    now = utc_now()
    programs = await list_ranked_programs(session, category=category, query=q, limit=limit, offset=offset, now=now)
    payload = [serialize_program(p, now) for p in programs]

    if q and q.strip():
        await log_search(session, q, len(programs))

    return payload


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_program(
    body: ProgramCreate,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    metrics: AppMetrics = Depends(get_metrics),
):
    """Create a program from the public submission form."""
    columns = body.to_columns()

    conflict = await find_conflicting_field(session, columns)
    if conflict:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_MESSAGES[conflict])

    program = await create_program(session, columns)
    metrics.program_created()
    await _refresh_score(session, program, settings)
    return serialize_program(program)


@router.get("/featured")
async def featured_programs(session: AsyncSession = Depends(get_db)):
    """Programs with a running featured slot."""
    now = utc_now()
    programs = await list_featured_programs(session, now)
    return [serialize_program(p, now) for p in programs]


@router.get("/check-duplicate")
async def check_duplicate(
    field: Optional[str] = None,
    value: Optional[str] = None,
    session: AsyncSession = Depends(get_db),
):
    """Live duplicate check used by the submission form."""
    if not field or not value or not value.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing field or value")
    if field not in DUPLICATE_FIELDS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid field")

    existing = await find_duplicate(session, field, value)
    if existing is not None:
        return {"exists": True, "message": DUPLICATE_MESSAGES[field]}
    return {"exists": False, "message": None}


@router.get("/by-slug/{slug}")
async def program_by_slug(slug: str, session: AsyncSession = Depends(get_db)):
    program = await get_program_by_slug(session, slug)
    if program is None or not program.approval_status:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")
    return serialize_program(program)


@router.get("/{program_id}")
async def program_detail(program_id: str, session: AsyncSession = Depends(get_db)):
    program = await _get_program_or_404(session, program_id)
    return serialize_program(program)


@router.patch("/{program_id}", dependencies=[Depends(require_admin)])
async def edit_program(
    program_id: str,
    body: ProgramUpdate,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    storage: LogoStorage = Depends(get_storage),
):
    """Admin edit restricted to known fields."""
    program = await _get_program_or_404(session, program_id)
    columns = body.to_columns()

    conflict = await find_conflicting_field(session, columns, exclude_id=program.id)
    if conflict:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_MESSAGES[conflict])

    old_logo = program.logo_url
    program = await update_program(session, program, columns)
    await _refresh_score(session, program, settings)

    if "logo_url" in columns and old_logo and old_logo != program.logo_url:
        await storage.delete_logo(old_logo)

    return serialize_program(program)


@router.delete("/{program_id}", dependencies=[Depends(require_admin)])
async def remove_program(
    program_id: str,
    session: AsyncSession = Depends(get_db),
    storage: LogoStorage = Depends(get_storage),
):
    """Delete a program along with its reports and events."""
    program = await _get_program_or_404(session, program_id)
    logo_url = program.logo_url

    if not await delete_program(session, program_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")

    if logo_url:
        await storage.delete_logo(logo_url)

    return {"success": True, "id": program_id}


@router.get("/{program_id}/similar")
async def similar_programs(program_id: str, session: AsyncSession = Depends(get_db)):
    """Same-category programs, filled up with top ranked ones."""
    program = await _get_program_or_404(session, program_id)
    now = utc_now()
    similar = await list_similar_programs(session, program, now=now)
    return [serialize_program(p, now) for p in similar]


@router.get("/{program_id}/stats")
async def program_stats(program_id: str, session: AsyncSession = Depends(get_db)):
    """Seven-day views/clicks chart for the program page."""
    program = await _get_program_or_404(session, program_id)
    return await get_program_stats(session, program)


async def _count_event(session: AsyncSession, program_id: str, event_type: str,
                       body: FingerprintRequest, metrics: AppMetrics) -> CounterResponse:
    if len(body.fingerprint) < MIN_FINGERPRINT_LENGTH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Valid fingerprint required")

    program = await _get_program_or_404(session, program_id)
    outcome = await record_program_event(session, program_id, event_type, body.fingerprint, date_key())

    # duplicates and failures roll back, which expires the loaded row
    await session.refresh(program)
    metrics.event_recorded(program_id, program.name, event_type, outcome)
    count = program.total_views if event_type == EVENT_VIEW else program.clicks

    return CounterResponse(
        success=outcome in (EVENT_TRACKED, EVENT_DUPLICATE),
        status="duplicate_ignored" if outcome == EVENT_DUPLICATE else outcome,
        duplicate=outcome == EVENT_DUPLICATE,
        count=count,
    )


@router.post("/{program_id}/view", response_model=CounterResponse)
async def count_view(program_id: str, body: FingerprintRequest, session: AsyncSession = Depends(get_db),
                     metrics: AppMetrics = Depends(get_metrics)):
    """Count a unique daily view."""
    return await _count_event(session, program_id, EVENT_VIEW, body, metrics)


@router.post("/{program_id}/click", response_model=CounterResponse)
async def count_click(program_id: str, body: FingerprintRequest, session: AsyncSession = Depends(get_db),
                      metrics: AppMetrics = Depends(get_metrics)):
    """Count a unique daily outbound click."""
    return await _count_event(session, program_id, EVENT_CLICK, body, metrics)


@router.post("/{program_id}/report", status_code=status.HTTP_201_CREATED)
async def report_program(program_id: str, body: ReportCreate, session: AsyncSession = Depends(get_db)):
    """File an edit suggestion or abuse report."""
    await _get_program_or_404(session, program_id)
    report = await create_report(
        session,
        program_id,
        body.type,
        body.message,
        reason=body.reason,
        email=body.email,
        is_founder=body.isFounder,
    )
    return {
        "success": True,
        "report": {
            "id": report.id,
            "programId": report.program_id,
            "type": report.type,
            "status": report.status,
            "createdAt": isoformat(report.created_at),
        },
    }
