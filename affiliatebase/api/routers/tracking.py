"""Client analytics beacons."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.api.deps import client_ip, get_app_settings, get_metrics
from affiliatebase.core.db import get_db
from affiliatebase.core.logging import get_logger
from affiliatebase.core.repositories import (
    EVENT_DUPLICATE, EVENT_TRACKED, get_program, log_search, log_traffic, record_program_event,
)
from affiliatebase.core.settings import Settings
from affiliatebase.core.time import date_key
from affiliatebase.core.utils import get_country, hash_ip, is_bot
from affiliatebase.services.metrics import AppMetrics
from affiliatebase.validation.schemas import SearchTrackRequest, TrackRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/track", tags=["tracking"])


@router.post("")
async def track(
    body: TrackRequest,
    request: Request,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    metrics: AppMetrics = Depends(get_metrics),
):
    """
    Record a page visit and, when a program and fingerprint are given,
    a daily-unique program event.

    The raw traffic row is best effort and written for every visit, bots
    included. Bots never produce a program event; the event is strict and
    deduplicated per visitor per day.
    """
    user_agent = request.headers.get("user-agent")

    await log_traffic(
        session,
        path=(body.path or "/")[:1000],
        referrer=request.headers.get("referer"),
        user_agent=user_agent,
        country=get_country(request.headers),
        program_id=body.programId or None,
        visitor_id=body.fingerprint or None,
        ip_hash=hash_ip(client_ip(request), settings.ip_salt),
        event_type=body.type,
    )

    if is_bot(user_agent):
        return {"status": "ignored_bot"}

    if not body.programId or not body.fingerprint:
        return {"status": "ok"}

    program = await get_program(session, body.programId)
    if program is None:
        logger.info(f"Skipping event for unknown program {body.programId}")
        return {"status": "ok"}

    # read before the write; a rollback expires the row
    program_name = program.name
    outcome = await record_program_event(session, body.programId, body.type, body.fingerprint, date_key())
    metrics.event_recorded(body.programId, program_name, body.type, outcome)

    if outcome == EVENT_TRACKED:
        return {"status": "tracked"}
    if outcome == EVENT_DUPLICATE:
        return {"status": "duplicate_ignored"}
    return {"status": "failed"}


@router.post("/search")
async def track_search(body: SearchTrackRequest, session: AsyncSession = Depends(get_db)):
    """Store a search query with its result count."""
    stored = await log_search(session, body.query.lower(), body.resultsCount)
    return {"success": stored}
