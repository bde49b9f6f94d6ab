"""Repository layer for database operations.

Provides async CRUD operations for programs and reports, the strict
event-plus-counter write used for rolling aggregates, and best-effort
writes for traffic and search logs.
"""

import random
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.core.logging import get_logger
from affiliatebase.core.models import (
    EVENT_CLICK, EVENT_VIEW, REPORT_PENDING, REPORT_RESOLVED,
    Program, ProgramEvent, ProgramReport, SearchLog, TrafficLog,
)
from affiliatebase.core.time import utc_now
from affiliatebase.core.utils import slugify
from affiliatebase.validation.urls import url_variations

logger = get_logger(__name__)

# Outcomes of record_program_event
EVENT_TRACKED = "tracked"
EVENT_DUPLICATE = "duplicate"
EVENT_FAILED = "failed"

DUPLICATE_FIELDS = {
    "programName": Program.name,
    "websiteUrl": Program.website_url,
    "affiliateUrl": Program.affiliate_url,
}

DUPLICATE_MESSAGES = {
    "programName": "This program name is already taken",
    "websiteUrl": "This website is already registered",
    "affiliateUrl": "This affiliate link is already registered",
}


def feature_active_clause(now: datetime):
    """SQL condition for a featured slot that has not expired yet."""
    return and_(
        Program.is_featured.is_(True),
        Program.featured_expires_at.is_not(None),
        Program.featured_expires_at > now,
    )


# =============================================================================
# PROGRAMS
# =============================================================================

async def get_program(session: AsyncSession, program_id: str) -> Optional[Program]:
    """
    Get a program by id.

    Args:
        session: Database session
        program_id: Program id

    Returns:
        Program or None
    """
    return await session.get(Program, program_id)


async def get_program_by_slug(session: AsyncSession, slug: str) -> Optional[Program]:
    stmt = select(Program).where(Program.slug == slug)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def generate_unique_slug(session: AsyncSession, name: str, exclude_id: Optional[str] = None) -> str:
    """
    Derive a slug from the program name, suffixing -1, -2... on collision.

    Args:
        session: Database session
        name: Program name
        exclude_id: Program whose current slug should not count as taken

    Returns:
        Unused slug
    """
    base = slugify(name)
    stmt = select(Program.slug).where(or_(Program.slug == base, Program.slug.like(f"{base}-%")))
    if exclude_id:
        stmt = stmt.where(Program.id != exclude_id)
    result = await session.execute(stmt)
    taken = set(result.scalars().all())

    if base not in taken:
        return base

    suffix = 1
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


async def find_duplicate(session: AsyncSession, field: str, value: str,
                         exclude_id: Optional[str] = None) -> Optional[Program]:
    """
    Look for an existing program sharing a name or URL.

    Names match case-insensitively; URLs match any equivalent spelling.

    Args:
        session: Database session
        field: One of programName, websiteUrl, affiliateUrl
        value: Candidate value
        exclude_id: Program to ignore (for edits)

    Returns:
        Conflicting Program or None
    """
    if field not in DUPLICATE_FIELDS:
        raise ValueError(f"Unsupported duplicate field: {field}")

    column = DUPLICATE_FIELDS[field]
    if field == "programName":
        condition = func.lower(column) == value.strip().lower()
    else:
        condition = column.in_(url_variations(value))

    stmt = select(Program).where(condition)
    if exclude_id:
        stmt = stmt.where(Program.id != exclude_id)
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none()


async def find_conflicting_field(session: AsyncSession, columns: Dict[str, Any],
                                 exclude_id: Optional[str] = None) -> Optional[str]:
    """Return the first request field that collides with another program."""
    candidates = (
        ("programName", columns.get("name")),
        ("websiteUrl", columns.get("website_url")),
        ("affiliateUrl", columns.get("affiliate_url")),
    )
    for field, value in candidates:
        if value and await find_duplicate(session, field, value, exclude_id=exclude_id):
            return field
    return None


async def create_program(session: AsyncSession, columns: Dict[str, Any]) -> Program:
    """
    Insert a new program.

    Args:
        session: Database session
        columns: Program column values (already validated)

    Returns:
        Newly created Program
    """
    data = dict(columns)
    data["slug"] = await generate_unique_slug(session, data["name"])
    data.setdefault("random_weight", random.random())

    program = Program(**data)
    session.add(program)
    await session.commit()
    await session.refresh(program)

    logger.info(f"Created program: {program.name}", extra={"program_id": program.id, "slug": program.slug})
    return program


async def update_program(session: AsyncSession, program: Program, columns: Dict[str, Any]) -> Program:
    """
    Apply validated column changes to a program.

    Args:
        session: Database session
        program: Program to update
        columns: Column values to set

    Returns:
        Updated Program
    """
    if "name" in columns and columns["name"] != program.name:
        program.slug = await generate_unique_slug(session, columns["name"], exclude_id=program.id)

    for key, value in columns.items():
        setattr(program, key, value)

    await session.commit()
    await session.refresh(program)

    logger.info(f"Updated program {program.id}", extra={"program_id": program.id, "fields": sorted(columns)})
    return program


async def delete_program(session: AsyncSession, program_id: str) -> bool:
    """
    Delete a program together with its reports and events.

    Traffic logs are kept with their program reference cleared. Everything
    happens in one transaction.

    Args:
        session: Database session
        program_id: Program to delete

    Returns:
        True if the program existed
    """
    try:
        reports = await session.execute(delete(ProgramReport).where(ProgramReport.program_id == program_id))
        events = await session.execute(delete(ProgramEvent).where(ProgramEvent.program_id == program_id))
        await session.execute(
            update(TrafficLog).where(TrafficLog.program_id == program_id).values(program_id=None)
        )
        result = await session.execute(delete(Program).where(Program.id == program_id))
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        raise

    deleted = (result.rowcount or 0) > 0
    if deleted:
        logger.info(
            f"Deleted program {program_id}",
            extra={"program_id": program_id, "reports": reports.rowcount, "events": events.rowcount},
        )
    return deleted


async def list_programs_for_admin(session: AsyncSession, status: str = "all") -> List[Program]:
    """
    List programs for moderation.

    Args:
        session: Database session
        status: all | pending (hidden) | unreviewed (never reviewed)

    Returns:
        Programs, newest first
    """
    stmt = select(Program)
    if status == "pending":
        stmt = stmt.where(Program.approval_status.is_(False))
    elif status == "unreviewed":
        stmt = stmt.where(Program.reviewed_at.is_(None))
    result = await session.execute(stmt.order_by(Program.created_at.desc()))
    return list(result.scalars().all())


async def set_program_approval(session: AsyncSession, program_id: str, approved: bool) -> Optional[Program]:
    program = await get_program(session, program_id)
    if program is None:
        return None

    program.approval_status = approved
    program.reviewed_at = utc_now()
    await session.commit()
    await session.refresh(program)

    logger.info(f"Program {program_id} approval set to {approved}", extra={"program_id": program_id})
    return program


async def apply_featuring(session: AsyncSession, program: Program, checkout_id: Optional[str],
                          expires_at: datetime, approve: bool = False) -> Program:
    """
    Mark a program as featured until ``expires_at``.

    Args:
        session: Database session
        program: Program to feature
        checkout_id: Payment session that paid for it
        expires_at: End of the featured window
        approve: Also make a hidden checkout draft visible

    Returns:
        Updated Program
    """
    program.is_featured = True
    program.featured_expires_at = expires_at
    if checkout_id:
        program.featured_checkout_id = checkout_id
    if approve:
        program.approval_status = True
    await session.commit()
    await session.refresh(program)

    logger.info(
        f"Featured program {program.id} until {expires_at.isoformat()}",
        extra={"program_id": program.id, "checkout_id": checkout_id},
    )
    return program


async def get_program_by_checkout(session: AsyncSession, checkout_id: str) -> Optional[Program]:
    stmt = select(Program).where(Program.featured_checkout_id == checkout_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def count_active_featured(session: AsyncSession, now: Optional[datetime] = None) -> int:
    now = now or utc_now()
    stmt = select(func.count(Program.id)).where(feature_active_clause(now))
    result = await session.execute(stmt)
    return result.scalar() or 0


async def count_visible_programs(session: AsyncSession) -> int:
    result = await session.execute(select(func.count(Program.id)).where(Program.approval_status.is_(True)))
    return result.scalar() or 0


async def next_featured_expiry(session: AsyncSession, now: Optional[datetime] = None) -> Optional[datetime]:
    """Earliest expiry among active featured slots."""
    now = now or utc_now()
    stmt = select(func.min(Program.featured_expires_at)).where(feature_active_clause(now))
    result = await session.execute(stmt)
    return result.scalar()


# =============================================================================
# EVENTS AND ROLLING AGGREGATES
# =============================================================================

async def record_program_event(session: AsyncSession, program_id: str, event_type: str,
                               visitor_id: str, day_key: str) -> str:
    """
    Insert a daily-unique event and bump the matching lifetime counter atomically.

    Args:
        session: Database session
        program_id: Program the event belongs to
        event_type: VIEW or CLICK
        visitor_id: Fingerprint or other stable visitor id
        day_key: YYYY-MM-DD bucket

    Returns:
        EVENT_TRACKED, EVENT_DUPLICATE, or EVENT_FAILED
    """
    counter = Program.total_views if event_type == EVENT_VIEW else Program.clicks

    try:
        session.add(ProgramEvent(
            program_id=program_id,
            type=event_type,
            visitor_id=visitor_id,
            date_key=day_key,
        ))
        await session.execute(
            update(Program)
            .where(Program.id == program_id)
            .values({counter.key: counter + 1})
        )
        await session.commit()
        return EVENT_TRACKED

    except IntegrityError:
        await session.rollback()
        logger.debug(f"Duplicate {event_type} ignored for program {program_id}")
        return EVENT_DUPLICATE

    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(
            f"Failed to record {event_type} for program {program_id}: {e}",
            extra={"program_id": program_id},
        )
        return EVENT_FAILED


async def get_rolling_counts(session: AsyncSession, since: datetime,
                             program_ids: Optional[List[str]] = None) -> Dict[str, Tuple[int, int]]:
    """
    Aggregate VIEW and CLICK counts per program since a cutoff.

    Args:
        session: Database session
        since: Start of the rolling window
        program_ids: Restrict to these programs

    Returns:
        Mapping of program id to (views, clicks)
    """
    stmt = (
        select(ProgramEvent.program_id, ProgramEvent.type, func.count(ProgramEvent.id))
        .where(ProgramEvent.created_at >= since)
        .group_by(ProgramEvent.program_id, ProgramEvent.type)
    )
    if program_ids is not None:
        stmt = stmt.where(ProgramEvent.program_id.in_(program_ids))

    result = await session.execute(stmt)

    counts: Dict[str, List[int]] = {}
    for program_id, event_type, count in result.all():
        views_clicks = counts.setdefault(program_id, [0, 0])
        if event_type == EVENT_VIEW:
            views_clicks[0] += count
        elif event_type == EVENT_CLICK:
            views_clicks[1] += count

    return {pid: (vc[0], vc[1]) for pid, vc in counts.items()}


async def get_program_daily_stats(session: AsyncSession, program_id: str, since: datetime) -> Dict[str, Dict[str, int]]:
    """Per-day VIEW/CLICK counts keyed by date_key."""
    stmt = (
        select(ProgramEvent.date_key, ProgramEvent.type, func.count(ProgramEvent.id))
        .where(ProgramEvent.program_id == program_id, ProgramEvent.created_at >= since)
        .group_by(ProgramEvent.date_key, ProgramEvent.type)
    )
    result = await session.execute(stmt)

    days: Dict[str, Dict[str, int]] = {}
    for day, event_type, count in result.all():
        bucket = days.setdefault(day, {"views": 0, "clicks": 0})
        bucket["views" if event_type == EVENT_VIEW else "clicks"] += count
    return days


# =============================================================================
# TRAFFIC AND SEARCH LOGS (best effort)
# =============================================================================

async def log_traffic(session: AsyncSession, **fields: Any) -> bool:
    """
    Store a raw page visit. Failures are logged and swallowed.

    Args:
        session: Database session
        **fields: TrafficLog column values

    Returns:
        True if stored
    """
    try:
        session.add(TrafficLog(**fields))
        await session.commit()
        return True
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to write traffic log: {e}", extra={"path": fields.get("path")})
        return False


async def log_search(session: AsyncSession, query: str, results_count: int) -> bool:
    try:
        session.add(SearchLog(query=query.strip()[:200], results_count=max(0, results_count)))
        await session.commit()
        return True
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to write search log: {e}", extra={"query": query})
        return False


async def cleanup_old_rows(session: AsyncSession, model, cutoff: datetime) -> int:
    """
    Delete rows of ``model`` created before ``cutoff``.

    Args:
        session: Database session
        model: TrafficLog, ProgramEvent or SearchLog
        cutoff: Rows strictly older than this are removed

    Returns:
        Number of rows deleted
    """
    count_stmt = select(func.count(model.id)).where(model.created_at < cutoff)
    count_result = await session.execute(count_stmt)
    rows_to_delete = count_result.scalar() or 0

    if rows_to_delete > 0:
        await session.execute(delete(model).where(model.created_at < cutoff))
        await session.commit()

        logger.info(f"Cleaned up {rows_to_delete} {model.__tablename__} rows older than {cutoff.isoformat()}")

    return rows_to_delete


# =============================================================================
# REPORTS
# =============================================================================

async def create_report(session: AsyncSession, program_id: str, report_type: str, message: str,
                        reason: Optional[str] = None, email: Optional[str] = None,
                        is_founder: bool = False) -> ProgramReport:
    report = ProgramReport(
        program_id=program_id,
        type=report_type,
        message=message,
        reason=reason,
        email=email,
        is_founder=is_founder,
        status=REPORT_PENDING,
    )
    session.add(report)
    await session.commit()
    await session.refresh(report)

    logger.info(f"New {report_type} report for program {program_id}", extra={"report_id": report.id})
    return report


async def list_reports(session: AsyncSession, status: Optional[str] = None) -> List[Tuple[ProgramReport, Optional[str]]]:
    """
    List reports newest first, paired with the reported program's name.

    Args:
        session: Database session
        status: Optional status filter

    Returns:
        List of (report, program name)
    """
    stmt = (
        select(ProgramReport, Program.name)
        .join(Program, Program.id == ProgramReport.program_id, isouter=True)
        .order_by(ProgramReport.created_at.desc())
    )
    if status:
        stmt = stmt.where(ProgramReport.status == status)
    result = await session.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def update_report_status(session: AsyncSession, report_id: str, status: str) -> Optional[ProgramReport]:
    report = await session.get(ProgramReport, report_id)
    if report is None:
        return None

    report.status = status
    report.resolved_at = utc_now() if status == REPORT_RESOLVED else None
    await session.commit()
    await session.refresh(report)
    return report


async def delete_report(session: AsyncSession, report_id: str) -> bool:
    result = await session.execute(delete(ProgramReport).where(ProgramReport.id == report_id))
    await session.commit()
    return (result.rowcount or 0) > 0
