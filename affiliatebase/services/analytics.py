"""Admin analytics aggregates.

Every entry point returns a complete, zero-filled shape when the underlying
queries fail, so dashboards render instead of erroring.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.core.logging import get_logger
from affiliatebase.core.models import EVENT_CLICK, EVENT_VIEW, Program, ProgramEvent, SearchLog, TrafficLog
from affiliatebase.core.repositories import get_program_daily_stats
from affiliatebase.core.time import date_key, normalize_timezone, utc_now
from affiliatebase.core.utils import parse_user_agent, referrer_host

logger = get_logger(__name__)

RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_RANGE = "7d"
LIVE_WINDOW = timedelta(minutes=5)
TOP_N = 10


def resolve_range(range_key: Optional[str]) -> str:
    return range_key if range_key in RANGES else DEFAULT_RANGE


def _bucket_keys(range_key: str, now: datetime) -> List[str]:
    if range_key == "24h":
        start = now.replace(minute=0, second=0, microsecond=0) - timedelta(hours=23)
        return [(start + timedelta(hours=h)).strftime("%Y-%m-%d %H:00") for h in range(24)]
    days = RANGES[range_key].days
    return [date_key(now - timedelta(days=d)) for d in range(days - 1, -1, -1)]


def _bucket_of(dt: datetime, range_key: str) -> str:
    dt = normalize_timezone(dt)
    return dt.strftime("%Y-%m-%d %H:00") if range_key == "24h" else dt.strftime("%Y-%m-%d")


def empty_dashboard(range_key: str = DEFAULT_RANGE, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Zeroed dashboard payload."""
    range_key = resolve_range(range_key)
    now = now or utc_now()
    return {
        "range": range_key,
        "liveUsers": 0,
        "uniqueVisitors": 0,
        "pageViews": 0,
        "programViews": 0,
        "programClicks": 0,
        "ctr": 0.0,
        "newPrograms": 0,
        "trafficChart": [{"bucket": key, "views": 0, "visitors": 0} for key in _bucket_keys(range_key, now)],
        "topPrograms": [],
        "topReferrers": [],
        "topSearches": [],
        "zeroResultSearches": [],
        "devices": [],
        "os": [],
    }


def empty_funnel(range_key: str = DEFAULT_RANGE) -> Dict[str, Any]:
    return {"range": resolve_range(range_key), "views": 0, "clicks": 0, "conversionRate": 0.0}


def _ratio(numerator: int, denominator: int) -> float:
    return round(numerator / denominator * 100, 2) if denominator else 0.0


def _top(counter: Counter, key_name: str) -> List[Dict[str, Any]]:
    return [{key_name: key, "count": count} for key, count in counter.most_common(TOP_N)]


async def _event_counts(session: AsyncSession, since: datetime, program_id: Optional[str] = None) -> Dict[str, int]:
    stmt = (
        select(ProgramEvent.type, func.count(ProgramEvent.id))
        .where(ProgramEvent.created_at >= since)
        .group_by(ProgramEvent.type)
    )
    if program_id:
        stmt = stmt.where(ProgramEvent.program_id == program_id)
    result = await session.execute(stmt)
    counts = {EVENT_VIEW: 0, EVENT_CLICK: 0}
    counts.update({event_type: count for event_type, count in result.all()})
    return counts


async def _collect_dashboard(session: AsyncSession, range_key: str, now: datetime) -> Dict[str, Any]:
    since = now - RANGES[range_key]
    stats = empty_dashboard(range_key, now)

    live = await session.execute(
        select(func.count(distinct(TrafficLog.visitor_id)))
        .where(TrafficLog.created_at >= now - LIVE_WINDOW, TrafficLog.visitor_id.is_not(None))
    )
    stats["liveUsers"] = live.scalar() or 0

    traffic = await session.execute(
        select(TrafficLog.created_at, TrafficLog.visitor_id, TrafficLog.ip_hash,
               TrafficLog.referrer, TrafficLog.user_agent)
        .where(TrafficLog.created_at >= since)
    )

    buckets = {row["bucket"]: row for row in stats["trafficChart"]}
    bucket_visitors: Dict[str, set] = {}
    visitors = set()
    referrers: Counter = Counter()
    devices: Counter = Counter()
    systems: Counter = Counter()
    page_views = 0

    for created_at, visitor_id, ip_hash, referrer, user_agent in traffic.all():
        page_views += 1
        identity = visitor_id or ip_hash or "anonymous"
        visitors.add(identity)
        bucket = _bucket_of(created_at, range_key)
        if bucket in buckets:
            buckets[bucket]["views"] += 1
            bucket_visitors.setdefault(bucket, set()).add(identity)
        referrers[referrer_host(referrer)] += 1
        parsed = parse_user_agent(user_agent)
        devices[parsed["device"]] += 1
        systems[parsed["os"]] += 1

    for bucket, seen in bucket_visitors.items():
        buckets[bucket]["visitors"] = len(seen)

    stats["pageViews"] = page_views
    stats["uniqueVisitors"] = len(visitors)
    stats["topReferrers"] = _top(referrers, "referrer")
    stats["devices"] = _top(devices, "device")
    stats["os"] = _top(systems, "os")

    events = await _event_counts(session, since)
    stats["programViews"] = events[EVENT_VIEW]
    stats["programClicks"] = events[EVENT_CLICK]
    stats["ctr"] = _ratio(events[EVENT_CLICK], events[EVENT_VIEW])

    top_programs = await session.execute(
        select(Program.id, Program.name, ProgramEvent.type, func.count(ProgramEvent.id))
        .join(Program, Program.id == ProgramEvent.program_id)
        .where(ProgramEvent.created_at >= since)
        .group_by(Program.id, Program.name, ProgramEvent.type)
    )
    per_program: Dict[str, Dict[str, Any]] = {}
    for program_id, name, event_type, count in top_programs.all():
        entry = per_program.setdefault(program_id, {"id": program_id, "programName": name, "views": 0, "clicks": 0})
        entry["views" if event_type == EVENT_VIEW else "clicks"] += count
    stats["topPrograms"] = sorted(
        per_program.values(), key=lambda p: (p["views"] + p["clicks"], p["clicks"]), reverse=True
    )[:TOP_N]

    searches = await session.execute(
        select(func.lower(SearchLog.query), func.count(SearchLog.id), func.max(SearchLog.results_count))
        .where(SearchLog.created_at >= since)
        .group_by(func.lower(SearchLog.query))
        .order_by(func.count(SearchLog.id).desc())
    )
    search_rows = searches.all()
    stats["topSearches"] = [{"query": q, "count": c} for q, c, _ in search_rows[:TOP_N]]
    stats["zeroResultSearches"] = [{"query": q, "count": c} for q, c, best in search_rows if not best][:TOP_N]

    new_programs = await session.execute(select(func.count(Program.id)).where(Program.created_at >= since))
    stats["newPrograms"] = new_programs.scalar() or 0

    return stats


async def get_dashboard_stats(session: AsyncSession, range_key: Optional[str] = None,
                              now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Site-wide dashboard numbers for the admin panel.

    Args:
        session: Database session
        range_key: 24h, 7d or 30d (unknown values fall back to 7d)
        now: Reference time

    Returns:
        Dashboard payload; zero-filled if any query fails
    """
    range_key = resolve_range(range_key)
    now = now or utc_now()
    try:
        return await _collect_dashboard(session, range_key, now)
    except Exception as e:
        logger.error(f"Dashboard analytics failed for range {range_key}: {e}", exc_info=True)
        return empty_dashboard(range_key, now)


async def get_funnel(session: AsyncSession, range_key: Optional[str] = None,
                     program_id: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Views to clicks conversion, optionally for one program."""
    range_key = resolve_range(range_key)
    now = now or utc_now()
    try:
        counts = await _event_counts(session, now - RANGES[range_key], program_id)
    except Exception as e:
        logger.error(f"Funnel analytics failed: {e}", exc_info=True, extra={"program_id": program_id})
        return empty_funnel(range_key)

    return {
        "range": range_key,
        "views": counts[EVENT_VIEW],
        "clicks": counts[EVENT_CLICK],
        "conversionRate": _ratio(counts[EVENT_CLICK], counts[EVENT_VIEW]),
    }


async def get_program_stats(session: AsyncSession, program: Program, days: int = 7,
                            now: Optional[datetime] = None) -> Dict[str, Any]:
    """Per-day views and clicks for one program plus its lifetime counters."""
    now = now or utc_now()
    keys = [date_key(now - timedelta(days=d)) for d in range(days - 1, -1, -1)]
    chart = [{"date": key, "views": 0, "clicks": 0} for key in keys]
    payload = {
        "programId": program.id,
        "totalViews": program.total_views,
        "totalClicks": program.clicks,
        "chart": chart,
    }

    try:
        since = normalize_timezone(datetime.strptime(keys[0], "%Y-%m-%d"))
        daily = await get_program_daily_stats(session, program.id, since)
    except Exception as e:
        logger.error(f"Program stats failed for {program.id}: {e}", exc_info=True)
        return payload

    for point in chart:
        point.update(daily.get(point["date"], {}))
    return payload
