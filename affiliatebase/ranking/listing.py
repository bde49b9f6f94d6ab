"""Leaderboard queries.

Orders approved programs by active featured slot, stored trending score plus
the recency boost for new listings, then the periodically rotated random
weight. The featured flag is never trusted on its own: a slot counts only
while ``featured_expires_at`` is in the future at query time.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliatebase.core.logging import get_logger
from affiliatebase.core.models import Program
from affiliatebase.core.repositories import feature_active_clause
from affiliatebase.core.time import utc_now
from affiliatebase.ranking.score import DEFAULT_WEIGHTS, ScoreWeights

logger = get_logger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
SIMILAR_LIMIT = 3


def recency_term(now: datetime, weights: ScoreWeights = DEFAULT_WEIGHTS):
    """SQL form of ``recency_boost`` for ORDER BY."""
    tiers = [
        (Program.created_at > now - timedelta(days=max_age), bonus)
        for max_age, bonus in weights.recency_tiers
    ]
    return case(*tiers, else_=0.0)


def ranking_order(now: datetime, weights: ScoreWeights = DEFAULT_WEIGHTS):
    """ORDER BY clauses: active featured first, then score with recency, then random tiebreaker."""
    featured_rank = case((feature_active_clause(now), 1), else_=0)
    ranked_score = Program.trending_score + recency_term(now, weights)
    return (featured_rank.desc(), ranked_score.desc(), Program.random_weight.desc(), Program.id)


async def list_ranked_programs(session: AsyncSession, category: Optional[str] = None,
                               query: Optional[str] = None, limit: int = DEFAULT_LIMIT,
                               offset: int = 0, now: Optional[datetime] = None) -> List[Program]:
    """
    Public leaderboard.

    Args:
        session: Database session
        category: Restrict to one category
        query: Case-insensitive search over name, tagline and description
        limit: Page size (capped at MAX_LIMIT)
        offset: Page offset
        now: Reference time for featured expiry and listing age

    Returns:
        Ranked programs
    """
    now = now or utc_now()
    limit = max(1, min(limit, MAX_LIMIT))

    stmt = select(Program).where(Program.approval_status.is_(True))
    if category:
        stmt = stmt.where(Program.category == category)
    if query:
        pattern = f"%{query.strip().lower()}%"
        stmt = stmt.where(or_(
            func.lower(Program.name).like(pattern),
            func.lower(Program.tagline).like(pattern),
            func.lower(Program.description).like(pattern),
        ))

    stmt = stmt.order_by(*ranking_order(now)).offset(max(0, offset)).limit(limit)
    result = await session.execute(stmt)
    programs = list(result.scalars().all())

    logger.debug(f"Ranked listing returned {len(programs)} programs", extra={"category": category})
    return programs


async def list_featured_programs(session: AsyncSession, now: Optional[datetime] = None) -> List[Program]:
    """Approved programs whose featured slot is still running."""
    now = now or utc_now()
    stmt = (
        select(Program)
        .where(Program.approval_status.is_(True), feature_active_clause(now))
        .order_by(Program.featured_expires_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_similar_programs(session: AsyncSession, program: Program, limit: int = SIMILAR_LIMIT,
                                now: Optional[datetime] = None) -> List[Program]:
    """
    Programs from the same category, topped up with the best ranked others.

    Args:
        session: Database session
        program: Reference program
        limit: Number of programs to return
        now: Reference time for featured expiry

    Returns:
        Up to ``limit`` programs, never including ``program``
    """
    now = now or utc_now()

    stmt = (
        select(Program)
        .where(
            Program.approval_status.is_(True),
            Program.category == program.category,
            Program.id != program.id,
        )
        .order_by((Program.trending_score + recency_term(now)).desc(), Program.random_weight.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    similar = list(result.scalars().all())

    if len(similar) < limit:
        seen = [program.id] + [p.id for p in similar]
        fill_stmt = (
            select(Program)
            .where(Program.approval_status.is_(True), Program.id.not_in(seen))
            .order_by(*ranking_order(now))
            .limit(limit - len(similar))
        )
        result = await session.execute(fill_stmt)
        similar.extend(result.scalars().all())

    return similar


async def list_sitemap_slugs(session: AsyncSession) -> List[tuple]:
    """(slug, updated_at) for every approved program."""
    stmt = (
        select(Program.slug, Program.updated_at)
        .where(Program.approval_status.is_(True))
        .order_by(Program.created_at.desc())
    )
    result = await session.execute(stmt)
    return [tuple(row) for row in result.all()]
