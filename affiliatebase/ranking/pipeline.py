"""Scheduled jobs for the leaderboard.

1. Recompute: aggregates rolling 7-day events and rewrites every program's score
2. Rotate: reassigns the random tiebreaker used between equal scores
3. Prune: removes traffic, event and search rows past their retention
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from affiliatebase.core.logging import get_logger
from affiliatebase.core.models import Program, ProgramEvent, SearchLog, TrafficLog
from affiliatebase.core.repositories import cleanup_old_rows, get_rolling_counts
from affiliatebase.core.settings import Settings
from affiliatebase.core.time import days_ago, utc_now
from affiliatebase.ranking.score import DEFAULT_WEIGHTS, ScoreWeights, calculate_trending_score

logger = get_logger(__name__)

# Job configuration
DEFAULT_WINDOW_DAYS = 7
DEFAULT_BATCH_SIZE = 50


@dataclass
class RecomputeStats:
    """Outcome of a recompute run."""
    runtime_seconds: float
    programs_total: int
    updated_count: int
    batches: int
    scores: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'runtime_seconds': self.runtime_seconds,
            'programs_total': self.programs_total,
            'updated_count': self.updated_count,
            'batches': self.batches,
        }


@dataclass
class PruneStats:
    pruned_traffic: int
    pruned_events: int
    pruned_searches: int


async def _persist_score(session_factory: async_sessionmaker, program_id: str, score: float) -> None:
    async with session_factory() as session:
        await session.execute(
            update(Program).where(Program.id == program_id).values(trending_score=score)
        )
        await session.commit()


async def recompute_scores(session_factory: async_sessionmaker,
                           weights: ScoreWeights = DEFAULT_WEIGHTS,
                           window_days: int = DEFAULT_WINDOW_DAYS,
                           batch_size: int = DEFAULT_BATCH_SIZE,
                           now: Optional[datetime] = None) -> RecomputeStats:
    """
    Rewrite every program's trending score from rolling event counts.

    Programs are processed in chunks; each chunk issues its updates
    concurrently and completes before the next one starts. A failure stops
    the run and leaves earlier chunks committed.

    Args:
        session_factory: Session factory; each update gets its own session
        weights: Scoring constants
        window_days: Rolling window length
        batch_size: Programs updated concurrently per chunk
        now: Reference time, captured once for the whole run

    Returns:
        RecomputeStats with the number of programs updated
    """
    start_time = time.time()
    now = now or utc_now()
    batch_size = max(1, batch_size)

    logger.info(f"Starting score recompute: window={window_days}d, batch_size={batch_size}")

    async with session_factory() as session:
        counts = await get_rolling_counts(session, days_ago(window_days, now))
        result = await session.execute(
            select(Program.id, Program.manual_score_boost).order_by(Program.id)
        )
        programs = result.all()

    scores: Dict[str, float] = {}
    for program_id, boost in programs:
        views, clicks = counts.get(program_id, (0, 0))
        scores[program_id] = calculate_trending_score(boost, views, clicks, weights)

    program_ids = list(scores)
    updated = 0
    batches = 0
    for offset in range(0, len(program_ids), batch_size):
        chunk = program_ids[offset:offset + batch_size]
        await asyncio.gather(*(_persist_score(session_factory, pid, scores[pid]) for pid in chunk))
        updated += len(chunk)
        batches += 1

    runtime = time.time() - start_time
    logger.info(
        f"Score recompute completed in {runtime:.2f}s: {updated} programs in {batches} batches",
        extra={"updated_count": updated, "programs_with_events": len(counts)},
    )

    return RecomputeStats(
        runtime_seconds=runtime,
        programs_total=len(programs),
        updated_count=updated,
        batches=batches,
        scores=scores,
    )


async def recompute_program_score(session: AsyncSession, program: Program,
                                  weights: ScoreWeights = DEFAULT_WEIGHTS,
                                  window_days: int = DEFAULT_WINDOW_DAYS,
                                  now: Optional[datetime] = None) -> float:
    """Refresh one program's score right away, e.g. after a boost change."""
    now = now or utc_now()
    counts = await get_rolling_counts(session, days_ago(window_days, now), program_ids=[program.id])
    views, clicks = counts.get(program.id, (0, 0))

    score = calculate_trending_score(program.manual_score_boost, views, clicks, weights)
    program.trending_score = score
    await session.commit()
    await session.refresh(program)

    logger.info(f"Recomputed score for program {program.id}: {score}", extra={"program_id": program.id})
    return score


async def rotate_random_weights(session_factory: async_sessionmaker) -> int:
    """
    Give every program a fresh random tiebreaker in [0, 1).

    Returns:
        Number of programs rotated
    """
    async with session_factory() as session:
        result = await session.execute(select(Program.id))
        program_ids: List[str] = list(result.scalars().all())

        if program_ids:
            await session.execute(
                update(Program),
                [{"id": pid, "random_weight": random.random()} for pid in program_ids],
            )
            await session.commit()

    logger.info(f"Rotated random weights for {len(program_ids)} programs")
    return len(program_ids)


async def prune_logs(session_factory: async_sessionmaker, traffic_days: int = 30,
                     event_days: int = 90, search_days: int = 30,
                     now: Optional[datetime] = None) -> PruneStats:
    """
    Delete log rows past their retention.

    Args:
        session_factory: Session factory
        traffic_days: TrafficLog retention
        event_days: ProgramEvent retention
        search_days: SearchLog retention
        now: Reference time

    Returns:
        PruneStats with exact deleted row counts
    """
    now = now or utc_now()

    async with session_factory() as session:
        pruned_traffic = await cleanup_old_rows(session, TrafficLog, days_ago(traffic_days, now))
        pruned_events = await cleanup_old_rows(session, ProgramEvent, days_ago(event_days, now))
        pruned_searches = await cleanup_old_rows(session, SearchLog, days_ago(search_days, now))

    logger.info(
        "Log pruning completed",
        extra={
            "pruned_traffic": pruned_traffic,
            "pruned_events": pruned_events,
            "pruned_searches": pruned_searches,
        },
    )
    return PruneStats(pruned_traffic, pruned_events, pruned_searches)


def job_options(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for recompute_scores taken from settings."""
    return {
        "weights": ScoreWeights.from_settings(settings),
        "window_days": settings.rolling_window_days,
        "batch_size": settings.recompute_batch_size,
    }
