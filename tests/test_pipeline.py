"""Tests for the recompute, rotate and prune jobs."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from affiliatebase.core.models import EVENT_CLICK, EVENT_VIEW, Program, ProgramEvent, SearchLog, TrafficLog
from affiliatebase.core.time import utc_now
from affiliatebase.ranking.pipeline import (
    RecomputeStats, prune_logs, recompute_program_score, recompute_scores, rotate_random_weights,
)

from factories import add_events, add_program, add_searches, add_traffic, fetch_program


async def _count(db, model) -> int:
    async with db.session() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar()


class TestRecomputeScores:
    """Batch recompute of trending scores."""

    @pytest.mark.asyncio
    async def test_scores_from_rolling_window(self, async_db):
        now = utc_now()
        old = now - timedelta(days=30)
        popular = await add_program(async_db, "Popular App", created_at=old)
        quiet = await add_program(async_db, "Quiet App", created_at=old)

        await add_events(async_db, popular.id, EVENT_VIEW, 100, created_at=now - timedelta(days=1))
        await add_events(async_db, popular.id, EVENT_CLICK, 20, created_at=now - timedelta(days=1))
        # outside the 7 day window
        await add_events(async_db, quiet.id, EVENT_VIEW, 50, created_at=now - timedelta(days=10), day="2020-01-01")

        stats = await recompute_scores(async_db.session_factory, now=now)

        assert isinstance(stats, RecomputeStats)
        assert stats.updated_count == 2
        assert stats.scores[popular.id] == 390.0
        assert stats.scores[quiet.id] == 0.0
        assert (await fetch_program(async_db, popular.id)).trending_score == 390.0
        assert (await fetch_program(async_db, quiet.id)).trending_score == 0.0

    @pytest.mark.asyncio
    async def test_idempotent(self, async_db):
        now = utc_now()
        program = await add_program(async_db, "Steady App", created_at=now - timedelta(days=20),
                                    manual_score_boost=15)
        await add_events(async_db, program.id, EVENT_VIEW, 40, created_at=now - timedelta(hours=3))

        first = await recompute_scores(async_db.session_factory, now=now)
        second = await recompute_scores(async_db.session_factory, now=now)

        assert first.scores == second.scores
        assert (await fetch_program(async_db, program.id)).trending_score == 55.0

    @pytest.mark.asyncio
    async def test_batches(self, async_db):
        for i in range(7):
            await add_program(async_db, f"Batch App {i}")

        stats = await recompute_scores(async_db.session_factory, batch_size=3)

        assert stats.updated_count == 7
        assert stats.batches == 3

    @pytest.mark.asyncio
    async def test_listing_age_not_stored(self, async_db):
        now = utc_now()
        fresh = await add_program(async_db, "Fresh App", created_at=now - timedelta(days=1), manual_score_boost=5)
        week_old = await add_program(async_db, "Week App", created_at=now - timedelta(days=5))

        stats = await recompute_scores(async_db.session_factory, now=now)

        assert stats.scores[fresh.id] == 5.0
        assert stats.scores[week_old.id] == 0.0
        assert (await fetch_program(async_db, fresh.id)).trending_score == 5.0

    @pytest.mark.asyncio
    async def test_empty_table(self, async_db):
        stats = await recompute_scores(async_db.session_factory)
        assert stats.updated_count == 0
        assert stats.batches == 0

    @pytest.mark.asyncio
    async def test_single_program_refresh(self, async_db):
        now = utc_now()
        program = await add_program(async_db, "Boosted App", created_at=now - timedelta(days=40))
        await add_events(async_db, program.id, EVENT_VIEW, 10, created_at=now - timedelta(hours=1))

        async with async_db.session() as session:
            loaded = await session.get(Program, program.id)
            loaded.manual_score_boost = 500
            score = await recompute_program_score(session, loaded, now=now)

        assert score == 510.0
        assert (await fetch_program(async_db, program.id)).trending_score == 510.0


class TestRotateAndPrune:
    """Tiebreaker rotation and log retention."""

    @pytest.mark.asyncio
    async def test_rotate_touches_every_program(self, async_db):
        programs = [await add_program(async_db, f"Rotate App {i}", random_weight=5.0) for i in range(4)]

        rotated = await rotate_random_weights(async_db.session_factory)

        assert rotated == 4
        for program in programs:
            weight = (await fetch_program(async_db, program.id)).random_weight
            assert 0.0 <= weight < 1.0

    @pytest.mark.asyncio
    async def test_prune_exact_counts(self, async_db):
        now = utc_now()
        program = await add_program(async_db, "Logged App")

        await add_traffic(async_db, now - timedelta(days=31), count=3)
        await add_traffic(async_db, now - timedelta(days=29), count=2)
        await add_events(async_db, program.id, EVENT_VIEW, 4, created_at=now - timedelta(days=91), day="2020-01-01")
        await add_events(async_db, program.id, EVENT_VIEW, 1, created_at=now - timedelta(days=60), day="2020-02-01")
        await add_searches(async_db, now - timedelta(days=40), count=5)
        await add_searches(async_db, now - timedelta(days=1), count=1)

        stats = await prune_logs(async_db.session_factory, now=now)

        assert (stats.pruned_traffic, stats.pruned_events, stats.pruned_searches) == (3, 4, 5)
        assert await _count(async_db, TrafficLog) == 2
        assert await _count(async_db, ProgramEvent) == 1
        assert await _count(async_db, SearchLog) == 1

        again = await prune_logs(async_db.session_factory, now=now)
        assert (again.pruned_traffic, again.pruned_events, again.pruned_searches) == (0, 0, 0)
