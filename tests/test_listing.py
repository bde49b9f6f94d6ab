"""Tests for leaderboard ordering and featured expiry."""

from datetime import timedelta

import pytest

from affiliatebase.core.repositories import count_active_featured, next_featured_expiry
from affiliatebase.core.time import utc_now
from affiliatebase.ranking.listing import (
    list_featured_programs, list_ranked_programs, list_similar_programs, list_sitemap_slugs,
)
from affiliatebase.validation.schemas import is_feature_active, serialize_program

from factories import add_program


class TestRankedListing:
    """Ordering of the public leaderboard."""

    @pytest.mark.asyncio
    async def test_score_then_random_weight(self, async_db):
        await add_program(async_db, "Low Score", trending_score=10, random_weight=0.9)
        await add_program(async_db, "High Score", trending_score=50, random_weight=0.1)
        await add_program(async_db, "Tie Winner", trending_score=10, random_weight=0.95)

        async with async_db.session() as session:
            programs = await list_ranked_programs(session)

        assert [p.name for p in programs] == ["High Score", "Tie Winner", "Low Score"]

    @pytest.mark.asyncio
    async def test_new_listing_outranks_older_by_recency(self, async_db):
        now = utc_now()
        await add_program(async_db, "Old Favourite", trending_score=120, created_at=now - timedelta(days=30))
        fresh = await add_program(async_db, "Fresh Launch", trending_score=50, created_at=now - timedelta(hours=2))

        async with async_db.session() as session:
            programs = await list_ranked_programs(session, now=now)

        assert [p.name for p in programs] == ["Fresh Launch", "Old Favourite"]
        assert programs[0].trending_score == 50
        assert serialize_program(fresh, now)["rankingScore"] == 150.0

        async with async_db.session() as session:
            later = await list_ranked_programs(session, now=now + timedelta(days=10))

        assert [p.name for p in later] == ["Old Favourite", "Fresh Launch"]

    @pytest.mark.asyncio
    async def test_active_featured_first(self, async_db):
        now = utc_now()
        await add_program(async_db, "Top Organic", trending_score=1000)
        await add_program(async_db, "Paid Slot", trending_score=1, is_featured=True,
                          featured_expires_at=now + timedelta(days=10))

        async with async_db.session() as session:
            programs = await list_ranked_programs(session, now=now)

        assert programs[0].name == "Paid Slot"

    @pytest.mark.asyncio
    async def test_expired_featured_not_prioritized(self, async_db):
        now = utc_now()
        await add_program(async_db, "Top Organic", trending_score=1000)
        expired = await add_program(async_db, "Lapsed Slot", trending_score=1, is_featured=True,
                                    featured_expires_at=now - timedelta(minutes=1))

        async with async_db.session() as session:
            programs = await list_ranked_programs(session, now=now)
            featured = await list_featured_programs(session, now)
            active = await count_active_featured(session, now)

        assert [p.name for p in programs] == ["Top Organic", "Lapsed Slot"]
        assert featured == []
        assert active == 0
        assert is_feature_active(expired, now) is False
        assert serialize_program(expired, now)["isFeatured"] is False

    @pytest.mark.asyncio
    async def test_hidden_programs_excluded(self, async_db):
        await add_program(async_db, "Visible App")
        await add_program(async_db, "Hidden App", approval_status=False)

        async with async_db.session() as session:
            programs = await list_ranked_programs(session)
            slugs = await list_sitemap_slugs(session)

        assert [p.name for p in programs] == ["Visible App"]
        assert [slug for slug, _ in slugs] == ["visible-app"]

    @pytest.mark.asyncio
    async def test_category_and_search_filters(self, async_db):
        await add_program(async_db, "Writer AI", category="Artificial Intelligence")
        await add_program(async_db, "Ledger Pro", category="Fintech", tagline="Books for founders")

        async with async_db.session() as session:
            by_category = await list_ranked_programs(session, category="Fintech")
            by_query = await list_ranked_programs(session, query="FOUNDERS")

        assert [p.name for p in by_category] == ["Ledger Pro"]
        assert [p.name for p in by_query] == ["Ledger Pro"]

    @pytest.mark.asyncio
    async def test_limit_capped(self, async_db):
        for i in range(3):
            await add_program(async_db, f"Paged App {i}")

        async with async_db.session() as session:
            first_page = await list_ranked_programs(session, limit=2)
            second_page = await list_ranked_programs(session, limit=2, offset=2)

        assert len(first_page) == 2
        assert len(second_page) == 1


class TestFeaturedSlots:
    """Featured slot bookkeeping."""

    @pytest.mark.asyncio
    async def test_next_expiry_is_earliest(self, async_db):
        now = utc_now()
        soon = now + timedelta(days=2)
        await add_program(async_db, "Slot One", is_featured=True, featured_expires_at=soon)
        await add_program(async_db, "Slot Two", is_featured=True, featured_expires_at=now + timedelta(days=20))

        async with async_db.session() as session:
            assert await count_active_featured(session, now) == 2
            earliest = await next_featured_expiry(session, now)

        assert earliest.replace(tzinfo=None) == soon.replace(tzinfo=None)


class TestSimilarPrograms:
    """Related programs on the detail page."""

    @pytest.mark.asyncio
    async def test_same_category_then_fill(self, async_db):
        base = await add_program(async_db, "Base Tool", category="Marketing")
        sibling = await add_program(async_db, "Sibling Tool", category="Marketing")
        await add_program(async_db, "Other Tool", category="Fintech", trending_score=99)
        await add_program(async_db, "Another Tool", category="SaaS", trending_score=5)

        async with async_db.session() as session:
            similar = await list_similar_programs(session, base)

        names = [p.name for p in similar]
        assert names[0] == sibling.name
        assert names[1:] == ["Other Tool", "Another Tool"]
        assert base.name not in names
