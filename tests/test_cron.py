"""API tests for the scheduled maintenance endpoints."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from affiliatebase.core.models import EVENT_CLICK, TrafficLog
from affiliatebase.core.time import utc_now

from factories import add_events, add_program, add_searches, add_traffic, fetch_program, run


def _traffic_rows(database) -> int:
    async def query():
        async with database.session() as session:
            return (await session.execute(select(func.count()).select_from(TrafficLog))).scalar()
    return run(query())


class TestCronAuth:
    """Bearer CRON_SECRET guard."""

    @pytest.mark.parametrize("path", ["/api/cron/update-scores", "/api/cron/rotate", "/api/cron/prune-logs"])
    def test_missing_bearer_rejected(self, client, path):
        assert client.get(path).status_code == 401

    def test_wrong_bearer_does_nothing(self, client, database):
        run(add_traffic(database, utc_now() - timedelta(days=60), count=2))

        response = client.post("/api/cron/prune-logs", headers={"Authorization": "Bearer guess"})

        assert response.status_code == 401
        assert _traffic_rows(database) == 2

    def test_unset_secret_rejects_everything(self, app, client, settings):
        app.state.settings = settings.model_copy(update={"cron_secret": None})
        response = client.get("/api/cron/rotate", headers={"Authorization": "Bearer None"})
        assert response.status_code == 401


class TestCronJobs:
    """Each job reports what it changed."""

    def test_update_scores(self, client, database, cron_headers):
        program = run(add_program(database, "Ledger Pro", created_at=utc_now() - timedelta(days=30)))
        run(add_program(database, "Other App", created_at=utc_now() - timedelta(days=30)))
        run(add_events(database, program.id, EVENT_CLICK, 2, created_at=utc_now()))

        response = client.post("/api/cron/update-scores", headers=cron_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "updatedCount": 2}
        assert run(fetch_program(database, program.id)).trending_score == 20.0

    def test_rotate_accepts_get(self, client, database, cron_headers):
        run(add_program(database, "Ledger Pro"))
        run(add_program(database, "Other App"))

        response = client.get("/api/cron/rotate", headers=cron_headers)

        assert response.json() == {"success": True, "rotatedCount": 2}

    def test_prune_logs(self, client, database, cron_headers):
        now = utc_now()
        run(add_traffic(database, now - timedelta(days=45), count=3))
        run(add_traffic(database, now, count=1))
        run(add_searches(database, now - timedelta(days=45), count=2))

        response = client.post("/api/cron/prune-logs", headers=cron_headers)

        assert response.json() == {"success": True, "prunedTraffic": 3, "prunedEvents": 0, "prunedSearches": 2}
        assert _traffic_rows(database) == 1
