"""Shared fixtures: a throwaway SQLite database and an app wired with local fakes."""

from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from affiliatebase.api.app import create_app
from affiliatebase.core.db import Database
from affiliatebase.core.settings import Settings
from affiliatebase.services.auth import LoginThrottle
from affiliatebase.services.payments import StripeGateway
from affiliatebase.services.storage import LogoStorage
from affiliatebase.validation.network import ReachabilityChecker

from factories import ADMIN_PASSWORD, CRON_SECRET, JWT_SECRET, PUBLIC_URL, WEBHOOK_SECRET, run


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'affiliatebase.db'}",
        redis_url=None,
        environment="test",
        admin_password=ADMIN_PASSWORD,
        jwt_secret=JWT_SECRET,
        cron_secret=CRON_SECRET,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_featured_price_id="price_featured",
        minio_public_url=PUBLIC_URL,
        login_max_attempts=3,
    )


@pytest.fixture
def database(settings):
    """Database for synchronous API tests."""
    db = Database.from_settings(settings)
    run(db.create_all())
    yield db
    run(db.dispose())


@pytest_asyncio.fixture
async def async_db(settings):
    """Database for async repository and job tests."""
    db = Database.from_settings(settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def minio_client():
    client = MagicMock()
    client.bucket_exists.return_value = True
    return client


@pytest.fixture
def storage(settings, minio_client):
    return LogoStorage(minio_client, settings.minio_bucket, PUBLIC_URL, settings.max_logo_bytes)


@pytest.fixture
def upstream_status():
    """Status code answered by the fake remote site; tests may change it."""
    return {"code": 200, "calls": []}


@pytest.fixture
def reachability(upstream_status):
    def handler(request: httpx.Request) -> httpx.Response:
        upstream_status["calls"].append((request.method, str(request.url)))
        return httpx.Response(upstream_status["code"])

    return ReachabilityChecker(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.fixture
def app(settings, database, storage, reachability):
    return create_app(
        settings=settings,
        database=database,
        storage=storage,
        payments=StripeGateway.from_settings(settings),
        reachability=reachability,
        login_throttle=LoginThrottle(max_attempts=settings.login_max_attempts, window_seconds=900),
    )


@pytest.fixture
def client(app):
    # session cookie is Secure, so talk https
    with TestClient(app, base_url="https://testserver") as test_client:
        yield test_client


@pytest.fixture
def admin_client(client):
    response = client.post("/api/auth/login", json={"password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}
