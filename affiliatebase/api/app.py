"""AffiliateBase FastAPI application."""

import re
import time
from contextlib import asynccontextmanager
from typing import List, Optional, Pattern, Tuple

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from affiliatebase.api.deps import admin_claims
from affiliatebase.api.routers import (
    admin, auth, cron, featured, health, metrics, programs, seo, tracking, uploads, validate, webhooks,
)
from affiliatebase.core.db import Database
from affiliatebase.core.logging import get_logger, setup_logging
from affiliatebase.core.settings import Settings, get_settings
from affiliatebase.services.auth import LoginThrottle
from affiliatebase.services.metrics import AppMetrics
from affiliatebase.services.payments import StripeGateway
from affiliatebase.services.storage import LogoStorage
from affiliatebase.validation.network import ReachabilityChecker, build_http_client

SERVICE_NAME = "affiliatebase"
VERSION = "0.1.0"

logger = get_logger(__name__)

_ID = r"[^/]+"

# Everything under /api/ needs an admin session unless listed here.
# Cron jobs carry their own bearer secret.
PUBLIC_API_ROUTES: List[Tuple[str, Pattern]] = [
    ("GET", re.compile(r"^/api/health$")),
    ("GET", re.compile(r"^/api/metrics(/clicks)?$")),
    ("GET", re.compile(r"^/api/programs(/.*)?$")),
    ("POST", re.compile(r"^/api/programs$")),
    ("POST", re.compile(rf"^/api/programs/{_ID}/(view|click|report)$")),
    ("POST", re.compile(r"^/api/track(/search)?$")),
    ("POST", re.compile(r"^/api/validate-url$")),
    ("*", re.compile(r"^/api/auth/login$")),
    ("GET", re.compile(r"^/api/featured/availability$")),
    ("POST", re.compile(r"^/api/featured/checkout$")),
    ("POST", re.compile(r"^/api/webhooks/stripe$")),
    ("POST", re.compile(r"^/api/upload/avatar$")),
    ("*", re.compile(r"^/api/cron/(update-scores|rotate|prune-logs)$")),
]


def is_public_route(method: str, path: str) -> bool:
    """True when ``method path`` may be called without an admin session."""
    if not path.startswith("/api/") or method == "OPTIONS":
        return True
    path = path.rstrip("/") or "/"
    return any(
        (allowed == "*" or allowed == method) and pattern.match(path)
        for allowed, pattern in PUBLIC_API_ROUTES
    )


def _route_label(request: Request) -> str:
    """Route template such as '/api/programs/{program_id}', so ids do not explode the label set."""
    route = request.scope.get("route")
    return getattr(route, "path", "unmatched")


def create_app(settings: Optional[Settings] = None,
               database: Optional[Database] = None,
               storage: Optional[LogoStorage] = None,
               payments: Optional[StripeGateway] = None,
               reachability: Optional[ReachabilityChecker] = None,
               login_throttle: Optional[LoginThrottle] = None,
               app_metrics: Optional[AppMetrics] = None) -> FastAPI:
    """
    Build the application.

    Collaborators that are not passed in are created from settings when the
    app starts and closed when it stops.

    Args:
        settings: Application settings (defaults to environment)
        database: Database engine wrapper
        storage: Logo storage
        payments: Stripe gateway
        reachability: URL reachability checker
        login_throttle: Failed-login limiter
        app_metrics: Prometheus collectors (a fresh registry by default)

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(SERVICE_NAME, settings)
        state = app.state
        owned_db = state.db is None
        owned_http = None
        owned_throttle = state.login_throttle is None

        if owned_db:
            state.db = Database.from_settings(settings)
        if state.reachability is None:
            owned_http = build_http_client(settings.reachability_timeout)
            state.reachability = ReachabilityChecker(owned_http)
        if state.storage is None:
            state.storage = LogoStorage.from_settings(settings)
        if state.payments is None:
            state.payments = StripeGateway.from_settings(settings)
        if owned_throttle:
            state.login_throttle = LoginThrottle.from_settings(settings)

        logger.info(f"{settings.app_name} API started", extra={"environment": settings.environment})
        try:
            yield
        finally:
            if owned_http is not None:
                await owned_http.aclose()
            if owned_throttle:
                await state.login_throttle.close()
            if owned_db:
                await state.db.dispose()
            logger.info(f"{settings.app_name} API stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Affiliate program directory API",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.db = database
    app.state.storage = storage
    app.state.payments = payments
    app.state.reachability = reachability
    app.state.login_throttle = login_throttle
    app.state.metrics = app_metrics or AppMetrics()

    @app.middleware("http")
    async def admin_gate(request: Request, call_next):
        if not is_public_route(request.method, request.url.path) and admin_claims(request) is None:
            logger.info("Blocked unauthenticated API call",
                        extra={"method": request.method, "path": request.url.path})
            return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
        return await call_next(request)

    @app.middleware("http")
    async def record_request(request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            app.state.metrics.request_failed(_route_label(request), e)
            raise
        app.state.metrics.observe_request(
            request.method, _route_label(request), response.status_code, time.perf_counter() - started
        )
        return response

    # outermost, so gate responses carry CORS headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    routers = (health, metrics, programs, tracking, validate, auth, admin, featured, webhooks, uploads, cron, seo)
    for module in routers:
        app.include_router(module.router)

    return app


def main() -> None:
    """Run the API with uvicorn."""
    uvicorn.run(
        "affiliatebase.api.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_config=None,
    )


if __name__ == "__main__":
    main()
