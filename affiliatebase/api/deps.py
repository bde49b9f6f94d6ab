"""FastAPI dependencies for the AffiliateBase API."""

import secrets
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status

from affiliatebase.core.settings import Settings
from affiliatebase.core.utils import get_client_ip
from affiliatebase.services.auth import COOKIE_NAME, LoginThrottle, verify_admin_token
from affiliatebase.services.metrics import AppMetrics
from affiliatebase.services.payments import StripeGateway
from affiliatebase.services.storage import LogoStorage
from affiliatebase.validation.network import ReachabilityChecker


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> LogoStorage:
    return request.app.state.storage


def get_payments(request: Request) -> StripeGateway:
    return request.app.state.payments


def get_reachability(request: Request) -> ReachabilityChecker:
    return request.app.state.reachability


def get_login_throttle(request: Request) -> LoginThrottle:
    return request.app.state.login_throttle


def get_metrics(request: Request) -> AppMetrics:
    return request.app.state.metrics


def client_ip(request: Request) -> str:
    fallback = request.client.host if request.client else None
    return get_client_ip(request.headers, fallback) or "unknown"


def admin_claims(request: Request) -> Optional[Dict[str, Any]]:
    """Claims of a valid admin cookie, or None."""
    return verify_admin_token(request.cookies.get(COOKIE_NAME), request.app.state.settings)


def require_admin(request: Request) -> Dict[str, Any]:
    """Reject the request unless it carries a valid admin token."""
    claims = admin_claims(request)
    if claims is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return claims


def require_cron(request: Request, settings: Settings = Depends(get_app_settings)) -> bool:
    """Check ``Authorization: Bearer {CRON_SECRET}``; unset secret rejects everything."""
    expected = settings.cron_secret
    provided = request.headers.get("authorization", "")

    if not expected or not secrets.compare_digest(provided.encode("utf-8"), f"Bearer {expected}".encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return True
