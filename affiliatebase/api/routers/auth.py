"""Admin login, logout and session check."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from affiliatebase.api.deps import admin_claims, client_ip, get_app_settings, get_login_throttle
from affiliatebase.core.logging import get_logger
from affiliatebase.core.settings import Settings
from affiliatebase.services.auth import (
    COOKIE_NAME, AuthConfigurationError, LoginThrottle, create_admin_token, verify_password,
)
from affiliatebase.validation.schemas import LoginRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth/login", tags=["auth"])


def _set_session_cookie(response: JSONResponse, token: str, settings: Settings) -> None:
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=settings.jwt_expire_hours * 3600,
        path="/",
        httponly=True,
        secure=True,
        samesite="strict",
    )


@router.post("")
async def login(
    body: LoginRequest,
    request: Request,
    settings: Settings = Depends(get_app_settings),
    throttle: LoginThrottle = Depends(get_login_throttle),
):
    """Exchange the admin password for a session cookie."""
    ip = client_ip(request)

    retry_after = await throttle.retry_after(ip)
    if retry_after is not None:
        logger.warning("Login throttled", extra={"ip": ip, "retry_after": retry_after})
        return JSONResponse(
            status_code=429,
            content={"error": "Too many login attempts", "retryAfter": retry_after},
            headers={"Retry-After": str(retry_after)},
        )

    if not body.password:
        return JSONResponse(status_code=400, content={"error": "Password is required"})

    try:
        valid = verify_password(body.password, settings)
        token = create_admin_token(settings) if valid else None
    except AuthConfigurationError as e:
        logger.error(f"Admin login unavailable: {e}")
        return JSONResponse(status_code=500, content={"error": "Server configuration error"})

    if token is None:
        remaining = await throttle.register_failure(ip)
        logger.info("Failed admin login", extra={"ip": ip, "attempts_remaining": remaining})
        return JSONResponse(
            status_code=401,
            content={"error": "Invalid password", "attemptsRemaining": remaining},
        )

    await throttle.reset(ip)
    response = JSONResponse(content={"success": True})
    _set_session_cookie(response, token, settings)
    logger.info("Admin logged in", extra={"ip": ip})
    return response


@router.delete("")
async def logout():
    """Clear the session cookie."""
    response = JSONResponse(content={"success": True})
    response.delete_cookie(COOKIE_NAME, path="/", httponly=True, secure=True, samesite="strict")
    return response


@router.get("")
async def session_status(request: Request):
    return {"authenticated": admin_claims(request) is not None}
