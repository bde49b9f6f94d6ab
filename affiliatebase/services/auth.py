"""Admin authentication: password check, signed session tokens and login throttling."""

import secrets
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

import jwt
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from affiliatebase.core.logging import get_logger
from affiliatebase.core.settings import Settings
from affiliatebase.core.time import utc_now

logger = get_logger(__name__)

COOKIE_NAME = "affiliatebase_admin_token"
TOKEN_ISSUER = "affiliatebase"
TOKEN_AUDIENCE = "affiliatebase-admin"
TOKEN_ALGORITHM = "HS256"

# Upper bound on IPs tracked in process memory
MAX_TRACKED_IPS = 10_000


class AuthConfigurationError(RuntimeError):
    """ADMIN_PASSWORD or JWT_SECRET is missing."""


def verify_password(candidate: str, settings: Settings) -> bool:
    """Constant-time comparison against ADMIN_PASSWORD."""
    if not settings.admin_password:
        raise AuthConfigurationError("ADMIN_PASSWORD is not configured")
    return secrets.compare_digest(candidate.encode("utf-8"), settings.admin_password.encode("utf-8"))


def create_admin_token(settings: Settings, now: Optional[datetime] = None) -> str:
    """
    Issue a signed admin token.

    Args:
        settings: Application settings (JWT secret, number, lifetime)
        now: Issue time

    Returns:
        Encoded JWT
    """
    if not settings.jwt_secret:
        raise AuthConfigurationError("JWT_SECRET is not configured")

    now = now or utc_now()
    payload = {
        "role": "admin",
        "jwtNumber": settings.jwt_number,
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expire_hours),
        "iss": TOKEN_ISSUER,
        "aud": TOKEN_AUDIENCE,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=TOKEN_ALGORITHM)


def verify_admin_token(token: Optional[str], settings: Settings) -> Optional[Dict[str, Any]]:
    """
    Decode an admin token, checking signature, expiry, issuer and audience.

    Bumping JWT_NUMBER revokes every token issued before.

    Returns:
        Claims, or None when the token is missing or invalid
    """
    if not token or not settings.jwt_secret:
        return None

    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[TOKEN_ALGORITHM],
            issuer=TOKEN_ISSUER,
            audience=TOKEN_AUDIENCE,
            options={"require": ["exp", "iat", "iss", "aud"]},
        )
    except jwt.PyJWTError as e:
        logger.debug(f"Rejected admin token: {e}")
        return None

    if claims.get("role") != "admin" or claims.get("jwtNumber") != settings.jwt_number:
        return None
    return claims


class LoginThrottle:
    """
    Failed-login counter per client IP.

    Uses Redis when a client is given so limits hold across workers;
    otherwise keeps counts in process memory. Local entries whose window
    has passed are evicted on every failure, and at most ``max_tracked``
    IPs are kept.
    """

    def __init__(self, max_attempts: int = 5, window_seconds: int = 900,
                 redis_client: Optional[aioredis.Redis] = None,
                 max_tracked: int = MAX_TRACKED_IPS,
                 clock: Callable[[], float] = time.monotonic):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.redis = redis_client
        self.max_tracked = max_tracked
        self._clock = clock
        self._attempts: Dict[str, Tuple[int, float]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoginThrottle":
        redis_client = aioredis.from_url(settings.redis_url, decode_responses=True) if settings.redis_url else None
        return cls(
            max_attempts=settings.login_max_attempts,
            window_seconds=settings.login_window_minutes * 60,
            redis_client=redis_client,
        )

    @staticmethod
    def _key(ip: str) -> str:
        return f"affiliatebase:login:{ip}"

    async def retry_after(self, ip: str) -> Optional[int]:
        """Seconds until the IP may try again, or None if it is not blocked."""
        if self.redis is not None:
            try:
                count = await self.redis.get(self._key(ip))
                if count is not None and int(count) >= self.max_attempts:
                    ttl = await self.redis.ttl(self._key(ip))
                    return max(int(ttl), 1)
                return None
            except RedisError as e:
                logger.warning(f"Login throttle lookup failed, using local counts: {e}")

        entry = self._attempts.get(ip)
        if entry is None:
            return None

        count, last_attempt = entry
        elapsed = self._clock() - last_attempt
        if elapsed > self.window_seconds:
            self._attempts.pop(ip, None)
            return None
        if count >= self.max_attempts:
            return max(int(self.window_seconds - elapsed), 1)
        return None

    async def register_failure(self, ip: str) -> int:
        """Record a failed attempt and return how many attempts remain."""
        if self.redis is not None:
            try:
                count = await self.redis.incr(self._key(ip))
                await self.redis.expire(self._key(ip), self.window_seconds)
                return max(self.max_attempts - int(count), 0)
            except RedisError as e:
                logger.warning(f"Login throttle update failed, using local counts: {e}")

        now = self._clock()
        self._evict(now)

        count, _ = self._attempts.get(ip, (0, 0.0))
        self._attempts[ip] = (count + 1, now)
        return max(self.max_attempts - (count + 1), 0)

    def _evict(self, now: float) -> None:
        expired = [ip for ip, (_, last) in self._attempts.items() if now - last > self.window_seconds]
        for ip in expired:
            del self._attempts[ip]

        while self._attempts and len(self._attempts) >= self.max_tracked:
            oldest = min(self._attempts, key=lambda ip: self._attempts[ip][1])
            del self._attempts[oldest]

    async def reset(self, ip: str) -> None:
        self._attempts.pop(ip, None)
        if self.redis is not None:
            try:
                await self.redis.delete(self._key(ip))
            except RedisError as e:
                logger.warning(f"Login throttle reset failed: {e}")

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
