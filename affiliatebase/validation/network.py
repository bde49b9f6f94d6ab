"""Outbound reachability checks for submitted URLs."""

from typing import NamedTuple, Optional

import httpx

from affiliatebase.core.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; AffiliateBaseBot/1.0; +https://affiliatebase.co)"


class ReachabilityResult(NamedTuple):
    """Result of a reachability check."""
    reachable: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


def build_http_client(timeout: float = 10.0) -> httpx.AsyncClient:
    """Shared client for outbound checks; owned by the application lifespan."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
    )


class ReachabilityChecker:
    """HEAD-then-GET check that fails closed on timeouts and transport errors."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _request(self, url: str) -> httpx.Response:
        try:
            response = await self.client.head(url)
        except httpx.TimeoutException:
            raise
        except httpx.HTTPError as e:
            logger.debug(f"HEAD failed for {url}, retrying with GET: {e}")
            response = None

        if response is None or response.status_code == 405:
            response = await self.client.get(url)

        return response

    async def check(self, url: str, context: str = "Website") -> ReachabilityResult:
        """
        Check that a URL answers with something other than 404/5xx.

        Args:
            url: Cleaned URL to check
            context: Field label used in error messages ("Website", "Affiliate Link")

        Returns:
            ReachabilityResult; ``reachable`` is False on 404, 5xx, timeout or connection error
        """
        try:
            response = await self._request(url)
        except httpx.TimeoutException:
            logger.info(f"Reachability timeout for {url}")
            return ReachabilityResult(
                reachable=False,
                error=f"We couldn't reach the {context} in time (Timeout). "
                      f"The site may be slow or blocking automated requests.",
            )
        except httpx.HTTPError as e:
            logger.info(f"Reachability error for {url}: {e}")
            return ReachabilityResult(
                reachable=False,
                error=f"We couldn't reach this domain ({context}). "
                      f"Please check if the website address is correct.",
            )

        status_code = response.status_code

        if status_code == 404:
            return ReachabilityResult(
                reachable=False,
                status_code=status_code,
                error=f"The {context} leads to a 404 Page Not Found. Please check for typos.",
            )

        if status_code >= 500:
            return ReachabilityResult(
                reachable=False,
                status_code=status_code,
                error=f"The {context} destination server is returning an error ({status_code}). Is the site down?",
            )

        # 2xx, 3xx, 401/403 (login walls) and anything else pass
        return ReachabilityResult(reachable=True, status_code=status_code)
