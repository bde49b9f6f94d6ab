"""Tests for the reachability check."""

import httpx
import pytest

from affiliatebase.validation.network import ReachabilityChecker


def _checker(handler) -> ReachabilityChecker:
    return ReachabilityChecker(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestReachabilityChecker:
    """HEAD then GET, failing closed on transport problems."""

    @pytest.mark.asyncio
    async def test_ok(self):
        checker = _checker(lambda request: httpx.Response(200))
        result = await checker.check("https://acme.com/")
        assert result.reachable is True
        assert result.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403, 301, 429])
    async def test_login_walls_and_redirects_pass(self, status_code):
        checker = _checker(lambda request: httpx.Response(status_code))
        result = await checker.check("https://acme.com/")
        assert result.reachable is True

    @pytest.mark.asyncio
    async def test_404_fails_with_context(self):
        checker = _checker(lambda request: httpx.Response(404))
        result = await checker.check("https://acme.com/missing", "Affiliate Link")
        assert result.reachable is False
        assert result.status_code == 404
        assert "Affiliate Link" in result.error

    @pytest.mark.asyncio
    async def test_server_error_fails(self):
        checker = _checker(lambda request: httpx.Response(503))
        result = await checker.check("https://acme.com/")
        assert result.reachable is False
        assert "(503)" in result.error

    @pytest.mark.asyncio
    async def test_head_not_allowed_falls_back_to_get(self):
        methods = []

        def handler(request):
            methods.append(request.method)
            return httpx.Response(405 if request.method == "HEAD" else 200)

        result = await _checker(handler).check("https://acme.com/")
        assert methods == ["HEAD", "GET"]
        assert result.reachable is True

    @pytest.mark.asyncio
    async def test_head_error_falls_back_to_get(self):
        methods = []

        def handler(request):
            methods.append(request.method)
            if request.method == "HEAD":
                raise httpx.RemoteProtocolError("bad HEAD", request=request)
            return httpx.Response(200)

        result = await _checker(handler).check("https://acme.com/")
        assert methods == ["HEAD", "GET"]
        assert result.reachable is True

    @pytest.mark.asyncio
    async def test_timeout_fails_closed(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        result = await _checker(handler).check("https://acme.com/")
        assert result.reachable is False
        assert "Timeout" in result.error

    @pytest.mark.asyncio
    async def test_connection_error_fails_closed(self):
        def handler(request):
            raise httpx.ConnectError("no route", request=request)

        result = await _checker(handler).check("https://acme.com/", "Website")
        assert result.reachable is False
        assert "Website" in result.error
