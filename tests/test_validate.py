"""API tests for live URL validation."""

import pytest


class TestValidateUrl:
    """POST /api/validate-url."""

    def test_reachable_url_cleaned(self, client, upstream_status):
        response = client.post("/api/validate-url", json={"url": "Acme-Tools.com/pricing?utm=x"})

        assert response.status_code == 200
        assert response.json() == {"isValid": True, "cleanedUrl": "https://acme-tools.com/pricing"}
        assert upstream_status["calls"] == [("HEAD", "https://acme-tools.com/pricing")]

    @pytest.mark.parametrize("url", ["https://bit.ly/abc", "https://acme.com/ref/jane"])
    def test_rule_violations_never_requested(self, client, upstream_status, url):
        response = client.post("/api/validate-url", json={"url": url})

        assert response.status_code == 200
        assert response.json()["isValid"] is False
        assert upstream_status["calls"] == []

    def test_not_found_reported_with_context(self, client, upstream_status):
        upstream_status["code"] = 404

        response = client.post("/api/validate-url", json={"url": "https://acme.com/gone", "context": "Affiliate Link"})

        data = response.json()
        assert data["isValid"] is False
        assert "Affiliate Link" in data["error"]

    def test_login_wall_passes(self, client, upstream_status):
        upstream_status["code"] = 403
        assert client.post("/api/validate-url", json={"url": "https://acme.com"}).json()["isValid"] is True

    def test_empty_url(self, client):
        response = client.post("/api/validate-url", json={"url": "  "})
        assert response.status_code == 400
        assert response.json() == {"isValid": False, "error": "URL is required"}
