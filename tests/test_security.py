"""Security tests.

Tests:
- Security headers are present on responses, including errors
- Function endpoints only see the acting user's rows
- Rate limiting configuration
"""

from leados.extensions import db
from leados.models.campaign import Campaign


class TestSecurityHeaders:
    """Verify security headers are present on responses."""

    def test_basic_headers(self, client):
        response = client.get("/pricing")
        assert response.headers.get("X-Content-Type-Options") == "nosniff"
        assert response.headers.get("X-Frame-Options") == "DENY"
        assert response.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"

    def test_permissions_policy(self, client):
        pp = client.get("/pricing").headers.get("Permissions-Policy")
        assert "camera=()" in pp
        assert "microphone=()" in pp

    def test_csp_header(self, client):
        csp = client.get("/pricing").headers.get("Content-Security-Policy")
        assert "default-src 'none'" in csp
        assert "frame-ancestors 'none'" in csp

    def test_no_hsts_in_debug(self, client):
        assert client.get("/pricing").headers.get("Strict-Transport-Security") is None

    def test_headers_on_error_responses(self, client):
        response = client.get("/nonexistent-page")
        assert response.status_code == 404
        assert response.headers.get("X-Content-Type-Options") == "nosniff"

        response = client.post("/functions/v1/rag-chat", json={})
        assert response.status_code == 401
        assert response.headers.get("X-Frame-Options") == "DENY"


class TestCrossUserIsolation:
    """Explicit attempts to act on another user's rows through the service key."""

    def test_campaign_of_another_user_is_not_found(self, client, service_headers, seed_data):
        campaign = Campaign(user_id=seed_data["owner_id"], name="Privada", status="ativa")
        db.session.add(campaign)
        db.session.commit()

        resp = client.post("/functions/v1/email-campaign", headers=service_headers, json={
            "userId": seed_data["free_user_id"], "campaignId": campaign.id,
        })
        assert resp.status_code == 404

    def test_qualify_ignores_foreign_lead_ids(self, app, client, service_headers, seed_data, monkeypatch):
        monkeypatch.setitem(app.config, "GEMINI_API_KEY", "test-gemini-key")
        seed_data["free_user"].role = "admin"
        db.session.commit()

        resp = client.post("/functions/v1/qualify-leads", headers=service_headers, json={
            "userId": seed_data["free_user_id"], "leadIds": seed_data["lead_ids"],
        })
        assert resp.status_code == 200
        assert resp.get_json()["qualified"] == []


class TestRateLimiting:

    def test_rate_limiter_configured(self, app):
        # Disabled in tests, but the extension is initialized
        assert app.config.get("RATELIMIT_ENABLED") is False
        assert "limiter" in app.extensions
