"""
Integration tests for the Directory Billing API.

Tests the full request/response cycle against the in-memory store.
"""


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_root_endpoint(self, async_client):
        response = await async_client.get("/")
        assert response.status_code == 200
        assert "message" in response.json()

    async def test_health_endpoint(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestListingFlow:
    """First listing starts a trial; the free quota then applies."""

    async def test_submit_requires_auth(self, async_client):
        response = await async_client.post("/api/listings", json={"url": "https://example.com"})
        assert response.status_code == 401

    async def test_first_listing_then_quota(self, async_client, auth_headers):
        headers = auth_headers("acct_1")

        first = await async_client.post(
            "/api/listings", json={"url": "https://example.com"}, headers=headers
        )
        assert first.status_code == 201
        assert first.json()["trial_started"] is True

        second = await async_client.post(
            "/api/listings", json={"url": "https://example.org"}, headers=headers
        )
        assert second.status_code == 409
        body = second.json()
        assert body["error"] == "QuotaExceededError"
        assert body["details"]["quota"] == 1

    async def test_entitlement_visible_after_first_listing(self, async_client, auth_headers):
        headers = auth_headers("acct_1")

        before = await async_client.get("/api/entitlements/me", headers=headers)
        assert before.status_code == 404

        await async_client.post(
            "/api/listings", json={"url": "https://example.com"}, headers=headers
        )

        after = await async_client.get("/api/entitlements/me", headers=headers)
        assert after.status_code == 200
        body = after.json()
        assert body["source"] == "trial"
        assert body["plan"] == "free"
        assert body["is_active"] is True
        assert body["quota"] == 1

    async def test_expired_token_rejected(self, async_client, make_token):
        token = make_token("acct_1", expires_in=-60)

        response = await async_client.get(
            "/api/entitlements/me", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401


class TestJobEndpoints:
    """Scheduler-triggered jobs require the cron secret."""

    async def test_reconcile_requires_secret(self, async_client):
        response = await async_client.get("/api/jobs/reconcile")
        assert response.status_code == 401

    async def test_reconcile_rejects_wrong_secret(self, async_client):
        response = await async_client.get(
            "/api/jobs/reconcile", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    async def test_reconcile_runs(self, async_client, cron_headers):
        response = await async_client.get("/api/jobs/reconcile", headers=cron_headers)

        assert response.status_code == 200
        body = response.json()
        assert set(body["notifications"]) == {
            "renewal_reminder",
            "trial_ending",
            "trial_ended",
            "refresh_needed",
            "refresh_included",
        }
        assert body["listings_synced"] == 0
