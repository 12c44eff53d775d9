"""HTTP tests for admin dispute mediation, platform config, cron and health."""

from __future__ import annotations

import pytest

ADMIN = "/api/v1/admin"
CRON = "/api/v1/cron"
CRON_AUTH = {"Authorization": "Bearer cron-s3cret"}


class TestAdminAuth:
    @pytest.mark.asyncio
    async def test_missing_admin_header(self, client) -> None:
        response = await client.get(f"{ADMIN}/disputes")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_admin_forbidden(self, client) -> None:
        response = await client.get(f"{ADMIN}/disputes", headers={"X-Admin-Id": "worker-1"})
        assert response.status_code == 403


class TestDisputesApi:
    @pytest.mark.asyncio
    async def test_list_and_resolve_for_worker(self, client, market) -> None:
        deal = await market.disputed()
        headers = {"X-Admin-Id": "admin-2"}

        listed = await client.get(f"{ADMIN}/disputes", headers=headers)
        assert [a["id"] for a in listed.json()] == [str(deal.application_id)]

        resolved = await client.post(
            f"{ADMIN}/disputes/{deal.application_id}/resolve",
            json={"favor": "worker", "notes": "Work verified on site"},
            headers=headers,
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "completed"
        assert resolved.json()["payment_status"] == "released"

        again = await client.post(
            f"{ADMIN}/disputes/{deal.application_id}/resolve",
            json={"favor": "employer"},
            headers=headers,
        )
        assert again.status_code == 400
        assert again.json()["error"] == "DISPUTE_ALREADY_RESOLVED"

    @pytest.mark.asyncio
    async def test_resolve_for_employer(self, client, market) -> None:
        deal = await market.disputed()
        response = await client.post(
            f"{ADMIN}/disputes/{deal.application_id}/resolve",
            json={"favor": "employer"},
            headers={"X-Admin-Id": "admin-1"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "funded"
        assert response.json()["payment_status"] == "in_escrow"
        assert response.json()["completion_requested_at"] is None

    @pytest.mark.asyncio
    async def test_resolve_without_dispute(self, client, market) -> None:
        deal = await market.funded()
        response = await client.post(
            f"{ADMIN}/disputes/{deal.application_id}/resolve",
            json={"favor": "worker"},
            headers={"X-Admin-Id": "admin-1"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "NO_ACTIVE_DISPUTE"


class TestPlatformConfigApi:
    @pytest.mark.asyncio
    async def test_read_defaults_and_update(self, client) -> None:
        headers = {"X-Admin-Id": "admin-1"}

        current = await client.get(f"{ADMIN}/platform-config", headers=headers)
        assert current.json()["escrow_auto_release_days"] == 7

        updated = await client.put(
            f"{ADMIN}/platform-config",
            json={"escrow_auto_release_days": 3},
            headers=headers,
        )
        assert updated.status_code == 200
        assert updated.json()["escrow_auto_release_days"] == 3

        reread = await client.get(f"{ADMIN}/platform-config", headers=headers)
        assert reread.json()["escrow_auto_release_days"] == 3

    @pytest.mark.asyncio
    async def test_out_of_range_update(self, client) -> None:
        response = await client.put(
            f"{ADMIN}/platform-config",
            json={"platform_commission_percent": "75"},
            headers={"X-Admin-Id": "admin-1"},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INVALID_PLATFORM_CONFIG"
        assert body["errors"] == ["Commission must be between 0% and 50%"]


class TestCronApi:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "cron-s3cret"}],
    )
    async def test_sweep_requires_secret(self, client, headers) -> None:
        response = await client.post(f"{CRON}/sweep", headers=headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unset_secret_locks_cron(self, client, api_settings) -> None:
        api_settings.cron_secret = ""
        response = await client.post(f"{CRON}/sweep", headers={"Authorization": "Bearer "})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_sweep(self, client, market) -> None:
        await market.pending()
        response = await client.post(f"{CRON}/sweep", headers=CRON_AUTH)
        assert response.status_code == 200
        assert response.json()["processed"] == 1
        assert response.json()["failed"] == 0

    @pytest.mark.asyncio
    async def test_expire_single_gig(self, client, market) -> None:
        gig_id = await market.gig()
        response = await client.post(f"{CRON}/gigs/{gig_id}/expire", headers=CRON_AUTH)
        assert response.json() == {"gig_id": str(gig_id), "expired": False}

    @pytest.mark.asyncio
    async def test_auto_release_health_is_public(self, client) -> None:
        response = await client.get(f"{CRON}/auto-release")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "due_for_auto_release": 0}


class TestHealthApi:
    @pytest.mark.asyncio
    async def test_health(self, client) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["database"] == "healthy"
        assert response.headers["X-Request-ID"]
