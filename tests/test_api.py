"""
Tests for the HTTP surface.
"""

import pytest


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/gacha/tickets")
        assert response.status_code == 401
        assert response.json()["status"] == "error"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get(
            "/api/gacha/tickets", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_grant_requires_admin(self, client, auth_headers):
        response = await client.post(
            "/api/gacha/tickets/grant",
            json={"user_id": "alice", "amount": 5, "reason": "gift"},
            headers=auth_headers("alice"),
        )
        assert response.status_code == 403


class TestGachaRoutes:
    @pytest.mark.asyncio
    async def test_list_pools_and_rates(self, client):
        response = await client.get("/api/gacha/pools")
        assert response.status_code == 200
        assert [p["id"] for p in response.json()["data"]] == ["standard"]

        response = await client.get("/api/gacha/pools/standard/rates")
        data = response.json()["data"]
        assert data["rates"]["legendary"] == 2.0
        assert data["multi_cost"] == 9
        assert data["pity"]["guaranteed_rare_every"] == 10

    @pytest.mark.asyncio
    async def test_unknown_pool_rates(self, client):
        response = await client.get("/api/gacha/pools/missing/rates")
        assert response.status_code == 404
        assert response.json()["data"] == {"kind": "not_found", "action": "retry"}

    @pytest.mark.asyncio
    async def test_pull_without_tickets(self, client, auth_headers):
        response = await client.post(
            "/api/gacha/pull", json={"pool_id": "standard"}, headers=auth_headers("alice")
        )
        assert response.status_code == 402
        body = response.json()
        assert body["status"] == "error"
        assert body["data"] == {"kind": "insufficient_currency", "action": "top_up"}

    @pytest.mark.asyncio
    async def test_grant_then_pull(self, client, auth_headers):
        response = await client.post(
            "/api/gacha/tickets/grant",
            json={"user_id": "alice", "amount": 10, "reason": "welcome"},
            headers=auth_headers("admin", is_admin=True),
        )
        assert response.status_code == 200
        assert response.json()["data"]["current_tickets"] == 10

        response = await client.post(
            "/api/gacha/pull",
            json={"pool_id": "standard", "kind": "multi", "submission_id": "first-bundle"},
            headers=auth_headers("alice"),
        )
        assert response.status_code == 200
        outcome = response.json()["data"]
        assert outcome["completed"] == 10
        assert outcome["remaining_currency"] == 1

        history = await client.get("/api/gacha/history?limit=5", headers=auth_headers("alice"))
        assert len(history.json()["data"]) == 5

        stats = await client.get("/api/gacha/stats", headers=auth_headers("alice"))
        assert stats.json()["data"]["total_pulls"] == 10

        pity = await client.get("/api/gacha/pity-status", headers=auth_headers("alice"))
        assert pity.json()["data"]["pools"][0]["pool_id"] == "standard"

        collection = await client.get("/api/collection/", headers=auth_headers("alice"))
        assert collection.json()["data"]["stats"]["total_owned"] >= 1

    @pytest.mark.asyncio
    async def test_create_pool_validates_rates(self, client, auth_headers):
        response = await client.post(
            "/api/gacha/pools",
            json={
                "id": "lopsided",
                "name": "Lopsided",
                "rates": {"common": 0.9, "rare": 0.3, "epic": 0.0, "legendary": 0.0},
            },
            headers=auth_headers("admin", is_admin=True),
        )
        assert response.status_code == 500
        assert response.json()["data"]["kind"] == "configuration_error"

    @pytest.mark.asyncio
    async def test_create_pool(self, client, auth_headers):
        response = await client.post(
            "/api/gacha/pools",
            json={
                "id": "stoics",
                "name": "Stoic Banner",
                "cost": 2,
                "rates": {"common": 0.5, "rare": 0.3, "epic": 0.15, "legendary": 0.05},
                "featured_item_ids": ["marcus-aurelius"],
            },
            headers=auth_headers("admin", is_admin=True),
        )
        assert response.status_code == 200
        assert response.json()["data"]["multi_pull_cost"] == 18

    @pytest.mark.asyncio
    async def test_update_cost_reprices_bundle(self, client, auth_headers):
        admin = auth_headers("admin", is_admin=True)

        response = await client.put("/api/gacha/pools/standard", json={"cost": 3}, headers=admin)
        assert response.status_code == 200
        assert response.json()["data"]["multi_pull_cost"] == 27

        response = await client.put(
            "/api/gacha/pools/standard", json={"cost": 2, "multi_pull_cost": 15}, headers=admin
        )
        assert response.json()["data"]["multi_pull_cost"] == 15


class TestProgressionRoutes:
    @pytest.mark.asyncio
    async def test_experience_and_summary(self, client, auth_headers):
        response = await client.post(
            "/api/progression/experience", json={"amount": 250}, headers=auth_headers("bob")
        )
        assert response.status_code == 200
        assert response.json()["data"]["new_level"] == 2

        summary = await client.get("/api/progression/summary", headers=auth_headers("bob"))
        assert summary.json()["data"]["experience_to_next_level"] == 150

    @pytest.mark.asyncio
    async def test_negative_experience_is_validation_error(self, client, auth_headers):
        response = await client.post(
            "/api/progression/experience", json={"amount": -1}, headers=auth_headers("bob")
        )
        assert response.status_code == 422
        assert response.json()["message"] == "Validation error"

    @pytest.mark.asyncio
    async def test_queued_update(self, client, auth_headers, outbox):
        response = await client.post(
            "/api/progression/updates",
            json={"submission_id": "q1", "experience": 30, "immediate": False},
            headers=auth_headers("bob"),
        )
        assert response.json()["data"]["queued"]
        assert outbox.pending_for("bob")

    @pytest.mark.asyncio
    async def test_achievement_check(self, client, auth_headers):
        response = await client.post(
            "/api/progression/achievements/perfect_quiz/check",
            json={"score": 100},
            headers=auth_headers("bob"),
        )
        assert response.json()["data"]["unlocked"]

        response = await client.post(
            "/api/progression/achievements/unknown/check", headers=auth_headers("bob")
        )
        assert response.status_code == 404
