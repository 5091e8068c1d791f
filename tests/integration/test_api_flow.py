"""End-to-end HTTP tests through the FastAPI app with an in-memory database."""

from datetime import datetime, timedelta, timezone

import pytest

from tests.factories import AgentFactory


def _auth(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"}


# ===========================================
# AGENTS
# ===========================================


class TestAgentEndpoints:
    @pytest.mark.asyncio
    async def test_register_then_read_profile(self, client):
        resp = await client.post("/api/v1/agents/register", json={"name": "hypatia"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["api_key"].startswith("agora_")

        resp = await client.get("/api/v1/agents/me", headers=_auth(body["api_key"]))
        assert resp.status_code == 200
        assert resp.json()["name"] == "hypatia"
        assert resp.json()["points"] == 0

    @pytest.mark.asyncio
    async def test_invalid_name_rejected(self, client):
        resp = await client.post("/api/v1/agents/register", json={"name": "no spaces!"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_and_unknown_key(self, client):
        assert (await client.get("/api/v1/agents/me")).status_code == 401
        resp = await client.get("/api/v1/agents/me", headers=_auth("agora_not-a-real-key"))
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_banned_agent_forbidden(self, client, db):
        api_key = "agora_banned-agent-key-for-tests"
        await AgentFactory.create(
            db,
            api_key=api_key,
            banned_until=datetime.now(timezone.utc) + timedelta(days=3),
        )

        resp = await client.get("/api/v1/agents/me", headers=_auth(api_key))

        assert resp.status_code == 403
        assert "3 more day(s)" in resp.json()["detail"]["detail"]


# ===========================================
# DEBATES & ACTIONS
# ===========================================


class TestDebateFlow:
    @pytest.mark.asyncio
    async def test_create_post_and_react(self, client):
        keys = []
        for name in ("alpha", "beta"):
            resp = await client.post("/api/v1/agents/register", json={"name": name})
            keys.append(resp.json()["api_key"])

        resp = await client.post(
            "/api/v1/debates",
            json={"topic": "Is a hot dog a sandwich?", "kind": "debate", "category": "general"},
        )
        assert resp.status_code == 201
        debate_id = resp.json()["id"]
        assert resp.json()["creator_type"] == "human"

        resp = await client.post(
            f"/api/v1/debates/{debate_id}/messages",
            json={"content": "Structurally, yes."},
            headers=_auth(keys[0]),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["points_earned"] == 10
        assert body["bonus_details"] == {"inactive_debate": 8}
        assert body["bonus_points"] == 8
        assert body["triggered_bonuses"] == {"inactive_debate": 8}
        message_id = body["message"]["id"]

        resp = await client.post(f"/api/v1/messages/{message_id}/upvote", headers=_auth(keys[1]))
        assert resp.status_code == 200
        assert resp.json()["points_earned"] == 3
        assert resp.json()["message_deleted"] is False

        resp = await client.post(f"/api/v1/messages/{message_id}/upvote", headers=_auth(keys[1]))
        assert resp.status_code == 409

        resp = await client.post(f"/api/v1/messages/{message_id}/upvote", headers=_auth(keys[0]))
        assert resp.status_code == 400

        resp = await client.get(f"/api/v1/debates/{debate_id}")
        assert resp.status_code == 200
        detail = resp.json()
        assert detail["message_count"] == 1
        assert [p["name"] for p in detail["participants"]] == ["alpha"]
        assert detail["messages"][0]["upvotes"] == 1

    @pytest.mark.asyncio
    async def test_vote_cooldown_returns_retry_after(self, client):
        resp = await client.post("/api/v1/agents/register", json={"name": "voter"})
        key = resp.json()["api_key"]
        poll_ids = []
        for topic in ("First poll here", "Second poll here"):
            resp = await client.post(
                "/api/v1/debates",
                json={"topic": topic, "kind": "vote", "category": "news", "vote_options": ["a", "b"]},
            )
            poll_ids.append(resp.json()["id"])

        resp = await client.post(
            f"/api/v1/debates/{poll_ids[0]}/vote", json={"option": "a"}, headers=_auth(key)
        )
        assert resp.status_code == 201
        assert resp.json()["tally"] == {"a": 1, "b": 0}

        resp = await client.post(
            f"/api/v1/debates/{poll_ids[1]}/vote", json={"option": "a"}, headers=_auth(key)
        )
        assert resp.status_code == 429
        assert int(resp.headers["Retry-After"]) > 0
        assert resp.json()["detail"]["error"] == "rate_limited"

        resp = await client.get(f"/api/v1/debates/{poll_ids[0]}/votes")
        assert resp.json()["total_votes"] == 1

    @pytest.mark.asyncio
    async def test_list_and_search(self, client):
        for topic in ("Quantum chess rules", "Classical chess openings"):
            await client.post(
                "/api/v1/debates", json={"topic": topic, "kind": "debate", "category": "gaming"}
            )

        resp = await client.get("/api/v1/debates", params={"category": "gaming"})
        assert resp.json()["total"] == 2

        resp = await client.get("/api/v1/debates/search", params={"q": "quantum"})
        assert [d["topic"] for d in resp.json()["results"]] == ["Quantum chess rules"]

        resp = await client.get("/api/v1/debates/search", params={"q": "q"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_health_and_request_id(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.json() == {"status": "ok", "service": "agora"}
        assert resp.headers["X-Request-ID"] == "req-123"
