"""
HTTP surface tests: health, stats, budget endpoints, CORS and error format
"""
import json

import httpx
import pytest

from agentcost.config import Settings
from agentcost.main import create_app
from tests.helpers import read_state

class TestHealth:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/", "/health"])
    async def test_health_descriptor(self, client, path):
        response = await client.get(path)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "agentcost-local-agent"
        assert "never logged" in data["privacy"]
        assert data["endpoints"]["budget"] == "/api/budget"
        assert data["proxy"]["openai"] == "/openai/v1/chat/completions"
        assert "X-Request-ID" in response.headers

class TestStats:

    @pytest.mark.asyncio
    async def test_fresh_stats_are_zero(self, client):
        response = await client.get("/stats")

        assert response.status_code == 200
        assert response.json() == {
            "totalInputTokens": 0,
            "totalOutputTokens": 0,
            "totalCost": 0.0,
            "byModel": {},
            "byDay": {},
            "requests": 0,
            "lastUpdated": None,
        }

    @pytest.mark.asyncio
    async def test_trailing_slash(self, client, usage_store):
        await usage_store.record_usage("openai", "gpt-4o", 10, 10)

        response = await client.get("/stats/")

        assert response.status_code == 200
        assert response.json()["requests"] == 1

    @pytest.mark.asyncio
    async def test_reset(self, client, usage_store):
        await usage_store.record_usage("anthropic", "claude-3-haiku", 10, 10)

        response = await client.post("/reset")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "message": "Stats reset"}
        stats = (await client.get("/stats")).json()
        assert stats["requests"] == 0
        assert stats["byModel"] == {}
        assert stats["lastUpdated"] is not None

    @pytest.mark.asyncio
    async def test_reset_leaves_budget_alone(self, client, budget_store):
        await budget_store.set_limits({"monthlyLimit": 50.0})

        await client.post("/reset")

        config = await budget_store.load_config()
        assert config.monthlyLimit == 50.0

class TestBudgetEndpoints:

    @pytest.mark.asyncio
    async def test_get_without_config(self, client):
        response = await client.get("/api/budget")

        assert response.status_code == 200
        data = response.json()
        assert data["config"] == {"dailyLimit": None, "monthlyLimit": None}
        assert data["daily"] == {"spent": 0.0, "limit": None, "remaining": None, "percentUsed": None}
        assert data["warningLevel"] == "none"

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_limit(self, client, budget_store):
        await client.post("/api/budget", json={"dailyLimit": 5, "monthlyLimit": 100})

        response = await client.post("/api/budget", json={"dailyLimit": 7.5})

        assert response.status_code == 200
        assert response.json()["config"] == {"dailyLimit": 7.5, "monthlyLimit": 100.0}
        state = read_state(budget_store.path)
        assert state["dailyLimit"] == 7.5
        assert state["monthlyLimit"] == 100.0
        assert state["createdAt"] is not None

    @pytest.mark.asyncio
    async def test_null_clears_limit(self, client):
        await client.post("/api/budget", json={"dailyLimit": 5, "monthlyLimit": 100})

        response = await client.post("/api/budget", json={"monthlyLimit": None})

        assert response.json()["config"] == {"dailyLimit": 5.0, "monthlyLimit": None}

    @pytest.mark.asyncio
    async def test_status_reflects_spend(self, client, usage_store):
        await usage_store.record_usage("anthropic", "claude-3-opus", 100_000, 0)  # $1.50
        await client.post("/api/budget", json={"dailyLimit": 2})

        data = (await client.get("/api/budget")).json()

        assert data["daily"]["spent"] == pytest.approx(1.5)
        assert data["daily"]["remaining"] == pytest.approx(0.5)
        assert data["daily"]["percentUsed"] == pytest.approx(75.0)
        assert data["monthly"]["spent"] == pytest.approx(1.5)
        assert data["warningLevel"] == "none"

    @pytest.mark.asyncio
    async def test_invalid_json(self, client, budget_store):
        response = await client.post(
            "/api/budget", content=b"{dailyLimit: 5", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON"
        assert not budget_store.path.exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"dailyLimit": 0},
        {"dailyLimit": -5},
        {"monthlyLimit": "lots"},
        [1, 2],
    ])
    async def test_invalid_limits_rejected_without_change(self, client, budget_store, payload):
        await client.post("/api/budget", json={"dailyLimit": 5})
        before = budget_store.path.read_text()

        response = await client.post("/api/budget", content=json.dumps(payload))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid budget configuration"
        assert budget_store.path.read_text() == before

class TestBudgetCheck:

    @pytest.mark.asyncio
    async def test_estimated_tokens_split_evenly(self, client):
        response = await client.get("/api/budget/check", params={"model": "gpt-4o", "estimatedTokens": 10000})

        assert response.status_code == 200
        data = response.json()
        # 5000 in at $2.50/M + 5000 out at $10/M
        assert data["estimatedCost"] == pytest.approx(0.0625)
        assert data["allowed"] is True
        assert data["blocked"] is False
        assert data["withinBudget"] is True
        assert data["warningLevel"] == "none"
        assert "suggestedModel" not in data
        assert "warning" not in data

    @pytest.mark.asyncio
    async def test_explicit_token_split(self, client):
        response = await client.get(
            "/api/budget/check",
            params={"model": "claude-sonnet-4", "inputTokens": 1000, "outputTokens": 500},
        )

        assert response.json()["estimatedCost"] == pytest.approx(0.0105)

    @pytest.mark.asyncio
    async def test_over_daily_remaining(self, client, usage_store):
        await usage_store.record_usage("anthropic", "claude-3-opus", 100_000, 0)  # $1.50
        await client.post("/api/budget", json={"dailyLimit": 1.6})

        response = await client.get(
            "/api/budget/check", params={"model": "claude-3-opus", "inputTokens": 100_000}
        )

        data = response.json()
        assert data["withinBudget"] is False
        assert data["allowed"] is False
        assert data["warningLevel"] == "high"
        assert data["suggestedModel"] == "claude-3-5-sonnet"

    @pytest.mark.asyncio
    async def test_check_does_not_mutate(self, client, settings):
        await client.get("/api/budget/check", params={"model": "gpt-4o", "estimatedTokens": 50})

        assert not settings.usage_path.exists()
        assert not settings.budget_path.exists()

    @pytest.mark.asyncio
    async def test_missing_model(self, client):
        response = await client.get("/api/budget/check", params={"estimatedTokens": 100})

        assert response.status_code == 400
        assert response.json() == {"error": "model parameter required"}

    @pytest.mark.asyncio
    async def test_negative_tokens(self, client):
        response = await client.get("/api/budget/check", params={"model": "gpt-4o", "inputTokens": -1})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

class TestCorsAndErrors:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/stats", "/anthropic/v1/messages", "/nowhere"])
    async def test_preflight_answered_locally(self, client, upstream, path):
        response = await client.options(path)

        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "*"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_cors_headers_on_normal_responses(self, client):
        response = await client.get("/stats")
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_cors_headers_on_relayed_responses(self, client, upstream):
        upstream.reply_json({}, headers={"access-control-allow-origin": "https://example.com"})

        response = await client.get("/openai/v1/models")

        assert response.headers["access-control-allow-origin"] == "https://example.com"
        assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"

    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/v1/messages")

        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_proxy_not_ready_without_lifespan(self, tmp_path):
        app = create_app(Settings(_env_file=None, DATA_DIR=str(tmp_path)))
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://localhost") as c:
            response = await c.post("/anthropic/v1/messages", content=b"{}")

        assert response.status_code == 503
        assert response.json() == {"error": "Proxy not ready"}
