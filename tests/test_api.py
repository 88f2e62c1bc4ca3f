"""
Tests for the AgentHub HTTP API
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt

from fake_llm import FakeLLM
from agenthub.agent.ai_errors import QuotaExceeded
from agenthub.agent.rate_limiter import RateLimiter, RateLimiters
from agenthub.api.chat import get_llm, get_rate_limiters
from agenthub.config import settings
from agenthub.main import app
from agenthub.services.anthropic_service import ModelTier

PROFILE = {
    "name": "Beekeeping Mentor",
    "description": "Helps hobbyists keep healthy hives.",
    "expertise": ["beekeeping", "hive management"],
    "systemPrompt": "You are a Beekeeping Mentor.",
    "knowledgeBase": {"facts": ["Queens can live 5 years"], "sources": []},
    "capabilities": ["Inspection checklists"],
    "conversationStyle": {"tone": "friendly"},
}


@pytest.fixture
def fake_llm():
    return FakeLLM(default="Sure thing.")


@pytest.fixture
def limiters():
    return RateLimiters.from_settings()


@pytest_asyncio.fixture
async def client(setup_database, fake_llm, limiters):
    """Create an async test client with the model and limiters swapped out"""
    app.dependency_overrides[get_llm] = lambda: fake_llm
    app.dependency_overrides[get_rate_limiters] = lambda: limiters
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_agent(client: AsyncClient, fake_llm: FakeLLM) -> dict:
    fake_llm.replies.append(PROFILE)
    response = await client.post("/api/agents", json={"topic": "Beekeeping"})
    assert response.status_code == 201
    return response.json()["agent"]


# ============ Health & Auth ============

@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["database"] == "connected"
    assert data["anthropicConfigured"] is True


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient):
    response = await client.get("/api/agents", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_scopes_data_to_user(client: AsyncClient, fake_llm: FakeLLM):
    await create_agent(client, fake_llm)  # anonymous dev user
    token = jwt.encode({"sub": "alice@example.com"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    response = await client.get("/api/agents", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["agents"] == []


# ============ Chat ============

@pytest.mark.asyncio
async def test_chat_general_assistant(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.replies.append("**Hello** there, `friend`!")
    response = await client.post("/api/chat", json={
        "message": "hi",
        "conversationId": "session_test",
        "skipAgentMatching": True,
    })
    assert response.status_code == 200
    data = response.json()
    assert data["response"] == "Hello there, friend!"
    assert data["agentUsed"] is None
    assert data["usage"] == {"inputTokens": 100, "outputTokens": 50, "cachedTokens": 0}
    assert data["cost"] > 0

    conversation = (await client.get("/api/conversations/session_test")).json()["conversation"]
    assert [m["role"] for m in conversation["messages"]] == ["user", "assistant"]

    usage = (await client.get("/api/usage")).json()
    assert usage["currentMonth"]["requestCount"] == 1
    assert usage["currentMonth"]["claudeHaikuTokens"] == 150


@pytest.mark.asyncio
async def test_chat_suggests_new_agent(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.replies.extend([
        {"shouldCreate": True, "suggestedTopic": "Beekeeping", "reasoning": "Specialist domain"},
        "Bees need a dry hive.",
    ])
    response = await client.post("/api/chat", json={"message": "How do I keep bees over winter?"})
    assert response.status_code == 200
    data = response.json()
    assert data["suggestedAgent"]["topic"] == "Beekeeping"
    assert data["agentCreated"] is False
    assert data["conversationId"].startswith("session_")


@pytest.mark.asyncio
async def test_chat_auto_creates_agent(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.replies.extend([
        {"shouldCreate": True, "suggestedTopic": "Beekeeping", "reasoning": "Specialist domain"},
        PROFILE,
        "Keep the hive dry.",
    ])
    response = await client.post("/api/chat", json={
        "message": "How do I keep bees over winter?",
        "conversationId": "session_bees",
        "autoCreateAgent": True,
    })
    data = response.json()
    assert data["agentCreated"] is True
    assert data["agentUsed"]["name"] == "Beekeeping Mentor"
    assert fake_llm.calls[-1]["enable_caching"] is True
    assert "You are a Beekeeping Mentor." in fake_llm.calls[-1]["system_prompt"]

    conversation = (await client.get("/api/conversations/session_bees")).json()["conversation"]
    assert conversation["agentsSuggested"] == [data["agentUsed"]["id"]]

    agent = (await client.get(f"/api/agents/{data['agentUsed']['id']}")).json()["agent"]
    assert agent["performanceMetrics"]["questionsHandled"] == 1


@pytest.mark.asyncio
async def test_chat_auto_create_respects_smart_tier_limit(client: AsyncClient, fake_llm: FakeLLM, limiters: RateLimiters):
    limiters.smart_tier = RateLimiter(1, 60, name="smart")
    assert limiters.check_tier(ModelTier.SMART).allowed
    fake_llm.replies.extend([
        {"shouldCreate": True, "suggestedTopic": "Beekeeping", "reasoning": "Specialist domain"},
        "Keep the hive dry.",
    ])
    response = await client.post("/api/chat", json={"message": "how do I keep bees", "autoCreateAgent": True})
    assert response.status_code == 200
    data = response.json()
    assert data["agentCreated"] is False
    assert data["agentUsed"] is None
    assert data["suggestedAgent"]["topic"] == "Beekeeping"
    assert [call["tier"] for call in fake_llm.calls] == [ModelTier.FAST, ModelTier.FAST]
    assert (await client.get("/api/agents")).json()["agents"] == []


@pytest.mark.asyncio
async def test_chat_pinned_agent(client: AsyncClient, fake_llm: FakeLLM):
    agent = await create_agent(client, fake_llm)
    response = await client.post("/api/chat", json={"message": "Any tips?", "agentId": agent["id"]})
    data = response.json()
    assert data["agentUsed"]["id"] == agent["id"]
    assert data["match"]["source"] == "pinned"

    missing = await client.post("/api/chat", json={"message": "Any tips?", "agentId": "nope"})
    assert missing.status_code == 400


@pytest.mark.asyncio
async def test_chat_rate_limited(client: AsyncClient, limiters: RateLimiters):
    limiters.user = RateLimiter(1, 60, name="user")
    body = {"message": "hi", "skipAgentMatching": True}
    assert (await client.post("/api/chat", json=body)).status_code == 200

    response = await client.post("/api/chat", json=body)
    assert response.status_code == 429
    data = response.json()
    assert data["limitType"] == "rate"
    assert data["remaining"] == 0
    assert data["retryAfter"].endswith(("second", "seconds", "minute"))


@pytest.mark.asyncio
async def test_chat_upstream_quota_error(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.replies.append(QuotaExceeded())
    response = await client.post("/api/chat", json={"message": "hi", "skipAgentMatching": True})
    assert response.status_code == 402
    assert response.json()["code"] == "QUOTA_EXCEEDED"

    breakdown = await client.get("/api/usage")
    assert breakdown.json()["currentMonth"]["requestCount"] == 1


@pytest.mark.asyncio
async def test_chat_blank_message(client: AsyncClient):
    response = await client.post("/api/chat", json={"message": "   ", "skipAgentMatching": True})
    assert response.status_code == 400
    assert (await client.post("/api/chat", json={"message": ""})).status_code == 422


# ============ Agents ============

@pytest.mark.asyncio
async def test_agent_crud(client: AsyncClient, fake_llm: FakeLLM):
    agent = await create_agent(client, fake_llm)
    assert agent["name"] == "Beekeeping Mentor"
    assert agent["conversationStyle"]["tone"] == "friendly"

    listed = (await client.get("/api/agents")).json()["agents"]
    assert [a["id"] for a in listed] == [agent["id"]]

    patched = await client.patch(f"/api/agents/{agent['id']}", json={"systemPrompt": "You are a bee expert."})
    assert patched.json()["agent"]["systemPrompt"] == "You are a bee expert."
    assert patched.json()["agent"]["version"] == 2

    assert (await client.delete(f"/api/agents/{agent['id']}")).json() == {"success": True}
    assert (await client.get(f"/api/agents/{agent['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_create_agent_fallback_profile(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.default = "not json"
    response = await client.post("/api/agents", json={"topic": "pottery"})
    assert response.status_code == 201
    assert response.json()["fallback"] is True
    assert response.json()["agent"]["name"] == "Pottery Assistant"


@pytest.mark.asyncio
async def test_match_endpoint(client: AsyncClient, fake_llm: FakeLLM):
    agent = await create_agent(client, fake_llm)
    fake_llm.replies.append({
        "matchedAgentIndex": 0,
        "confidence": 88,
        "reasoning": "Beekeeping question",
        "suggestNewAgent": False,
        "suggestNewSkill": False,
        "suggestion": "",
    })
    response = await client.post("/api/agents/match", json={"question": "When do swarms happen?"})
    data = response.json()
    assert data["matchedAgentId"] == agent["id"]
    assert data["confidence"] == pytest.approx(0.88)


@pytest.mark.asyncio
async def test_refine_and_evolve(client: AsyncClient, fake_llm: FakeLLM):
    agent = await create_agent(client, fake_llm)
    fake_llm.replies.append({"description": "Bees and honey"})
    refined = (await client.post(f"/api/agents/{agent['id']}/refine", json={"feedback": "Mention honey"})).json()
    assert refined["updated"] is True
    assert refined["changedFields"] == ["description"]
    assert refined["agent"]["description"] == "Bees and honey"

    evolved = (await client.post(f"/api/agents/{agent['id']}/evolve", json={})).json()
    assert evolved["evolved"] is False
    assert evolved["suggestion"]["reasoning"] == "No conversation data available for analysis"


# ============ Skills ============

SKILL_DOC = """---
name: swarm-control
description: Preventing and catching swarms
version: 1.3.0
dependencies: hive-inspection
---

# Swarm Control

## Overview
Spotting swarm preparations early.

## Core Capabilities
- Identify queen cells
"""


@pytest.mark.asyncio
async def test_skill_crud(client: AsyncClient, fake_llm: FakeLLM):
    agent = await create_agent(client, fake_llm)
    created = await client.post("/api/skills", json={
        "agentId": agent["id"],
        "name": "Swarm Control",
        "description": "Preventing and catching swarms",
        "skillContent": SKILL_DOC,
        "metadata": {"tags": ["swarm"]},
    })
    assert created.status_code == 201
    skill = created.json()["skill"]
    assert skill["version"] == "1.3.0"
    assert skill["metadata"] == {"tags": ["swarm"], "dependencies": ["hive-inspection"]}

    found = (await client.get("/api/skills", params={"agentId": agent["id"], "q": "SWARM"})).json()["skills"]
    assert [s["id"] for s in found] == [skill["id"]]

    patched = await client.patch(f"/api/skills/{skill['id']}", json={"version": "1.4.0"})
    assert patched.json()["skill"]["version"] == "1.4.0"

    assert (await client.delete(f"/api/skills/{skill['id']}")).status_code == 200
    assert (await client.delete(f"/api/skills/{skill['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_skill_for_unknown_agent(client: AsyncClient):
    response = await client.post("/api/skills", json={
        "agentId": "missing", "name": "x", "description": "y", "skillContent": "z",
    })
    assert response.status_code == 404


# ============ Settings & Usage ============

@pytest.mark.asyncio
async def test_settings_keys_set_and_remove(client: AsyncClient):
    response = await client.put("/api/settings", json={
        "apiKeys": {"braveSearch": "brave-key"},
        "ai": {"responseLength": "detailed"},
    })
    assert response.status_code == 200
    assert response.json()["apiKeys"]["hasBraveSearch"] is True
    assert response.json()["ai"]["responseLength"] == "detailed"

    response = await client.put("/api/settings", json={"apiKeys": {"braveSearch": None}})
    assert response.json()["apiKeys"]["hasBraveSearch"] is False

    bad = await client.put("/api/settings", json={"monthlyBudget": -5})
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_voice_usage(client: AsyncClient):
    response = await client.post("/api/usage/voice", json={"characters": 600})
    assert response.status_code == 201
    assert response.json()["cost"] == pytest.approx(0.1)

    free = await client.post("/api/usage/voice", json={"characters": 600, "service": "web-speech"})
    assert free.json()["cost"] == 0.0

    bad = await client.post("/api/usage/voice", json={"characters": 600, "service": "claude-haiku"})
    assert bad.status_code == 400

    usage = (await client.get("/api/usage")).json()
    assert usage["currentMonth"]["elevenLabsCharacters"] == 600


@pytest.mark.asyncio
async def test_breakdown_range_validation(client: AsyncClient):
    response = await client.get("/api/usage/breakdown", params={
        "start": "2026-03-02T00:00:00", "end": "2026-03-01T00:00:00",
    })
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_recalculate_defaults_to_dry_run(client: AsyncClient):
    data = (await client.post("/api/usage/recalculate")).json()
    assert data["dryRun"] is True
    assert data["totalLogs"] == 0
