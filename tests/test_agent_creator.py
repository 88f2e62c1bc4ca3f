"""
Agent profile generation tests
"""

from types import SimpleNamespace

import httpx
import pytest

from fake_llm import FakeLLM
from agenthub.agent.ai_errors import QuotaExceeded, ValidationError
from agenthub.services.agent_creator import (
    create_fallback_profile,
    gather_topic_context,
    generate_agent_profile,
    generate_knowledge_base,
    refine_agent_profile,
)
from agenthub.services.anthropic_service import ModelTier
from agenthub.services.web_search import WebSearchService


PROFILE = {
    "name": "Beekeeping Mentor",
    "description": "Helps hobbyists keep healthy hives.",
    "expertise": ["hive management", "varroa control", ""],
    "systemPrompt": "You are a Beekeeping Mentor. 🎯 Goal: healthy colonies.",
    "knowledgeBase": {"facts": ["Queens can live 5 years"], "sources": ["BBKA"]},
    "capabilities": ["Inspection checklists"],
    "conversationStyle": {"tone": "friendly", "vocabulary": 3},
}


def test_fallback_profile():
    draft = create_fallback_profile("beekeeping", "winter prep")
    assert draft.name == "Beekeeping Assistant"
    assert draft.expertise == ["beekeeping"]
    assert draft.capabilities == ["Answer questions", "Provide explanations", "Offer guidance"]
    assert "winter prep" in draft.system_prompt
    assert draft.is_fallback
    assert draft.llm_response is None


@pytest.mark.asyncio
async def test_generate_profile_from_model():
    llm = FakeLLM(PROFILE)
    draft = await generate_agent_profile("Beekeeping", "hobbyist", llm=llm)
    assert draft.name == "Beekeeping Mentor"
    assert draft.expertise == ["hive management", "varroa control"]
    assert draft.knowledge_base.facts == ["Queens can live 5 years"]
    assert draft.conversation_style == {"tone": "friendly", "vocabulary": "mixed", "responseLength": "adaptive"}
    assert not draft.is_fallback
    assert draft.llm_response.tier == ModelTier.SMART
    assert llm.calls[0]["enable_caching"] is True


@pytest.mark.asyncio
async def test_generate_profile_missing_fields_falls_back():
    llm = FakeLLM(default={"name": "Half", "description": "", "expertise": [], "systemPrompt": "x"})
    draft = await generate_agent_profile("Beekeeping", llm=llm)
    assert draft.is_fallback
    assert draft.name == "Beekeeping Assistant"


@pytest.mark.asyncio
async def test_generate_profile_upstream_error_falls_back():
    draft = await generate_agent_profile("tides", llm=FakeLLM(QuotaExceeded()))
    assert draft.name == "Tides Assistant"


@pytest.mark.asyncio
async def test_generate_profile_requires_topic():
    with pytest.raises(ValidationError):
        await generate_agent_profile("   ", llm=FakeLLM())


@pytest.mark.asyncio
async def test_refine_returns_only_changed_fields():
    agent = SimpleNamespace(id="a1", name="Bees", description="Bees", expertise=["bees"])
    llm = FakeLLM({
        "description": "Bees, honey and pollination",
        "expertise": ["bees", "honey"],
        "systemPrompt": "",
        "knowledgeBase": {"facts": ["Honey never spoils"]},
    })
    updates = await refine_agent_profile(agent, "Talk about honey too", llm=llm)
    assert updates == {
        "description": "Bees, honey and pollination",
        "expertise": ["bees", "honey"],
        "knowledge_facts": ["Honey never spoils"],
    }


@pytest.mark.asyncio
async def test_refine_failure_is_empty():
    agent = SimpleNamespace(id="a1", name="Bees", description="Bees", expertise=[])
    assert await refine_agent_profile(agent, "more", llm=FakeLLM(default="nah")) == {}
    assert await refine_agent_profile(agent, "   ", llm=FakeLLM()) == {}


@pytest.mark.asyncio
async def test_knowledge_base():
    kb = await generate_knowledge_base("Bees", ["hives"], llm=FakeLLM({"facts": ["f1"], "sources": ["s1", 2]}))
    assert kb.facts == ["f1"]
    assert kb.sources == ["s1"]


# ============ Web search context ============

def brave_transport(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        query = request.url.params["q"]
        results = [
            {"title": "Shared", "url": "https://bees.example/shared", "description": "same page"},
            {"title": f"Result for {query}", "url": f"https://bees.example/{len(requests)}", "description": "d"},
        ]
        return httpx.Response(200, json={"web": {"results": results}})
    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_gather_topic_context_merges_by_url():
    requests = []
    search = WebSearchService(api_key="brave-test", min_interval=0, transport=brave_transport(requests))
    context = await gather_topic_context("Beekeeping", "How do I start beekeeping?", search=search)
    assert len(requests) == 3
    assert requests[0].headers["X-Subscription-Token"] == "brave-test"
    assert context.startswith('User asked: "How do I start beekeeping?"')
    assert context.count("https://bees.example/shared") == 1
    assert "WEB SEARCH RESULTS:" in context


@pytest.mark.asyncio
async def test_gather_topic_context_without_key_is_empty():
    search = WebSearchService(api_key="", min_interval=0)
    search.api_key = None
    assert await gather_topic_context("Beekeeping", search=search) == ""


@pytest.mark.asyncio
async def test_search_http_error_is_empty():
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    search = WebSearchService(api_key="brave-test", min_interval=0, transport=transport)
    response = await search.search("bees")
    assert response.results == []
