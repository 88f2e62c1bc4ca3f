"""
Skill suggestion tests
"""

from types import SimpleNamespace

import pytest

from fake_llm import FakeLLM
from agenthub.agent.ai_errors import TransientServiceError
from agenthub.agent.skills import (
    analyze_question_for_skill_gap,
    generate_skill_content,
    get_common_skills_for_domain,
    parse_skill_content,
    suggest_skills_for_agent,
)

AGENT = SimpleNamespace(id="a1", name="Fishing Guide", description="Freshwater fishing", expertise=["bass"])
EXISTING = [SimpleNamespace(name="Bait Selection")]


def suggestion(name, priority="high", usefulness=0.9):
    return {
        "name": name,
        "description": f"{name} help",
        "category": "Fishing",
        "reasoning": "Asked often",
        "priority": priority,
        "estimatedUsefulness": usefulness,
    }


@pytest.mark.asyncio
async def test_suggestions_skip_existing_and_invalid():
    llm = FakeLLM([
        suggestion("bait selection"),
        suggestion("Ice Fishing", priority="urgent", usefulness=3),
        {"name": "No category", "description": "x"},
        suggestion("Knots"),
    ])
    result = await suggest_skills_for_agent(AGENT, ["how thick should ice be?"], EXISTING, llm=llm)
    assert [s.name for s in result] == ["Ice Fishing", "Knots"]
    assert result[0].priority == "medium"
    assert result[0].estimated_usefulness == 1.0
    assert "Existing Skills: Bait Selection" in llm.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_suggestions_capped_at_five():
    llm = FakeLLM([suggestion(f"Skill {i}") for i in range(8)])
    assert len(await suggest_skills_for_agent(AGENT, [], [], llm=llm)) == 5


@pytest.mark.asyncio
async def test_suggestions_failure_is_empty():
    assert await suggest_skills_for_agent(AGENT, [], [], llm=FakeLLM(TransientServiceError("down"))) == []


@pytest.mark.asyncio
async def test_skill_gap():
    llm = FakeLLM({"needsNewSkill": True, **suggestion("Ice Fishing")})
    gap = await analyze_question_for_skill_gap("ice?", AGENT, EXISTING, llm=llm)
    assert gap.name == "Ice Fishing"

    none = await analyze_question_for_skill_gap("bait?", AGENT, EXISTING, llm=FakeLLM({"needsNewSkill": False}))
    assert none is None


@pytest.mark.asyncio
async def test_generate_skill_content_falls_back_to_template():
    content = await generate_skill_content("Knots", "Fishing knots", "Fishing Guide", llm=FakeLLM(default="  "))
    parsed = parse_skill_content(content)
    assert parsed.metadata.name == "knots"
    assert "Core functionality related to Knots" in parsed.capabilities
    assert parsed.dos == ["Follow established patterns", "Test thoroughly", "Document your work"]


def test_common_skills_for_domain():
    assert [s.name for s in get_common_skills_for_domain("Bass Fishing")][1] == "Bait Selection"
    generic = get_common_skills_for_domain("Pottery")
    assert generic[0].name == "Pottery Fundamentals"
    assert len(generic) == 3
