"""
Agent evolution tests
"""

import unittest
from types import SimpleNamespace

import pytest

from fake_llm import FakeLLM
from agenthub.services.agent_evolution import (
    analyze_agent_performance,
    calculate_evolution_priority,
    heuristic_analysis,
    identify_knowledge_gaps,
    suggest_new_capabilities,
)


def make_agent(handled=0, success=0.0, expertise=None, capabilities=None):
    return SimpleNamespace(
        id="agent-1",
        name="Fishing Guide",
        description="Freshwater fishing",
        expertise=expertise or ["bass"],
        capabilities=capabilities or ["Lure selection"],
        questions_handled=handled,
        success_rate=success,
    )


def chat(*pairs):
    messages = []
    for question, answer in pairs:
        messages.append({"role": "user", "content": question})
        messages.append({"role": "assistant", "content": answer})
    return messages


class TestPriority(unittest.TestCase):

    def test_bands(self):
        self.assertEqual(calculate_evolution_priority(make_agent(25, 0.5)), "high")
        self.assertEqual(calculate_evolution_priority(make_agent(15, 0.8)), "medium")
        self.assertEqual(calculate_evolution_priority(make_agent(25, 0.9)), "low")
        self.assertEqual(calculate_evolution_priority(make_agent(5, 0.1)), "low")


class TestHeuristics(unittest.TestCase):

    def test_insufficient_data(self):
        result = heuristic_analysis(make_agent(handled=2), chat(("q", "a")))
        self.assertFalse(result.needs_improvement)
        self.assertEqual(result.reasoning, "Insufficient data for meaningful analysis")

    def test_repeated_topics_and_brief_answers(self):
        messages = chat(
            ("Best walleye jigs for spring?", "Try jigs."),
            ("Where do walleye hold in spring?", "Deep water."),
        )
        result = heuristic_analysis(make_agent(handled=25, success=0.5), messages)
        self.assertTrue(result.needs_improvement)
        self.assertIn("Consider adding expertise in: walleye, spring", result.suggestions)
        self.assertIn("Responses seem too brief, consider more detailed answers", result.suggestions)
        self.assertEqual(result.priority, "high")

    def test_verbose_answers(self):
        messages = chat(("one", "x" * 1500), ("two", "y" * 1200))
        result = heuristic_analysis(make_agent(handled=6), messages)
        self.assertEqual(result.suggestions, ["Responses might be too verbose, consider being more concise"])


@pytest.mark.asyncio
async def test_no_messages():
    llm = FakeLLM()
    result = await analyze_agent_performance(make_agent(), [], llm=llm)
    assert not result.needs_improvement
    assert llm.calls == []


@pytest.mark.asyncio
async def test_model_suggestion_is_whitelisted():
    llm = FakeLLM({
        "needsImprovement": True,
        "suggestions": ["Cover walleye"],
        "updatedFields": {
            "expertise": ["bass", "walleye"],
            "knowledgeBase": {"facts": ["Walleye feed at dusk"]},
            "name": "Should be ignored",
        },
        "reasoning": "Walleye questions keep coming up",
        "priority": "urgent",
    })
    result = await analyze_agent_performance(make_agent(handled=8), chat(("walleye?", "dunno")), llm=llm)
    assert result.needs_improvement
    assert result.updated_fields == {"expertise": ["bass", "walleye"], "knowledge_facts": ["Walleye feed at dusk"]}
    assert result.priority == "low"
    assert result.llm_response is not None
    assert "[user]: walleye?" in llm.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_model_failure_uses_heuristics():
    llm = FakeLLM(default={"needsImprovement": "yes"})
    result = await analyze_agent_performance(make_agent(handled=1), chat(("q", "a")), llm=llm)
    assert result.reasoning == "Insufficient data for meaningful analysis"
    assert result.llm_response is None


@pytest.mark.asyncio
async def test_knowledge_gaps():
    llm = FakeLLM({"gaps": ["ice fishing"], "suggestedFacts": ["Auger safety"], "suggestedSources": []})
    gaps = await identify_knowledge_gaps(make_agent(), ["How thick must ice be?"], llm=llm)
    assert gaps.gaps == ["ice fishing"]
    assert gaps.suggested_facts == ["Auger safety"]
    assert (await identify_knowledge_gaps(make_agent(), [], llm=llm)).gaps == []


@pytest.mark.asyncio
async def test_new_capabilities_skip_existing():
    llm = FakeLLM('Here: ["lure selection", "Knot tying"]')
    capabilities = await suggest_new_capabilities(make_agent(), ["How do I tie a palomar?"], llm=llm)
    assert capabilities == ["Knot tying"]
