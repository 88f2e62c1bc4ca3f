"""
Agent Evolution — Review an agent's recent conversations and propose updates.

The smart tier analyzes the last ten messages. If it cannot produce a usable
answer, a word-frequency and response-length heuristic is used instead.
Suggestions are only proposals; AgentService.apply_evolution() persists them.

Usage:
    suggestion = await analyze_agent_performance(agent, conversation.messages)
    if suggestion.needs_improvement and suggestion.updated_fields:
        await AgentService(db).apply_evolution(agent.id, suggestion)
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from agenthub.agent.ai_errors import log_ai_error
from agenthub.agent.llm_json import string_list
from agenthub.services.anthropic_service import AnthropicService, LLMResponse, ModelTier, get_anthropic_service

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")
MIN_QUESTIONS_FOR_HEURISTICS = 5
BRIEF_RESPONSE_CHARS = 100
VERBOSE_RESPONSE_CHARS = 1000
HEURISTIC_STOPWORDS = {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for"}

ANALYST_SYSTEM_PROMPT = """You are an AI agent performance analyst. Your job is to analyze an agent's performance based on recent conversations and suggest improvements.

Analyze:
1. Response quality and relevance
2. Knowledge gaps
3. Tone and style consistency
4. Capability coverage
5. Areas for expansion

Respond in JSON format:
{
  "needsImprovement": <true/false>,
  "suggestions": ["<suggestion1>", "<suggestion2>", ...],
  "updatedFields": {
    "expertise": ["<updated expertise if needed>"],
    "capabilities": ["<updated capabilities if needed>"],
    "knowledgeBase": {
      "facts": ["<new facts to add>"]
    },
    "systemPrompt": "<updated system prompt if needed>"
  },
  "reasoning": "<explanation of why improvements are needed>",
  "priority": "<low|medium|high>"
}

Only include fields in updatedFields that actually need updating."""

GAP_SYSTEM_PROMPT = """You are a knowledge gap analyst. Identify what knowledge an AI agent is missing based on questions it couldn't answer well.

Respond in JSON format:
{
  "gaps": ["<gap1>", "<gap2>", ...],
  "suggestedFacts": ["<fact1>", "<fact2>", ...],
  "suggestedSources": ["<source1>", "<source2>", ...]
}"""

CAPABILITY_SYSTEM_PROMPT = """You are a capability advisor. Based on user requests, suggest new capabilities an AI agent should have.

Respond with a JSON array of capability strings:
["<capability1>", "<capability2>", ...]

Capabilities should be specific, actionable, relevant to the agent's domain and not already in the agent's current capabilities."""


@dataclass
class EvolutionSuggestion:
    needs_improvement: bool
    suggestions: List[str] = field(default_factory=list)
    # Keys limited to expertise, capabilities, knowledge_facts, system_prompt
    updated_fields: Dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""
    priority: str = "low"
    llm_response: Optional[LLMResponse] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "needsImprovement": self.needs_improvement,
            "suggestions": self.suggestions,
            "updatedFields": self.updated_fields,
            "reasoning": self.reasoning,
            "priority": self.priority,
        }


@dataclass
class KnowledgeGaps:
    gaps: List[str] = field(default_factory=list)
    suggested_facts: List[str] = field(default_factory=list)
    suggested_sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gaps": self.gaps,
            "suggestedFacts": self.suggested_facts,
            "suggestedSources": self.suggested_sources,
        }


def _field(message: Any, name: str) -> Any:
    if isinstance(message, dict):
        return message.get(name)
    return getattr(message, name, None)


def calculate_evolution_priority(agent: Any) -> str:
    """High for heavily used agents that often fail, medium for moderate use."""
    handled = agent.questions_handled or 0
    success = agent.success_rate or 0.0
    if handled > 20 and success < 0.7:
        return "high"
    if handled > 10 and success < 0.85:
        return "medium"
    return "low"


def _summarize_messages(messages: Sequence[Any]) -> str:
    lines = []
    for i, msg in enumerate(list(messages)[-10:], 1):
        content = str(_field(msg, "content") or "")
        lines.append(f"{i}. [{_field(msg, 'role')}]: {content[:200]}")
    return "\n".join(lines)


def _whitelist_fields(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    updated: Dict[str, Any] = {}
    for key in ("expertise", "capabilities"):
        items = string_list(raw.get(key))
        if items:
            updated[key] = items
    knowledge = raw.get("knowledgeBase")
    if isinstance(knowledge, dict):
        facts = string_list(knowledge.get("facts"))
        if facts:
            updated["knowledge_facts"] = facts
    prompt = raw.get("systemPrompt")
    if isinstance(prompt, str) and prompt.strip():
        updated["system_prompt"] = prompt.strip()
    return updated


def _frequent_words(questions: List[str]) -> List[str]:
    counts: Counter = Counter()
    for question in questions:
        words = re.sub(r"[^\w\s]", "", question.lower()).split()
        counts.update(w for w in words if len(w) > 4 and w not in HEURISTIC_STOPWORDS)
    return [word for word, count in counts.most_common() if count > 1][:5]


def heuristic_analysis(agent: Any, messages: Sequence[Any]) -> EvolutionSuggestion:
    """Analysis without the model: repeated topics and response length."""
    if (agent.questions_handled or 0) < MIN_QUESTIONS_FOR_HEURISTICS:
        return EvolutionSuggestion(
            needs_improvement=False,
            suggestions=["Need more conversation data to analyze performance"],
            reasoning="Insufficient data for meaningful analysis",
            priority="low",
        )

    suggestions = []
    questions = [str(_field(m, "content") or "") for m in messages if _field(m, "role") == "user"]
    expertise = [e.lower() for e in (agent.expertise or [])]
    missing = [w for w in _frequent_words(questions) if not any(w in e for e in expertise)]
    if missing:
        suggestions.append(f"Consider adding expertise in: {', '.join(missing[:3])}")

    lengths = [len(str(_field(m, "content") or "")) for m in messages if _field(m, "role") == "assistant"]
    if lengths:
        average = sum(lengths) / len(lengths)
        if average < BRIEF_RESPONSE_CHARS:
            suggestions.append("Responses seem too brief, consider more detailed answers")
        elif average > VERBOSE_RESPONSE_CHARS:
            suggestions.append("Responses might be too verbose, consider being more concise")

    return EvolutionSuggestion(
        needs_improvement=bool(suggestions),
        suggestions=suggestions,
        reasoning="Basic heuristic analysis based on conversation patterns",
        priority=calculate_evolution_priority(agent),
    )


async def analyze_agent_performance(
    agent: Any,
    recent_messages: Sequence[Any],
    llm: Optional[AnthropicService] = None,
    api_key: Optional[str] = None,
    user_id: Optional[str] = None,
) -> EvolutionSuggestion:
    """
    Propose improvements for an agent from its recent messages.

    Args:
        agent: Agent row (or any object with the same attributes).
        recent_messages: Conversation messages, dicts or objects with role/content.

    Returns:
        An EvolutionSuggestion. Never raises on model failure.
    """
    if not recent_messages:
        return EvolutionSuggestion(
            needs_improvement=False,
            reasoning="No conversation data available for analysis",
        )

    llm = llm or get_anthropic_service()
    prompt = f"""Agent Profile:
Name: {agent.name}
Description: {agent.description}
Expertise: {", ".join(agent.expertise or [])}
Capabilities: {", ".join(agent.capabilities or [])}
Questions Handled: {agent.questions_handled or 0}

Recent Conversations:
{_summarize_messages(recent_messages)}

Analyze this agent's performance and suggest improvements if needed."""

    try:
        data, response = await llm.send_json(
            prompt,
            required=("needsImprovement",),
            system_prompt=ANALYST_SYSTEM_PROMPT,
            tier=ModelTier.SMART,
            max_tokens=3072,
            temperature=0.6,
            enable_caching=True,
            api_key=api_key,
        )
        if not isinstance(data["needsImprovement"], bool):
            raise ValueError("needsImprovement must be a boolean")
    except Exception as e:
        log_ai_error(e, "agent-evolution", user_id=user_id, agent_id=getattr(agent, "id", None))
        return heuristic_analysis(agent, recent_messages)

    priority = data.get("priority") if data.get("priority") in PRIORITIES else "low"
    suggestion = EvolutionSuggestion(
        needs_improvement=data["needsImprovement"],
        suggestions=string_list(data.get("suggestions")),
        updated_fields=_whitelist_fields(data.get("updatedFields")),
        reasoning=str(data.get("reasoning") or ""),
        priority=priority,
        llm_response=response,
    )
    logger.info(
        "[EVOLUTION] %s: needs_improvement=%s fields=%s priority=%s",
        agent.name, suggestion.needs_improvement, sorted(suggestion.updated_fields), priority,
    )
    return suggestion


async def identify_knowledge_gaps(
    agent: Any,
    failed_questions: Sequence[str],
    llm: Optional[AnthropicService] = None,
    api_key: Optional[str] = None,
) -> KnowledgeGaps:
    if not failed_questions:
        return KnowledgeGaps()
    llm = llm or get_anthropic_service()
    numbered = "\n".join(f"{i}. {q}" for i, q in enumerate(failed_questions, 1))
    prompt = f"""Agent: {agent.name}
Current Expertise: {", ".join(agent.expertise or [])}

Questions the agent struggled with:
{numbered}

What knowledge gaps exist and what should be added?"""
    try:
        data, _ = await llm.send_json(
            prompt,
            system_prompt=GAP_SYSTEM_PROMPT,
            tier=ModelTier.SMART,
            max_tokens=2048,
            temperature=0.5,
            api_key=api_key,
        )
    except Exception as e:
        log_ai_error(e, "knowledge-gaps", agent_id=getattr(agent, "id", None))
        return KnowledgeGaps()
    return KnowledgeGaps(
        gaps=string_list(data.get("gaps")),
        suggested_facts=string_list(data.get("suggestedFacts")),
        suggested_sources=string_list(data.get("suggestedSources")),
    )


async def suggest_new_capabilities(
    agent: Any,
    user_requests: Sequence[str],
    llm: Optional[AnthropicService] = None,
    api_key: Optional[str] = None,
) -> List[str]:
    if not user_requests:
        return []
    llm = llm or get_anthropic_service()
    numbered = "\n".join(f"{i}. {r}" for i, r in enumerate(user_requests, 1))
    prompt = f"""Agent: {agent.name}
Current Capabilities: {", ".join(agent.capabilities or [])}

User Requests:
{numbered}

What new capabilities should this agent have?"""
    try:
        data, _ = await llm.send_json(
            prompt,
            expect_array=True,
            system_prompt=CAPABILITY_SYSTEM_PROMPT,
            tier=ModelTier.SMART,
            max_tokens=1024,
            temperature=0.6,
            api_key=api_key,
        )
    except Exception as e:
        log_ai_error(e, "capability-suggestions", agent_id=getattr(agent, "id", None))
        return []
    existing = {c.lower() for c in (agent.capabilities or [])}
    return [c for c in string_list(data) if c.lower() not in existing]
