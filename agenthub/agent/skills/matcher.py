"""
Skill matcher — pick the skills relevant to a message and fold them into
the agent's system prompt.

Matching is two-stage: a cheap keyword pre-filter, then a fast-tier LLM
ranking. If the ranking call fails, every pre-filtered skill is kept at
a flat score so the agent still gets its skills.

Usage:
    matches = await match_skills_to_message(message, agent_skills)
    system_prompt = build_system_prompt_with_skills(agent.system_prompt, matches)
"""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from agenthub.agent.ai_errors import log_ai_error
from agenthub.agent.skills.base import SkillMatch
from agenthub.agent.skills.parser import parse_skill_content

logger = logging.getLogger(__name__)

MIN_RELEVANCE_SCORE = 60
FALLBACK_SCORE = 75
FALLBACK_REASONING = "Keyword match"

RANKING_SYSTEM_PROMPT = """You are an intelligent skill matcher. Given a user message and available skills, determine which skills are most relevant.

IMPORTANT MATCHING RULES:
1. **Geographic Coverage**: If a skill mentions "European" or "Europe", it covers ALL European countries (Spain, France, Germany, UK, Italy, etc.)
2. **Semantic Understanding**: "Madrid", "Barcelona", "Burgos" are Spanish cities and are covered by European skills
3. **Topic Coverage**: If a skill covers a broad topic, it includes specific subtopics
4. **Be Generous**: If there's reasonable overlap, match the skill

For each skill, provide a relevance score (0-100) and brief reasoning.

Respond in JSON format:
{
  "matches": [
    {
      "skillName": "skill-name",
      "score": 85,
      "reasoning": "This skill is relevant because..."
    }
  ]
}

Include skills with score >= 60."""

SKILL_AUTHOR_SYSTEM_PROMPT = """You are a skill creator. Generate a SKILL.md file for a specialized capability.

The skill must follow this format exactly:

---
name: skill-name
description: Clear description of what this skill does and when to use it
version: 1.0.0
---

# Skill Name

## Overview
Detailed overview of the skill's purpose and capabilities.

## Core Capabilities
- Capability 1
- Capability 2

## Guidelines
✅ DO:
- Guideline 1

❌ DON'T:
- Anti-pattern 1

## Examples
- Example usage 1

## Resources
- Reference 1

Create a comprehensive, production-ready skill."""


def skill_tags(skill: Any) -> List[str]:
    tags = getattr(skill, "tags", None)
    if tags is None:
        tags = (getattr(skill, "metadata_json", None) or {}).get("tags", [])
    return [t for t in (tags or []) if isinstance(t, str)]


def _message_words(message: str) -> List[str]:
    words = re.findall(r"[\w'-]+", message.lower())
    return [w.strip("'-") for w in words if len(w.strip("'-")) > 3]


def prefilter_skills(message: str, skills: Sequence[Any]) -> List[Any]:
    """Skills whose name, description or tags contain a word (>3 chars) of the message."""
    words = _message_words(message or "")
    if not words:
        return []
    relevant = []
    for skill in skills:
        search_text = " ".join(
            [skill.name or "", skill.description or "", " ".join(skill_tags(skill))]
        ).lower()
        if any(word in search_text for word in words):
            relevant.append(skill)
    return relevant


def _ranking_prompt(message: str, skills: Sequence[Any]) -> str:
    descriptions = "\n".join(
        f"- {s.name}: {s.description}\n  Tags: {', '.join(skill_tags(s))}" for s in skills
    )
    return f"""User message: "{message}"

Available skills:
{descriptions}

Which skills are most relevant? Consider geographic and semantic coverage."""


def _coerce_score(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return int(round(max(0.0, min(100.0, score))))


async def match_skills_to_message(
    message: str,
    skills: Sequence[Any],
    llm=None,
    api_key: Optional[str] = None,
    user_id: Optional[str] = None,
    agent_id: Optional[str] = None,
) -> List[SkillMatch]:
    """
    Rank `skills` against `message`.

    Returns matches with score >= 60, best first. An empty pre-filter
    returns [] without calling the model.
    """
    if not skills:
        return []

    relevant = prefilter_skills(message, skills)
    if not relevant:
        return []

    if llm is None:
        from agenthub.services.anthropic_service import get_anthropic_service
        llm = get_anthropic_service()

    try:
        data, _ = await llm.send_json(
            _ranking_prompt(message, relevant),
            required=("matches",),
            system_prompt=RANKING_SYSTEM_PROMPT,
            max_tokens=1024,
            temperature=0.3,
            api_key=api_key,
        )
        raw_matches = data.get("matches")
        if not isinstance(raw_matches, list):
            raise ValueError("matches is not a list")
    except Exception as e:
        log_ai_error(e, "skill-ranking", user_id=user_id, agent_id=agent_id)
        return [SkillMatch(skill, FALLBACK_SCORE, FALLBACK_REASONING) for skill in relevant]

    by_name = {s.name.lower(): s for s in relevant}
    matches: Dict[str, SkillMatch] = {}
    for item in raw_matches:
        if not isinstance(item, dict):
            continue
        skill = by_name.get(str(item.get("skillName", "")).lower())
        score = _coerce_score(item.get("score"))
        if skill is None or score is None or score < MIN_RELEVANCE_SCORE:
            continue
        reasoning = item.get("reasoning") if isinstance(item.get("reasoning"), str) else ""
        previous = matches.get(skill.name)
        if previous is None or previous.relevance_score < score:
            matches[skill.name] = SkillMatch(skill, score, reasoning)

    ranked = sorted(matches.values(), key=lambda m: m.relevance_score, reverse=True)
    logger.info("[SKILLS] %d/%d pre-filtered skills matched", len(ranked), len(relevant))
    return ranked


def _render_skill(match: SkillMatch) -> str:
    parsed = parse_skill_content(getattr(match.skill, "skill_content", ""))
    name = parsed.metadata.name or match.skill.name
    description = parsed.metadata.description or match.skill.description or ""
    capabilities = "\n".join(f"- {c}" for c in parsed.capabilities)
    dos = "\n".join(f"- {d}" for d in parsed.dos)
    donts = "\n".join(f"- {d}" for d in parsed.donts)
    return f"""
### Skill: {name}
{description}

{parsed.overview}

**Capabilities:**
{capabilities}

**Guidelines:**
DO:
{dos}

DON'T:
{donts}
"""


def build_system_prompt_with_skills(base_prompt: str, matches: Sequence[SkillMatch]) -> str:
    """Append the matched skills and usage directives to `base_prompt`."""
    if not matches:
        return base_prompt

    skills_section = "\n\n---\n\n".join(_render_skill(m) for m in matches)
    return f"""{base_prompt}

---

## Active Skills - USE THESE CONFIDENTLY

You have been enhanced with the following specialized skills. When a question matches these skills, USE THEM DIRECTLY to answer - don't ask for more details unless absolutely necessary:

{skills_section}

IMPORTANT:
- If the user's question falls within these skill areas, answer it directly using your enhanced knowledge
- Don't be overly cautious or ask for clarification if you can provide useful information
- Handle unit conversions within your domain (e.g., Fahrenheit/Celsius for weather, miles/km for distance)
- Use CONSISTENT units across all responses, or provide both when appropriate
- If user requests specific units, provide the answer in those units
- Only ask for clarification if the question is genuinely ambiguous or you need critical missing information"""


async def generate_skill(
    topic: str,
    description: str,
    agent_context: str,
    llm=None,
    api_key: Optional[str] = None,
) -> str:
    """Have the fast tier write a skill document. Errors propagate to the caller."""
    if llm is None:
        from agenthub.services.anthropic_service import get_anthropic_service
        llm = get_anthropic_service()

    prompt = f"""Create a skill for: {topic}

Description: {description}

Agent Context: {agent_context}

Generate the complete SKILL.md content."""
    response = await llm.send(
        prompt,
        system_prompt=SKILL_AUTHOR_SYSTEM_PROMPT,
        max_tokens=2048,
        temperature=0.7,
        api_key=api_key,
    )
    return response.content
