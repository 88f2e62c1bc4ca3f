"""
Skill suggester — propose new skills for an agent from how it is used.

Every function here is best-effort: when the model call fails the caller
gets an empty list, None, or a template document.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from agenthub.agent.ai_errors import log_ai_error
from agenthub.agent.skills.parser import (
    CAPABILITIES_HEADER,
    DO_MARKER,
    DONT_MARKER,
    EXAMPLES_HEADER,
    OVERVIEW_HEADER,
    RESOURCES_HEADER,
    generate_skill_template,
)

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5
PRIORITIES = ("high", "medium", "low")


@dataclass
class SkillSuggestion:
    name: str
    description: str
    category: str
    reasoning: str
    priority: str = "medium"
    estimated_usefulness: float = 0.7

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "reasoning": self.reasoning,
            "priority": self.priority,
            "estimatedUsefulness": self.estimated_usefulness,
        }

    @classmethod
    def from_llm(cls, data: Dict[str, Any]) -> Optional["SkillSuggestion"]:
        name = data.get("name")
        description = data.get("description")
        category = data.get("category")
        if not all(isinstance(v, str) and v.strip() for v in (name, description, category)):
            return None
        priority = data.get("priority") if data.get("priority") in PRIORITIES else "medium"
        try:
            usefulness = float(data.get("estimatedUsefulness", 0.7))
        except (TypeError, ValueError):
            usefulness = 0.7
        return cls(
            name=name.strip(),
            description=description.strip(),
            category=category.strip(),
            reasoning=str(data.get("reasoning") or ""),
            priority=priority,
            estimated_usefulness=max(0.0, min(1.0, usefulness)),
        )


def _get_llm(llm):
    if llm is None:
        from agenthub.services.anthropic_service import get_anthropic_service
        llm = get_anthropic_service()
    return llm


async def suggest_skills_for_agent(
    agent: Any,
    recent_questions: Sequence[str],
    existing_skills: Sequence[Any],
    llm=None,
    api_key: Optional[str] = None,
) -> List[SkillSuggestion]:
    """Up to five new skills that would fill gaps seen in recent questions."""
    existing_names = ", ".join(s.name for s in existing_skills) or "None"
    questions = "\n".join(f"{i + 1}. {q}" for i, q in enumerate(list(recent_questions)[:10]))
    prompt = f"""You are analyzing an AI agent to suggest new skills that would enhance its capabilities.

AGENT PROFILE:
Name: {agent.name}
Description: {agent.description}
Expertise: {", ".join(agent.expertise or [])}
Existing Skills: {existing_names}

RECENT QUESTIONS HANDLED:
{questions or "None yet"}

TASK:
Suggest 3-5 new skills that would help this agent answer questions better. Each skill should:
1. Fill a gap in current capabilities
2. Be relevant to the agent's domain
3. Address patterns in recent questions
4. NOT duplicate existing skills

Return ONLY a valid JSON array with this exact structure:
[
  {{
    "name": "Skill name (concise, 2-4 words)",
    "description": "One sentence describing what this skill does",
    "category": "Category name",
    "reasoning": "Why this skill would be useful (1-2 sentences)",
    "priority": "high|medium|low",
    "estimatedUsefulness": 0.85
  }}
]"""
    try:
        data, _ = await _get_llm(llm).send_json(
            prompt, expect_array=True, max_tokens=2000, temperature=0.7, api_key=api_key,
        )
    except Exception as e:
        log_ai_error(e, "skill-suggestions", agent_id=getattr(agent, "id", None))
        return []

    existing_lower = {s.name.lower() for s in existing_skills}
    suggestions = []
    for item in data:
        suggestion = SkillSuggestion.from_llm(item) if isinstance(item, dict) else None
        if suggestion and suggestion.name.lower() not in existing_lower:
            suggestions.append(suggestion)
    return suggestions[:MAX_SUGGESTIONS]


def fallback_skill_content(name: str, description: str) -> str:
    return generate_skill_template(
        name,
        description,
        capabilities=[
            f"Core functionality related to {name}",
            "Supporting features and tools",
            "Integration with related systems",
        ],
        dos=["Follow established patterns", "Test thoroughly", "Document your work"],
        donts=["Skip verification of assumptions", "Ignore edge cases"],
        examples=[f"Questions about {name.lower()}"],
    )


async def generate_skill_content(
    skill_name: str,
    skill_description: str,
    agent_context: str,
    llm=None,
    api_key: Optional[str] = None,
) -> str:
    """A full skill document for a suggestion; a template when the model fails."""
    prompt = f"""Generate a comprehensive skill document in SKILL.md format.

SKILL NAME: {skill_name}
DESCRIPTION: {skill_description}
AGENT CONTEXT: {agent_context}

Use exactly these headers so the document can be parsed:

---
name: {skill_name.lower().replace(" ", "-")}
description: {skill_description}
version: 1.0.0
---

# {skill_name}

{OVERVIEW_HEADER}
[2-3 sentences. BE EXPLICIT about geographic/topic coverage, e.g. "covers ALL European countries including Spain, France, Germany".]

{CAPABILITIES_HEADER}
- [At least 5 specific capabilities]

## Guidelines
{DO_MARKER}
- Answer directly and confidently when questions fall within this skill's coverage
- Use consistent units throughout responses, or provide both
- [More guidelines]

{DONT_MARKER}
- Be too cautious when you have the expertise
- [More pitfalls]

{EXAMPLES_HEADER}
- [3-4 concrete examples]

{RESOURCES_HEADER}
- [Related concepts or references]"""
    try:
        response = await _get_llm(llm).send(
            prompt, max_tokens=3000, temperature=0.5, api_key=api_key,
        )
        if response.content.strip():
            return response.content
        logger.warning("[SKILLS] Empty skill document for %s, using template", skill_name)
    except Exception as e:
        log_ai_error(e, "skill-content")
    return fallback_skill_content(skill_name, skill_description)


async def analyze_question_for_skill_gap(
    question: str,
    agent: Any,
    existing_skills: Sequence[Any],
    llm=None,
    api_key: Optional[str] = None,
) -> Optional[SkillSuggestion]:
    """One skill suggestion if the question is outside the agent's current skills."""
    existing_names = ", ".join(s.name for s in existing_skills) or "None"
    prompt = f"""Analyze if this question reveals a skill gap for the agent.

AGENT: {agent.name} - {agent.description}
EXISTING SKILLS: {existing_names}
QUESTION: "{question}"

Does this question require knowledge that isn't covered by existing skills?

If YES, suggest ONE new skill. Return JSON:
{{
  "needsNewSkill": true,
  "name": "Skill name",
  "description": "Brief description",
  "category": "Category",
  "reasoning": "Why this skill is needed",
  "priority": "high|medium|low",
  "estimatedUsefulness": 0.8
}}

If NO, return:
{{
  "needsNewSkill": false
}}"""
    try:
        data, _ = await _get_llm(llm).send_json(
            prompt, required=("needsNewSkill",), max_tokens=500, temperature=0.3, api_key=api_key,
        )
    except Exception as e:
        log_ai_error(e, "skill-gap", agent_id=getattr(agent, "id", None))
        return None

    if data.get("needsNewSkill") is not True:
        return None
    return SkillSuggestion.from_llm(data)


COMMON_DOMAIN_SKILLS: Dict[str, List[SkillSuggestion]] = {
    "tableau": [
        SkillSuggestion("Calculated Fields", "Create custom calculations and formulas", "Tableau",
                        "Essential for data transformation and custom metrics", "high", 0.95),
        SkillSuggestion("LOD Expressions", "Level of Detail calculations for complex aggregations", "Tableau",
                        "Advanced technique for multi-level analysis", "high", 0.9),
        SkillSuggestion("Dashboard Design", "Best practices for creating effective dashboards", "Tableau",
                        "Critical for user experience and insights delivery", "medium", 0.85),
    ],
    "fishing": [
        SkillSuggestion("Seasonal Patterns", "Fish behavior and location by season", "Fishing",
                        "Timing is crucial for successful fishing", "high", 0.9),
        SkillSuggestion("Bait Selection", "Choosing the right bait for different species and conditions", "Fishing",
                        "Most common question from anglers", "high", 0.95),
        SkillSuggestion("Tackle Setup", "Rod, reel, and line configurations for different techniques", "Fishing",
                        "Proper equipment setup improves success rate", "medium", 0.8),
    ],
    "programming": [
        SkillSuggestion("Error Handling", "Best practices for catching and handling errors", "Programming",
                        "Critical for robust application development", "high", 0.9),
        SkillSuggestion("Code Optimization", "Techniques for improving performance and efficiency", "Programming",
                        "Essential for scalable applications", "medium", 0.85),
        SkillSuggestion("Testing Strategies", "Unit testing, integration testing, and test-driven development",
                        "Programming", "Ensures code quality and reliability", "high", 0.88),
    ],
}


def get_common_skills_for_domain(domain: str) -> List[SkillSuggestion]:
    """Predefined starter skills for known domains, generic ones otherwise."""
    domain_lower = (domain or "").strip().lower()
    if domain_lower:
        for key, skills in COMMON_DOMAIN_SKILLS.items():
            if key in domain_lower or domain_lower in key:
                return list(skills)

    logger.debug("[SKILLS] No predefined skills for domain %r", domain)
    return [
        SkillSuggestion(f"{domain} Fundamentals", f"Core concepts and best practices for {domain}", domain,
                        "Essential foundation for working effectively", "high", 0.9),
        SkillSuggestion(f"Advanced {domain} Techniques", "Advanced methods and optimization strategies", domain,
                        "Take your skills to the next level", "medium", 0.85),
        SkillSuggestion(f"{domain} Best Practices", "Industry standards and proven approaches", domain,
                        "Follow established patterns for success", "medium", 0.8),
    ]
