"""
Agent Matcher — Route a question to the best agent in a user's roster.

Matching asks the fast tier to pick an agent and score the fit 0-100.
Confidence bands:
    >= 70   strong match, route automatically
    40-69   moderate match, offer the agent but don't force it
    < 40    weak match, consider creating a new agent

When the model is unavailable or returns something unusable, a
deterministic keyword scorer takes over. Its confidence is capped at
0.7, which equals the auto-route threshold, so a perfect keyword match
can still auto-route.

Nothing here writes to the database; callers persist any agent they
decide to create.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from agenthub.agent.ai_errors import log_ai_error
from agenthub.config import settings
from agenthub.services.anthropic_service import AnthropicService, ModelTier, get_anthropic_service

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE_CAP = 0.7
CREATE_FALLBACK_THRESHOLD = 0.3
MAX_DESCRIPTION_CHARS = 300
MAX_EXPERTISE_ITEMS = 15
MAX_CAPABILITY_ITEMS = 10

NO_AGENTS_REASONING = "No agents available to match against."
STRONG_MATCH_REASONING = "Existing agent is well-suited for this question"

TOPIC_STOPWORDS = {
    "what", "how", "when", "where", "which", "would", "could",
    "should", "about", "doing", "today",
}

COMMON_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "from", "as", "is", "was", "are", "were", "been", "be",
    "have", "has", "had", "do", "does", "did", "will", "would", "should",
    "could", "can", "may", "might", "must", "what", "when", "where", "who",
    "why", "how", "which", "this", "that", "these", "those", "there", "their",
}

MATCH_SYSTEM_PROMPT = """You are an intelligent agent matcher. Your job is to analyze a user's question and determine which specialized AI agent is best suited to answer it.

You will be given:
1. A user's question
2. A list of available agents with their expertise and capabilities

Your task:
- Analyze the question's topic, intent, and complexity
- Match it to the most appropriate agent based on expertise
- Provide a confidence score (0-100)
- Explain your reasoning

Respond in JSON format:
{
  "matchedAgentIndex": <index number or null>,
  "confidence": <0-100>,
  "reasoning": "<brief explanation>"
}

Guidelines:
- Look for EXACT keyword matches in agent name, expertise, or capabilities
- "Tableau" question -> Tableau agent (high confidence)
- "SQL" question -> Database agent (high confidence)
- Confidence >= 70: Strong match, route to this agent
- Confidence 40-69: Moderate match, suggest agent but ask user
- Confidence < 40: Weak match, suggest creating a new agent
- If no agent is suitable, set matchedAgentIndex to null
- IMPORTANT: Prioritize agents with matching technical terms/tools in their name or expertise"""

CREATE_SYSTEM_PROMPT = """You are an AI agent advisor. Analyze a user's question and determine if a new specialized agent should be created to handle it.

Consider:
- Is this a specialized domain that would benefit from a dedicated agent?
- Would this topic likely come up again?
- Is it different enough from existing agents?

Respond in JSON format:
{
  "shouldCreate": <true/false>,
  "suggestedTopic": "<topic name if true, empty if false>",
  "reasoning": "<brief explanation>"
}"""

SKILL_AWARE_SYSTEM_PROMPT = """You are an intelligent agent and skill matcher. Your job is to:
1. Analyze the user's question
2. Match it to the best agent based on expertise and available skills
3. Determine if a new agent or skill should be created
4. Provide confidence and reasoning

MATCHING RULES (FOLLOW IN ORDER):
1. Check existing skills first. If ANY agent's skill covers the question, match that agent with confidence 80-95.
   Broad skills cover their parts: a "European Weather" skill covers Madrid, Burgos and every other European city.
   Unit conversions belong to the same domain as the question.
2. Suggest a new skill only if an agent has related expertise but none of its skills covers the question.
3. Suggest a new agent only if the domain is completely different from ALL agents.

PRIORITY ORDER: Existing Skills > New Skill > New Agent

Respond in JSON format:
{
  "matchedAgentIndex": <index number, or -1 if no good match>,
  "confidence": <0-100>,
  "reasoning": "<explanation>",
  "suggestNewAgent": <true/false>,
  "suggestNewSkill": <true/false>,
  "suggestion": "<suggested agent topic or skill name, empty if none>"
}"""


@dataclass
class AgentMatchResult:
    matched_agent: Optional[Any]
    confidence: float  # 0-1
    reasoning: str
    source: str = "llm"  # "llm" | "keyword" | "none"

    @property
    def is_strong(self) -> bool:
        return self.matched_agent is not None and self.confidence >= settings.match_confidence_threshold

    def to_dict(self) -> Dict[str, Any]:
        agent = self.matched_agent
        return {
            "matchedAgentId": getattr(agent, "id", None) if agent is not None else None,
            "matchedAgentName": getattr(agent, "name", None) if agent is not None else None,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "source": self.source,
        }


@dataclass
class AgentCreationDecision:
    should_create: bool
    suggested_topic: str
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shouldCreate": self.should_create,
            "suggestedTopic": self.suggested_topic,
            "reasoning": self.reasoning,
        }


@dataclass
class SkillAwareMatch:
    match: AgentMatchResult
    suggest_new_agent: bool = False
    suggest_new_skill: bool = False
    suggestion: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = self.match.to_dict()
        data.update({
            "suggestNewAgent": self.suggest_new_agent,
            "suggestNewSkill": self.suggest_new_skill,
            "suggestion": self.suggestion,
        })
        return data


# ── Summaries ──

def _truncate(text: str, limit: int) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit - 3].rstrip() + "..."


def summarize_agent(agent: Any) -> Dict[str, str]:
    """Bounded description of an agent for a matching prompt."""
    return {
        "name": agent.name or "",
        "description": _truncate(agent.description or "", MAX_DESCRIPTION_CHARS),
        "expertise": ", ".join(list(agent.expertise or [])[:MAX_EXPERTISE_ITEMS]),
        "capabilities": ", ".join(list(agent.capabilities or [])[:MAX_CAPABILITY_ITEMS]),
    }


def _agents_block(agents: Sequence[Any], skills_by_agent: Optional[Dict[str, List[Any]]] = None) -> str:
    lines = []
    for i, agent in enumerate(agents):
        s = summarize_agent(agent)
        block = (
            f"{i}. {s['name']}\n"
            f"   Description: {s['description']}\n"
            f"   Expertise: {s['expertise']}\n"
            f"   Capabilities: {s['capabilities']}"
        )
        if skills_by_agent is not None:
            agent_skills = skills_by_agent.get(getattr(agent, "id", None), [])
            if agent_skills:
                skill_lines = "".join(f"\n     - {sk.name}: {sk.description}" for sk in agent_skills)
                block += f"\n   Existing Skills: {skill_lines}"
            else:
                block += "\n   Existing Skills: None"
        lines.append(block)
    return "\n\n".join(lines)


# ── Validation of model output ──

def _confidence_from(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return max(0.0, min(100.0, float(value))) / 100.0


def _agent_at(agents: Sequence[Any], index: Any) -> Optional[Any]:
    if isinstance(index, bool) or not isinstance(index, (int, float)):
        return None
    if int(index) != index:
        return None
    index = int(index)
    if 0 <= index < len(agents):
        return agents[index]
    return None


# ── Keyword fallback ──

def keyword_match(question: str, agents: Sequence[Any]) -> AgentMatchResult:
    """
    Deterministic scorer used when the model can't be consulted.

    +3 per expertise term found in the question, +2 if the agent's name
    appears, +1 per description word longer than 4 chars that appears.
    Confidence is min(score / 10, 0.7).
    """
    if not agents:
        return AgentMatchResult(None, 0.0, NO_AGENTS_REASONING, source="none")

    question_lower = (question or "").lower()
    best_agent = None
    best_score = 0

    for agent in agents:
        score = 0
        for term in agent.expertise or []:
            if term and term.lower() in question_lower:
                score += 3
        if agent.name and agent.name.lower() in question_lower:
            score += 2
        for word in (agent.description or "").lower().split(" "):
            if len(word) > 4 and word in question_lower:
                score += 1
        if score > best_score:
            best_score = score
            best_agent = agent

    confidence = min(best_score / 10, FALLBACK_CONFIDENCE_CAP)
    reasoning = (
        "Keyword-based match found (fallback method)"
        if confidence > 0.4
        else "No suitable agent found using keyword matching"
    )
    return AgentMatchResult(best_agent, confidence, reasoning, source="keyword")


# ── Public API ──

async def match_agent(
    question: str,
    agents: Sequence[Any],
    llm: Optional[AnthropicService] = None,
    api_key: Optional[str] = None,
    user_id: Optional[str] = None,
) -> AgentMatchResult:
    """Pick the agent best suited to answer `question`."""
    if not agents:
        return AgentMatchResult(None, 0.0, NO_AGENTS_REASONING, source="none")

    llm = llm or get_anthropic_service()
    prompt = f"""Question: "{question}"

Available Agents:
{_agents_block(agents)}

Analyze the question and determine the best agent match."""

    try:
        data, _ = await llm.send_json(
            prompt,
            required=("confidence", "reasoning"),
            system_prompt=MATCH_SYSTEM_PROMPT,
            tier=ModelTier.FAST,
            max_tokens=1024,
            temperature=0.3,
            api_key=api_key,
        )
        confidence = _confidence_from(data.get("confidence"))
        reasoning = data.get("reasoning")
        if confidence is None or not isinstance(reasoning, str):
            raise ValueError("confidence or reasoning has the wrong type")
    except Exception as e:
        log_ai_error(e, "agent-matching", user_id=user_id)
        return keyword_match(question, agents)

    matched = _agent_at(agents, data.get("matchedAgentIndex"))
    logger.info(
        "[MATCHER] %s (confidence %.2f)",
        matched.name if matched is not None else "no match", confidence,
    )
    return AgentMatchResult(matched, confidence if matched is not None else 0.0, reasoning)


def fallback_topic(question: str) -> str:
    """First content word of the question as '<Word> Expert'."""
    for word in (question or "").lower().split():
        if len(word) > 4 and word not in TOPIC_STOPWORDS:
            return word[0].upper() + word[1:] + " Expert"
    return "General Assistant"


async def should_create_new_agent(
    question: str,
    match_result: AgentMatchResult,
    llm: Optional[AnthropicService] = None,
    api_key: Optional[str] = None,
    user_id: Optional[str] = None,
) -> AgentCreationDecision:
    """Decide whether the question deserves a new specialist agent."""
    if match_result.confidence >= settings.match_confidence_threshold:
        return AgentCreationDecision(False, "", STRONG_MATCH_REASONING)

    llm = llm or get_anthropic_service()
    prompt = f"""Question: "{question}"

Current match confidence: {match_result.confidence * 100:.0f}%
Current match reasoning: {match_result.reasoning}

Should we create a new specialized agent for this question?"""

    try:
        data, _ = await llm.send_json(
            prompt,
            required=("shouldCreate",),
            system_prompt=CREATE_SYSTEM_PROMPT,
            tier=ModelTier.FAST,
            max_tokens=512,
            temperature=0.5,
            api_key=api_key,
        )
        if not isinstance(data.get("shouldCreate"), bool):
            raise ValueError("shouldCreate is not a boolean")
    except Exception as e:
        log_ai_error(e, "agent-creation-decision", user_id=user_id)
        return AgentCreationDecision(
            should_create=match_result.confidence < CREATE_FALLBACK_THRESHOLD,
            suggested_topic=fallback_topic(question),
            reasoning="Fallback: Low confidence match suggests new agent might be useful",
        )

    topic = data.get("suggestedTopic") if isinstance(data.get("suggestedTopic"), str) else ""
    should_create = data["shouldCreate"]
    if should_create and not topic.strip():
        topic = fallback_topic(question)
    reasoning = data.get("reasoning") if isinstance(data.get("reasoning"), str) else ""
    return AgentCreationDecision(should_create, topic.strip(), reasoning)


def extract_keywords(text: str) -> List[str]:
    """Significant words of `text`, lowercased, in first-seen order."""
    words = re.sub(r"[^\w\s]", "", (text or "").lower()).split()
    seen = []
    for word in words:
        if len(word) > 3 and word not in COMMON_WORDS and word not in seen:
            seen.append(word)
    return seen


def _significant_words(text: str) -> List[str]:
    return [w for w in text.lower().split() if len(w) > 3]


def is_duplicate_skill(suggestion: str, existing_skills: Sequence[Any]) -> bool:
    """True when `suggestion` shares 2+ significant words with an existing skill name."""
    suggestion_words = _significant_words(suggestion)
    for skill in existing_skills:
        skill_words = _significant_words(skill.name or "")
        overlap = [w for w in suggestion_words if any(sw in w or w in sw for sw in skill_words)]
        if len(overlap) >= 2:
            return True
    return False


async def match_with_skills(
    question: str,
    agents: Sequence[Any],
    skills_by_agent: Dict[str, List[Any]],
    llm: Optional[AnthropicService] = None,
    api_key: Optional[str] = None,
    user_id: Optional[str] = None,
) -> SkillAwareMatch:
    """
    Match considering each agent's skills, and say whether a new agent or
    a new skill for the matched agent would help.
    """
    if not agents:
        return SkillAwareMatch(
            AgentMatchResult(None, 0.0, NO_AGENTS_REASONING, source="none"),
            suggest_new_agent=True,
            suggestion="Create your first agent to get started!",
        )

    llm = llm or get_anthropic_service()
    prompt = f"""Question: "{question}"

Available Agents and Skills:
{_agents_block(agents, skills_by_agent)}

IMPORTANT: Before suggesting a new agent or skill, CHECK if any agent's EXISTING SKILLS already cover this question.

Analyze and determine the best match."""

    try:
        data, _ = await llm.send_json(
            prompt,
            required=("confidence", "reasoning"),
            system_prompt=SKILL_AWARE_SYSTEM_PROMPT,
            tier=ModelTier.FAST,
            max_tokens=2048,
            temperature=0.3,
            api_key=api_key,
        )
        confidence = _confidence_from(data.get("confidence"))
        reasoning = data.get("reasoning")
        if confidence is None or not isinstance(reasoning, str):
            raise ValueError("confidence or reasoning has the wrong type")
    except Exception as e:
        log_ai_error(e, "skill-aware-matching", user_id=user_id)
        fallback = keyword_match(question, agents)
        return SkillAwareMatch(
            fallback,
            suggest_new_agent=fallback.confidence < CREATE_FALLBACK_THRESHOLD,
            suggestion=fallback_topic(question) if fallback.confidence < CREATE_FALLBACK_THRESHOLD else "",
        )

    matched = _agent_at(agents, data.get("matchedAgentIndex"))
    suggest_new_skill = data.get("suggestNewSkill") is True
    suggestion = data.get("suggestion") if isinstance(data.get("suggestion"), str) else ""

    if suggest_new_skill and matched is not None and suggestion:
        if is_duplicate_skill(suggestion, skills_by_agent.get(getattr(matched, "id", None), [])):
            logger.info("[MATCHER] Similar skill already exists, dropping suggestion %r", suggestion)
            suggest_new_skill = False
            suggestion = ""

    return SkillAwareMatch(
        AgentMatchResult(matched, confidence if matched is not None else 0.0, reasoning),
        suggest_new_agent=data.get("suggestNewAgent") is True,
        suggest_new_skill=suggest_new_skill,
        suggestion=suggestion,
    )
