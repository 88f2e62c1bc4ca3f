"""
Agent Creator — Design new specialist agents with the smart model tier.

generate_agent_profile() always returns a usable profile for a non-empty
topic: if the model fails or its JSON is missing required fields, a
generic persona is built from the topic and context instead.

Usage:
    context = await gather_topic_context("Beekeeping", original_question)
    draft = await generate_agent_profile("Beekeeping", context)
    agent = await AgentService(db).create_agent(user_id, draft)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from agenthub.agent.ai_errors import ValidationError, log_ai_error
from agenthub.agent.llm_json import string_list
from agenthub.services.anthropic_service import AnthropicService, LLMResponse, ModelTier, get_anthropic_service
from agenthub.services.web_search import (
    SearchResponse,
    WebSearchService,
    format_search_results,
    get_web_search_service,
)

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATION_STYLE = {
    "tone": "professional",
    "vocabulary": "mixed",
    "responseLength": "adaptive",
}
FALLBACK_CAPABILITIES = ["Answer questions", "Provide explanations", "Offer guidance"]

# Fields refine_agent_profile() may change, keyed by the names the model uses
REFINABLE_FIELDS = {
    "description": "description",
    "expertise": "expertise",
    "systemPrompt": "system_prompt",
    "capabilities": "capabilities",
}

ARCHITECT_SYSTEM_PROMPT = """You are an expert AI agent architect. Your job is to design comprehensive, specialized AI agent profiles with sophisticated system prompts.

When given a topic, create a detailed agent profile with a RICH, STRUCTURED system prompt that includes:

1. **Goal Statement**: Start with "🎯 Goal:" followed by what the agent does
2. **Backstory**: Start with "📖 Backstory:" explaining the agent's expertise and approach
3. **Core Competencies**: List specific skills and knowledge areas
4. **Operational Guidelines**: Clear rules for how the agent should behave (✅ do / ❌ don't)
5. **Approach**: How the agent thinks about problems

SYSTEM PROMPT REQUIREMENTS:
- Must make the agent BE the specialist, not explain what the specialist is
- Should be 300-500 words with clear structure and sections
- Use emojis for section headers
- Define clear boundaries and capabilities

Respond in JSON format with this exact structure:
{
  "name": "<agent name>",
  "description": "<1-2 sentence description>",
  "expertise": ["<area1>", "<area2>", ...],
  "systemPrompt": "<detailed system prompt for the agent>",
  "knowledgeBase": {
    "facts": ["<fact1>", "<fact2>", ...],
    "sources": ["<source1>", "<source2>", ...]
  },
  "capabilities": ["<capability1>", "<capability2>", ...],
  "conversationStyle": {
    "tone": "<professional|friendly|casual|formal>",
    "vocabulary": "<technical|simple|mixed>",
    "responseLength": "<concise|detailed|adaptive>"
  }
}"""

REFINE_SYSTEM_PROMPT = """You are an AI agent improvement specialist. Given an existing agent profile and user feedback, suggest specific improvements.

Respond in JSON format with only the fields that should be updated:
{
  "description": "<updated description if needed>",
  "expertise": ["<updated expertise if needed>"],
  "systemPrompt": "<updated system prompt if needed>",
  "capabilities": ["<updated capabilities if needed>"],
  "knowledgeBase": {
    "facts": ["<new or updated facts>"]
  }
}

Only include fields that need updating. If a field doesn't need changes, omit it."""

CURATOR_SYSTEM_PROMPT = """You are a knowledge curator. Generate a list of key facts and reliable sources for a given topic.

Respond in JSON format:
{
  "facts": ["<fact1>", "<fact2>", ...],
  "sources": ["<source1>", "<source2>", ...]
}

Facts should be accurate, verifiable, relevant and concise (1-2 sentences each).
Sources should be reputable, authoritative and publicly accessible."""


@dataclass
class KnowledgeBase:
    facts: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "facts": self.facts,
            "sources": self.sources,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass
class AgentProfileDraft:
    """A generated agent profile, not yet persisted."""
    name: str
    description: str
    expertise: List[str]
    system_prompt: str
    knowledge_base: KnowledgeBase = field(default_factory=KnowledgeBase)
    capabilities: List[str] = field(default_factory=list)
    conversation_style: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CONVERSATION_STYLE))
    is_fallback: bool = False
    llm_response: Optional[LLMResponse] = None  # Set when the model produced the profile

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "expertise": self.expertise,
            "systemPrompt": self.system_prompt,
            "knowledgeBase": self.knowledge_base.to_dict(),
            "capabilities": self.capabilities,
            "conversationStyle": self.conversation_style,
        }


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def create_fallback_profile(topic: str, context: str = "") -> AgentProfileDraft:
    """Generic persona built only from the topic and context."""
    title = _capitalize(topic.strip())
    lower = topic.strip().lower()
    system_prompt = f"""You are a specialized {title} Assistant with expertise in {lower}.

Your role is to provide helpful, accurate information and assistance related to {lower}.

Context: {context or "None provided."}

Guidelines:
- Stay within your area of expertise ({lower})
- Provide clear, accurate information
- If a question is outside your domain, acknowledge it politely
- Be helpful and professional in your responses
- Cite sources when possible"""
    return AgentProfileDraft(
        name=f"{title} Assistant",
        description=f"A specialized assistant focused on {lower} related questions and tasks.",
        expertise=[lower],
        system_prompt=system_prompt,
        knowledge_base=KnowledgeBase(facts=[], sources=[], last_updated=datetime.utcnow()),
        capabilities=list(FALLBACK_CAPABILITIES),
        conversation_style=dict(DEFAULT_CONVERSATION_STYLE),
        is_fallback=True,
    )


def _conversation_style(value: Any) -> Dict[str, str]:
    style = dict(DEFAULT_CONVERSATION_STYLE)
    if isinstance(value, dict):
        for key in style:
            if isinstance(value.get(key), str) and value[key].strip():
                style[key] = value[key].strip()
    return style


def _profile_prompt(topic: str, context: str) -> str:
    return f"""Create a specialized AI agent profile for: {topic}

Context: {context or "None provided."}

REQUIREMENTS FOR THE SYSTEM PROMPT:

1. **Structure**: A rich, well-organized system prompt (300-500 words) with these sections:
   - 🎯 Goal: (What the agent does in one sentence)
   - 📖 Backstory: (Agent's expertise and experience)
   - Core Competencies: (4-6 specific skills)
   - Operational Guidelines: (What the agent does ✅ and doesn't do ❌)
   - Approach/Mental Model: (How the agent thinks)

2. **Tone**: The agent must BE the {topic}, not explain what a {topic} is.
   - Start with "You are a {topic}." (not "You are a {topic} Assistant")

3. **Response Style**: Include guidance for concise, voice-friendly responses:
   - Keep responses under 500 words / 2500 characters
   - Be conversational and direct
   - Offer to elaborate if user needs more detail

Design a comprehensive, production-quality agent profile."""


async def generate_agent_profile(
    topic: str,
    context: str = "",
    api_key: Optional[str] = None,
    llm: Optional[AnthropicService] = None,
    user_id: Optional[str] = None,
) -> AgentProfileDraft:
    """
    Design an agent for `topic`.

    Raises:
        ValidationError: if the topic is empty.
    """
    if not isinstance(topic, str) or not topic.strip():
        raise ValidationError("Topic is required")
    topic = topic.strip()
    llm = llm or get_anthropic_service()

    try:
        data, response = await llm.send_json(
            _profile_prompt(topic, context),
            required=("name", "description", "expertise", "systemPrompt"),
            system_prompt=ARCHITECT_SYSTEM_PROMPT,
            tier=ModelTier.SMART,
            max_tokens=8192,
            temperature=0.7,
            enable_caching=True,
            api_key=api_key,
        )
        if not all(isinstance(data[k], str) for k in ("name", "description", "systemPrompt")):
            raise ValueError("name, description and systemPrompt must be strings")
    except Exception as e:
        log_ai_error(e, "agent-creation", user_id=user_id)
        logger.warning("[CREATOR] Using generic fallback profile for %r", topic)
        return create_fallback_profile(topic, context)

    expertise = data["expertise"]
    if isinstance(expertise, str):
        expertise = [expertise]
    expertise = string_list(expertise) or [topic]

    knowledge = data.get("knowledgeBase") if isinstance(data.get("knowledgeBase"), dict) else {}
    draft = AgentProfileDraft(
        name=data["name"].strip(),
        description=data["description"].strip(),
        expertise=expertise,
        system_prompt=data["systemPrompt"].strip(),
        knowledge_base=KnowledgeBase(
            facts=string_list(knowledge.get("facts")),
            sources=string_list(knowledge.get("sources")),
            last_updated=datetime.utcnow(),
        ),
        capabilities=string_list(data.get("capabilities")),
        conversation_style=_conversation_style(data.get("conversationStyle")),
        llm_response=response,
    )
    logger.info(
        "[CREATOR] Created profile %r (%d chars prompt, %d expertise) via %s",
        draft.name, len(draft.system_prompt), len(draft.expertise), response.model,
    )
    return draft


async def refine_agent_profile(
    agent: Any,
    feedback: str,
    llm: Optional[AnthropicService] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Changed fields for `agent` given user feedback, as agent attribute
    names. Empty dict when nothing usable comes back.
    """
    if not feedback or not feedback.strip():
        return {}
    llm = llm or get_anthropic_service()
    prompt = f"""Current Agent Profile:
Name: {agent.name}
Description: {agent.description}
Expertise: {", ".join(agent.expertise or [])}

User Feedback: {feedback}

What improvements should be made to this agent?"""

    try:
        data, _ = await llm.send_json(
            prompt,
            system_prompt=REFINE_SYSTEM_PROMPT,
            tier=ModelTier.SMART,
            max_tokens=2048,
            temperature=0.6,
            enable_caching=True,
            api_key=api_key,
        )
    except Exception as e:
        log_ai_error(e, "agent-refinement", agent_id=getattr(agent, "id", None))
        return {}

    updates: Dict[str, Any] = {}
    for key, attr in REFINABLE_FIELDS.items():
        value = data.get(key)
        if key in ("expertise", "capabilities"):
            items = string_list(value)
            if items:
                updates[attr] = items
        elif isinstance(value, str) and value.strip():
            updates[attr] = value.strip()

    knowledge = data.get("knowledgeBase")
    if isinstance(knowledge, dict):
        facts = string_list(knowledge.get("facts"))
        if facts:
            updates["knowledge_facts"] = facts
    return updates


async def generate_knowledge_base(
    topic: str,
    expertise: List[str],
    llm: Optional[AnthropicService] = None,
    api_key: Optional[str] = None,
) -> KnowledgeBase:
    """Key facts and sources for a topic; empty lists on any failure."""
    llm = llm or get_anthropic_service()
    prompt = f"""Topic: {topic}
Expertise Areas: {", ".join(expertise or [])}

Generate 5-10 key facts and 3-5 reliable sources for this topic."""
    try:
        data, _ = await llm.send_json(
            prompt,
            system_prompt=CURATOR_SYSTEM_PROMPT,
            tier=ModelTier.SMART,
            max_tokens=2048,
            temperature=0.5,
            api_key=api_key,
        )
    except Exception as e:
        log_ai_error(e, "knowledge-base")
        return KnowledgeBase()
    return KnowledgeBase(
        facts=string_list(data.get("facts")),
        sources=string_list(data.get("sources")),
        last_updated=datetime.utcnow(),
    )


async def gather_topic_context(
    topic: str,
    original_question: str = "",
    search: Optional[WebSearchService] = None,
    api_key: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Web-search context for a new agent.

    Runs a general, a published-work and an academic query, each under
    the search timeout, and merges them by URL. Returns "" if nothing
    was found.
    """
    search = search or get_web_search_service()
    query = original_question or topic
    queries = [
        (query, 5),
        (f"{query} article OR blog OR published OR wrote", 5),
        (f"{query} research OR paper OR publication", 3),
    ]

    responses = []
    for q, count in queries:
        try:
            responses.append(await search.search_with_timeout(q, count=count, api_key=api_key, timeout=timeout))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_ai_error(e, "web-search-context")

    seen = set()
    merged = SearchResponse(query=query)
    for response in responses:
        for result in response.results:
            if result.url and result.url not in seen:
                seen.add(result.url)
                merged.results.append(result)

    if not merged.results:
        return ""

    logger.info("[CREATOR] %d unique search results for %r", merged.total_results, query)
    search_context = format_search_results(merged)
    instructions = """IMPORTANT INSTRUCTIONS:
- Use the above web search results to create an accurate, well-informed agent profile
- If articles or published content are found, the agent should reference these specific publications when responding
- Include specific titles, topics, and insights from the search results in the agent's knowledge base"""
    if original_question:
        return (
            f'User asked: "{original_question}". Create an agent to handle this type of question.\n\n'
            f"WEB SEARCH RESULTS:\n{search_context}\n\n{instructions}"
        )
    return f"WEB SEARCH RESULTS:\n{search_context}\n\n{instructions}"
