"""
Chat Service — One user message in, one agent answer out.

Pipeline for handle_message():

    sanitize → text correction → resolve API keys
    → trial limits (skipped with a personal key) → per-user limiter → fast-tier limiter
    → match agent (unless pinned) → create-or-suggest decision (creation needs
      the smart-tier limiter, else the topic is only suggested)
    → match the agent's skills → build the system prompt
    → fast-tier call → cost + one usage record → trial counters
    → agent/skill counters → conversation append

Limit violations come back as a ChatRejection rather than an exception so
the caller can show how long to wait. Upstream errors from the final
answer call propagate (after a failed usage record is written) and are
mapped to HTTP statuses by the API layer.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.agent.ai_errors import AIError, ValidationError, classify_error, sanitize_input
from agenthub.agent.rate_limiter import RateLimitDecision, RateLimiters, format_reset_time
from agenthub.agent.skills import build_system_prompt_with_skills, match_skills_to_message
from agenthub.agent.skills.base import SkillMatch
from agenthub.agent.structured_logging import Subsystem, get_subsystem_logger, set_request_context
from agenthub.agent.text_correction import correct_text
from agenthub.config import settings
from agenthub.db.models import Agent, RequestType
from agenthub.services.agent_creator import generate_agent_profile
from agenthub.services.agent_matcher import (
    AgentCreationDecision,
    AgentMatchResult,
    match_agent,
    should_create_new_agent,
)
from agenthub.services.agent_service import AgentService
from agenthub.services.anthropic_service import AnthropicService, ModelTier, get_anthropic_service
from agenthub.services.conversation_service import ConversationService, make_message
from agenthub.services.cost_calculator import SERVICE_FOR_TIER, calculate_token_cost
from agenthub.services.settings_service import DEFAULT_AI, SettingsService
from agenthub.services.skill_service import SkillService
from agenthub.services.usage_ledger import UsageLedger
from agenthub.services.usage_limits import UsageLimitService

logger = logging.getLogger(__name__)
chat_log = get_subsystem_logger(Subsystem.CHAT)

RESPONSE_LENGTH_INSTRUCTIONS = {
    "concise": "Maximum 3 sentences. Be extremely brief and direct.",
    "normal": "Keep responses clear and focused, typically 3-5 sentences.",
    "detailed": "Provide thorough explanations with examples when helpful.",
}
CONCISE_MAX_TEMPERATURE = 0.2

FORMATTING_RULES = """CRITICAL FORMATTING RULES (MUST FOLLOW):
- Your response may be READ ALOUD by voice synthesis
- Use ONLY plain conversational text - NO markdown formatting
- NO asterisks, hashtags, backticks, tables or code blocks
- NO bullet points or numbered lists
- Write as if speaking naturally to someone
- {length_instruction}
- EXCEPTION: You MAY include plain URLs (https://...) for resources you mention

CONVERSATION CONTEXT AWARENESS:
- You have access to the conversation history
- If the user changes topics, recognize the shift and adapt accordingly
- Answer each question on its own merits while being aware of the conversation flow

"""

GENERAL_ASSISTANT_PROMPT = """You are a helpful voice assistant. Answer questions clearly and conversationally.

Speak naturally. No formatting. No section headers. No lists of alternatives."""

_MARKDOWN_PATTERNS = [
    (re.compile(r"\*\*"), ""),
    (re.compile(r"\*"), ""),
    (re.compile(r"#{1,6}\s?"), ""),
    (re.compile(r"^-{3,}$", re.MULTILINE), ""),
    (re.compile(r"^={3,}$", re.MULTILINE), ""),
    (re.compile(r"^\|\s*.+\s*\|$", re.MULTILINE), ""),
    (re.compile(r"^-\s", re.MULTILINE), ""),
    (re.compile(r"`{1,3}"), ""),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
]


def clean_response(text: str) -> str:
    """Strip markdown that slipped through the formatting rules."""
    for pattern, replacement in _MARKDOWN_PATTERNS:
        text = pattern.sub(replacement, text)
    return text.strip()


@dataclass
class ChatRequest:
    message: str
    conversation_id: Optional[str] = None
    agent_id: Optional[str] = None  # Pin an agent and skip matching
    skip_agent_matching: bool = False
    auto_create_agent: bool = False
    voice_enabled: bool = False


@dataclass
class ChatRejection:
    """A request refused by a limit; nothing was sent upstream."""
    limit_type: str  # trial | rate | tier
    reason: str
    reset_time: float  # Epoch seconds
    remaining: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.reason,
            "limitType": self.limit_type,
            "remaining": self.remaining,
            "resetTime": self.reset_time,
            "retryAfter": format_reset_time(self.reset_time),
        }


@dataclass
class ChatResult:
    response: str
    conversation_id: str
    agent_used: Optional[Agent] = None
    match: Optional[AgentMatchResult] = None
    agent_created: bool = False
    suggested_agent: Optional[AgentCreationDecision] = None
    skills_used: List[SkillMatch] = field(default_factory=list)
    corrections: List[Dict[str, Any]] = field(default_factory=list)
    usage: Dict[str, int] = field(default_factory=dict)
    cost: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        agent = self.agent_used
        return {
            "response": self.response,
            "conversationId": self.conversation_id,
            "agentUsed": {"id": agent.id, "name": agent.name} if agent is not None else None,
            "match": self.match.to_dict() if self.match else None,
            "agentCreated": self.agent_created,
            "suggestedAgent": (
                {"topic": self.suggested_agent.suggested_topic, "reasoning": self.suggested_agent.reasoning}
                if self.suggested_agent else None
            ),
            "skillsUsed": [m.to_dict() for m in self.skills_used],
            "corrections": self.corrections,
            "usage": self.usage,
            "cost": self.cost,
            "warnings": self.warnings,
        }


class ChatService:
    def __init__(
        self,
        db: AsyncSession,
        limiters: RateLimiters,
        llm: Optional[AnthropicService] = None,
    ):
        self.db = db
        self.limiters = limiters
        self.llm = llm or get_anthropic_service()
        self.agents = AgentService(db)
        self.skills = SkillService(db)
        self.conversations = ConversationService(db)
        self.ledger = UsageLedger(db)
        self.limits = UsageLimitService(db)
        self.settings = SettingsService(db)

    @staticmethod
    def _rejection(limit_type: str, reason: str, decision: RateLimitDecision) -> ChatRejection:
        return ChatRejection(limit_type=limit_type, reason=reason, reset_time=decision.reset_time)

    async def _check_limits(self, user_id: str, personal_key: bool) -> Optional[ChatRejection]:
        if not personal_key and settings.trial_limits_enabled:
            trial = await self.limits.check_limits(user_id)
            if not trial.allowed:
                reset = trial.reset_time.timestamp() if trial.reset_time else time.time()
                return ChatRejection(limit_type="trial", reason=trial.reason or "Trial limit reached", reset_time=reset)

        decision = self.limiters.user.check_limit(user_id)
        if not decision.allowed:
            return self._rejection(
                "rate", "Rate limit exceeded. Please wait before sending more messages.", decision,
            )

        decision = self.limiters.check_tier(ModelTier.FAST)
        if not decision.allowed:
            return self._rejection(
                "tier", "The service is handling too many requests. Please try again shortly.", decision,
            )
        return None

    async def _choose_agent(
        self, user_id: str, request: ChatRequest, question: str, api_key: Optional[str]
    ) -> Dict[str, Any]:
        """Resolve which agent answers, and whether a new agent is suggested or created."""
        if request.agent_id:
            agent = await self.agents.get_agent(request.agent_id, user_id)
            if agent is None:
                raise ValidationError(f"Agent {request.agent_id} not found")
            return {"agent": agent, "match": AgentMatchResult(agent, 1.0, "Agent selected by user", source="pinned")}

        if request.skip_agent_matching:
            return {"agent": None, "match": AgentMatchResult(None, 0.0, "Agent matching skipped", source="none")}

        agents = await self.agents.list_agents(user_id)
        match = await match_agent(question, agents, llm=self.llm, api_key=api_key, user_id=user_id)
        decision = await should_create_new_agent(question, match, llm=self.llm, api_key=api_key, user_id=user_id)
        chosen = {"agent": match.matched_agent if match.is_strong else None, "match": match}

        if decision.should_create and decision.suggested_topic and len(agents) < settings.max_agents_per_user:
            create = request.auto_create_agent
            if create and not self.limiters.check_tier(ModelTier.SMART).allowed:
                logger.info("[CHAT] Smart tier limit reached, suggesting %r instead of creating it", decision.suggested_topic)
                create = False
            if create:
                draft = await generate_agent_profile(
                    decision.suggested_topic, f'User asked: "{question}"', api_key=api_key, llm=self.llm,
                    user_id=user_id,
                )
                agent = await self.agents.create_agent(user_id, draft)
                if draft.llm_response is not None:
                    await self.ledger.log_llm_call(
                        user_id, draft.llm_response, RequestType.AGENT_CREATION,
                        endpoint="/api/chat", agent_id=agent.id,
                    )
                chosen.update(agent=agent, created=True)
            else:
                chosen["suggested"] = decision
        return chosen

    async def _system_prompt(
        self, user_id: str, agent: Optional[Agent], question: str, api_key: Optional[str]
    ) -> Dict[str, Any]:
        ai = (await self.settings.get_settings(user_id)).get("ai") or DEFAULT_AI
        response_length = ai.get("responseLength", "concise")
        temperature = float(ai.get("temperature", DEFAULT_AI["temperature"]))
        if response_length == "concise":
            temperature = min(temperature, CONCISE_MAX_TEMPERATURE)

        rules = FORMATTING_RULES.format(
            length_instruction=RESPONSE_LENGTH_INSTRUCTIONS.get(response_length, RESPONSE_LENGTH_INSTRUCTIONS["concise"])
        )
        matches: List[SkillMatch] = []
        if agent is not None:
            skills = await self.skills.list_skills(agent.id)
            matches = await match_skills_to_message(
                question, skills, llm=self.llm, api_key=api_key, user_id=user_id, agent_id=agent.id,
            )
            prompt = build_system_prompt_with_skills(rules + agent.system_prompt, matches)
        else:
            prompt = rules + GENERAL_ASSISTANT_PROMPT
        return {"prompt": prompt, "temperature": temperature, "skills": matches}

    async def _history(self, user_id: str, conversation_id: Optional[str]) -> List[Dict[str, str]]:
        if not conversation_id:
            return []
        conversation = await self.conversations.get_conversation(conversation_id, user_id)
        if conversation is None:
            return []
        turns = [m for m in (conversation.messages or []) if m.get("role") in ("user", "assistant")]
        return [{"role": m["role"], "content": m["content"]} for m in turns[-settings.max_history_messages:]]

    async def handle_message(self, user_id: str, request: ChatRequest) -> Union[ChatResult, ChatRejection]:
        """
        Answer one chat message.

        Raises:
            ValidationError: empty message, missing API key or unknown pinned agent.
            AIError: the answer call failed after retries.
        """
        message = sanitize_input(request.message)
        if not message:
            raise ValidationError("Message is required")
        set_request_context(user_id=user_id)

        correction = correct_text(message)
        question = correction.corrected
        if correction.changed:
            chat_log.info("Corrected input", data=correction.to_dict())

        keys = await self.settings.validate_api_keys(user_id)
        api_key = keys.anthropic

        rejection = await self._check_limits(user_id, keys.personal_anthropic)
        if rejection is not None:
            logger.info("[CHAT] %s rejected by %s limit", user_id, rejection.limit_type)
            return rejection

        chosen = await self._choose_agent(user_id, request, question, api_key)
        agent: Optional[Agent] = chosen["agent"]
        if agent is not None:
            set_request_context(agent_id=agent.id)
        conversation_id = request.conversation_id or f"session_{int(time.time() * 1000)}_{user_id}"

        prompt = await self._system_prompt(user_id, agent, question, api_key)
        history = await self._history(user_id, request.conversation_id)

        started = time.monotonic()
        try:
            reply = await self.llm.send(
                question,
                system_prompt=prompt["prompt"],
                tier=ModelTier.FAST,
                temperature=prompt["temperature"],
                enable_caching=agent is not None,
                api_key=api_key,
                history=history,
            )
        except Exception as e:
            error = classify_error(e)
            await self.ledger.log_usage(
                user_id, SERVICE_FOR_TIER["fast"], success=False, request_type=RequestType.CHAT,
                endpoint="/api/chat", error_message=error.message,
                agent_id=agent.id if agent is not None else None, conversation_id=conversation_id,
            )
            if isinstance(e, AIError):
                raise
            raise error from e
        elapsed_ms = (time.monotonic() - started) * 1000

        log = await self.ledger.log_llm_call(
            user_id, reply, RequestType.CHAT, endpoint="/api/chat",
            agent_id=agent.id if agent is not None else None, conversation_id=conversation_id,
        )
        cost = log.cost if log is not None else calculate_token_cost(
            ModelTier.FAST, reply.input_tokens, reply.output_tokens, reply.cached_tokens,
        ).total_cost
        if not keys.personal_anthropic and settings.trial_limits_enabled:
            await self.limits.record_usage(user_id, reply.input_tokens + reply.output_tokens, cost)

        if agent is not None:
            await self.agents.increment_questions_handled(agent.id, elapsed_ms)
            for skill_match in prompt["skills"]:
                await self.skills.increment_usage(skill_match.skill.id, elapsed_ms)

        answer = clean_response(reply.content)
        agent_id = agent.id if agent is not None else None
        await self.conversations.add_message(
            conversation_id, user_id, make_message("user", message, agent_id, request.voice_enabled),
        )
        await self.conversations.add_message(
            conversation_id, user_id, make_message("assistant", answer, agent_id, request.voice_enabled),
        )
        if agent is not None and chosen.get("created"):
            await self.conversations.add_suggested_agent(conversation_id, user_id, agent.id)

        logger.info(
            "[CHAT] %s answered by %s in %.0fms ($%.6f)",
            user_id, agent.name if agent is not None else "general assistant", elapsed_ms, cost,
        )
        return ChatResult(
            response=answer,
            conversation_id=conversation_id,
            agent_used=agent,
            match=chosen["match"],
            agent_created=bool(chosen.get("created")),
            suggested_agent=chosen.get("suggested"),
            skills_used=prompt["skills"],
            corrections=[c.to_dict() for c in correction.corrections],
            usage={
                "inputTokens": reply.input_tokens,
                "outputTokens": reply.output_tokens,
                "cachedTokens": reply.cached_tokens,
            },
            cost=cost,
            warnings=keys.warnings,
        )
