"""Agent API endpoints - create, match, refine and evolve specialist agents"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.agent.rate_limiter import RateLimiters
from agenthub.api.auth import get_current_user
from agenthub.api.chat import get_llm, get_rate_limiters
from agenthub.api.errors import rate_limited
from agenthub.config import settings
from agenthub.db import RequestType, get_db
from agenthub.schemas import (
    AgentCreateRequest,
    AgentEvolveRequest,
    AgentMatchRequest,
    AgentRefineRequest,
    AgentUpdateRequest,
    CreateSuggestedAgentRequest,
)
from agenthub.services.agent_creator import gather_topic_context, generate_agent_profile, refine_agent_profile
from agenthub.services.agent_evolution import analyze_agent_performance
from agenthub.services.agent_matcher import match_with_skills
from agenthub.services.agent_service import AgentService
from agenthub.services.anthropic_service import AnthropicService, ModelTier
from agenthub.services.conversation_service import ConversationService
from agenthub.services.settings_service import SettingsService
from agenthub.services.skill_service import SkillService
from agenthub.services.usage_ledger import UsageLedger
from agenthub.services.web_search import get_web_search_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/agents", tags=["agents"])


async def _get_agent_or_404(service: AgentService, agent_id: str, user_id: str):
    agent = await service.get_agent(agent_id, user_id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    return agent


async def _create_from_topic(
    db: AsyncSession,
    user_id: str,
    topic: str,
    context: str,
    llm: AnthropicService,
    api_key: str,
):
    service = AgentService(db)
    if await service.count_agents(user_id) >= settings.max_agents_per_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Agent limit reached ({settings.max_agents_per_user}). Delete an agent to create a new one.",
        )
    draft = await generate_agent_profile(topic, context, api_key=api_key, llm=llm, user_id=user_id)
    agent = await service.create_agent(user_id, draft)
    if draft.llm_response is not None:
        await UsageLedger(db).log_llm_call(
            user_id, draft.llm_response, RequestType.AGENT_CREATION, endpoint="/api/agents", agent_id=agent.id,
        )
    return agent, draft


@router.get("")
async def list_agents(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    agents = await AgentService(db).list_agents(user_id)
    return {"agents": [a.to_dict() for a in agents]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_agent(
    body: AgentCreateRequest,
    user_id: str = Depends(get_current_user),
    limiters: RateLimiters = Depends(get_rate_limiters),
    llm: AnthropicService = Depends(get_llm),
    db: AsyncSession = Depends(get_db),
):
    """Design and store a new agent for a topic."""
    decision = limiters.check_tier(ModelTier.SMART)
    if not decision.allowed:
        return rate_limited(decision, "Too many agent creation requests. Please try again shortly.")
    keys = await SettingsService(db).validate_api_keys(user_id)
    agent, draft = await _create_from_topic(db, user_id, body.topic, body.context or "", llm, keys.anthropic)
    return {"agent": agent.to_dict(), "fallback": draft.is_fallback}


@router.post("/create-suggested", status_code=status.HTTP_201_CREATED)
async def create_suggested_agent(
    body: CreateSuggestedAgentRequest,
    user_id: str = Depends(get_current_user),
    limiters: RateLimiters = Depends(get_rate_limiters),
    llm: AnthropicService = Depends(get_llm),
    db: AsyncSession = Depends(get_db),
):
    """
    Create the agent suggested during a chat. Recent web results about the
    topic are folded into the profile when a search key is configured.
    """
    decision = limiters.check_tier(ModelTier.SMART)
    if not decision.allowed:
        return rate_limited(decision, "Too many agent creation requests. Please try again shortly.")
    keys = await SettingsService(db).validate_api_keys(user_id)

    context = ""
    if body.search_web and keys.brave_search:
        context = await gather_topic_context(
            body.topic,
            body.original_question or "",
            search=get_web_search_service(),
            api_key=keys.brave_search,
        )
    if body.original_question:
        context = f'User asked: "{body.original_question}"\n\n{context}'.strip()

    agent, draft = await _create_from_topic(db, user_id, body.topic, context, llm, keys.anthropic)
    if body.conversation_id:
        await ConversationService(db).add_suggested_agent(body.conversation_id, user_id, agent.id)
    return {"agent": agent.to_dict(), "fallback": draft.is_fallback, "usedWebSearch": bool(context)}


@router.post("/match")
async def match_agents(
    body: AgentMatchRequest,
    user_id: str = Depends(get_current_user),
    llm: AnthropicService = Depends(get_llm),
    db: AsyncSession = Depends(get_db),
):
    """Best agent for a question, with new-agent and new-skill suggestions."""
    keys = await SettingsService(db).validate_api_keys(user_id)
    agents = await AgentService(db).list_agents(user_id)
    skills_by_agent = await SkillService(db).list_for_agents([a.id for a in agents])
    result = await match_with_skills(
        body.question, agents, skills_by_agent, llm=llm, api_key=keys.anthropic, user_id=user_id,
    )
    return result.to_dict()


@router.get("/{agent_id}")
async def get_agent(
    agent_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    agent = await _get_agent_or_404(AgentService(db), agent_id, user_id)
    skills = await SkillService(db).list_skills(agent.id, user_id)
    return {"agent": agent.to_dict(), "skills": [s.to_dict() for s in skills]}


@router.patch("/{agent_id}")
async def update_agent(
    agent_id: str,
    body: AgentUpdateRequest,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    agent = await AgentService(db).update_agent(agent_id, user_id, body.model_dump(exclude_none=True))
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    return {"agent": agent.to_dict()}


@router.delete("/{agent_id}")
async def delete_agent(
    agent_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not await AgentService(db).delete_agent(agent_id, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    return {"success": True}


@router.post("/{agent_id}/refine")
async def refine_agent(
    agent_id: str,
    body: AgentRefineRequest,
    user_id: str = Depends(get_current_user),
    llm: AnthropicService = Depends(get_llm),
    db: AsyncSession = Depends(get_db),
):
    """Apply user feedback to an agent's profile."""
    service = AgentService(db)
    agent = await _get_agent_or_404(service, agent_id, user_id)
    keys = await SettingsService(db).validate_api_keys(user_id)
    updates = await refine_agent_profile(agent, body.feedback, llm=llm, api_key=keys.anthropic)
    if not updates:
        return {"agent": agent.to_dict(), "updated": False}
    agent = await service.update_agent(agent_id, user_id, updates)
    return {"agent": agent.to_dict(), "updated": True, "changedFields": sorted(updates)}


@router.post("/{agent_id}/evolve")
async def evolve_agent(
    agent_id: str,
    body: AgentEvolveRequest = AgentEvolveRequest(),
    user_id: str = Depends(get_current_user),
    limiters: RateLimiters = Depends(get_rate_limiters),
    llm: AnthropicService = Depends(get_llm),
    db: AsyncSession = Depends(get_db),
):
    """Analyze an agent's recent conversations and apply suggested improvements."""
    service = AgentService(db)
    agent = await _get_agent_or_404(service, agent_id, user_id)
    decision = limiters.check_tier(ModelTier.SMART)
    if not decision.allowed:
        return rate_limited(decision, "Too many evolution requests. Please try again shortly.")
    keys = await SettingsService(db).validate_api_keys(user_id)

    messages = await ConversationService(db).get_recent_agent_messages(user_id, agent_id, limit=body.message_limit)
    suggestion = await analyze_agent_performance(agent, messages, llm=llm, api_key=keys.anthropic, user_id=user_id)
    if suggestion.llm_response is not None:
        await UsageLedger(db).log_llm_call(
            user_id, suggestion.llm_response, RequestType.AGENT_EVOLUTION,
            endpoint=f"/api/agents/{agent_id}/evolve", agent_id=agent_id,
        )

    evolved = False
    if body.apply and suggestion.needs_improvement and suggestion.updated_fields:
        agent = await service.apply_evolution(agent_id, user_id, suggestion)
        evolved = True
    return {"agent": agent.to_dict(), "suggestion": suggestion.to_dict(), "evolved": evolved}
