"""Skill API endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.agent.ai_errors import log_ai_error
from agenthub.agent.skills import generate_skill, parse_skill_content, suggest_skills_for_agent
from agenthub.agent.skills.suggester import fallback_skill_content
from agenthub.api.auth import get_current_user
from agenthub.api.chat import get_llm
from agenthub.db import get_db
from agenthub.schemas import SkillCreateRequest, SkillSuggestRequest, SkillUpdateRequest
from agenthub.services.agent_service import AgentService
from agenthub.services.anthropic_service import AnthropicService
from agenthub.services.conversation_service import ConversationService
from agenthub.services.settings_service import SettingsService
from agenthub.services.skill_service import SkillService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/skills", tags=["skills"])


async def _owned_agent(db: AsyncSession, agent_id: str, user_id: str):
    agent = await AgentService(db).get_agent(agent_id, user_id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    return agent


@router.get("")
async def list_skills(
    agent_id: str = Query(..., alias="agentId"),
    q: Optional[str] = None,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _owned_agent(db, agent_id, user_id)
    service = SkillService(db)
    if q:
        skills = await service.search(q, agent_id=agent_id, user_id=user_id)
    else:
        skills = await service.list_skills(agent_id, user_id)
    return {"skills": [s.to_dict() for s in skills]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_skill(
    body: SkillCreateRequest,
    user_id: str = Depends(get_current_user),
    llm: AnthropicService = Depends(get_llm),
    db: AsyncSession = Depends(get_db),
):
    """
    Add a skill to an agent. Without `skillContent` the document is written
    by the model, or a template when that fails.
    """
    agent = await _owned_agent(db, body.agent_id, user_id)
    content = body.skill_content
    if not content:
        keys = await SettingsService(db).validate_api_keys(user_id)
        try:
            content = await generate_skill(
                body.name, body.description, f"{agent.name}: {agent.description}", llm=llm, api_key=keys.anthropic,
            )
        except Exception as e:
            log_ai_error(e, "skill-generation", user_id=user_id, agent_id=agent.id)
            content = fallback_skill_content(body.name, body.description)

    parsed = parse_skill_content(content)
    metadata = dict(body.metadata or {})
    if parsed.metadata.dependencies and "dependencies" not in metadata:
        metadata["dependencies"] = list(parsed.metadata.dependencies)

    skill = await SkillService(db).create_skill(
        agent.id,
        user_id,
        name=body.name,
        description=body.description,
        skill_content=content,
        version=parsed.metadata.version or body.version,
        resources=body.resources,
        metadata=metadata,
    )
    return {"skill": skill.to_dict()}


@router.patch("/{skill_id}")
async def update_skill(
    skill_id: str,
    body: SkillUpdateRequest,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    skill = await SkillService(db).update_skill(skill_id, user_id, body.to_updates())
    if skill is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Skill not found")
    return {"skill": skill.to_dict()}


@router.delete("/{skill_id}")
async def delete_skill(
    skill_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not await SkillService(db).delete_skill(skill_id, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Skill not found")
    return {"success": True}


@router.post("/suggest")
async def suggest_skills(
    body: SkillSuggestRequest,
    user_id: str = Depends(get_current_user),
    llm: AnthropicService = Depends(get_llm),
    db: AsyncSession = Depends(get_db),
):
    """New skills that would cover questions the agent was asked recently."""
    agent = await _owned_agent(db, body.agent_id, user_id)
    questions = list(body.recent_questions)
    if not questions:
        messages = await ConversationService(db).get_recent_agent_messages(user_id, agent.id)
        questions = [m["content"] for m in messages if m.get("role") == "user"]

    keys = await SettingsService(db).validate_api_keys(user_id)
    existing = await SkillService(db).list_skills(agent.id, user_id)
    suggestions = await suggest_skills_for_agent(agent, questions, existing, llm=llm, api_key=keys.anthropic)
    return {"suggestions": [s.to_dict() for s in suggestions]}
