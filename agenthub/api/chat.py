"""
Chat API - Main chat endpoint

One message in, one agent answer out. The orchestration (limits, agent
matching, skills, cost tracking, conversation storage) lives in ChatService.
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.agent.rate_limiter import RateLimiters
from agenthub.api.auth import get_current_user
from agenthub.db import get_db
from agenthub.schemas import ChatMessageRequest
from agenthub.services.anthropic_service import AnthropicService, get_anthropic_service
from agenthub.services.chat_service import ChatRejection, ChatRequest, ChatService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])


def get_rate_limiters(request: Request) -> RateLimiters:
    """Limiters built at startup and shared by every request."""
    limiters = getattr(request.app.state, "rate_limiters", None)
    if limiters is None:
        limiters = RateLimiters.from_settings()
        request.app.state.rate_limiters = limiters
    return limiters


def get_llm() -> AnthropicService:
    return get_anthropic_service()


@router.post("")
async def chat(
    body: ChatMessageRequest,
    user_id: str = Depends(get_current_user),
    limiters: RateLimiters = Depends(get_rate_limiters),
    llm: AnthropicService = Depends(get_llm),
    db: AsyncSession = Depends(get_db),
):
    """
    Send a message and get an answer from the best matching agent.

    Returns 429 with `resetTime` when a trial, per-user or tier limit
    rejects the request.
    """
    service = ChatService(db, limiters, llm=llm)
    result = await service.handle_message(
        user_id,
        ChatRequest(
            message=body.message,
            conversation_id=body.conversation_id,
            agent_id=body.agent_id,
            skip_agent_matching=body.skip_agent_matching,
            auto_create_agent=body.auto_create_agent,
            voice_enabled=body.voice_enabled,
        ),
    )
    if isinstance(result, ChatRejection):
        return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=result.to_dict())
    return result.to_dict()
