"""Conversation history endpoints"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.api.auth import get_current_user
from agenthub.db import get_db
from agenthub.services.conversation_service import ConversationService

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("")
async def list_conversations(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversations = await ConversationService(db).list_conversations(user_id, limit=limit)
    return {"conversations": [c.to_dict() for c in conversations]}


@router.get("/stats")
async def conversation_stats(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await ConversationService(db).get_stats(user_id)


@router.get("/{session_id}")
async def get_conversation(
    session_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await ConversationService(db).get_conversation(session_id, user_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return {"conversation": conversation.to_dict()}


@router.delete("/{session_id}")
async def delete_conversation(
    session_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not await ConversationService(db).delete_conversation(session_id, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return {"success": True}
