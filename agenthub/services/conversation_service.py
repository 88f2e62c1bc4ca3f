"""Conversation service - chat session storage"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.config import settings
from agenthub.db.models import Conversation

logger = logging.getLogger(__name__)


def make_message(
    role: str,
    content: str,
    agent_used: Optional[str] = None,
    voice_enabled: bool = False,
) -> Dict[str, Any]:
    return {
        "role": role,
        "content": content,
        "agentUsed": agent_used,
        "timestamp": datetime.utcnow().isoformat(),
        "voiceEnabled": voice_enabled,
    }


class ConversationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_conversation(self, session_id: str, user_id: str) -> Conversation:
        now = datetime.utcnow()
        conversation = Conversation(
            session_id=session_id,
            user_id=user_id,
            messages=[],
            agents_suggested=[],
            created_at=now,
            updated_at=now,
        )
        self.db.add(conversation)
        await self.db.commit()
        await self.db.refresh(conversation)
        return conversation

    async def get_conversation(self, session_id: str, user_id: str) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation).where(
                Conversation.session_id == session_id,
                Conversation.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def add_message(self, session_id: str, user_id: str, message: Dict[str, Any]) -> Conversation:
        """Append a message, creating the conversation on first use.

        Sessions keep at most max_messages_per_session messages; older ones
        are dropped.
        """
        conversation = await self.get_conversation(session_id, user_id)
        if conversation is None:
            conversation = await self.create_conversation(session_id, user_id)
        messages = list(conversation.messages or []) + [message]
        conversation.messages = messages[-settings.max_messages_per_session:]
        conversation.updated_at = datetime.utcnow()
        await self.db.commit()
        return conversation

    async def list_conversations(self, user_id: str, limit: int = 50) -> List[Conversation]:
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.updated_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete_conversation(self, session_id: str, user_id: str) -> bool:
        result = await self.db.execute(
            delete(Conversation).where(
                Conversation.session_id == session_id,
                Conversation.user_id == user_id,
            )
        )
        await self.db.commit()
        return (result.rowcount or 0) > 0

    async def add_suggested_agent(self, session_id: str, user_id: str, agent_id: str) -> None:
        conversation = await self.get_conversation(session_id, user_id)
        if conversation is None:
            return
        suggested = list(conversation.agents_suggested or [])
        if agent_id not in suggested:
            conversation.agents_suggested = suggested + [agent_id]
            await self.db.commit()

    async def get_conversations_with_agent(self, user_id: str, agent_id: str, limit: int = 10) -> List[Conversation]:
        conversations = await self.list_conversations(user_id, limit=settings.max_messages_per_session)
        matching = [
            c for c in conversations
            if any(m.get("agentUsed") == agent_id for m in (c.messages or []))
        ]
        return matching[:limit]

    async def get_recent_agent_messages(self, user_id: str, agent_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Recent user/assistant exchanges answered by an agent, oldest first.

        A user message is included when the assistant reply that follows it
        was produced by the agent.
        """
        messages: List[Dict[str, Any]] = []
        for conversation in reversed(await self.get_conversations_with_agent(user_id, agent_id)):
            history = conversation.messages or []
            for i, message in enumerate(history):
                if message.get("agentUsed") == agent_id:
                    if i > 0 and history[i - 1].get("role") == "user":
                        messages.append(history[i - 1])
                    messages.append(message)
        return messages[-limit:]

    async def get_stats(self, user_id: str) -> Dict[str, Any]:
        result = await self.db.execute(
            select(Conversation).where(Conversation.user_id == user_id)
        )
        conversations = list(result.scalars().all())
        total_messages = sum(len(c.messages or []) for c in conversations)
        return {
            "totalConversations": len(conversations),
            "totalMessages": total_messages,
            "averageMessagesPerConversation": total_messages / len(conversations) if conversations else 0,
        }

    async def cleanup_old_conversations(self, days: Optional[int] = None, user_id: Optional[str] = None) -> int:
        """Delete conversations not updated within `days`."""
        days = settings.conversation_retention_days if days is None else days
        cutoff = datetime.utcnow() - timedelta(days=days)
        stmt = delete(Conversation).where(Conversation.updated_at < cutoff)
        if user_id is not None:
            stmt = stmt.where(Conversation.user_id == user_id)
        result = await self.db.execute(stmt)
        await self.db.commit()
        deleted = result.rowcount or 0
        if deleted:
            logger.info("[DB] Removed %d conversation(s) older than %d days", deleted, days)
        return deleted
