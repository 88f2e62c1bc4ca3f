"""
Database models for AgentHub

- Agents: specialist personas with expertise, knowledge, metrics and evolution history
- Skills: markdown skill documents attached to one agent
- Conversations: per-session message logs
- Usage: one row per billable call, plus trial-limit counters per user
- Settings: per-user API keys, voice/AI preferences and budget
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List
import uuid

from sqlalchemy import (
    String, Text, DateTime, Float, Integer, Boolean, ForeignKey, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, declarative_base

Base = declarative_base()


class RequestType(str, Enum):
    """What a usage log entry was spent on"""
    CHAT = "chat"
    AGENT_CREATION = "agent-creation"
    AGENT_EVOLUTION = "agent-evolution"
    VOICE = "voice"


def _uuid() -> str:
    return str(uuid.uuid4())


class Agent(Base):
    """A specialist persona owned by one user."""
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text, default="")
    expertise: Mapped[List[str]] = mapped_column(JSON, default=list)
    system_prompt: Mapped[str] = mapped_column(Text, default="")

    # Knowledge base
    knowledge_facts: Mapped[List[str]] = mapped_column(JSON, default=list)
    knowledge_sources: Mapped[List[str]] = mapped_column(JSON, default=list)
    knowledge_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    capabilities: Mapped[List[str]] = mapped_column(JSON, default=list)
    conversation_style: Mapped[dict] = mapped_column(JSON, default=dict)  # tone, vocabulary, responseLength

    # Performance metrics
    questions_handled: Mapped[int] = mapped_column(Integer, default=0)
    success_rate: Mapped[float] = mapped_column(Float, default=0.0)
    avg_response_time: Mapped[float] = mapped_column(Float, default=0.0)  # milliseconds
    last_used: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # [{date, improvement, reason, changedFields}], newest last
    evolution_history: Mapped[list] = mapped_column(JSON, default=list)
    version: Mapped[int] = mapped_column(Integer, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_agents_user_last_used", "user_id", "last_used"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "description": self.description,
            "expertise": self.expertise or [],
            "systemPrompt": self.system_prompt,
            "knowledgeBase": {
                "facts": self.knowledge_facts or [],
                "sources": self.knowledge_sources or [],
                "lastUpdated": self.knowledge_updated_at.isoformat() if self.knowledge_updated_at else None,
            },
            "capabilities": self.capabilities or [],
            "conversationStyle": self.conversation_style or {},
            "performanceMetrics": {
                "questionsHandled": self.questions_handled or 0,
                "successRate": self.success_rate or 0.0,
                "avgResponseTime": self.avg_response_time or 0.0,
                "lastUsed": self.last_used.isoformat() if self.last_used else None,
            },
            "evolutionHistory": self.evolution_history or [],
            "version": self.version or 1,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class Skill(Base):
    """A skill document attached to one agent."""
    __tablename__ = "skills"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(String(36), ForeignKey("agents.id"), index=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text, default="")
    version: Mapped[str] = mapped_column(String(20), default="1.0.0")
    skill_content: Mapped[str] = mapped_column(Text, default="")
    resources: Mapped[list] = mapped_column(JSON, default=list)  # [{filename, content, type}]
    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON, default=dict)

    times_invoked: Mapped[int] = mapped_column(Integer, default=0)
    last_used: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    success_rate: Mapped[float] = mapped_column(Float, default=0.0)
    average_response_time: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def tags(self) -> List[str]:
        return list((self.metadata_json or {}).get("tags") or [])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agentId": self.agent_id,
            "userId": self.user_id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "skillContent": self.skill_content,
            "resources": self.resources or [],
            "metadata": self.metadata_json or {},
            "usage": {
                "timesInvoked": self.times_invoked or 0,
                "lastUsed": self.last_used.isoformat() if self.last_used else None,
                "successRate": self.success_rate or 0.0,
                "averageResponseTime": self.average_response_time or 0.0,
            },
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class Conversation(Base):
    """Messages of one chat session."""
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(String(100))
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    # [{role, content, agentUsed, timestamp, voiceEnabled}]
    messages: Mapped[list] = mapped_column(JSON, default=list)
    agents_suggested: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "session_id", name="uq_conversations_user_session"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "userId": self.user_id,
            "messages": self.messages or [],
            "agentsSuggested": self.agents_suggested or [],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class UsageLog(Base):
    """One billable call."""
    __tablename__ = "usage_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    service: Mapped[str] = mapped_column(String(50))  # claude-haiku, claude-sonnet, elevenlabs, web-speech
    input_tokens: Mapped[int] = mapped_column(Integer, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, default=0)
    cached_tokens: Mapped[int] = mapped_column(Integer, default=0)
    characters: Mapped[int] = mapped_column(Integer, default=0)
    cost: Mapped[float] = mapped_column(Float, default=0.0)  # USD
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    request_type: Mapped[str] = mapped_column(String(30), default=RequestType.CHAT.value)
    endpoint: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    agent_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    conversation_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    caching_enabled: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("ix_usage_logs_user_timestamp", "user_id", "timestamp"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "service": self.service,
            "inputTokens": self.input_tokens or 0,
            "outputTokens": self.output_tokens or 0,
            "cachedTokens": self.cached_tokens or 0,
            "characters": self.characters or 0,
            "cost": self.cost or 0.0,
            "success": self.success,
            "requestType": self.request_type,
            "endpoint": self.endpoint,
            "errorMessage": self.error_message,
            "agentId": self.agent_id,
            "conversationId": self.conversation_id,
            "model": self.model,
            "cachingEnabled": self.caching_enabled,
        }


class UserSettings(Base):
    """Per-user keys and preferences."""
    __tablename__ = "user_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    api_keys: Mapped[dict] = mapped_column(JSON, default=dict)  # anthropic, elevenLabs, elevenLabsVoiceId, braveSearch
    voice: Mapped[dict] = mapped_column(JSON, default=dict)
    ai: Mapped[dict] = mapped_column(JSON, default=dict)  # responseLength, temperature
    limits: Mapped[dict] = mapped_column(JSON, default=dict)
    monthly_budget: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserUsage(Base):
    """Trial-limit counters; one row per user, reset by date and hour."""
    __tablename__ = "user_usage"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    date: Mapped[str] = mapped_column(String(10))  # YYYY-MM-DD (UTC)
    tokens_used: Mapped[int] = mapped_column(Integer, default=0)
    requests_this_hour: Mapped[int] = mapped_column(Integer, default=0)
    hour_started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    cost_accumulated: Mapped[float] = mapped_column(Float, default=0.0)
    last_request_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
