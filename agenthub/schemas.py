"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

from agenthub.services.settings_service import FieldUpdate, REMOVE, UNCHANGED, SetTo


# ============ Chat Schemas ============

class ChatMessageRequest(BaseModel):
    message: str = Field(min_length=1, max_length=10000)
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    agent_id: Optional[str] = Field(None, alias="agentId")  # Pin an agent, skip matching
    skip_agent_matching: bool = Field(False, alias="skipAgentMatching")
    auto_create_agent: bool = Field(False, alias="autoCreateAgent")
    voice_enabled: bool = Field(False, alias="voiceEnabled")

    model_config = {"populate_by_name": True}


# ============ Agent Schemas ============

class AgentCreateRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=500)
    context: Optional[str] = Field(None, max_length=5000)


class CreateSuggestedAgentRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=500)
    original_question: Optional[str] = Field(None, alias="originalQuestion", max_length=10000)
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    search_web: bool = Field(True, alias="searchWeb")

    model_config = {"populate_by_name": True}


class AgentUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    expertise: Optional[List[str]] = None
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")
    knowledge_facts: Optional[List[str]] = Field(None, alias="knowledgeFacts")
    knowledge_sources: Optional[List[str]] = Field(None, alias="knowledgeSources")
    capabilities: Optional[List[str]] = None
    conversation_style: Optional[Dict[str, str]] = Field(None, alias="conversationStyle")

    model_config = {"populate_by_name": True}


class AgentRefineRequest(BaseModel):
    feedback: str = Field(min_length=1, max_length=5000)


class AgentEvolveRequest(BaseModel):
    apply: bool = True  # False only reports the suggestion
    message_limit: int = Field(20, alias="messageLimit", ge=1, le=100)

    model_config = {"populate_by_name": True}


class AgentMatchRequest(BaseModel):
    question: str = Field(min_length=1, max_length=10000)


# ============ Skill Schemas ============

class SkillCreateRequest(BaseModel):
    agent_id: str = Field(alias="agentId")
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    skill_content: Optional[str] = Field(None, alias="skillContent")  # Generated when omitted
    version: str = "1.0.0"
    resources: Optional[List[Dict[str, Any]]] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = {"populate_by_name": True}


class SkillUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    version: Optional[str] = None
    skill_content: Optional[str] = Field(None, alias="skillContent")
    resources: Optional[List[Dict[str, Any]]] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = {"populate_by_name": True}

    def to_updates(self) -> Dict[str, Any]:
        updates = self.model_dump(exclude_none=True, exclude={"metadata"})
        if self.metadata is not None:
            updates["metadata_json"] = self.metadata
        return updates


class SkillSuggestRequest(BaseModel):
    agent_id: str = Field(alias="agentId")
    recent_questions: List[str] = Field(default_factory=list, alias="recentQuestions")

    model_config = {"populate_by_name": True}


# ============ Usage Schemas ============

class VoiceUsageRequest(BaseModel):
    characters: int = Field(ge=0)
    service: str = "elevenlabs"  # elevenlabs | web-speech
    agent_id: Optional[str] = Field(None, alias="agentId")
    conversation_id: Optional[str] = Field(None, alias="conversationId")

    model_config = {"populate_by_name": True}


class BreakdownQuery(BaseModel):
    start: datetime
    end: datetime


# ============ Settings Schemas ============

class ApiKeysUpdate(BaseModel):
    """
    Per-field key update. An omitted field is left unchanged, null removes
    the stored key and a string replaces it.
    """
    anthropic: Optional[str] = None
    eleven_labs: Optional[str] = Field(None, alias="elevenLabs")
    eleven_labs_voice_id: Optional[str] = Field(None, alias="elevenLabsVoiceId")
    brave_search: Optional[str] = Field(None, alias="braveSearch")

    model_config = {"populate_by_name": True}

    def to_updates(self) -> Dict[str, FieldUpdate]:
        updates: Dict[str, FieldUpdate] = {}
        for name, info in type(self).model_fields.items():
            key = info.alias or name
            if name not in self.model_fields_set:
                updates[key] = UNCHANGED
            else:
                value = getattr(self, name)
                updates[key] = REMOVE if value is None else SetTo(value)
        return updates


class SettingsUpdateRequest(BaseModel):
    api_keys: Optional[ApiKeysUpdate] = Field(None, alias="apiKeys")
    voice: Optional[Dict[str, Any]] = None
    ai: Optional[Dict[str, Any]] = None
    limits: Optional[Dict[str, Any]] = None
    monthly_budget: Optional[float] = Field(None, alias="monthlyBudget")

    model_config = {"populate_by_name": True}
