from agenthub.services.anthropic_service import AnthropicService, LLMResponse, ModelTier, get_anthropic_service
from agenthub.services.cost_calculator import (
    UsageService, calculate_token_cost, calculate_voice_cost, default_pricing, format_cost,
)
from agenthub.services.web_search import WebSearchService, get_web_search_service
from agenthub.services.agent_matcher import (
    AgentMatchResult, AgentCreationDecision, SkillAwareMatch,
    match_agent, should_create_new_agent, match_with_skills,
)
from agenthub.services.agent_creator import (
    AgentProfileDraft, create_fallback_profile, generate_agent_profile,
    refine_agent_profile, gather_topic_context,
)
from agenthub.services.agent_evolution import (
    EvolutionSuggestion, analyze_agent_performance, calculate_evolution_priority,
    identify_knowledge_gaps, suggest_new_capabilities,
)
from agenthub.services.agent_service import AgentService
from agenthub.services.skill_service import SkillService
from agenthub.services.conversation_service import ConversationService
from agenthub.services.usage_ledger import UsageLedger
from agenthub.services.usage_limits import UsageLimitService
from agenthub.services.settings_service import SettingsService
from agenthub.services.chat_service import ChatService, ChatRequest, ChatResult, ChatRejection

__all__ = [
    # LLM
    "AnthropicService",
    "LLMResponse",
    "ModelTier",
    "get_anthropic_service",
    # Cost
    "UsageService",
    "calculate_token_cost",
    "calculate_voice_cost",
    "default_pricing",
    "format_cost",
    # Search
    "WebSearchService",
    "get_web_search_service",
    # Agent lifecycle
    "AgentMatchResult",
    "AgentCreationDecision",
    "SkillAwareMatch",
    "match_agent",
    "should_create_new_agent",
    "match_with_skills",
    "AgentProfileDraft",
    "create_fallback_profile",
    "generate_agent_profile",
    "refine_agent_profile",
    "gather_topic_context",
    "EvolutionSuggestion",
    "analyze_agent_performance",
    "calculate_evolution_priority",
    "identify_knowledge_gaps",
    "suggest_new_capabilities",
    # Stores
    "AgentService",
    "SkillService",
    "ConversationService",
    "UsageLedger",
    "UsageLimitService",
    "SettingsService",
    # Chat
    "ChatService",
    "ChatRequest",
    "ChatResult",
    "ChatRejection",
]
