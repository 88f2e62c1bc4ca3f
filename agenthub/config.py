from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "AgentHub"
    debug: bool = False
    structured_logging: bool = False  # JSON log lines on stdout

    # Database
    database_url: str = "sqlite+aiosqlite:///./agenthub.db"

    # Auth (tokens are issued by the external identity provider)
    jwt_secret: str = "agenthub-dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    allow_anonymous: bool = True  # Requests without a token act as dev_user_id
    dev_user_id: str = "demo@localhost.dev"

    # API
    api_prefix: str = "/api"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Anthropic
    anthropic_api_key: Optional[str] = None  # Set via ANTHROPIC_API_KEY env var
    fast_model: str = "claude-haiku-4-5-20251001"  # Matching, skill ranking, chat
    smart_model: str = "claude-sonnet-4-5-20250929"  # Profile generation, evolution
    default_max_tokens: int = 4096
    default_temperature: float = 0.7

    # Retry policy for upstream calls
    llm_max_retries: int = 3
    llm_retry_initial_delay: float = 1.0  # Seconds, doubled on every retry
    llm_parse_attempts: int = 2  # Re-asks after unparseable structured output

    # Pricing per 1M tokens (USD)
    pricing_per_1m: dict[str, dict[str, float]] = {
        "fast": {"input": 1.00, "output": 5.00, "cached": 0.10},
        "smart": {"input": 3.00, "output": 15.00, "cached": 0.30},
    }
    voice_characters_per_dollar: int = 6000  # ElevenLabs creator plan
    voice_monthly_character_limit: int = 30000

    # Budgets
    default_monthly_budget: float = 50.0
    budget_alert_threshold: float = 80.0  # Percent of budget
    usage_window_days: int = 30

    # Rate limits (requests per window)
    user_rate_limit: int = 50
    fast_tier_rate_limit: int = 100
    smart_tier_rate_limit: int = 50
    rate_limit_window_seconds: int = 60
    rate_limit_cleanup_minutes: int = 5

    # Trial limits (users without their own Anthropic key)
    trial_limits_enabled: bool = True
    trial_max_tokens_per_day: int = 10000
    trial_max_requests_per_hour: int = 20
    trial_max_cost_per_day: float = 1.0

    # Agents
    match_confidence_threshold: float = 0.7
    max_agents_per_user: int = 50
    max_evolution_history: int = 20
    max_history_messages: int = 20  # Conversation turns sent with each chat call

    # Conversations
    max_messages_per_session: int = 100
    session_timeout_hours: int = 24

    # Retention
    usage_log_retention_days: int = 365
    conversation_retention_days: int = 90

    # Web search (Brave)
    brave_api_key: Optional[str] = None  # Set via BRAVE_API_KEY env var
    brave_search_url: str = "https://api.search.brave.com/res/v1/web/search"
    search_min_interval_seconds: float = 1.1
    search_timeout_seconds: float = 5.0

    # Voice
    elevenlabs_api_key: Optional[str] = None  # Set via ELEVENLABS_API_KEY
    elevenlabs_voice_id: str = "21m00Tcm4TlvDq8ikWAM"  # Rachel

    # Scheduler
    enable_scheduler: bool = True  # Set to False in multi-worker deployments

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
