from agenthub.db.models import (
    Base, Agent, Skill, Conversation, UsageLog, UserSettings, UserUsage, RequestType,
)
from agenthub.db.database import get_db, init_db, drop_db, async_session_maker, engine

__all__ = [
    "Base",
    "Agent",
    "Skill",
    "Conversation",
    "UsageLog",
    "UserSettings",
    "UserUsage",
    "RequestType",
    # Database
    "get_db",
    "init_db",
    "drop_db",
    "async_session_maker",
    "engine",
]
