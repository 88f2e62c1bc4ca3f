from agenthub.api.auth import get_current_user
from agenthub.api.chat import router as chat_router
from agenthub.api.agents import router as agents_router
from agenthub.api.skills import router as skills_router
from agenthub.api.conversations import router as conversations_router
from agenthub.api.usage import router as usage_router
from agenthub.api.settings import router as settings_router

__all__ = [
    "chat_router",
    "agents_router",
    "skills_router",
    "conversations_router",
    "usage_router",
    "settings_router",
    "get_current_user",
]
