"""
AgentHub - Main Application Entry Point
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from agenthub.agent.ai_errors import AIError
from agenthub.agent.rate_limiter import RateLimiters
from agenthub.agent.structured_logging import enable_structured_logging, generate_request_id, set_request_context
from agenthub.api import (
    agents_router,
    chat_router,
    conversations_router,
    settings_router,
    skills_router,
    usage_router,
)
from agenthub.api.errors import ai_error_handler
from agenthub.config import settings
from agenthub.db import async_session_maker, init_db

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - runs on startup and shutdown"""
    app.state.started_at = time.time()
    if settings.structured_logging:
        enable_structured_logging(logging.DEBUG if settings.debug else logging.INFO, include_traceback=settings.debug)

    await init_db()
    logger.info("[DB] Database initialized")

    app.state.rate_limiters = RateLimiters.from_settings()

    if settings.enable_scheduler:
        from agenthub.scripts.scheduled_tasks import start_scheduler
        start_scheduler(app.state.rate_limiters)

    yield

    if settings.enable_scheduler:
        from agenthub.scripts.scheduled_tasks import stop_scheduler
        stop_scheduler()
    logger.info("AgentHub shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Chat with specialist AI agents that are created on demand, matched to questions and improved over time",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    set_request_context(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AIError, ai_error_handler)

# Include routers
app.include_router(chat_router, prefix=settings.api_prefix)
app.include_router(agents_router, prefix=settings.api_prefix)
app.include_router(skills_router, prefix=settings.api_prefix)
app.include_router(conversations_router, prefix=settings.api_prefix)
app.include_router(usage_router, prefix=settings.api_prefix)
app.include_router(settings_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"name": settings.app_name, "status": "healthy", "version": APP_VERSION}


@app.get(f"{settings.api_prefix}/health")
async def health():
    """Database probe, limiter state and uptime."""
    db_status = "connected"
    try:
        async with async_session_maker() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("[DB] Health probe failed: %s", e)
        db_status = "unavailable"

    limiters = getattr(app.state, "rate_limiters", None)
    started_at = getattr(app.state, "started_at", None)
    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "version": APP_VERSION,
        "database": db_status,
        "anthropicConfigured": bool(settings.anthropic_api_key),
        "trackedRateLimitKeys": len(limiters.user) if limiters else 0,
        "uptimeSeconds": round(time.time() - started_at, 1) if started_at else None,
    }
