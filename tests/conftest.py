"""
Shared test setup for AgentHub.

Environment is set before any agenthub import so the cached Settings
pick up the in-memory database and zero retry delays.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-server-test")
os.environ.setdefault("LLM_RETRY_INITIAL_DELAY", "0")
os.environ.setdefault("SEARCH_MIN_INTERVAL_SECONDS", "0")
os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("ALLOW_ANONYMOUS", "true")

import pytest_asyncio

from agenthub.db import async_session_maker, drop_db, init_db


@pytest_asyncio.fixture
async def setup_database():
    """Create a fresh database for a test"""
    await init_db()
    yield
    await drop_db()


@pytest_asyncio.fixture
async def db_session(setup_database):
    """Get a database session"""
    async with async_session_maker() as session:
        yield session
