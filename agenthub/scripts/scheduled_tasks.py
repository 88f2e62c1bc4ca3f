"""
Scheduled Tasks for AgentHub

Periodic background tasks:
1. Rate limiter sweep - drop expired limiter windows
2. Usage log retention - delete usage records past the retention window
3. Conversation retention - delete conversations not touched for 90 days

Uses APScheduler for in-process scheduling. With several workers, run the
scheduler in one of them only (ENABLE_SCHEDULER=false elsewhere).
"""

import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from agenthub.agent.rate_limiter import RateLimiters
from agenthub.config import settings
from agenthub.db import async_session_maker
from agenthub.services.conversation_service import ConversationService
from agenthub.services.usage_ledger import UsageLedger

logger = logging.getLogger("agenthub.scheduler")

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def sweep_rate_limiters(limiters: RateLimiters) -> int:
    removed = limiters.cleanup()
    if removed:
        logger.info(f"Rate limiter sweep removed {removed} expired window(s)")
    return removed


async def run_usage_log_retention() -> int:
    logger.info("Starting usage log retention task...")
    async with async_session_maker() as db:
        deleted = await UsageLedger(db).cleanup_old_logs(settings.usage_log_retention_days)
    logger.info(f"Usage log retention complete: {deleted} record(s) removed")
    return deleted


async def run_conversation_retention() -> int:
    logger.info("Starting conversation retention task...")
    async with async_session_maker() as db:
        deleted = await ConversationService(db).cleanup_old_conversations(settings.conversation_retention_days)
    logger.info(f"Conversation retention complete: {deleted} conversation(s) removed")
    return deleted


def setup_scheduler(limiters: RateLimiters) -> AsyncIOScheduler:
    """
    Set up the APScheduler with maintenance tasks.

    Args:
        limiters: The application's shared rate limiters.

    Returns:
        Configured scheduler instance
    """
    global scheduler

    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        sweep_rate_limiters,
        trigger=IntervalTrigger(minutes=settings.rate_limit_cleanup_minutes),
        args=[limiters],
        id="rate_limiter_sweep",
        name="Rate Limiter Sweep",
        replace_existing=True,
    )

    # Retention - runs daily at 3 AM
    scheduler.add_job(
        run_usage_log_retention,
        trigger=CronTrigger(hour=3, minute=0),
        id="usage_log_retention",
        name="Usage Log Retention",
        replace_existing=True,
    )
    scheduler.add_job(
        run_conversation_retention,
        trigger=CronTrigger(hour=3, minute=30),
        id="conversation_retention",
        name="Conversation Retention",
        replace_existing=True,
    )

    logger.info(
        f"Scheduler configured: limiter sweep every {settings.rate_limit_cleanup_minutes}min, "
        f"usage logs kept {settings.usage_log_retention_days}d, "
        f"conversations kept {settings.conversation_retention_days}d"
    )
    return scheduler


def start_scheduler(limiters: RateLimiters):
    """Start the scheduler if not already running."""
    global scheduler

    if scheduler is None:
        scheduler = setup_scheduler(limiters)

    if not scheduler.running:
        scheduler.start()
        logger.info("Maintenance scheduler started")


def stop_scheduler():
    """Stop the scheduler if running."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("Maintenance scheduler stopped")
    scheduler = None


if __name__ == "__main__":
    async def main():
        print("Running retention tasks manually...")
        await run_usage_log_retention()
        await run_conversation_retention()
        print("Done!")

    asyncio.run(main())
