"""
Usage Limits — Daily allowances for trial users.

Users chatting on the operator's Anthropic key (no personal key saved) get
a daily token budget, an hourly request cap and a daily cost cap, taken
from their saved limits when those are enabled and from the configured
defaults otherwise. Day counters reset at midnight UTC; the hourly counter
resets an hour after the first request of the hour. A user over a limit
gets a LimitDecision with allowed=False and a message, never an exception.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.config import settings
from agenthub.db.models import UserSettings, UserUsage

logger = logging.getLogger(__name__)


@dataclass
class TrialLimits:
    max_tokens_per_day: int
    max_requests_per_hour: int
    max_cost_per_day: float

    @classmethod
    def from_settings(cls) -> "TrialLimits":
        return cls(
            max_tokens_per_day=settings.trial_max_tokens_per_day,
            max_requests_per_hour=settings.trial_max_requests_per_hour,
            max_cost_per_day=settings.trial_max_cost_per_day,
        )

    @classmethod
    def from_user_limits(cls, stored: Optional[Dict[str, Any]]) -> "TrialLimits":
        """Caps from a user's saved limits when enabled, else the configured defaults."""
        defaults = cls.from_settings()
        if not stored or not stored.get("enabled"):
            return defaults
        return cls(
            max_tokens_per_day=int(stored.get("maxTokensPerUser", defaults.max_tokens_per_day)),
            max_requests_per_hour=int(stored.get("maxRequestsPerHour", defaults.max_requests_per_hour)),
            max_cost_per_day=float(stored.get("maxCostPerUser", defaults.max_cost_per_day)),
        )


@dataclass
class LimitDecision:
    allowed: bool
    reason: Optional[str] = None
    limit_type: Optional[str] = None  # tokens | requests | cost
    reset_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "limitType": self.limit_type,
            "resetTime": self.reset_time.isoformat() if self.reset_time else None,
        }


def next_midnight_utc(now: datetime) -> datetime:
    return datetime(now.year, now.month, now.day) + timedelta(days=1)


def _percentage(used: float, limit: float) -> int:
    return round(used / limit * 100) if limit else 0


class UsageLimitService:
    def __init__(self, db: AsyncSession, limits: Optional[TrialLimits] = None):
        self.db = db
        # Fixed caps override per-user settings
        self.limits = limits

    async def limits_for(self, user_id: str) -> TrialLimits:
        if self.limits is not None:
            return self.limits
        result = await self.db.execute(select(UserSettings.limits).where(UserSettings.user_id == user_id))
        return TrialLimits.from_user_limits(result.scalar_one_or_none())

    async def get_user_usage(self, user_id: str, now: Optional[datetime] = None) -> UserUsage:
        """Today's counters for a user, resetting stale day or hour counters."""
        now = now or datetime.utcnow()
        today = now.strftime("%Y-%m-%d")
        result = await self.db.execute(select(UserUsage).where(UserUsage.user_id == user_id))
        usage = result.scalar_one_or_none()

        if usage is None:
            usage = UserUsage(
                user_id=user_id,
                date=today,
                tokens_used=0,
                requests_this_hour=0,
                hour_started_at=now,
                cost_accumulated=0.0,
                last_request_time=now,
            )
            self.db.add(usage)
            await self.db.commit()
            return usage

        if usage.date != today:
            usage.date = today
            usage.tokens_used = 0
            usage.cost_accumulated = 0.0
            usage.requests_this_hour = 0
            usage.hour_started_at = now
        elif now - usage.hour_started_at >= timedelta(hours=1):
            usage.requests_this_hour = 0
            usage.hour_started_at = now
        return usage

    async def check_limits(self, user_id: str, now: Optional[datetime] = None) -> LimitDecision:
        now = now or datetime.utcnow()
        usage = await self.get_user_usage(user_id, now)
        limits = await self.limits_for(user_id)

        if usage.tokens_used >= limits.max_tokens_per_day:
            return LimitDecision(
                allowed=False,
                limit_type="tokens",
                reason=(
                    f"Daily token limit reached ({limits.max_tokens_per_day} tokens). Your limit resets at "
                    "midnight UTC. Please add your own API key in Settings to continue."
                ),
                reset_time=next_midnight_utc(now),
            )
        if usage.requests_this_hour >= limits.max_requests_per_hour:
            return LimitDecision(
                allowed=False,
                limit_type="requests",
                reason=(
                    f"Hourly request limit reached ({limits.max_requests_per_hour} requests). Please wait an "
                    "hour or add your own API key in Settings."
                ),
                reset_time=usage.hour_started_at + timedelta(hours=1),
            )
        if usage.cost_accumulated >= limits.max_cost_per_day:
            return LimitDecision(
                allowed=False,
                limit_type="cost",
                reason=(
                    f"Daily cost limit reached (${limits.max_cost_per_day:.2f}). Your limit resets at "
                    "midnight UTC. Please add your own API key in Settings to continue."
                ),
                reset_time=next_midnight_utc(now),
            )
        return LimitDecision(allowed=True)

    async def record_usage(self, user_id: str, tokens: int, cost: float, now: Optional[datetime] = None) -> None:
        now = now or datetime.utcnow()
        usage = await self.get_user_usage(user_id, now)
        usage.tokens_used = (usage.tokens_used or 0) + tokens
        usage.requests_this_hour = (usage.requests_this_hour or 0) + 1
        usage.cost_accumulated = (usage.cost_accumulated or 0.0) + cost
        usage.last_request_time = now
        await self.db.commit()
        logger.debug("[USAGE] Trial usage for %s: %d tokens, $%.4f today", user_id, usage.tokens_used, usage.cost_accumulated)

    async def get_usage_summary(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        usage = await self.get_user_usage(user_id, now)
        limits = await self.limits_for(user_id)

        def dimension(used, limit):
            return {
                "used": used,
                "limit": limit,
                "percentage": _percentage(used, limit),
                "remaining": max(0, limit - used),
            }

        return {
            "tokens": dimension(usage.tokens_used, limits.max_tokens_per_day),
            "requests": dimension(usage.requests_this_hour, limits.max_requests_per_hour),
            "cost": dimension(usage.cost_accumulated, limits.max_cost_per_day),
            "resetsAt": next_midnight_utc(now).isoformat(),
        }
