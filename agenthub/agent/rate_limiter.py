"""
Rate Limiter — Fixed-window request counters keyed by string.

One RateLimiter instance exists per limiting policy. The three policies
the chat flow needs are bundled in `RateLimiters`, built once at startup
and handed to callers (see agenthub.main lifespan).

Usage:
    limiters = RateLimiters.from_settings()
    decision = limiters.user.check_limit(user_id)
    if not decision.allowed:
        wait = format_reset_time(decision.reset_time)
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from agenthub.config import settings

logger = logging.getLogger(__name__)

FAST_TIER_KEY = "haiku"
SMART_TIER_KEY = "sonnet"


@dataclass
class RateLimitDecision:
    """Outcome of a single limit check."""
    allowed: bool
    remaining: int
    reset_time: float  # Epoch seconds when the window resets

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "resetTime": self.reset_time,
        }


@dataclass
class _WindowEntry:
    count: int
    reset_time: float


class RateLimiter:
    """
    Fixed-window counter.

    A key's window starts on its first request and resets lazily on the
    first check after `reset_time`. `cleanup()` drops expired entries so
    the table does not grow without bound.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        name: str = "",
        clock: Callable[[], float] = time.time,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name or f"{max_requests}/{window_seconds}s"
        self._clock = clock
        self._entries: Dict[str, _WindowEntry] = {}
        self._lock = threading.Lock()

    def check_limit(self, key: str) -> RateLimitDecision:
        """Count one request against `key` and report whether it is admitted."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None or now >= entry.reset_time:
                entry = _WindowEntry(count=1, reset_time=now + self.window_seconds)
                self._entries[key] = entry
                return RateLimitDecision(True, self.max_requests - 1, entry.reset_time)

            if entry.count >= self.max_requests:
                logger.info("[RATE] %s limit hit for %s", self.name, key)
                return RateLimitDecision(False, 0, entry.reset_time)

            entry.count += 1
            return RateLimitDecision(True, self.max_requests - entry.count, entry.reset_time)

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def cleanup(self) -> int:
        """Remove expired windows. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if now >= e.reset_time]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("[RATE] %s swept %d expired entries", self.name, len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiters:
    """The per-user limiter plus one limiter per model tier."""

    def __init__(self, user: RateLimiter, fast_tier: RateLimiter, smart_tier: RateLimiter):
        self.user = user
        self.fast_tier = fast_tier
        self.smart_tier = smart_tier

    @classmethod
    def from_settings(cls, clock: Callable[[], float] = time.time) -> "RateLimiters":
        window = settings.rate_limit_window_seconds
        return cls(
            user=RateLimiter(settings.user_rate_limit, window, name="user", clock=clock),
            fast_tier=RateLimiter(settings.fast_tier_rate_limit, window, name=FAST_TIER_KEY, clock=clock),
            smart_tier=RateLimiter(settings.smart_tier_rate_limit, window, name=SMART_TIER_KEY, clock=clock),
        )

    def for_tier(self, tier: str) -> RateLimiter:
        return self.smart_tier if tier == "smart" else self.fast_tier

    def check_tier(self, tier: str) -> RateLimitDecision:
        key = SMART_TIER_KEY if tier == "smart" else FAST_TIER_KEY
        return self.for_tier(tier).check_limit(key)

    def cleanup(self) -> int:
        return self.user.cleanup() + self.fast_tier.cleanup() + self.smart_tier.cleanup()


def format_reset_time(reset_time: float, now: Optional[float] = None) -> str:
    """Human-readable wait time until `reset_time`."""
    now = time.time() if now is None else now
    seconds = max(0, math.ceil(reset_time - now))
    if seconds < 60:
        return f"{seconds} second{'' if seconds == 1 else 's'}"
    minutes = math.ceil(seconds / 60)
    return f"{minutes} minute{'' if minutes == 1 else 's'}"
