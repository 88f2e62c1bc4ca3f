"""
Rate limiter tests: fixed windows, lazy reset, sweeps and tier bundles.
"""

import unittest


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRateLimiter(unittest.TestCase):

    def _limiter(self, max_requests=3, window=60, clock=None):
        from agenthub.agent.rate_limiter import RateLimiter
        return RateLimiter(max_requests, window, name="test", clock=clock or FakeClock())

    def test_first_request_opens_window(self):
        clock = FakeClock(1000.0)
        limiter = self._limiter(clock=clock)
        decision = limiter.check_limit("alice")
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.remaining, 2)
        self.assertEqual(decision.reset_time, 1060.0)

    def test_rejects_after_max_requests(self):
        limiter = self._limiter()
        for expected_remaining in (2, 1, 0):
            decision = limiter.check_limit("alice")
            self.assertTrue(decision.allowed)
            self.assertEqual(decision.remaining, expected_remaining)
        rejected = limiter.check_limit("alice")
        self.assertFalse(rejected.allowed)
        self.assertEqual(rejected.remaining, 0)

    def test_rejection_does_not_move_window(self):
        clock = FakeClock(1000.0)
        limiter = self._limiter(max_requests=1, clock=clock)
        limiter.check_limit("alice")
        clock.now = 1030.0
        self.assertEqual(limiter.check_limit("alice").reset_time, 1060.0)

    def test_window_resets_lazily(self):
        clock = FakeClock(1000.0)
        limiter = self._limiter(max_requests=1, clock=clock)
        limiter.check_limit("alice")
        self.assertFalse(limiter.check_limit("alice").allowed)
        clock.now = 1060.0
        decision = limiter.check_limit("alice")
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.reset_time, 1120.0)

    def test_keys_are_independent(self):
        limiter = self._limiter(max_requests=1)
        self.assertTrue(limiter.check_limit("alice").allowed)
        self.assertTrue(limiter.check_limit("bob").allowed)
        self.assertFalse(limiter.check_limit("alice").allowed)

    def test_cleanup_removes_only_expired(self):
        clock = FakeClock(1000.0)
        limiter = self._limiter(clock=clock)
        limiter.check_limit("old")
        clock.now = 1030.0
        limiter.check_limit("new")
        clock.now = 1070.0
        self.assertEqual(limiter.cleanup(), 1)
        self.assertEqual(len(limiter), 1)

    def test_reset_clears_key(self):
        limiter = self._limiter(max_requests=1)
        limiter.check_limit("alice")
        limiter.reset("alice")
        self.assertTrue(limiter.check_limit("alice").allowed)

    def test_invalid_max_requests(self):
        from agenthub.agent.rate_limiter import RateLimiter
        with self.assertRaises(ValueError):
            RateLimiter(0, 60)


class TestRateLimiters(unittest.TestCase):

    def test_from_settings_uses_configured_limits(self):
        from agenthub.agent.rate_limiter import RateLimiters
        from agenthub.config import settings
        limiters = RateLimiters.from_settings(clock=FakeClock())
        self.assertEqual(limiters.user.max_requests, settings.user_rate_limit)
        self.assertEqual(limiters.fast_tier.max_requests, settings.fast_tier_rate_limit)
        self.assertEqual(limiters.smart_tier.max_requests, settings.smart_tier_rate_limit)

    def test_tiers_are_counted_separately(self):
        from agenthub.agent.rate_limiter import RateLimiter, RateLimiters
        from agenthub.services.anthropic_service import ModelTier
        clock = FakeClock()
        limiters = RateLimiters(
            user=RateLimiter(5, 60, clock=clock),
            fast_tier=RateLimiter(1, 60, clock=clock),
            smart_tier=RateLimiter(1, 60, clock=clock),
        )
        self.assertTrue(limiters.check_tier(ModelTier.FAST).allowed)
        self.assertFalse(limiters.check_tier(ModelTier.FAST).allowed)
        self.assertTrue(limiters.check_tier(ModelTier.SMART).allowed)

    def test_cleanup_sweeps_all(self):
        from agenthub.agent.rate_limiter import RateLimiters
        clock = FakeClock(1000.0)
        limiters = RateLimiters.from_settings(clock=clock)
        limiters.user.check_limit("alice")
        limiters.check_tier("fast")
        clock.now += 3600
        self.assertEqual(limiters.cleanup(), 2)


class TestFormatResetTime(unittest.TestCase):

    def test_seconds_and_minutes(self):
        from agenthub.agent.rate_limiter import format_reset_time
        self.assertEqual(format_reset_time(1001.0, now=1000.0), "1 second")
        self.assertEqual(format_reset_time(1045.0, now=1000.0), "45 seconds")
        self.assertEqual(format_reset_time(1090.0, now=1000.0), "2 minutes")
        self.assertEqual(format_reset_time(900.0, now=1000.0), "0 seconds")


if __name__ == "__main__":
    unittest.main()
