"""Unit tests for the fixed-window rate limiter."""

import unittest

from app.core.rate_limit import RateLimiter, RateLimitPolicy, create_rate_limiter, rate_limit_headers


class TestRateLimiter(unittest.TestCase):
    def setUp(self) -> None:
        self.limiter = RateLimiter(RateLimitPolicy(name="login", max_requests=3, window_seconds=900))

    def test_allows_up_to_limit_then_blocks(self) -> None:
        results = [self.limiter.check("1.2.3.4", "alice") for _ in range(4)]
        self.assertEqual([r.allowed for r in results], [True, True, True, False])
        self.assertEqual([r.remaining for r in results[:3]], [2, 1, 0])
        blocked = results[-1]
        self.assertEqual(blocked.remaining, 0)
        self.assertGreaterEqual(blocked.retry_after_seconds, 1)
        self.assertLessEqual(blocked.retry_after_seconds, 900)

    def test_keys_are_independent(self) -> None:
        for _ in range(3):
            self.limiter.check("1.2.3.4", "alice")
        self.assertFalse(self.limiter.check("1.2.3.4", "alice").allowed)
        self.assertTrue(self.limiter.check("1.2.3.4", "bob").allowed)
        self.assertTrue(self.limiter.check("5.6.7.8", "alice").allowed)

    def test_reset_clears_counter(self) -> None:
        for _ in range(4):
            self.limiter.check("1.2.3.4", "alice")
        self.limiter.reset("1.2.3.4", "alice")
        result = self.limiter.check("1.2.3.4", "alice")
        self.assertTrue(result.allowed)
        self.assertEqual(result.remaining, 2)

    def test_policies_do_not_share_counters(self) -> None:
        other = RateLimiter(RateLimitPolicy(name="api", max_requests=3, window_seconds=900), self.limiter._storage)
        for _ in range(3):
            self.limiter.check("1.2.3.4")
        self.assertTrue(other.check("1.2.3.4").allowed)


class TestRateLimitHeaders(unittest.TestCase):
    def test_retry_after_only_when_blocked(self) -> None:
        limiter = create_rate_limiter(RateLimitPolicy("api", 1, 60), "memory://")
        allowed = rate_limit_headers(limiter.check("ip"))
        self.assertEqual(allowed["X-RateLimit-Limit"], "1")
        self.assertEqual(allowed["X-RateLimit-Remaining"], "0")
        self.assertNotIn("Retry-After", allowed)
        blocked = rate_limit_headers(limiter.check("ip"))
        self.assertIn("Retry-After", blocked)
        self.assertGreaterEqual(int(blocked["Retry-After"]), 1)
