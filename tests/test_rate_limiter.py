"""
Rate limiter tests
"""
import pytest

from utils.rate_limiter import RateLimiter


@pytest.mark.unit
class TestFixedWindow:
    """Per-client fixed window"""

    def test_allows_up_to_limit(self, clock):
        limiter = RateLimiter(limit=8, window_seconds=60, clock=clock)
        decisions = [limiter.check_rate_limit("1.2.3.4") for _ in range(8)]
        assert all(d.allowed for d in decisions)

    def test_rejects_over_limit_with_retry_after(self, clock):
        limiter = RateLimiter(limit=8, window_seconds=60, clock=clock)
        for _ in range(8):
            limiter.check_rate_limit("1.2.3.4")
        clock.advance(15)
        decision = limiter.check_rate_limit("1.2.3.4")
        assert decision.allowed is False
        assert decision.retry_after == 45

    def test_retry_after_at_least_one(self, clock):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
        limiter.check_rate_limit()
        clock.advance(59.9)
        assert limiter.check_rate_limit().retry_after == 1

    def test_new_window_after_reset(self, clock):
        limiter = RateLimiter(limit=2, window_seconds=60, clock=clock)
        for _ in range(3):
            limiter.check_rate_limit("c")
        clock.advance(60)
        assert limiter.check_rate_limit("c").allowed is True

    def test_clients_are_independent(self, clock):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
        assert limiter.check_rate_limit("a").allowed
        assert not limiter.check_rate_limit("a").allowed
        assert limiter.check_rate_limit("b").allowed

    def test_instances_do_not_share_state(self, clock):
        first = RateLimiter(limit=1, window_seconds=60, clock=clock)
        second = RateLimiter(limit=1, window_seconds=60, clock=clock)
        first.check_rate_limit("a")
        assert second.check_rate_limit("a").allowed

    def test_status_counters(self, clock):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
        limiter.check_rate_limit("a")
        limiter.check_rate_limit("a")
        status = limiter.get_status()
        assert status["total_requests"] == 2
        assert status["rejected_requests"] == 1
        assert status["active_clients"] == 1

        limiter.reset()
        assert limiter.get_status()["active_clients"] == 0
        assert limiter.check_rate_limit("a").allowed
