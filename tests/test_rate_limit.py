"""Tests for rate limiting and retry configuration."""

import pytest

from vaultbets.common.rate_limit import RateLimiter, RetryConfig


class TestRateLimiter:
    """Test the token bucket."""

    @pytest.mark.asyncio
    async def test_burst_is_free(self):
        limiter = RateLimiter(requests_per_second=1.0, burst_size=3)
        waits = [await limiter.acquire() for _ in range(3)]
        assert waits == [0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_waits_when_empty(self):
        limiter = RateLimiter(requests_per_second=100.0, burst_size=1)
        await limiter.acquire()
        assert await limiter.acquire() > 0

    def test_per_minute(self):
        limiter = RateLimiter.per_minute(30)
        assert limiter.requests_per_second == 0.5
        assert limiter.burst_size == 1


class TestRetryConfig:
    """Test backoff delays."""

    def test_exponential_without_jitter(self):
        config = RetryConfig(base_delay=1.0, jitter=False)
        assert [config.get_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
        assert config.get_delay(10) == 5.0

    def test_jitter_within_quarter(self):
        config = RetryConfig(base_delay=2.0, jitter=True)
        for _ in range(20):
            assert 1.5 <= config.get_delay(0) <= 2.5
