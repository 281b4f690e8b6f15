"""
Unit tests for the Rate Limiter Service.

Tests rate limiting functionality including:
- Fixed window counting per identity
- Window reset after expiry
- Sweeping expired identities
- Redis-backed limiter
- Backend selection and the global instance
"""
import pytest
from unittest.mock import patch

from site_audit.services import rate_limiter as rate_limiter_module
from site_audit.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitResult,
    RedisRateLimiter,
    create_rate_limiter,
    get_rate_limiter,
)


class TestRateLimitResult:
    """Test RateLimitResult dataclass."""

    def test_allowed_result(self):
        """Test allowed rate limit result."""
        result = RateLimitResult(
            allowed=True,
            limit=10,
            remaining=9,
            reset_at=1704902400,
        )

        assert result.allowed is True
        assert result.remaining == 9
        assert result.retry_after is None

    def test_blocked_result(self):
        """Test blocked rate limit result."""
        result = RateLimitResult(
            allowed=False,
            limit=10,
            remaining=0,
            reset_at=1704902400,
            retry_after=30,
        )

        assert result.allowed is False
        assert result.retry_after == 30


class TestInMemoryRateLimiter:
    """Test the fixed window in-memory limiter."""

    @pytest.mark.asyncio
    async def test_defaults(self):
        """Test the limiter defaults to 10 requests per minute."""
        limiter = InMemoryRateLimiter()

        assert limiter.max_requests == 10
        assert limiter.window_ms == 60000

    @pytest.mark.asyncio
    async def test_allows_up_to_limit_then_denies(self, fake_clock):
        """Test exactly max_requests calls pass and the next is denied."""
        limiter = InMemoryRateLimiter(max_requests=10, window_ms=60000, clock=fake_clock)

        for _ in range(10):
            assert await limiter.is_limited("1.2.3.4") is False

        assert await limiter.is_limited("1.2.3.4") is True

    @pytest.mark.asyncio
    async def test_denied_requests_do_not_count(self, fake_clock):
        """Test the counter stops at the limit while denying."""
        limiter = InMemoryRateLimiter(max_requests=2, window_ms=1000, clock=fake_clock)

        for _ in range(5):
            await limiter.check("client")

        assert limiter.get_record("client").count == 2

    @pytest.mark.asyncio
    async def test_remaining_counts_down(self, fake_clock):
        """Test remaining decreases with each allowed request."""
        limiter = InMemoryRateLimiter(max_requests=3, window_ms=1000, clock=fake_clock)

        remaining = [(await limiter.check("client")).remaining for _ in range(3)]

        assert remaining == [2, 1, 0]

    @pytest.mark.asyncio
    async def test_window_resets_after_expiry(self, fake_clock):
        """Test a fresh window opens once window_ms has elapsed."""
        limiter = InMemoryRateLimiter(max_requests=2, window_ms=60000, clock=fake_clock)
        await limiter.check("client")
        await limiter.check("client")
        assert await limiter.is_limited("client") is True

        fake_clock.advance(60001)

        result = await limiter.check("client")
        assert result.allowed is True
        assert limiter.get_record("client").count == 1
        assert limiter.get_record("client").window_reset_time == fake_clock.now + 60000

    @pytest.mark.asyncio
    async def test_window_not_reset_at_exact_boundary(self, fake_clock):
        """Test the window is still closed when now equals the reset time."""
        limiter = InMemoryRateLimiter(max_requests=1, window_ms=1000, clock=fake_clock)
        await limiter.check("client")

        fake_clock.advance(1000)

        assert await limiter.is_limited("client") is True

    @pytest.mark.asyncio
    async def test_later_requests_do_not_slide_window(self, fake_clock):
        """Test the reset time is fixed by the first request."""
        limiter = InMemoryRateLimiter(max_requests=5, window_ms=1000, clock=fake_clock)
        await limiter.check("client")
        reset_time = limiter.get_record("client").window_reset_time

        fake_clock.advance(500)
        await limiter.check("client")

        assert limiter.get_record("client").window_reset_time == reset_time

    @pytest.mark.asyncio
    async def test_identities_are_independent(self, fake_clock):
        """Test one client's usage does not affect another."""
        limiter = InMemoryRateLimiter(max_requests=1, window_ms=1000, clock=fake_clock)
        await limiter.check("a")

        assert await limiter.is_limited("a") is True
        assert await limiter.is_limited("b") is False

    @pytest.mark.asyncio
    async def test_denied_result_has_retry_after(self, fake_clock):
        """Test denial reports seconds until the window resets."""
        limiter = InMemoryRateLimiter(max_requests=1, window_ms=60000, clock=fake_clock)
        await limiter.check("client")
        fake_clock.advance(30000)

        result = await limiter.check("client")

        assert result.allowed is False
        assert result.remaining == 0
        assert result.retry_after == 30

    @pytest.mark.asyncio
    async def test_close_clears_records(self, fake_clock):
        """Test close forgets every identity."""
        limiter = InMemoryRateLimiter(max_requests=1, window_ms=1000, clock=fake_clock)
        await limiter.check("client")

        await limiter.close()

        assert limiter.get_record("client") is None

    @pytest.mark.asyncio
    async def test_expired_identities_dropped(self, fake_clock):
        """Test expired records are removed once the map reaches the threshold."""
        limiter = InMemoryRateLimiter(
            max_requests=2, window_ms=1000, clock=fake_clock, sweep_threshold=3
        )
        for identity in ("spoof-1", "spoof-2", "spoof-3"):
            await limiter.check(identity)

        fake_clock.advance(1001)
        await limiter.check("fresh")

        assert limiter.get_record("spoof-1") is None
        assert limiter.get_record("spoof-3") is None
        assert limiter.get_record("fresh").count == 1

    @pytest.mark.asyncio
    async def test_live_identities_survive_sweep(self, fake_clock):
        """Test records still inside their window keep their counts."""
        limiter = InMemoryRateLimiter(
            max_requests=2, window_ms=1000, clock=fake_clock, sweep_threshold=2
        )
        await limiter.check("old")
        fake_clock.advance(600)
        await limiter.check("recent")
        await limiter.check("recent")

        fake_clock.advance(500)
        await limiter.check("new")

        assert limiter.get_record("old") is None
        assert limiter.get_record("recent").count == 2
        assert await limiter.is_limited("recent") is True

    @pytest.mark.asyncio
    async def test_no_sweep_below_threshold(self, fake_clock):
        """Test expired records are kept while the map is small."""
        limiter = InMemoryRateLimiter(max_requests=2, window_ms=1000, clock=fake_clock)
        await limiter.check("old")

        fake_clock.advance(1001)
        await limiter.check("new")

        assert limiter.get_record("old") is not None


class TestRedisRateLimiter:
    """Test the Redis-backed limiter with a mocked client."""

    @pytest.mark.asyncio
    async def test_rate_limit_key(self):
        """Test key format."""
        limiter = RedisRateLimiter(redis_url="redis://test")

        assert limiter._rate_limit_key("1.2.3.4") == "ratelimit:audit:1.2.3.4"

    @pytest.mark.asyncio
    async def test_first_request_opens_window(self, mock_redis):
        """Test the pipeline sets the window key with NX and PX."""
        limiter = RedisRateLimiter(redis_url="redis://test", max_requests=10, window_ms=60000)
        limiter._redis = mock_redis

        result = await limiter.check("client")

        assert result.allowed is True
        assert result.remaining == 9
        mock_redis.pipe.set.assert_called_once_with(
            "ratelimit:audit:client", 0, nx=True, px=60000
        )
        mock_redis.pipe.incr.assert_called_once_with("ratelimit:audit:client")
        mock_redis.decr.assert_not_called()

    @pytest.mark.asyncio
    async def test_over_limit_denied_and_rolled_back(self, mock_redis):
        """Test the request past the limit is denied and not counted."""
        mock_redis.pipe.execute.return_value = [None, 11, 45000]
        limiter = RedisRateLimiter(redis_url="redis://test", max_requests=10, window_ms=60000)
        limiter._redis = mock_redis

        result = await limiter.check("client")

        assert result.allowed is False
        assert result.retry_after == 45
        mock_redis.decr.assert_awaited_once_with("ratelimit:audit:client")

    @pytest.mark.asyncio
    async def test_missing_ttl_falls_back_to_window(self, mock_redis):
        """Test a key without TTL is treated as a full window."""
        mock_redis.pipe.execute.return_value = [None, 3, -1]
        limiter = RedisRateLimiter(redis_url="redis://test", max_requests=10, window_ms=60000)
        limiter._redis = mock_redis

        result = await limiter.check("client")

        assert result.allowed is True
        assert result.remaining == 7

    @pytest.mark.asyncio
    async def test_close(self, mock_redis):
        """Test close releases the connection."""
        limiter = RedisRateLimiter(redis_url="redis://test")
        limiter._redis = mock_redis

        await limiter.close()

        mock_redis.close.assert_awaited_once()
        assert limiter._redis is None


class TestLimiterFactory:
    """Test backend selection and the global instance."""

    def test_memory_backend_by_default(self):
        """Test the in-memory limiter is the default backend."""
        with patch.object(rate_limiter_module.settings, "RATE_LIMIT_BACKEND", "memory"):
            assert isinstance(create_rate_limiter(), InMemoryRateLimiter)

    def test_redis_backend(self):
        """Test RATE_LIMIT_BACKEND=redis selects the Redis limiter."""
        with patch.object(rate_limiter_module.settings, "RATE_LIMIT_BACKEND", "redis"):
            assert isinstance(create_rate_limiter(), RedisRateLimiter)

    @pytest.mark.asyncio
    async def test_global_instance_is_shared(self):
        """Test get_rate_limiter returns one instance until closed."""
        first = get_rate_limiter()

        assert get_rate_limiter() is first

        await rate_limiter_module.close_rate_limiter()

        assert get_rate_limiter() is not first
