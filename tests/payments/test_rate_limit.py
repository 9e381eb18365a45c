"""Fixed-window STK push limits on Redis."""
from unittest.mock import MagicMock

import pytest
import redis

from app.services.payments.errors import RateLimited
from app.services.rate_limit import STK_GLOBAL_KEY, StkRateLimiter, hit


def test_hit_sets_expiry_on_first_request(fake_redis):
    allowed, retry_after = hit(fake_redis, "k", limit=2, window_seconds=60)
    assert (allowed, retry_after) == (True, 0)
    assert 0 < fake_redis.ttl("k") <= 60


def test_hit_reports_ttl_when_exceeded(fake_redis):
    for _ in range(2):
        hit(fake_redis, "k", limit=2, window_seconds=60)
    allowed, retry_after = hit(fake_redis, "k", limit=2, window_seconds=60)
    assert allowed is False
    assert 1 <= retry_after <= 60


def test_hit_rearms_key_without_expiry(fake_redis):
    fake_redis.set("k", 5)
    allowed, retry_after = hit(fake_redis, "k", limit=2, window_seconds=30)
    assert allowed is False
    assert retry_after == 30
    assert fake_redis.ttl("k") > 0


class TestStkRateLimiter:
    def test_three_per_phone_then_limited(self, fake_redis):
        limiter = StkRateLimiter(fake_redis)
        for _ in range(3):
            limiter.check("254712345678")
        with pytest.raises(RateLimited) as exc:
            limiter.check("254712345678")
        assert exc.value.retry_after > 0

    def test_phones_counted_separately(self, fake_redis):
        limiter = StkRateLimiter(fake_redis)
        for _ in range(3):
            limiter.check("254712345678")
        limiter.check("254722000111")

    def test_global_limit_checked_first(self, fake_redis):
        fake_redis.set(STK_GLOBAL_KEY, 100, ex=60)
        limiter = StkRateLimiter(fake_redis)
        with pytest.raises(RateLimited):
            limiter.check("254712345678")
        # the per-phone counter was not touched
        assert fake_redis.get("rl:stk:phone:254712345678") is None

    def test_phone_rejections_do_not_spend_global_budget(self, fake_redis):
        limiter = StkRateLimiter(fake_redis)
        for _ in range(100):
            try:
                limiter.check("254711111111")
            except RateLimited:
                pass
        assert fake_redis.get(STK_GLOBAL_KEY) == "3"
        limiter.check("254722222222")
        assert fake_redis.get(STK_GLOBAL_KEY) == "4"

    def test_global_limit_reached_by_allowed_pushes(self, fake_redis):
        fake_redis.set(STK_GLOBAL_KEY, 99, ex=60)
        limiter = StkRateLimiter(fake_redis)
        limiter.check("254711111111")
        with pytest.raises(RateLimited) as exc:
            limiter.check("254722222222")
        assert exc.value.message == "Service busy. Please try again shortly."

    def test_redis_down_fails_open(self):
        broken = MagicMock()
        broken.get.side_effect = redis.ConnectionError("down")
        broken.incr.side_effect = redis.ConnectionError("down")
        StkRateLimiter(broken).check("254712345678")
