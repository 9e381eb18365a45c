"""
Fixed-window rate limiting on Redis (INCR + EXPIRE on first hit).
Counters are shared by every API instance. Redis errors fail open.
"""
import logging
from functools import lru_cache

import redis

from app.core.config import settings
from app.services.payments.errors import RateLimited
from app.utils.validation import mask_phone

logger = logging.getLogger(__name__)

STK_GLOBAL_KEY = "rl:stk:global"
STK_PHONE_KEY = "rl:stk:phone:{phone}"


@lru_cache
def get_redis() -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


def _retry_after(client: redis.Redis, key: str, window_seconds: int) -> int:
    ttl = client.ttl(key)
    if ttl is None or ttl < 0:
        # key lost its expiry (e.g. crash between INCR and EXPIRE); re-arm it
        client.expire(key, window_seconds)
        ttl = window_seconds
    return max(1, int(ttl))


def hit(client: redis.Redis, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
    """
    Count one request against `key`.
    Returns (allowed, retry_after); retry_after is the key TTL, at least 1.
    """
    current = client.incr(key)
    if current == 1:
        client.expire(key, window_seconds)
    if current <= limit:
        return True, 0
    return False, _retry_after(client, key, window_seconds)


class StkRateLimiter:
    """
    Global limit first, then per-phone limit, same window.
    The global counter is charged only for pushes that pass the per-phone limit.
    """

    def __init__(self, client: redis.Redis | None = None) -> None:
        self.client = client if client is not None else get_redis()
        self.per_phone = settings.stk_rate_limit_per_phone
        self.global_limit = settings.stk_rate_limit_global
        self.window = settings.stk_rate_limit_window_seconds

    def _global_busy(self, retry_after: int) -> RateLimited:
        logger.warning("stk_rate_limited_global", extra={"retry_after": retry_after})
        return RateLimited(retry_after, "Service busy. Please try again shortly.")

    def check(self, phone: str) -> None:
        """Raise RateLimited if this push is over either limit."""
        try:
            if int(self.client.get(STK_GLOBAL_KEY) or 0) >= self.global_limit:
                raise self._global_busy(_retry_after(self.client, STK_GLOBAL_KEY, self.window))
            allowed, retry_after = hit(
                self.client, STK_PHONE_KEY.format(phone=phone), self.per_phone, self.window
            )
            if not allowed:
                logger.warning(
                    "stk_rate_limited_phone",
                    extra={"phone": mask_phone(phone), "retry_after": retry_after},
                )
                raise RateLimited(retry_after)
            # concurrent pushes can race past the read above
            allowed, retry_after = hit(self.client, STK_GLOBAL_KEY, self.global_limit, self.window)
            if not allowed:
                raise self._global_busy(retry_after)
        except redis.RedisError as e:
            logger.warning("stk_rate_limit_redis_error", extra={"error": str(e)})
