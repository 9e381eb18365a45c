"""
Rate limiter for login to prevent brute-force attacks.
"""
import logging

import redis
from starlette.requests import Request

from app.core.config import settings
from app.services.rate_limit import hit

logger = logging.getLogger("auth")


def get_client_ip(request: Request) -> str:
    """Client IP (supports X-Forwarded-For from proxy)."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and settings.app_env == "production":
        trusted = settings.trusted_proxy_ips_set
        if trusted and request.client and request.client.host in trusted:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


def check_login_rate_limit(client: redis.Redis, client_ip: str) -> int:
    """
    Count a login attempt. Returns 0 if allowed, else seconds until the window resets.
    """
    try:
        allowed, retry_after = hit(
            client,
            f"login_attempts:{client_ip}",
            settings.login_rate_limit_attempts,
            settings.login_rate_limit_window_seconds,
        )
        if not allowed:
            logger.warning("login_rate_limited", extra={"retry_after": retry_after})
        return retry_after
    except redis.RedisError as e:
        logger.warning("login_rate_limit_redis_error", extra={"error": str(e)})
        return 0  # Fail open - allow login if Redis is down


def reset_login_attempts(client: redis.Redis, client_ip: str) -> None:
    """Reset counter on successful login."""
    try:
        client.delete(f"login_attempts:{client_ip}")
    except redis.RedisError as e:
        logger.warning("login_rate_limit_redis_error", extra={"error": str(e)})
