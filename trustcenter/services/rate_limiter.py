# =============================================================================
# Rate Limiter — Redis Sliding Window for Public Submissions
# =============================================================================
#
# Public submissions are unauthenticated, so they are limited twice:
#   - per client IP:        10 per 15 minutes
#   - per requester email:  5 per hour
#
# The contact form and subprocessor subscribe use the per-IP window only,
# each under its own key.
#
# Each key is a Redis sorted set (ZSET). Each hit adds an entry scored by its
# timestamp. On each check, entries older than the window are pruned and the
# remaining count is compared against the limit.
#
# DESIGN DECISION: Graceful degradation. If Redis is unavailable, rate
# limiting is bypassed: log a warning, allow the request.
#
# Uses Redis db 2 (db 0/1 reserved for Celery).
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid

from fastapi import HTTPException

from trustcenter.config import settings

logger = logging.getLogger(__name__)

# Lazy Redis connection
_redis_client = None


def _get_rate_limit_redis():
    """Lazily create and cache the async Redis client for rate limiting."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis

        _redis_client = aioredis.from_url(
            settings.rate_limit_redis_url,
            decode_responses=True,
        )
    return _redis_client


async def _hit(redis_key: str, limit: int, window_seconds: int, label: str) -> None:
    r = _get_rate_limit_redis()
    now = time.time()

    pipe = r.pipeline()
    pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
    pipe.zcard(redis_key)
    # Unique member: two hits in the same microsecond must both count
    pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
    pipe.expire(redis_key, window_seconds + 10)
    results = await pipe.execute()

    if results[1] >= limit:
        raise HTTPException(
            status_code=429,
            detail=f"Too many requests from this {label}. Please try again later.",
            headers={"Retry-After": str(window_seconds)},
        )


async def check_submission_rate_limit(client_ip: str | None, email: str | None) -> None:
    """
    Raises:
        HTTPException 429: either limit exceeded (includes Retry-After).

    No-op when disabled or when Redis is unavailable.
    """
    if not settings.rate_limit_enabled:
        return

    try:
        if client_ip:
            await _hit(
                f"ratelimit:requests:ip:{client_ip}",
                settings.rate_limit_ip_max,
                settings.rate_limit_ip_window_seconds,
                "IP address",
            )
        if email:
            await _hit(
                f"ratelimit:requests:email:{email.strip().lower()}",
                settings.rate_limit_email_max,
                settings.rate_limit_email_window_seconds,
                "email address",
            )
    except HTTPException:
        raise  # Re-raise 429
    except Exception as e:
        # Redis unavailable: allow the request
        logger.warning(
            "Rate limiter unavailable (Redis error): %s. Allowing request through.",
            e,
        )


async def check_public_form_rate_limit(form: str, client_ip: str | None) -> None:
    """
    Per-IP window for the other public forms (contact, subscribe).

    Each form keeps its own key so they do not eat into the
    document-request budget. Same degradation rules as above.
    """
    if not settings.rate_limit_enabled or not client_ip:
        return

    try:
        await _hit(
            f"ratelimit:{form}:ip:{client_ip}",
            settings.rate_limit_ip_max,
            settings.rate_limit_ip_window_seconds,
            "IP address",
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.warning(
            "Rate limiter unavailable (Redis error): %s. Allowing request through.",
            e,
        )
