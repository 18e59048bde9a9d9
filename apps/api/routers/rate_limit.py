"""Per-caller request quotas for the metered endpoints.

Callers with a verified ID token are counted by user id; anonymous callers
are counted by client address.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Tuple

from fastapi import Depends, HTTPException, Request
import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings
from routers.auth_scope import get_optional_identity
from services.identity import IdentityResult


KEY_PREFIX = "hucks:rate"

# key -> (count, window reset time); only used while Redis is unreachable.
_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def _client_address(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


def quota_key(prefix: str, request: Request, identity: IdentityResult) -> str:
    if identity.authenticated:
        return f"{KEY_PREFIX}:{prefix}:user:{identity.user_id}"
    return f"{KEY_PREFIX}:{prefix}:ip:{_client_address(request)}"


def _prune_expired(now: float) -> None:
    expired = [key for key, (_, reset_at) in _local_counters.items() if reset_at <= now]
    for key in expired:
        del _local_counters[key]


async def _consume_local_quota(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    async with _local_lock:
        _prune_expired(now)
        count, reset_at = _local_counters.get(key, (0, now + window_seconds))
        count += 1
        _local_counters[key] = (count, reset_at)
        return count <= limit


async def _consume_redis_quota(key: str, limit: int, window_seconds: int) -> bool:
    redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        current = await redis_client.incr(key)
        if current == 1:
            await redis_client.expire(key, window_seconds)
    finally:
        await redis_client.aclose()
    return current <= limit


def rate_limit(prefix: str, limit: int, window_seconds: int) -> Callable[..., None]:
    """Return a FastAPI dependency that enforces per-caller request quotas."""

    async def _dependency(
        request: Request,
        identity: IdentityResult = Depends(get_optional_identity),
    ):
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = quota_key(prefix, request, identity)
        try:
            allowed = await _consume_redis_quota(key, limit, window_seconds)
        except (RedisError, OSError):
            allowed = await _consume_local_quota(key, limit, window_seconds)

        if not allowed:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded for {prefix}. Try again later.",
            )

    return _dependency
