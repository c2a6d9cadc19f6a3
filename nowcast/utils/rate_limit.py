from dataclasses import dataclass
from typing import Callable
import logging
import math
import time
import uuid

from fastapi import Request, Response
from redis.asyncio import Redis
from slowapi.util import get_remote_address

from nowcast.services.auth_service import decode_access_token
from nowcast.services.cache_service import CacheNamespace, cache_key
from nowcast.utils.errors import TooManyRequestsError

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in: int

class RateLimiter:
    """
    Sliding-window limiter over a Redis sorted set per (action, identifier).

    Each admitted request adds one token scored by its timestamp; tokens older
    than the window are pruned on every check, so a key holds at most ``limit``
    tokens and the reset time comes from the oldest surviving token.
    """

    def __init__(self, redis: Redis, clock: Callable[[], float] = time.time):
        self.redis = redis
        self._clock = clock

    async def check(self, identifier: str, action: str, limit: int, window_seconds: int) -> RateLimitResult:
        key = cache_key(CacheNamespace.RATE_LIMIT, action, identifier)
        now_ms = int(self._clock() * 1000)
        window_ms = window_seconds * 1000

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, "-inf", now_ms - window_ms)
                pipe.zcard(key)
                _, count = await pipe.execute()

            if count >= limit:
                oldest = await self.redis.zrange(key, 0, 0, withscores=True)
                if oldest:
                    reset_in = math.ceil((oldest[0][1] + window_ms - now_ms) / 1000)
                else:
                    reset_in = window_seconds
                return RateLimitResult(allowed=False, remaining=0, reset_in=max(reset_in, 0))

            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zadd(key, {f"{now_ms}-{uuid.uuid4().hex}": now_ms})
                pipe.expire(key, window_seconds)
                await pipe.execute()

            return RateLimitResult(allowed=True, remaining=limit - count - 1, reset_in=window_seconds)

        except Exception as e:
            # Fail open - allow request if Redis fails
            logger.warning(f"Rate limit check error for key '{key}': {e}")
            return RateLimitResult(allowed=True, remaining=limit, reset_in=window_seconds)

def client_identifier(request: Request) -> str:
    """Authenticated user id when a valid bearer token is present, else the client address"""
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        token_data = decode_access_token(authorization[len("Bearer "):], request.app.state.services.settings)
        if token_data is not None:
            return f"user:{token_data.user_id}"
    return f"ip:{get_remote_address(request)}"

class RateLimit:
    """Route dependency: ``Depends(RateLimit("post", 60, 3600))``"""

    def __init__(self, action: str, limit: int, window_seconds: int):
        self.action = action
        self.limit = limit
        self.window_seconds = window_seconds

    async def __call__(self, request: Request, response: Response) -> RateLimitResult:
        limiter: RateLimiter = request.app.state.services.rate_limiter
        result = await limiter.check(
            client_identifier(request),
            self.action,
            self.limit,
            self.window_seconds
        )

        if not result.allowed:
            raise TooManyRequestsError(
                f"Too many {self.action} requests, please try again later",
                remaining=result.remaining,
                reset_in=result.reset_in
            )

        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(result.reset_in)
        return result
