"""Redis-based sliding window throttle for the whole HTTP surface.

This sits in front of the per-action cooldowns enforced by the engine and
only protects the service from request floods.
"""

import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from agora.logging_config import get_logger

logger = get_logger(__name__)

SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

DEFAULT_LIMIT = 120
DEFAULT_WINDOW = 60  # seconds


def caller_identifier(request: Request) -> str:
    """Prefer the API key prefix, fall back to the client address."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer ") and len(auth_header) > 23:
        return auth_header[7:23]
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis sliding window rate limiter (ZADD + ZREMRANGEBYSCORE)."""

    def __init__(self, app, redis_getter, limit: int = DEFAULT_LIMIT, window: int = DEFAULT_WINDOW):
        super().__init__(app)
        self._redis_getter = redis_getter
        self._limit = limit
        self._window = window

    async def _count(self, key: str) -> int | None:
        """Record this request and return the window count, or None if Redis is unusable."""
        redis = self._redis_getter()
        if redis is None:
            return None
        try:
            now = time.time()
            pipe = redis.pipeline()
            pipe.zremrangebyscore(key, 0, now - self._window)
            pipe.zadd(key, {f"{now}": now})
            pipe.zcard(key)
            pipe.expire(key, self._window + 1)
            results = await pipe.execute()
        except Exception as e:
            # If Redis is down, let the request through
            logger.warning("rate_limit_redis_error", error=str(e))
            return None
        return results[2]

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        identifier = caller_identifier(request)
        request_count = await self._count(f"ratelimit:{identifier}:{request.url.path}")
        if request_count is None:
            return await call_next(request)

        if request_count > self._limit:
            logger.warning(
                "rate_limit_exceeded",
                identifier=identifier,
                path=request.url.path,
                count=request_count,
                limit=self._limit,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "detail": f"Rate limit exceeded: {self._limit} requests per {self._window}s",
                    "retry_after": self._window,
                },
                headers={"Retry-After": str(self._window)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self._limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self._limit - request_count))
        return response
