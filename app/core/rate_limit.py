"""Rate limiting middleware.

One limiter for the whole API: a sliding window of `RATE_LIMIT_PER_MINUTE`
requests per client per 60 seconds. Hits are kept in a Redis sorted set per
client, scored by timestamp; old hits are trimmed on every request and the
key expires once the client goes quiet.
"""

import time
from typing import Callable, Optional
from uuid import uuid4

import redis
import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.core.errors import RateLimitedError

logger = structlog.get_logger(__name__)

RATE_LIMIT_WINDOW = 60
KEY_PREFIX = "rate_limit"


def get_redis_client(url: str) -> redis.Redis:
    """Client for the limiter store. Connects lazily on first command."""
    return redis.from_url(url, decode_responses=True)


def get_client_identifier(request: Request, trust_forwarded_for: bool = False) -> str:
    """
    Client IP for rate limiting.

    `X-Forwarded-For` is client-controlled, so its first hop is only used
    when the API runs behind a proxy that overwrites the header.
    """
    if trust_forwarded_for:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


class SlidingWindowLimiter:
    def __init__(self, client: redis.Redis, limit: int, window: int = RATE_LIMIT_WINDOW):
        self.client = client
        self.limit = limit
        self.window = window

    def hit(self, key: str, now: Optional[float] = None) -> tuple[bool, int]:
        """Record a hit; returns (allowed, remaining)."""
        now = time.time() if now is None else now
        window_start = now - self.window

        pipe = self.client.pipeline()
        pipe.zremrangebyscore(key, 0, window_start)
        pipe.zadd(key, {f"{now}:{uuid4().hex}": now})
        pipe.zcard(key)
        pipe.expire(key, self.window + 1)
        results = pipe.execute()

        request_count = results[2]
        if request_count > self.limit:
            return False, 0
        return True, self.limit - request_count


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Usage:
        app.add_middleware(RateLimitMiddleware, limit=settings.RATE_LIMIT_PER_MINUTE)

    A limit of 0 disables limiting. If Redis is unreachable the request is
    let through and the error logged.
    """

    EXEMPT_PATHS = ("/health", "/docs", "/openapi.json")

    def __init__(
        self,
        app,
        limit: int,
        redis_client: Optional[redis.Redis] = None,
        trust_forwarded_for: bool = False,
    ):
        super().__init__(app)
        self.trust_forwarded_for = trust_forwarded_for
        self.limiter = None
        if limit > 0:
            client = redis_client or get_redis_client(settings.REDIS_URL)
            self.limiter = SlidingWindowLimiter(client, limit)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if self.limiter is None or path.startswith(self.EXEMPT_PATHS):
            return await call_next(request)

        client_id = get_client_identifier(request, self.trust_forwarded_for)
        try:
            allowed, remaining = self.limiter.hit(f"{KEY_PREFIX}:{client_id}")
        except redis.RedisError as exc:
            logger.error("rate_limit_store_unavailable", client_id=client_id, error=str(exc))
            return await call_next(request)

        if not allowed:
            logger.warning("rate_limit_exceeded", client_id=client_id, path=path)
            error = RateLimitedError(
                f"Rate limit exceeded. Try again in {RATE_LIMIT_WINDOW} seconds."
            )
            return JSONResponse(
                status_code=error.status_code,
                content={"success": False, "error": error.to_dict()},
                headers={
                    "Retry-After": str(RATE_LIMIT_WINDOW),
                    "X-RateLimit-Limit": str(self.limiter.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limiter.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
