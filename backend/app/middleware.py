import logging
import time
import uuid
from typing import Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.common.errors import error_payload
from app.config import settings

logger = logging.getLogger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response


class RedisRateLimiter:
    """Fixed-window counter per key, stored in Redis so every worker shares it.

    Each window gets its own key (``<prefix>:<key>:<window index>``) with a TTL
    of one window, so Redis reclaims counters for clients that stop calling.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        client: Optional[aioredis.Redis] = None,
        key_prefix: str = "ratelimit",
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix
        self.clock = clock
        self._client = client

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(settings.redis_url, decode_responses=True)
        return self._client

    async def hit(self, key: str) -> tuple[bool, int, int]:
        """Record one request. Returns (allowed, remaining, seconds until reset)."""
        now = int(self.clock())
        window = now // self.window_seconds
        redis_key = f"{self.key_prefix}:{key}:{window}"

        count = await self.client.incr(redis_key)
        await self.client.expire(redis_key, self.window_seconds)

        reset_in = (window + 1) * self.window_seconds - now
        return count <= self.max_requests, max(0, self.max_requests - count), reset_in


class RateLimitMiddleware(BaseHTTPMiddleware):
    exempt_paths = frozenset({"/api/health"})

    def __init__(
        self,
        app: ASGIApp,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        path_prefix: str = "/api/",
        client: Optional[aioredis.Redis] = None,
    ):
        super().__init__(app)
        self.limiter = RedisRateLimiter(
            max_requests if max_requests is not None else settings.rate_limit_max_requests,
            window_seconds if window_seconds is not None else settings.rate_limit_window_seconds,
            client=client,
        )
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not path.startswith(self.path_prefix) or path in self.exempt_paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        try:
            allowed, remaining, reset_in = await self.limiter.hit(client_ip)
        except RedisError as e:
            # Fail open: an unreachable Redis must not take the API down.
            logger.warning("Rate limiter unavailable, allowing request: %s", e)
            return await call_next(request)
        limit = str(self.limiter.max_requests)

        if not allowed:
            logger.warning("Rate limit exceeded for %s on %s", client_ip, path)
            return JSONResponse(
                status_code=429,
                content=error_payload("rate_limited", "Too many requests from this IP, please try again later."),
                headers={
                    "Retry-After": str(max(1, reset_in)),
                    "X-RateLimit-Limit": limit,
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = limit
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
