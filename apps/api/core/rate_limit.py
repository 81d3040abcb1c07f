"""
Rate Limiting Middleware

Fixed-window counters in Redis, keyed per identity (or client IP when the
request is anonymous) and per endpoint. AI endpoints get a tighter limit
since every call costs an inference request.

Redis being unavailable never blocks traffic: the check fails open.
"""
import time
import logging
from typing import Optional, Tuple

import redis
from redis.exceptions import RedisError
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from core.session_gateway import is_exempt_path

logger = logging.getLogger(__name__)

AI_PREFIX = "/api/ai/"

# Redis connection (singleton)
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Get Redis client with connection pooling. Returns None if Redis unavailable."""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        client.ping()
        logger.info("Redis connection established")
        _redis_client = client
        return _redis_client
    except RedisError as e:
        logger.warning(f"Redis unavailable: {e}. Rate limiting disabled.")
        return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-identity, per-endpoint request limits."""

    def __init__(
        self,
        app,
        default_limit: int = 60,
        ai_limit: int = 10,
        window: int = 60,
        client_getter=None,
    ):
        super().__init__(app)
        self.default_limit = default_limit
        self.ai_limit = ai_limit
        self.window = window  # Time window in seconds
        self._client_getter = client_getter or get_redis_client

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        if is_exempt_path(request.url.path):
            return await call_next(request)

        user_id = self._get_user_id(request)
        limit = self._get_endpoint_limit(request.url.path)

        allowed, remaining, reset_time = self._check_rate_limit(
            user_id=user_id,
            endpoint=request.url.path,
            limit=limit,
            window=self.window
        )

        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={"extra_fields": {"key": user_id, "path": request.url.path, "limit": limit}},
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": "Rate limit exceeded"},
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": str(remaining),
                    "X-RateLimit-Reset": str(reset_time),
                    "Retry-After": str(max(0, int(reset_time - time.time())))
                }
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)

        return response

    def _get_user_id(self, request: Request) -> str:
        """Identity attached by the Session Gateway, else the client IP."""
        identity_id = getattr(request.state, "identity_id", None)
        if identity_id is not None:
            return f"user:{identity_id}"

        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _get_endpoint_limit(self, path: str) -> int:
        if path.startswith(AI_PREFIX):
            return self.ai_limit
        return self.default_limit

    def _check_rate_limit(
        self,
        user_id: str,
        endpoint: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int, int]:
        """
        Count the request against its window.

        Returns:
            (allowed, remaining, reset_time)
        """
        redis_client = self._client_getter()

        if not redis_client:
            return True, limit, int(time.time()) + window

        key = f"rate_limit:{user_id}:{endpoint}"

        try:
            current = redis_client.get(key)

            if current is None:
                redis_client.setex(key, window, 1)
                return True, limit - 1, int(time.time()) + window

            if int(current) >= limit:
                ttl = redis_client.ttl(key)
                reset_time = int(time.time()) + (ttl if ttl > 0 else window)
                return False, 0, reset_time

            new_count = redis_client.incr(key)

            # Key expired between GET and INCR
            if new_count == 1:
                redis_client.expire(key, window)

            remaining = max(0, limit - new_count)
            ttl = redis_client.ttl(key)
            reset_time = int(time.time()) + (ttl if ttl > 0 else window)

            return True, remaining, reset_time

        except RedisError as e:
            # Fail open
            logger.error(f"Rate limit check error: {e}")
            return True, limit, int(time.time()) + window
