"""Security middleware for headers and rate limiting."""

import logging
import time
from typing import Callable

import redis.asyncio as redis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from forge.app.config import get_settings

from .jwt import AuthenticationError, verify_access_token

logger = logging.getLogger(__name__)

# Atomic token bucket: KEYS[1]=bucket, ARGV=limit, window, now
TOKEN_BUCKET_LUA = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local current = redis.call('HMGET', key, 'tokens', 'last_refill')
local tokens = tonumber(current[1]) or limit
local last_refill = tonumber(current[2]) or now

local refill = math.floor((now - last_refill) * limit / window)
tokens = math.min(limit, tokens + refill)
if refill > 0 then
    last_refill = now
end

if tokens >= 1 then
    tokens = tokens - 1
    redis.call('HSET', key, 'tokens', tokens, 'last_refill', last_refill)
    redis.call('EXPIRE', key, window)
    return {1, 0}
else
    return {0, math.ceil(window / limit)}
end
"""

# (requests, window seconds) per path prefix; most specific first
RATE_LIMITS: dict[str, tuple[int, int]] = {
    "/api/embeddings/batch": (10, 60),
    "/api/embeddings/embed-manifests": (2, 60),
    "/api/embeddings/embed": (60, 60),
    "/api/embeddings": (120, 60),
    "/api/ai-context/build": (30, 60),
    "/api/ai-context": (60, 60),
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app):
        super().__init__(app)
        self.settings = get_settings()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "same-origin"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Content-Security-Policy"] = (
            f"default-src 'none'; connect-src 'self' {self.settings.ui_origin}; "
            "frame-ancestors 'none'"
        )

        # HSTS outside local development
        if not self.settings.ui_origin.startswith("http://localhost"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-user (or per-IP) token bucket rate limiting backed by Redis.

    Fails open: if Redis is unreachable the request goes through.
    """

    def __init__(self, app, rate_limits: dict[str, tuple[int, int]] | None = None):
        super().__init__(app)
        self.settings = get_settings()
        self.rate_limits = rate_limits if rate_limits is not None else RATE_LIMITS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rule = self._match_rule(request.url.path)
        if not self.settings.rate_limit_enabled or not rule:
            return await call_next(request)

        # One bucket per rule, so path parameters share it
        prefix, (limit, window) = rule
        subject = self._extract_user_id(request) or self._get_client_ip(request)
        limit_key = f"rate_limit:{subject}:{prefix}"

        allowed, retry_after = await self._check_rate_limit(limit_key, limit, window)
        if not allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "code": "RATE_LIMITED",
                    "message": f"Maximum {limit} requests per {window} seconds",
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        return request.client.host if request.client else "unknown"

    def _extract_user_id(self, request: Request) -> str | None:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return None
        try:
            return str(verify_access_token(auth_header[7:]).user_id)
        except AuthenticationError:
            # Unauthenticated requests are limited by IP
            return None

    def _match_rule(self, path: str) -> tuple[str, tuple[int, int]] | None:
        """First ``(prefix, (limit, window))`` whose prefix matches ``path``."""
        for prefix, limit in self.rate_limits.items():
            if path.startswith(prefix):
                return prefix, limit
        return None

    async def _check_rate_limit(self, key: str, limit: int, window: int) -> tuple[bool, int]:
        """Returns (allowed, retry_after_seconds)."""
        client = redis.from_url(self.settings.redis_url)
        try:
            result = await client.eval(
                TOKEN_BUCKET_LUA, 1, key, str(limit), str(window), str(int(time.time()))
            )
            return bool(result[0]), int(result[1])
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Rate limiting unavailable for {key}, allowing request: {e}")
            return True, 0
        finally:
            await client.aclose()
