"""Security utilities for authentication and request hardening."""

from .jwt import (
    AuthenticationError,
    TokenPayload,
    create_access_token,
    verify_access_token,
)
from .middleware import RateLimitMiddleware, SecurityHeadersMiddleware

__all__ = [
    "AuthenticationError",
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
    "TokenPayload",
    "create_access_token",
    "verify_access_token",
]
