"""JWT access token creation and verification."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from pydantic import BaseModel

from forge.app.config import get_settings

ALGORITHM = "RS256"


class TokenPayload(BaseModel):
    """Decoded access token claims."""
    user_id: UUID
    email: str | None = None
    issued_at: datetime
    expires_at: datetime


class AuthenticationError(Exception):
    """Authentication-related errors."""
    pass


def _configured_key(value: str, env_name: str) -> str:
    key = value.strip()
    if key.startswith("dummy-"):
        raise AuthenticationError(
            f"JWT key not configured. Set {env_name} in environment."
        )
    return key


def get_jwt_private_key() -> str:
    return _configured_key(get_settings().jwt_private_key_pem, "JWT_PRIVATE_KEY_PEM")


def get_jwt_public_key() -> str:
    return _configured_key(get_settings().jwt_public_key_pem, "JWT_PUBLIC_KEY_PEM")


def create_access_token(user_id: UUID, email: str | None = None) -> str:
    """Create a signed access token.

    Raises:
        AuthenticationError: If JWT keys are not configured
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_ttl_minutes),
        "type": "access",
    }
    return jwt.encode(payload, get_jwt_private_key(), algorithm=ALGORITHM)


def verify_access_token(token: str) -> TokenPayload:
    """Verify and decode an access token.

    Raises:
        AuthenticationError: If the token is invalid, expired, or of the wrong type
    """
    try:
        payload = jwt.decode(token, get_jwt_public_key(), algorithms=[ALGORITHM])

        if payload.get("type") != "access":
            raise AuthenticationError("Invalid token type")

        return TokenPayload(
            user_id=UUID(payload["sub"]),
            email=payload.get("email"),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(f"Invalid token: {e}")
    except (KeyError, ValueError) as e:
        raise AuthenticationError(f"Malformed token payload: {e}")
