"""Authentication dependencies."""

from uuid import UUID

from fastapi import Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from forge.app.db.models.team import TeamMember
from forge.app.db.models.user import User
from forge.app.db.session import get_session
from forge.app.errors import APIError
from forge.app.security import AuthenticationError, verify_access_token

__all__ = ["CurrentUser", "get_current_user", "require_team_member"]


class CurrentUser(BaseModel):
    """Current authenticated user context."""
    user_id: UUID
    email: str


# auto_error=False so a missing header renders our error body, not FastAPI's
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(message: str) -> APIError:
    return APIError(
        status.HTTP_401_UNAUTHORIZED,
        "Unauthorized",
        "AUTH_1001",
        message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_session),
) -> CurrentUser:
    """Get current authenticated user from the Bearer JWT.

    Raises:
        APIError: 401 if the token is missing or invalid, or the user is gone
    """
    if not credentials or not credentials.credentials:
        raise _unauthorized("Missing authorization token")

    try:
        payload = verify_access_token(credentials.credentials)
    except AuthenticationError as e:
        raise _unauthorized(str(e))

    user = db.execute(
        select(User).where(User.user_id == payload.user_id)
    ).scalar_one_or_none()
    if not user:
        raise _unauthorized("User not found")

    return CurrentUser(user_id=user.user_id, email=user.email)


def require_team_member(db: Session, user_id: UUID, team_id: UUID) -> None:
    """Raise 403 unless ``user_id`` belongs to ``team_id``."""
    membership = db.execute(
        select(TeamMember.member_id).where(
            TeamMember.team_id == team_id, TeamMember.user_id == user_id
        )
    ).first()
    if membership is None:
        raise APIError(
            status.HTTP_403_FORBIDDEN,
            "Not a member of this team",
            "TEAM_4003",
        )
