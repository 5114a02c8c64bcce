"""Per-user retrieval policy."""

import logging
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from forge.app.db.models.context_preference import ContextPreference

logger = logging.getLogger(__name__)

MAX_CONTEXT_ITEMS_LIMIT = 500


class InvalidPolicyError(ValueError):
    """Raised when a policy update would leave the policy unusable."""


class RetrievalPolicy(BaseModel):
    """Which sources feed a user's context, and how much of it to keep."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    use_own_preview: bool = Field(default=True, alias="useOwnPreview")
    use_cdn_content: bool = Field(default=True, alias="useCdnContent")
    use_team_preview: bool = Field(default=True, alias="useTeamPreview")
    use_all_submissions: bool = Field(default=False, alias="useAllSubmissions")
    max_context_items: int = Field(default=100, alias="maxContextItems")
    prefer_recent: bool = Field(default=True, alias="preferRecent")


DEFAULT_POLICY = RetrievalPolicy()

_POLICY_FIELDS = tuple(RetrievalPolicy.model_fields)


def validate_policy_updates(updates: dict[str, Any]) -> dict[str, Any]:
    """Keep known policy fields and check the item budget.

    Raises:
        InvalidPolicyError: If ``max_context_items`` is outside 1..500.
    """
    cleaned = {k: v for k, v in updates.items() if k in _POLICY_FIELDS and v is not None}
    max_items = cleaned.get("max_context_items")
    if max_items is not None and not 1 <= max_items <= MAX_CONTEXT_ITEMS_LIMIT:
        raise InvalidPolicyError(
            f"max_context_items must be between 1 and {MAX_CONTEXT_ITEMS_LIMIT}, "
            f"got {max_items}"
        )
    return cleaned


class PolicyStore:
    """Reads and writes retrieval policies.

    Reads never write: a user without a saved row gets the defaults. The
    row is created on the first save.
    """

    def __init__(self, session: Session):
        self.session = session

    def _row(self, user_id: UUID) -> ContextPreference | None:
        stmt = select(ContextPreference).where(ContextPreference.user_id == user_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def get(self, user_id: UUID) -> RetrievalPolicy:
        row = self._row(user_id)
        if row is None:
            return DEFAULT_POLICY.model_copy()
        return RetrievalPolicy.model_validate(row)

    def get_row(self, user_id: UUID) -> ContextPreference | None:
        return self._row(user_id)

    def save(self, user_id: UUID, updates: dict[str, Any]) -> ContextPreference:
        """Apply a partial update, creating the row from defaults if needed."""
        cleaned = validate_policy_updates(updates)
        row = self._row(user_id)
        if row is None:
            row = ContextPreference(
                user_id=user_id, **{**DEFAULT_POLICY.model_dump(), **cleaned}
            )
            self.session.add(row)
        else:
            for key, value in cleaned.items():
                setattr(row, key, value)

        self.session.flush()
        logger.info(f"Saved retrieval policy for user {user_id}: {sorted(cleaned)}")
        return row
