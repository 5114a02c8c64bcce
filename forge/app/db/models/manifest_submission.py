"""Manifest submission ORM model."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from forge.app.db.base import Base, JSONType
from forge.app.db.mixins import utcnow
from forge.app.db.uuid_type import UniversalUUID


class ManifestSubmission(Base):
    """A single manifest item submitted by a user for review."""

    __tablename__ = "manifest_submission"

    submission_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), primary_key=True, default=uuid4
    )
    user_id: Mapped[UUID] = mapped_column(
        UniversalUUID(),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    team_id: Mapped[UUID | None] = mapped_column(
        UniversalUUID(), ForeignKey("team.team_id", ondelete="SET NULL"), nullable=True
    )
    manifest_type: Mapped[str] = mapped_column(String(100), nullable=False)
    item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    item_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    edited_item_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    was_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index("idx_submission_type_status", "manifest_type", "status"),
        Index("idx_submission_item", "manifest_type", "item_id"),
    )

    @property
    def effective_data(self) -> dict[str, Any]:
        """Reviewer-edited data when present, otherwise the submitted data."""
        if self.was_edited and self.edited_item_data:
            return self.edited_item_data
        return self.item_data

    def __repr__(self) -> str:
        return (
            f"<ManifestSubmission(submission_id={self.submission_id}, "
            f"type={self.manifest_type!r}, item_id={self.item_id!r})>"
        )
