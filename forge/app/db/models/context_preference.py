"""AI context retrieval preference ORM model."""

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forge.app.db.base import Base
from forge.app.db.mixins import TimestampMixin
from forge.app.db.uuid_type import UniversalUUID

if TYPE_CHECKING:
    from .user import User


class ContextPreference(TimestampMixin, Base):
    """Per-user retrieval policy. One row per user, created on first save."""

    __tablename__ = "ai_context_preference"

    preference_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), primary_key=True, default=uuid4
    )
    user_id: Mapped[UUID] = mapped_column(
        UniversalUUID(),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    use_own_preview: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    use_cdn_content: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    use_team_preview: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    use_all_submissions: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    max_context_items: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    prefer_recent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    user: Mapped["User"] = relationship("User", back_populates="context_preference")

    __table_args__ = (
        CheckConstraint("max_context_items > 0", name="ck_context_max_items_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<ContextPreference(user_id={self.user_id}, "
            f"max_context_items={self.max_context_items})>"
        )
