"""User ORM model."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forge.app.db.base import Base
from forge.app.db.mixins import utcnow
from forge.app.db.uuid_type import UniversalUUID

if TYPE_CHECKING:
    from .context_preference import ContextPreference
    from .team import TeamMember


class User(Base):
    """Account that owns preview manifests and a retrieval policy."""

    __tablename__ = "app_user"

    user_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), primary_key=True, default=uuid4
    )
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    # Relationships
    memberships: Mapped[list["TeamMember"]] = relationship(
        "TeamMember", back_populates="user", cascade="all, delete-orphan"
    )
    context_preference: Mapped["ContextPreference | None"] = relationship(
        "ContextPreference",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<User(user_id={self.user_id}, email={self.email!r})>"
