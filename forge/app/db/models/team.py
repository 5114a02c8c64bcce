"""Team and team membership ORM models."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forge.app.db.base import Base
from forge.app.db.mixins import utcnow
from forge.app.db.uuid_type import UniversalUUID

if TYPE_CHECKING:
    from .user import User


class Team(Base):
    """Team table - a group of users sharing preview manifests."""

    __tablename__ = "team"

    team_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    members: Mapped[list["TeamMember"]] = relationship(
        "TeamMember", back_populates="team", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Team(team_id={self.team_id}, name={self.name!r})>"


class TeamMember(Base):
    """Membership of a user in a team."""

    __tablename__ = "team_member"

    member_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), primary_key=True, default=uuid4
    )
    team_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), ForeignKey("team.team_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        UniversalUUID(),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(Text, nullable=False, default="member")

    team: Mapped["Team"] = relationship("Team", back_populates="members")
    user: Mapped["User"] = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
        Index("idx_team_member_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<TeamMember(team_id={self.team_id}, user_id={self.user_id})>"
