"""Preview manifest ORM model."""

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from forge.app.db.base import Base, JSONType
from forge.app.db.mixins import TimestampMixin
from forge.app.db.uuid_type import UniversalUUID


class PreviewManifest(TimestampMixin, Base):
    """Generated or candidate game content for one scope and manifest type.

    Scope is ``(user_id, team_id)``; both null means a global manifest that is
    served as CDN content. Regenerating a manifest bumps ``version`` on the
    existing row instead of inserting a new one.
    """

    __tablename__ = "preview_manifest"

    manifest_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), primary_key=True, default=uuid4
    )
    user_id: Mapped[UUID | None] = mapped_column(
        UniversalUUID(),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=True,
    )
    team_id: Mapped[UUID | None] = mapped_column(
        UniversalUUID(), ForeignKey("team.team_id", ondelete="CASCADE"), nullable=True
    )
    manifest_type: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "team_id",
            "manifest_type",
            name="uq_preview_manifest_scope_type",
            postgresql_nulls_not_distinct=True,
        ),
        Index("idx_preview_manifest_user", "user_id"),
        Index("idx_preview_manifest_team", "team_id"),
        Index("idx_preview_manifest_type", "manifest_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<PreviewManifest(manifest_id={self.manifest_id}, "
            f"type={self.manifest_type!r}, version={self.version})>"
        )
