"""Preview manifest lookups and versioned upserts."""

import logging
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from forge.app.db.models.preview_manifest import PreviewManifest

logger = logging.getLogger(__name__)


def _scoped(
    stmt: Select[tuple[PreviewManifest]], user_id: UUID | None, team_id: UUID | None
) -> Select[tuple[PreviewManifest]]:
    """Apply a ``(user_id, team_id)`` scope; ``None`` means IS NULL."""
    stmt = stmt.where(
        PreviewManifest.user_id.is_(None)
        if user_id is None
        else PreviewManifest.user_id == user_id
    )
    return stmt.where(
        PreviewManifest.team_id.is_(None)
        if team_id is None
        else PreviewManifest.team_id == team_id
    )


class PreviewManifestStore:
    """Relational store of preview manifests.

    A scope is ``(user_id, team_id)``: user-owned, team-owned, or both null
    for global manifests. Each scope holds at most one row per manifest type.
    """

    def __init__(self, session: Session):
        self.session = session

    def find_active(
        self, user_id: UUID | None, team_id: UUID | None, manifest_type: str
    ) -> PreviewManifest | None:
        stmt = _scoped(select(PreviewManifest), user_id, team_id).where(
            PreviewManifest.manifest_type == manifest_type,
            PreviewManifest.is_active.is_(True),
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_active(
        self,
        user_id: UUID | None,
        team_id: UUID | None,
        manifest_types: Iterable[str] | None = None,
    ) -> list[PreviewManifest]:
        """All active manifests for a scope, optionally limited to some types."""
        stmt = _scoped(select(PreviewManifest), user_id, team_id).where(
            PreviewManifest.is_active.is_(True)
        )
        if manifest_types is not None:
            stmt = stmt.where(PreviewManifest.manifest_type.in_(list(manifest_types)))
        stmt = stmt.order_by(PreviewManifest.manifest_type)
        return list(self.session.execute(stmt).scalars().all())

    def list_global(self, manifest_types: Iterable[str] | None = None) -> list[PreviewManifest]:
        return self.list_active(None, None, manifest_types)

    def upsert(
        self,
        user_id: UUID | None,
        team_id: UUID | None,
        manifest_type: str,
        content: list[Any],
    ) -> PreviewManifest:
        """Replace a scope's manifest content, bumping its version.

        The row for the scope is reused even when inactive, and reactivated;
        a scope seen for the first time gets a new row at version 1.
        """
        stmt = _scoped(select(PreviewManifest), user_id, team_id).where(
            PreviewManifest.manifest_type == manifest_type
        )
        manifest = self.session.execute(stmt).scalar_one_or_none()

        if manifest is None:
            manifest = PreviewManifest(
                user_id=user_id,
                team_id=team_id,
                manifest_type=manifest_type,
                content=list(content),
                version=1,
                is_active=True,
            )
            self.session.add(manifest)
        else:
            manifest.content = list(content)
            manifest.version += 1
            manifest.is_active = True

        self.session.flush()
        logger.info(
            f"Upserted {manifest_type} manifest for user={user_id} team={team_id} "
            f"(v{manifest.version}, {len(content)} records)"
        )
        return manifest

    def deactivate(
        self, user_id: UUID | None, team_id: UUID | None, manifest_type: str
    ) -> bool:
        """Mark a scope's manifest inactive. Returns False when there was none."""
        manifest = self.find_active(user_id, team_id, manifest_type)
        if manifest is None:
            return False
        manifest.is_active = False
        self.session.flush()
        return True
