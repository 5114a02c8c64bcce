"""AI context API: retrieval preferences, context building and preview manifests."""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from forge.app.api.auth import CurrentUser, get_current_user, require_team_member
from forge.app.content import UnknownContentTypeError, parse_content_type
from forge.app.context import (
    ContextAggregator,
    InvalidPolicyError,
    PolicyStore,
    PreviewManifestStore,
    get_context_aggregator,
)
from forge.app.db.models.preview_manifest import PreviewManifest
from forge.app.db.session import get_session
from forge.app.errors import APIError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai-context", tags=["ai-context"])


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UpdatePreferencesRequest(_Body):
    """Partial policy update; omitted fields keep their current value."""

    use_own_preview: bool | None = Field(None, alias="useOwnPreview")
    use_cdn_content: bool | None = Field(None, alias="useCdnContent")
    use_team_preview: bool | None = Field(None, alias="useTeamPreview")
    use_all_submissions: bool | None = Field(None, alias="useAllSubmissions")
    max_context_items: int | None = Field(None, alias="maxContextItems")
    prefer_recent: bool | None = Field(None, alias="preferRecent")


class BuildContextRequest(_Body):
    types: list[str] | None = None
    query: str | None = None
    team_id: UUID | None = Field(None, alias="teamId")
    threshold: float | None = Field(None, ge=0.0, le=1.0)


class PutPreviewRequest(_Body):
    content: list[Any]
    team_id: UUID | None = Field(None, alias="teamId")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _preferences_dict(db: Session, user_id: UUID) -> dict[str, Any]:
    store = PolicyStore(db)
    policy = store.get(user_id)
    row = store.get_row(user_id)
    return {
        "id": str(row.preference_id) if row else None,
        "userId": str(user_id),
        **policy.model_dump(by_alias=True),
        "createdAt": _iso(row.created_at) if row else None,
        "updatedAt": _iso(row.updated_at) if row else None,
    }


def _manifest_dict(manifest: PreviewManifest) -> dict[str, Any]:
    return {
        "id": str(manifest.manifest_id),
        "userId": str(manifest.user_id) if manifest.user_id else None,
        "teamId": str(manifest.team_id) if manifest.team_id else None,
        "manifestType": manifest.manifest_type,
        "content": manifest.content,
        "version": manifest.version,
        "isActive": manifest.is_active,
        "createdAt": _iso(manifest.created_at),
        "updatedAt": _iso(manifest.updated_at),
    }


def _scope(
    db: Session, current_user: CurrentUser, team_id: UUID | None
) -> tuple[UUID | None, UUID | None]:
    """Manifest scope for a request: the team's if given, else the user's."""
    if team_id is None:
        return current_user.user_id, None
    require_team_member(db, current_user.user_id, team_id)
    return None, team_id


@router.get("/preferences")
def get_preferences(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    """Current retrieval policy (defaults if never saved)."""
    return {"preferences": _preferences_dict(db, current_user.user_id)}


@router.put("/preferences")
def update_preferences(
    request: UpdatePreferencesRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    """Partially update the retrieval policy, creating it on first write."""
    try:
        PolicyStore(db).save(current_user.user_id, request.model_dump(exclude_none=True))
    except InvalidPolicyError as e:
        db.rollback()
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid policy", "CONTEXT_4001", str(e))
    db.commit()

    return {
        "success": True,
        "message": "Preferences updated successfully",
        "preferences": _preferences_dict(db, current_user.user_id),
    }


@router.post("/build")
async def build_context(
    request: BuildContextRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
    aggregator: ContextAggregator = Depends(get_context_aggregator),
) -> dict[str, Any]:
    """Build merged, deduplicated context from the user's enabled sources."""
    try:
        content_types = (
            {parse_content_type(name) for name in request.types} if request.types else None
        )
    except UnknownContentTypeError as e:
        raise APIError(
            status.HTTP_400_BAD_REQUEST, "Unknown content type", "EMBED_3004", str(e)
        )

    if request.team_id is not None:
        require_team_member(db, current_user.user_id, request.team_id)

    result = await aggregator.build_context(
        current_user.user_id,
        query=request.query,
        content_types=content_types,
        team_id=request.team_id,
        threshold=request.threshold,
    )
    return result.model_dump(by_alias=True)


@router.get("/preview/{manifest_type}")
def get_preview(
    manifest_type: str,
    team_id: UUID | None = Query(None, alias="teamId"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    """Active preview manifest for the user (or a team they belong to)."""
    user_id, scope_team_id = _scope(db, current_user, team_id)
    manifest = PreviewManifestStore(db).find_active(user_id, scope_team_id, manifest_type)
    if manifest is None:
        raise APIError(
            status.HTTP_404_NOT_FOUND,
            "Preview manifest not found",
            "MANIFEST_4004",
            f"No active {manifest_type} manifest for this scope",
        )
    return {"manifest": _manifest_dict(manifest)}


@router.put("/preview/{manifest_type}")
def put_preview(
    manifest_type: str,
    request: PutPreviewRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    """Replace a preview manifest's content, bumping its version."""
    user_id, scope_team_id = _scope(db, current_user, request.team_id)
    manifest = PreviewManifestStore(db).upsert(
        user_id, scope_team_id, manifest_type, request.content
    )
    db.commit()
    return {"manifest": _manifest_dict(manifest)}
