"""Embeddings API: semantic search and embedding management."""

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from forge.app.api.auth import CurrentUser, get_current_user
from forge.app.config import MissingOpenAIKeyError
from forge.app.content import (
    SEARCH_ALL,
    ContentType,
    UnknownContentTypeError,
    parse_content_type,
)
from forge.app.context.manifests import PreviewManifestStore
from forge.app.db.session import get_session
from forge.app.embedding import (
    BatchItem,
    ContentEmbedder,
    EmbeddingProviderError,
    EmptyEmbeddingTextError,
    SimilarContent,
    get_content_embedder,
)
from forge.app.errors import APIError
from forge.app.vector import StoreUnavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/embeddings", tags=["embeddings"])


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SearchRequest(_Body):
    query: str = Field(..., min_length=1)
    content_type: str | None = Field(None, alias="contentType")
    project_id: str | None = Field(None, alias="projectId")
    limit: int = Field(10, ge=1, le=100)
    threshold: float = Field(0.7, ge=0.0, le=1.0)


class BuildContextRequest(_Body):
    query: str = Field(..., min_length=1)
    content_type: str | None = Field(None, alias="contentType")
    project_id: str | None = Field(None, alias="projectId")
    limit: int = Field(5, ge=1, le=20)
    threshold: float = Field(0.7, ge=0.0, le=1.0)


class EmbedRequest(_Body):
    content_type: str = Field(..., alias="contentType")
    content_id: str = Field(..., min_length=1, alias="contentId")
    project_id: str | None = Field(None, alias="projectId")
    data: dict[str, Any]
    metadata: dict[str, Any] | None = None


class BatchEmbedRequest(_Body):
    content_type: str = Field(..., alias="contentType")
    project_id: str | None = Field(None, alias="projectId")
    items: list[BatchItem]


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)


def _content_type(value: str | None) -> ContentType | None:
    """Resolve an optional type name; ``None`` and ``"all"`` mean every type."""
    if value is None or value.lower() == SEARCH_ALL:
        return None
    try:
        return parse_content_type(value)
    except UnknownContentTypeError as e:
        raise APIError(
            status.HTTP_400_BAD_REQUEST, "Unknown content type", "EMBED_3004", str(e)
        )


def _required_content_type(value: str) -> ContentType:
    content_type = _content_type(value)
    if content_type is None:
        raise APIError(
            status.HTTP_400_BAD_REQUEST,
            "Unknown content type",
            "EMBED_3004",
            "A concrete content type is required",
        )
    return content_type


def _failure(exc: Exception, error: str, code: str) -> APIError:
    """Map a backend failure to an API error: provider errors are 502."""
    status_code = (
        status.HTTP_502_BAD_GATEWAY
        if isinstance(exc, EmbeddingProviderError)
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return APIError(status_code, error, code, str(exc))


_BACKEND_ERRORS = (StoreUnavailable, EmbeddingProviderError, MissingOpenAIKeyError)


def _result_dict(item: SimilarContent) -> dict[str, Any]:
    return {
        "id": item.id,
        "contentType": item.content_type,
        "contentId": item.content_id,
        "content": item.content,
        "similarity": item.similarity,
        "createdAt": item.created_at.isoformat() if item.created_at else None,
        "metadata": item.metadata,
    }


async def _search(
    request: SearchRequest, current_user: CurrentUser, embedder: ContentEmbedder
) -> dict[str, Any]:
    start_time = time.monotonic()
    content_type = _content_type(request.content_type)
    label = content_type.value if content_type else SEARCH_ALL
    logger.info(f"Searching {label} for {request.query!r} (limit {request.limit})")

    try:
        results = await embedder.find_similar(
            request.query,
            content_type=content_type,
            limit=request.limit,
            threshold=request.threshold,
            owner_id=str(current_user.user_id),
            project_id=request.project_id,
        )
    except _BACKEND_ERRORS as e:
        logger.error(f"Search failed ({_elapsed_ms(start_time)}ms): {e}")
        raise _failure(e, "Search failed", "EMBED_3001")

    return {
        "query": request.query,
        "contentType": label,
        "results": [_result_dict(item) for item in results],
        "count": len(results),
        "duration": _elapsed_ms(start_time),
    }


@router.get("/search")
async def search_get(
    q: str = Query(..., min_length=1, description="Search text"),
    type: str | None = Query(None, description="Content type, or 'all'"),
    limit: int = Query(10, ge=1, le=100),
    threshold: float = Query(0.7, ge=0.0, le=1.0),
    project_id: str | None = Query(None, alias="projectId"),
    current_user: CurrentUser = Depends(get_current_user),
    embedder: ContentEmbedder = Depends(get_content_embedder),
) -> dict[str, Any]:
    """Semantic search over embedded content."""
    request = SearchRequest(
        query=q, content_type=type, project_id=project_id, limit=limit, threshold=threshold
    )
    return await _search(request, current_user, embedder)


@router.post("/search")
async def search_post(
    request: SearchRequest,
    current_user: CurrentUser = Depends(get_current_user),
    embedder: ContentEmbedder = Depends(get_content_embedder),
) -> dict[str, Any]:
    """Semantic search over embedded content (body variant)."""
    return await _search(request, current_user, embedder)


@router.post("/build-context")
async def build_context(
    request: BuildContextRequest,
    current_user: CurrentUser = Depends(get_current_user),
    embedder: ContentEmbedder = Depends(get_content_embedder),
) -> dict[str, Any]:
    """Similar content formatted for prompt injection.

    Context is optional enrichment, so backend failures return an empty
    context instead of an error.
    """
    start_time = time.monotonic()
    content_type = _content_type(request.content_type)

    try:
        prompt_context = await embedder.build_prompt_context(
            request.query,
            content_type=content_type,
            limit=request.limit,
            threshold=request.threshold,
            owner_id=str(current_user.user_id),
            project_id=request.project_id,
        )
    except _BACKEND_ERRORS as e:
        logger.warning(f"Context building degraded to empty: {e}")
        return {
            "query": request.query,
            "hasContext": False,
            "context": "",
            "sources": [],
            "duration": _elapsed_ms(start_time),
        }

    logger.info(
        f"Built prompt context with {len(prompt_context.sources)} sources "
        f"({_elapsed_ms(start_time)}ms)"
    )
    return {
        "query": request.query,
        "hasContext": prompt_context.has_context,
        "context": prompt_context.context,
        "sources": [source.model_dump() for source in prompt_context.sources],
        "duration": _elapsed_ms(start_time),
    }


@router.get("/stats")
async def get_stats(
    current_user: CurrentUser = Depends(get_current_user),
    embedder: ContentEmbedder = Depends(get_content_embedder),
) -> dict[str, Any]:
    """Embedding counts per content type."""
    start_time = time.monotonic()
    try:
        stats = await embedder.get_stats()
    except StoreUnavailable as e:
        raise _failure(e, "Failed to fetch stats", "EMBED_3003")
    return {"stats": stats, "duration": _elapsed_ms(start_time)}


@router.post("/embed")
async def embed_content(
    request: EmbedRequest,
    current_user: CurrentUser = Depends(get_current_user),
    embedder: ContentEmbedder = Depends(get_content_embedder),
) -> dict[str, Any]:
    """Embed (or re-embed) one content record."""
    start_time = time.monotonic()
    content_type = _required_content_type(request.content_type)

    try:
        embedding_id = await embedder.embed(
            content_type,
            request.content_id,
            request.data,
            metadata=request.metadata,
            owner_id=str(current_user.user_id),
            project_id=request.project_id,
        )
    except EmptyEmbeddingTextError as e:
        raise APIError(
            status.HTTP_400_BAD_REQUEST, "No embeddable text", "EMBED_3009", str(e)
        )
    except _BACKEND_ERRORS as e:
        raise _failure(e, "Failed to embed content", "EMBED_3005")

    return {
        "success": True,
        "contentType": content_type.value,
        "contentId": request.content_id,
        "embeddingId": embedding_id,
        "duration": _elapsed_ms(start_time),
    }


@router.post("/batch")
async def batch_embed(
    request: BatchEmbedRequest,
    current_user: CurrentUser = Depends(get_current_user),
    embedder: ContentEmbedder = Depends(get_content_embedder),
) -> dict[str, Any]:
    """Embed many records of one type. Fails as a whole on backend errors."""
    start_time = time.monotonic()
    content_type = _required_content_type(request.content_type)

    try:
        result = await embedder.embed_batch(
            content_type,
            request.items,
            owner_id=str(current_user.user_id),
            project_id=request.project_id,
        )
    except _BACKEND_ERRORS as e:
        raise _failure(e, "Failed to batch embed content", "EMBED_3006")

    return {
        "success": True,
        "contentType": content_type.value,
        "count": result.count,
        "skipped": result.skipped,
        "duration": _elapsed_ms(start_time),
    }


@router.post("/embed-manifests")
async def embed_global_manifests(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
    embedder: ContentEmbedder = Depends(get_content_embedder),
) -> dict[str, Any]:
    """Embed every record of the active global manifests."""
    start_time = time.monotonic()
    manifests = PreviewManifestStore(db).list_global()

    try:
        embedded = await embedder.embed_manifests(manifests)
    except _BACKEND_ERRORS as e:
        raise _failure(e, "Failed to embed manifests", "EMBED_3006")

    logger.info(
        f"Embedded {embedded} records from {len(manifests)} global manifests "
        f"({_elapsed_ms(start_time)}ms)"
    )
    return {
        "success": True,
        "embedded": embedded,
        "manifests": len(manifests),
        "duration": _elapsed_ms(start_time),
    }


@router.delete("/{content_type}/{content_id}")
async def delete_embedding(
    content_type: str,
    content_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    embedder: ContentEmbedder = Depends(get_content_embedder),
) -> dict[str, Any]:
    """Delete the embedding of one record."""
    start_time = time.monotonic()
    resolved = _required_content_type(content_type)

    try:
        if not await embedder.store.exists(resolved, content_id):
            raise APIError(status.HTTP_404_NOT_FOUND, "Embedding not found", "EMBED_3007")
        await embedder.delete_embedding(resolved, content_id)
    except StoreUnavailable as e:
        raise _failure(e, "Failed to delete embedding", "EMBED_3008")

    return {
        "success": True,
        "contentType": resolved.value,
        "contentId": content_id,
        "duration": _elapsed_ms(start_time),
    }
