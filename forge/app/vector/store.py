"""Qdrant-backed vector store for content embeddings."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import NAMESPACE_URL, uuid5

import httpx
from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from forge.app.config import Settings, get_qdrant_url, get_settings
from forge.app.content import SEARCH_ALL, ContentType

from .exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

COLLECTION_PREFIX = "content_"
INDEXED_FIELDS = ("contentId", "contentType", "ownerId", "projectId")

_TRANSPORT_ERRORS = (ResponseHandlingException, httpx.TransportError, OSError)


class VectorHit(BaseModel):
    """A single nearest-neighbour result."""

    id: str
    score: float
    payload: dict[str, Any]

    @property
    def content_type(self) -> str:
        return str(self.payload.get("contentType", ""))

    @property
    def content_id(self) -> str:
        return str(self.payload.get("contentId", ""))


def collection_name(content_type: ContentType) -> str:
    return f"{COLLECTION_PREFIX}{content_type.value}"


def point_id(content_type: ContentType, content_id: str) -> str:
    """Deterministic point id, so re-embedding a record overwrites it."""
    return str(uuid5(NAMESPACE_URL, f"forge:{content_type.value}:{content_id}"))


def build_filter(
    filter: dict[str, Any] | None = None, visible_to: str | None = None
) -> models.Filter | None:
    """Translate a flat ``{key: value}`` map into a Qdrant filter.

    Every pair must match. ``visible_to`` additionally restricts hits to
    points owned by that user or not owned by anyone (global content).
    """
    must: list[Any] = [
        models.FieldCondition(key=key, match=models.MatchValue(value=value))
        for key, value in (filter or {}).items()
    ]
    should: list[Any] = []
    if visible_to is not None:
        should = [
            models.FieldCondition(key="ownerId", match=models.MatchValue(value=visible_to)),
            models.IsEmptyCondition(is_empty=models.PayloadField(key="ownerId")),
        ]
    if not must and not should:
        return None
    return models.Filter(must=must or None, should=should or None)


class VectorStore:
    """Wraps the vector database: collections, upserts, deletes and search.

    One collection per content type. All operations raise
    ``StoreUnavailable`` when the service cannot be reached; there is no
    local cache or fallback.
    """

    def __init__(
        self,
        client: AsyncQdrantClient | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.vector_size = self.settings.embedding_dimensions
        if client is None:
            url = get_qdrant_url(self.settings)
            client = AsyncQdrantClient(
                url=url,
                api_key=self.settings.qdrant_api_key or None,
                timeout=int(self.settings.qdrant_timeout_s),
            )
            logger.info(f"Vector store configured for {url} ({self.vector_size}d, cosine)")
        self.client = client

    async def ensure_collections(self) -> list[str]:
        """Create any missing content collections. Returns the names created."""
        created = []
        try:
            for content_type in ContentType:
                name = collection_name(content_type)
                if await self.client.collection_exists(name):
                    continue
                await self.client.create_collection(
                    collection_name=name,
                    vectors_config=models.VectorParams(
                        size=self.vector_size, distance=models.Distance.COSINE
                    ),
                    hnsw_config=models.HnswConfigDiff(m=16, ef_construct=100),
                )
                for field in INDEXED_FIELDS:
                    await self.client.create_payload_index(
                        collection_name=name,
                        field_name=field,
                        field_schema=models.PayloadSchemaType.KEYWORD,
                    )
                created.append(name)
                logger.info(f"Created vector collection {name}")
        except (UnexpectedResponse, *_TRANSPORT_ERRORS) as e:
            raise StoreUnavailable(f"Unable to initialize collections: {e}") from e
        return created

    async def upsert(
        self,
        content_type: ContentType,
        content_id: str,
        vector: list[float],
        payload: dict[str, Any],
    ) -> str:
        """Insert or replace the point for ``(content_type, content_id)``."""
        return (
            await self.upsert_many(content_type, [(content_id, vector, payload)])
        )[0]

    async def upsert_many(
        self,
        content_type: ContentType,
        points: list[tuple[str, list[float], dict[str, Any]]],
    ) -> list[str]:
        """Batched upsert of ``(content_id, vector, payload)`` triples."""
        if not points:
            return []

        now = datetime.now(timezone.utc).isoformat()
        structs = []
        for content_id, vector, payload in points:
            structs.append(
                models.PointStruct(
                    id=point_id(content_type, content_id),
                    vector=vector,
                    payload={
                        **payload,
                        "contentType": content_type.value,
                        "contentId": content_id,
                        "createdAt": now,
                        "updatedAt": now,
                    },
                )
            )

        name = collection_name(content_type)
        try:
            await self.client.upsert(collection_name=name, points=structs, wait=True)
        except (UnexpectedResponse, *_TRANSPORT_ERRORS) as e:
            logger.error(f"Upsert of {len(structs)} points to {name} failed: {e}")
            raise StoreUnavailable(f"Vector upsert failed: {e}") from e

        logger.debug(f"Upserted {len(structs)} points to {name}")
        return [str(s.id) for s in structs]

    async def search(
        self,
        content_type: ContentType | str,
        query_vector: list[float],
        limit: int = 10,
        threshold: float = 0.0,
        filter: dict[str, Any] | None = None,
        visible_to: str | None = None,
    ) -> list[VectorHit]:
        """Nearest neighbours with cosine score >= ``threshold``.

        ``content_type="all"`` searches every collection concurrently and
        merges by score; the sort is stable so equal scores keep arrival
        order (collection order, then per-collection rank).
        """
        query_filter = build_filter(filter, visible_to)

        if content_type != SEARCH_ALL:
            return await self._search_collection(
                ContentType(content_type), query_vector, limit, threshold, query_filter
            )

        results = await asyncio.gather(
            *(
                self._search_collection(ct, query_vector, limit, threshold, query_filter)
                for ct in ContentType
            )
        )
        merged = [hit for hits in results for hit in hits]
        merged.sort(key=lambda hit: hit.score, reverse=True)
        return merged[:limit]

    async def _search_collection(
        self,
        content_type: ContentType,
        query_vector: list[float],
        limit: int,
        threshold: float,
        query_filter: models.Filter | None,
    ) -> list[VectorHit]:
        name = collection_name(content_type)
        try:
            response = await self.client.query_points(
                collection_name=name,
                query=query_vector,
                limit=limit,
                score_threshold=threshold,
                query_filter=query_filter,
                with_payload=True,
            )
        except UnexpectedResponse as e:
            if e.status_code == 404:
                logger.warning(f"Collection {name} does not exist yet")
                return []
            raise StoreUnavailable(f"Search in {name} failed: {e}") from e
        except _TRANSPORT_ERRORS as e:
            raise StoreUnavailable(f"Search in {name} failed: {e}") from e

        return [
            VectorHit(id=str(point.id), score=point.score, payload=point.payload or {})
            for point in response.points
        ]

    async def get(self, content_type: ContentType, content_id: str) -> VectorHit | None:
        """Fetch the stored point for a record, if any."""
        name = collection_name(content_type)
        try:
            points = await self.client.retrieve(
                collection_name=name,
                ids=[point_id(content_type, content_id)],
                with_payload=True,
            )
        except UnexpectedResponse as e:
            if e.status_code == 404:
                return None
            raise StoreUnavailable(f"Lookup in {name} failed: {e}") from e
        except _TRANSPORT_ERRORS as e:
            raise StoreUnavailable(f"Lookup in {name} failed: {e}") from e

        if not points:
            return None
        point = points[0]
        return VectorHit(id=str(point.id), score=1.0, payload=point.payload or {})

    async def exists(self, content_type: ContentType, content_id: str) -> bool:
        return await self.get(content_type, content_id) is not None

    async def delete(self, content_type: ContentType, content_id: str) -> None:
        """Delete a record's point. Deleting a missing point succeeds."""
        name = collection_name(content_type)
        try:
            await self.client.delete(
                collection_name=name,
                points_selector=models.PointIdsList(
                    points=[point_id(content_type, content_id)]
                ),
                wait=True,
            )
        except UnexpectedResponse as e:
            if e.status_code == 404:
                return
            raise StoreUnavailable(f"Delete from {name} failed: {e}") from e
        except _TRANSPORT_ERRORS as e:
            raise StoreUnavailable(f"Delete from {name} failed: {e}") from e

    async def get_stats(self) -> dict[str, dict[str, Any]]:
        """Point counts and status per content type."""
        stats: dict[str, dict[str, Any]] = {}
        for content_type in ContentType:
            name = collection_name(content_type)
            try:
                info = await self.client.get_collection(name)
            except UnexpectedResponse as e:
                if e.status_code == 404:
                    stats[content_type.value] = {"points_count": 0, "status": "missing"}
                    continue
                raise StoreUnavailable(f"Stats for {name} failed: {e}") from e
            except _TRANSPORT_ERRORS as e:
                raise StoreUnavailable(f"Stats for {name} failed: {e}") from e
            stats[content_type.value] = {
                "points_count": info.points_count or 0,
                "status": str(getattr(info.status, "value", info.status)),
            }
        return stats

    async def health_check(self) -> bool:
        try:
            await self.client.get_collections()
            return True
        except Exception as e:
            logger.debug(f"Vector store health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.close()


_vector_store: VectorStore | None = None


def get_vector_store() -> VectorStore:
    """Get the process-wide vector store singleton."""
    global _vector_store
    if _vector_store is None:
        _vector_store = VectorStore()
    return _vector_store
