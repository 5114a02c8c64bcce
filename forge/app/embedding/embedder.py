"""Content embedder: structured game content -> text -> vector -> store."""

import logging
import time
from collections import defaultdict
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from forge.app.config import Settings, get_settings
from forge.app.content import (
    SEARCH_ALL,
    ContentType,
    build_embedding_text,
    content_type_for_manifest,
    extract_metadata,
    record_key,
)
from forge.app.db.models.preview_manifest import PreviewManifest
from forge.app.metrics.core import record_vector_search
from forge.app.vector.store import VectorHit, VectorStore, get_vector_store

from .exceptions import EmptyEmbeddingTextError
from .provider import EmbeddingBackend, get_embedding_provider

logger = logging.getLogger(__name__)

MIN_BATCH_TEXT_LENGTH = 3


class BatchItem(BaseModel):
    """One record in a batch embed request."""

    id: str = Field(..., min_length=1)
    data: dict[str, Any]
    metadata: dict[str, Any] | None = None


class BatchEmbedResult(BaseModel):
    """Outcome of a batch embed: embedded count and skipped (empty) records."""

    count: int
    skipped: int = 0


class SimilarContent(BaseModel):
    """A search hit shaped for API consumers."""

    id: str
    content_type: str
    content_id: str
    content: str
    similarity: float
    created_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_hit(cls, hit: VectorHit) -> "SimilarContent":
        created_at = hit.payload.get("createdAt")
        return cls(
            id=hit.id,
            content_type=hit.content_type,
            content_id=hit.content_id,
            content=str(hit.payload.get("sourceText", "")),
            similarity=hit.score,
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            metadata=hit.payload.get("metadata") or {},
        )


class PromptSource(BaseModel):
    type: str
    id: str
    similarity: float


class PromptContext(BaseModel):
    """Similar content rendered as a block of text for prompt injection."""

    has_context: bool
    context: str
    sources: list[PromptSource]


def format_prompt_context(similar: list[SimilarContent]) -> PromptContext:
    """Render hits as ``[TYPE n] (NN% relevant)`` blocks."""
    if not similar:
        return PromptContext(has_context=False, context="", sources=[])

    blocks = [
        f"[{item.content_type.upper()} {i}] ({round(item.similarity * 100)}% relevant)\n"
        f"{item.content}"
        for i, item in enumerate(similar, start=1)
    ]
    return PromptContext(
        has_context=True,
        context="\n\n".join(blocks),
        sources=[
            PromptSource(type=item.content_type, id=item.content_id, similarity=item.similarity)
            for item in similar
        ],
    )


class ContentEmbedder:
    """Turns content records into embeddings and stores them.

    Text extraction follows the static content registry; vectors come from
    the configured embedding backend and land in the vector store keyed by
    ``(content_type, content_id)``, so re-embedding replaces in place.
    """

    def __init__(
        self,
        store: VectorStore | None = None,
        provider: EmbeddingBackend | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or get_vector_store()
        self.provider = provider or get_embedding_provider()

    def _payload(
        self,
        content_type: ContentType,
        data: dict[str, Any],
        text: str,
        metadata: dict[str, Any] | None,
        owner_id: str | None,
        project_id: str | None,
    ) -> dict[str, Any]:
        payload = {
            "sourceText": text,
            "metadata": {**extract_metadata(content_type, data), **(metadata or {})},
            "embeddingModel": self.provider.model,
            "embeddingDimensions": self.provider.dimensions,
        }
        # Global content has no owner; absent keys match the is-empty filter
        if owner_id is not None:
            payload["ownerId"] = owner_id
        if project_id is not None:
            payload["projectId"] = project_id
        return payload

    async def embed(
        self,
        content_type: ContentType,
        content_id: str,
        data: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        owner_id: str | None = None,
        project_id: str | None = None,
    ) -> str:
        """Embed one record and upsert it. Returns the stored point id.

        Raises:
            EmptyEmbeddingTextError: If the record has no embeddable fields.
            EmbeddingProviderError: If the provider call fails.
            StoreUnavailable: If the vector store cannot be reached.
        """
        start_time = time.monotonic()
        text = build_embedding_text(content_type, data)
        if not text.strip():
            raise EmptyEmbeddingTextError(
                f"{content_type.value}:{content_id} has no embeddable text"
            )

        [vector] = await self.provider.embed_texts([text])
        embedding_id = await self.store.upsert(
            content_type,
            content_id,
            vector,
            self._payload(content_type, data, text, metadata, owner_id, project_id),
        )

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(f"Embedded {content_type.value}:{content_id} ({duration_ms}ms)")
        return embedding_id

    async def embed_batch(
        self,
        content_type: ContentType,
        items: list[BatchItem],
        owner_id: str | None = None,
        project_id: str | None = None,
    ) -> BatchEmbedResult:
        """Embed many records of one type with batched provider calls.

        Records with empty or near-empty text are skipped. A provider or
        store failure fails the whole batch; retrying is safe because
        upserts are keyed by content id.
        """
        prepared = []
        for item in items:
            text = build_embedding_text(content_type, item.data).strip()
            if len(text) < MIN_BATCH_TEXT_LENGTH:
                logger.warning(
                    f"Skipping {content_type.value}:{item.id} with empty or short text"
                )
                continue
            prepared.append((item, text))

        skipped = len(items) - len(prepared)
        if not prepared:
            logger.info(f"No valid {content_type.value} items to embed")
            return BatchEmbedResult(count=0, skipped=skipped)

        vectors = await self.provider.embed_texts([text for _, text in prepared])
        await self.store.upsert_many(
            content_type,
            [
                (
                    item.id,
                    vector,
                    self._payload(
                        content_type, item.data, text, item.metadata, owner_id, project_id
                    ),
                )
                for (item, text), vector in zip(prepared, vectors)
            ],
        )

        logger.info(
            f"Batch embedded {len(prepared)}/{len(items)} {content_type.value} items"
        )
        return BatchEmbedResult(count=len(prepared), skipped=skipped)

    async def find_similar(
        self,
        query: str,
        content_type: ContentType | None = None,
        limit: int = 10,
        threshold: float = 0.7,
        owner_id: str | None = None,
        project_id: str | None = None,
    ) -> list[SimilarContent]:
        """Semantic search over one content type, or all of them.

        ``owner_id`` limits hits to that user's embeddings plus global ones.
        """
        start_time = time.monotonic()
        [query_vector] = await self.provider.embed_texts([query])
        hits = await self.store.search(
            content_type or SEARCH_ALL,
            query_vector,
            limit=limit,
            threshold=threshold,
            filter={"projectId": project_id} if project_id else None,
            visible_to=owner_id,
        )

        latency_ms = int((time.monotonic() - start_time) * 1000)
        record_vector_search(
            content_type.value if content_type else SEARCH_ALL,
            latency_ms,
            len(hits),
            threshold,
        )
        return [SimilarContent.from_hit(hit) for hit in hits]

    async def build_prompt_context(
        self,
        query: str,
        content_type: ContentType | None = None,
        limit: int = 5,
        threshold: float = 0.7,
        owner_id: str | None = None,
        project_id: str | None = None,
    ) -> PromptContext:
        """Similar content formatted for prompt injection."""
        similar = await self.find_similar(
            query,
            content_type=content_type,
            limit=limit,
            threshold=threshold,
            owner_id=owner_id,
            project_id=project_id,
        )
        return format_prompt_context(similar)

    async def delete_embedding(self, content_type: ContentType, content_id: str) -> None:
        await self.store.delete(content_type, content_id)
        logger.info(f"Deleted embedding for {content_type.value}:{content_id}")

    async def embed_manifests(self, manifests: list[PreviewManifest]) -> int:
        """Embed every record of the given manifests. Returns records embedded.

        Records are grouped by the content type their manifest type maps to,
        then embedded one batch per type.
        """
        grouped: dict[ContentType, list[BatchItem]] = defaultdict(list)
        for manifest in manifests:
            content_type = content_type_for_manifest(manifest.manifest_type)
            for record in manifest.content or []:
                if not isinstance(record, dict):
                    continue
                grouped[content_type].append(
                    BatchItem(
                        id=record_key(record),
                        data=record,
                        metadata={"manifestType": manifest.manifest_type},
                    )
                )

        total = 0
        for content_type, items in grouped.items():
            result = await self.embed_batch(content_type, items)
            total += result.count
        return total

    async def get_stats(self) -> list[dict[str, Any]]:
        stats = await self.store.get_stats()
        return [
            {
                "contentType": content_type,
                "totalEmbeddings": info["points_count"],
                "vectorSize": self.provider.dimensions,
                "status": info["status"],
            }
            for content_type, info in stats.items()
        ]


_embedder: ContentEmbedder | None = None


def get_content_embedder() -> ContentEmbedder:
    """Get the process-wide embedder singleton (FastAPI dependency)."""
    global _embedder
    if _embedder is None:
        _embedder = ContentEmbedder()
    return _embedder
