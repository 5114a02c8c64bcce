"""Context aggregation across preview manifests, submissions and vector search.

Each source is fetched independently and concurrently. A source that fails
contributes nothing; the failure is logged and reported in the result
metadata. Once every fetch has settled, ``merge_entries`` orders,
deduplicates and truncates the candidates in one synchronous pass.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from forge.app.config import Settings, get_settings
from forge.app.content import (
    SEARCH_ALL,
    ContentType,
    content_type_for_manifest,
    record_key,
)
from forge.app.db.models.manifest_submission import ManifestSubmission
from forge.app.db.models.preview_manifest import PreviewManifest
from forge.app.db.session import get_session_factory, session_scope
from forge.app.embedding.embedder import ContentEmbedder, get_content_embedder
from forge.app.metrics.core import record_context_build
from forge.app.vector.store import VectorHit

from .manifests import PreviewManifestStore
from .preferences import DEFAULT_POLICY, PolicyStore, RetrievalPolicy
from .types import (
    SOURCE_ORDER,
    ContextEntry,
    ContextItem,
    ContextMetadata,
    ContextResult,
    ContextSources,
    SourceName,
    SourceResult,
)

logger = logging.getLogger(__name__)

PENDING_STATUS = "pending"

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _as_utc(value: datetime | str | None) -> datetime | None:
    """Parse/normalize a timestamp to aware UTC (SQLite returns naive ones)."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _wanted(content_type: ContentType, types: set[ContentType] | None) -> bool:
    return types is None or content_type in types


def manifest_entries(
    manifests: Iterable[PreviewManifest],
    source: SourceName,
    types: set[ContentType] | None = None,
) -> list[ContextEntry]:
    """Flatten manifests into entries, keeping records in manifest order."""
    entries = []
    for manifest in manifests:
        content_type = content_type_for_manifest(manifest.manifest_type)
        if not _wanted(content_type, types):
            continue
        recency = _as_utc(manifest.updated_at)
        for record in manifest.content or []:
            if not isinstance(record, dict):
                continue
            entries.append(
                ContextEntry(
                    content_type=content_type.value,
                    key=record_key(record),
                    record=record,
                    source=source,
                    recency=recency,
                )
            )
    return entries


def submission_entries(
    submissions: Iterable[ManifestSubmission], types: set[ContentType] | None = None
) -> list[ContextEntry]:
    entries = []
    for submission in submissions:
        content_type = content_type_for_manifest(submission.manifest_type)
        if not _wanted(content_type, types):
            continue
        record = submission.effective_data
        entries.append(
            ContextEntry(
                content_type=content_type.value,
                key=record_key({"id": submission.item_id, **record}),
                record=record,
                source="allSubmissions",
                recency=_as_utc(submission.submitted_at),
            )
        )
    return entries


def vector_entries(hits: Iterable[VectorHit]) -> list[ContextEntry]:
    """Vector hits as entries, in score order. No recency: hits rank by score."""
    return [
        ContextEntry(
            content_type=hit.content_type,
            key=hit.content_id,
            record={
                "id": hit.content_id,
                "content": hit.payload.get("sourceText", ""),
                "metadata": hit.payload.get("metadata") or {},
                "similarity": hit.score,
            },
            source="vectorSearch",
            score=hit.score,
        )
        for hit in hits
    ]


def _newest_first(entries: list[ContextEntry]) -> list[ContextEntry]:
    """Reorder dated entries newest first; vector hits keep their slots.

    Vector hits stay in the positions (and score order) they arrived in,
    and the manifest and submission entries fill the other slots.
    """
    dated = sorted(
        (entry for entry in entries if entry.source != "vectorSearch"),
        key=lambda entry: entry.recency or _OLDEST,
        reverse=True,
    )
    refill = iter(dated)
    return [
        entry if entry.source == "vectorSearch" else next(refill) for entry in entries
    ]


def merge_entries(
    results: list[SourceResult], policy: RetrievalPolicy
) -> tuple[list[ContextItem], ContextSources]:
    """Order, deduplicate, truncate and group fetched entries.

    Entries start in source order (own, team, cdn, submissions, vector).
    With ``prefer_recent`` manifest and submission entries are stable-sorted
    newest first, so ties keep that order; vector hits keep their score order
    and their slots after the relational sources. The first entry for a
    ``(content_type, key)`` pair wins. Counts reflect only what survives dedup
    and truncation.
    """
    by_source = {result.source: result for result in results}
    entries = [
        entry
        for source in SOURCE_ORDER
        if source in by_source
        for entry in by_source[source].entries
    ]

    if policy.prefer_recent:
        entries = _newest_first(entries)

    seen: set[tuple[str, str]] = set()
    kept: list[ContextEntry] = []
    for entry in entries:
        dedup_key = (entry.content_type, entry.key)
        if dedup_key in seen:
            continue
        seen.add(dedup_key)
        kept.append(entry)
        if len(kept) >= policy.max_context_items:
            break

    groups: dict[tuple[str, SourceName], ContextItem] = {}
    counts: dict[str, int] = {source: 0 for source in SOURCE_ORDER}
    for entry in kept:
        group_key = (entry.content_type, entry.source)
        item = groups.get(group_key)
        if item is None:
            item = groups[group_key] = ContextItem(
                type=entry.content_type, data=[], source_tag=entry.source
            )
        item.data.append(entry.record)
        if entry.score is not None and (
            item.similarity_score is None or entry.score > item.similarity_score
        ):
            item.similarity_score = entry.score
        counts[entry.source] += 1

    return list(groups.values()), ContextSources(**counts)


class ContextAggregator:
    """Builds a user's AI generation context from every enabled source."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        embedder: ContentEmbedder | None = None,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.settings = settings or get_settings()
        self._embedder = embedder

    @property
    def embedder(self) -> ContentEmbedder:
        # Resolved lazily so relational-only builds never touch the vector store
        if self._embedder is None:
            self._embedder = get_content_embedder()
        return self._embedder

    def _load_policy(self, user_id: UUID) -> RetrievalPolicy:
        with session_scope(self.session_factory) as session:
            return PolicyStore(session).get(user_id)

    async def _policy_or_default(self, user_id: UUID) -> RetrievalPolicy:
        try:
            return await asyncio.to_thread(self._load_policy, user_id)
        except Exception as e:
            logger.warning(
                f"Could not load retrieval policy for {user_id}, using defaults: {e}"
            )
            return DEFAULT_POLICY.model_copy()

    def _fetch_manifests(
        self,
        source: SourceName,
        user_id: UUID | None,
        team_id: UUID | None,
        types: set[ContentType] | None,
    ) -> list[ContextEntry]:
        with session_scope(self.session_factory) as session:
            manifests = PreviewManifestStore(session).list_active(user_id, team_id)
            return manifest_entries(manifests, source, types)

    def _fetch_submissions(self, types: set[ContentType] | None) -> list[ContextEntry]:
        with session_scope(self.session_factory) as session:
            stmt = (
                select(ManifestSubmission)
                .where(ManifestSubmission.status == PENDING_STATUS)
                .order_by(ManifestSubmission.submitted_at)
            )
            submissions = session.execute(stmt).scalars().all()
            return submission_entries(submissions, types)

    async def _search_vectors(
        self,
        user_id: UUID,
        query: str,
        types: set[ContentType] | None,
        limit: int,
        threshold: float,
    ) -> list[ContextEntry]:
        [query_vector] = await self.embedder.provider.embed_texts([query])
        store = self.embedder.store
        options = {"limit": limit, "threshold": threshold, "visible_to": str(user_id)}
        if types is None:
            hits = await store.search(SEARCH_ALL, query_vector, **options)
        else:
            # One search per requested type, in content type declaration order
            ordered = [ct for ct in ContentType if ct in types]
            per_type = await asyncio.gather(
                *(store.search(ct, query_vector, **options) for ct in ordered)
            )
            hits = [hit for type_hits in per_type for hit in type_hits]
            hits.sort(key=lambda hit: hit.score, reverse=True)
            hits = hits[:limit]
        return vector_entries(hits)

    async def _run(
        self, source: SourceName, fetch: Callable[[], Awaitable[list[ContextEntry]]]
    ) -> SourceResult:
        start_time = time.monotonic()
        try:
            entries = await fetch()
        except Exception as e:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            logger.warning(f"Context source {source} failed, skipping: {e}")
            return SourceResult.failed(source, e, latency_ms)
        latency_ms = int((time.monotonic() - start_time) * 1000)
        logger.debug(f"Context source {source}: {len(entries)} entries ({latency_ms}ms)")
        return SourceResult.ok(source, entries, latency_ms)

    async def build_context(
        self,
        user_id: UUID,
        query: str | None = None,
        content_types: Iterable[ContentType] | None = None,
        team_id: UUID | None = None,
        threshold: float | None = None,
    ) -> ContextResult:
        """Assemble context for ``user_id``.

        Never raises for a failing source; an unreadable policy falls back to
        the defaults. ``team_id`` is assumed to be one
        the user belongs to; callers check membership.
        """
        start_time = time.monotonic()
        policy = await self._policy_or_default(user_id)
        types = set(content_types) if content_types else None
        if threshold is None:
            threshold = self.settings.context_similarity_threshold

        fetches: list[tuple[SourceName, Callable[[], Awaitable[Any]]]] = []
        if policy.use_own_preview:
            fetches.append(
                ("ownPreview", lambda: asyncio.to_thread(
                    self._fetch_manifests, "ownPreview", user_id, None, types
                ))
            )
        if policy.use_team_preview and team_id is not None:
            fetches.append(
                ("teamPreview", lambda: asyncio.to_thread(
                    self._fetch_manifests, "teamPreview", None, team_id, types
                ))
            )
        if policy.use_cdn_content:
            fetches.append(
                ("cdn", lambda: asyncio.to_thread(
                    self._fetch_manifests, "cdn", None, None, types
                ))
            )
        if policy.use_all_submissions:
            fetches.append(
                ("allSubmissions", lambda: asyncio.to_thread(self._fetch_submissions, types))
            )
        if query and query.strip():
            fetches.append(
                ("vectorSearch", lambda: self._search_vectors(
                    user_id, query, types, policy.max_context_items, threshold
                ))
            )

        results = await asyncio.gather(*(self._run(source, fetch) for source, fetch in fetches))
        context, sources = merge_entries(list(results), policy)
        failed = [result.source for result in results if result.status == "error"]
        total_items = sum(len(item.data) for item in context)

        latency_ms = int((time.monotonic() - start_time) * 1000)
        record_context_build(latency_ms, total_items, sources.model_dump(by_alias=True), failed)
        logger.info(
            f"Built context for user {user_id}: {total_items} items from "
            f"{len(fetches)} sources ({latency_ms}ms)"
        )

        return ContextResult(
            context=context,
            total_items=total_items,
            sources=sources,
            metadata=ContextMetadata(
                prefer_recent=policy.prefer_recent,
                max_context_items=policy.max_context_items,
                failed_sources=failed,
            ),
        )


_aggregator: ContextAggregator | None = None


def get_context_aggregator() -> ContextAggregator:
    global _aggregator
    if _aggregator is None:
        _aggregator = ContextAggregator()
    return _aggregator
