"""Type definitions for context aggregation."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SourceName = Literal["ownPreview", "teamPreview", "cdn", "allSubmissions", "vectorSearch"]

# Source order used when recency is not preferred
SOURCE_ORDER: tuple[SourceName, ...] = (
    "ownPreview",
    "teamPreview",
    "cdn",
    "allSubmissions",
    "vectorSearch",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ContextEntry(BaseModel):
    """One candidate record before merge, tagged with where it came from."""

    content_type: str
    key: str
    record: dict[str, Any]
    source: SourceName
    recency: datetime | None = None
    score: float | None = None


class SourceResult(BaseModel):
    """Result of fetching one context source."""

    source: SourceName
    status: Literal["success", "error"]
    entries: list[ContextEntry] = Field(default_factory=list)
    error: dict[str, Any] | None = None
    latency_ms: int = 0

    @classmethod
    def ok(cls, source: SourceName, entries: list[ContextEntry], latency_ms: int = 0):
        return cls(source=source, status="success", entries=entries, latency_ms=latency_ms)

    @classmethod
    def failed(cls, source: SourceName, exc: BaseException, latency_ms: int = 0):
        return cls(
            source=source,
            status="error",
            error={"type": type(exc).__name__, "message": str(exc)},
            latency_ms=latency_ms,
        )


class ContextItem(_CamelModel):
    """Records of one content type from one source."""

    type: str
    data: list[dict[str, Any]]
    source_tag: SourceName = Field(alias="sourceTag")
    similarity_score: float | None = Field(default=None, alias="similarityScore")


class ContextSources(_CamelModel):
    """Per-source counts of included items; they sum to ``total_items``."""

    own_preview: int = Field(default=0, alias="ownPreview")
    team_preview: int = Field(default=0, alias="teamPreview")
    cdn: int = 0
    all_submissions: int = Field(default=0, alias="allSubmissions")
    vector_search: int = Field(default=0, alias="vectorSearch")


class ContextMetadata(_CamelModel):
    prefer_recent: bool = Field(alias="preferRecent")
    max_context_items: int = Field(alias="maxContextItems")
    failed_sources: list[SourceName] = Field(default_factory=list, alias="failedSources")


class ContextResult(_CamelModel):
    """Merged, deduplicated and budget-limited context for one request."""

    context: list[ContextItem]
    total_items: int = Field(alias="totalItems")
    sources: ContextSources
    metadata: ContextMetadata
