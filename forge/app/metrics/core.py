"""Metrics façade for embedding and context-retrieval tracking."""

import logging

logger = logging.getLogger(__name__)


def record_embedding_call(
    model: str,
    batch_size: int,
    latency_ms: int,
    ok: bool,
    tokens_in: int | None = None,
) -> None:
    """Record metrics for one embedding provider call.

    Emitted as structured log records; a Prometheus/OpenTelemetry exporter
    can consume the same fields.

    Args:
        model: Embedding model name.
        batch_size: Number of texts in the call.
        latency_ms: Latency in milliseconds.
        ok: Whether the call succeeded.
        tokens_in: Prompt tokens billed, when the provider reports them.
    """
    logger.info(
        "embedding_call_metric",
        extra={
            "model": model,
            "batch_size": batch_size,
            "latency_ms": latency_ms,
            "ok": ok,
            "tokens_in": tokens_in,
        },
    )


def record_vector_search(
    content_type: str,
    latency_ms: int,
    hits: int,
    threshold: float,
) -> None:
    """Record metrics for a similarity search."""
    logger.info(
        "vector_search_metric",
        extra={
            "content_type": content_type,
            "latency_ms": latency_ms,
            "hits": hits,
            "threshold": threshold,
        },
    )


def record_context_build(
    latency_ms: int,
    total_items: int,
    sources: dict[str, int],
    failed_sources: list[str],
) -> None:
    """Record metrics for an aggregated context build.

    Args:
        latency_ms: Wall time of the whole build.
        total_items: Items returned after dedup and truncation.
        sources: Included item count per source.
        failed_sources: Sources whose fetch failed and contributed nothing.
    """
    logger.info(
        "context_build_metric",
        extra={
            "latency_ms": latency_ms,
            "total_items": total_items,
            "sources": sources,
            "failed_sources": failed_sources,
        },
    )
