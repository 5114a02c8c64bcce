"""Context aggregation: manifests, retrieval policies and the aggregator."""

from .aggregator import ContextAggregator, get_context_aggregator, merge_entries
from .manifests import PreviewManifestStore
from .preferences import (
    DEFAULT_POLICY,
    InvalidPolicyError,
    PolicyStore,
    RetrievalPolicy,
)
from .types import ContextEntry, ContextItem, ContextResult, ContextSources, SourceResult

__all__ = [
    "DEFAULT_POLICY",
    "ContextAggregator",
    "ContextEntry",
    "ContextItem",
    "ContextResult",
    "ContextSources",
    "InvalidPolicyError",
    "PolicyStore",
    "PreviewManifestStore",
    "RetrievalPolicy",
    "SourceResult",
    "get_context_aggregator",
    "merge_entries",
]
