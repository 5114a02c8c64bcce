"""Embedding provider and content embedder."""

from .embedder import (
    BatchEmbedResult,
    BatchItem,
    ContentEmbedder,
    PromptContext,
    SimilarContent,
    format_prompt_context,
    get_content_embedder,
)
from .exceptions import EmbeddingError, EmbeddingProviderError, EmptyEmbeddingTextError
from .provider import EmbeddingBackend, OpenAIEmbeddingProvider, get_embedding_provider

__all__ = [
    "BatchEmbedResult",
    "BatchItem",
    "ContentEmbedder",
    "EmbeddingBackend",
    "EmbeddingError",
    "EmbeddingProviderError",
    "EmptyEmbeddingTextError",
    "OpenAIEmbeddingProvider",
    "PromptContext",
    "SimilarContent",
    "format_prompt_context",
    "get_content_embedder",
    "get_embedding_provider",
]
