"""Embedding pipeline exceptions."""


class EmbeddingError(Exception):
    """Base exception for embedding errors."""
    pass


class EmbeddingProviderError(EmbeddingError):
    """Raised when the embedding provider rejects or fails a request."""
    pass


class EmptyEmbeddingTextError(EmbeddingError):
    """Raised when a record has no embeddable text."""
    pass
