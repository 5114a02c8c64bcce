"""Vector store exceptions."""


class VectorStoreError(Exception):
    """Base exception for vector store errors."""
    pass


class StoreUnavailable(VectorStoreError):
    """Raised when the vector database cannot be reached or refuses a request."""
    pass
