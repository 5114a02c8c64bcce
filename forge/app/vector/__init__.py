"""Vector store client package."""

from .exceptions import StoreUnavailable, VectorStoreError
from .store import VectorHit, VectorStore, get_vector_store, point_id

__all__ = [
    "StoreUnavailable",
    "VectorHit",
    "VectorStore",
    "VectorStoreError",
    "get_vector_store",
    "point_id",
]
