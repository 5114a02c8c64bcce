"""Content type registry and text extraction."""

from .registry import (
    CONTENT_REGISTRY,
    MANIFEST_CONTENT_TYPES,
    SEARCH_ALL,
    ContentType,
    UnknownContentTypeError,
    build_embedding_text,
    content_type_for_manifest,
    extract_metadata,
    parse_content_type,
    record_key,
)

__all__ = [
    "CONTENT_REGISTRY",
    "MANIFEST_CONTENT_TYPES",
    "SEARCH_ALL",
    "ContentType",
    "UnknownContentTypeError",
    "build_embedding_text",
    "content_type_for_manifest",
    "extract_metadata",
    "parse_content_type",
    "record_key",
]
