"""Database package for ORM and session management."""

from .base import Base, JSONType
from .session import get_engine, get_session, get_session_factory, session_scope

__all__ = [
    "Base",
    "JSONType",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
]
