"""Database session management."""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from forge.app.config import get_settings

# Create engine - singleton pattern
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    """Get SQLAlchemy engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        if settings.postgres_url.startswith("sqlite"):
            _engine = create_engine(
                settings.postgres_url,
                connect_args={"check_same_thread": False},
            )
        else:
            _engine = create_engine(
                settings.postgres_url,
                pool_pre_ping=True,  # Verify connections before using
                pool_size=5,
                max_overflow=10,
            )
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Get session factory singleton."""
    global _session_factory
    if _session_factory is None:
        engine = get_engine()
        _session_factory = sessionmaker(
            bind=engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    factory = get_session_factory()
    session = factory()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """Context manager for a unit of work.

    Commits on success, rolls back on error, always closes.

    Example:
        >>> with session_scope() as session:
        ...     session.query(PreviewManifest).all()
    """
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
