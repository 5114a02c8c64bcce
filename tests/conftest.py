"""Pytest configuration and fixtures for testing."""

import os

# Tests never talk to Redis; keep the limiter from trying
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
import pytest_asyncio
from qdrant_client import AsyncQdrantClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from forge.app.config import Settings
from forge.app.db import models  # noqa: F401  registers every table on Base.metadata
from forge.app.db.base import Base
from forge.app.embedding import ContentEmbedder
from forge.app.vector import VectorStore
from tests.fakes import TEST_DIMENSIONS, FakeEmbeddingProvider


@pytest.fixture
def test_settings():
    """Settings sized for the fake embedding provider."""
    return Settings(
        postgres_url="sqlite:///:memory:",
        embedding_dimensions=TEST_DIMENSIONS,
        rate_limit_enabled=False,
    )


@pytest.fixture(scope="function")
def test_db_engine(tmp_path):
    """SQLite engine on a temp file (shared across worker threads)."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
        echo=False,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_session_factory(test_db_engine):
    return sessionmaker(bind=test_db_engine, expire_on_commit=False)


@pytest.fixture(scope="function")
def test_session(test_session_factory):
    """Create a test database session."""
    session = test_session_factory()

    yield session

    session.close()


@pytest.fixture(scope="function")
def test_user(test_session: Session):
    """Create a test user."""
    from forge.app.db.models.user import User

    user = User(email="designer@example.com")
    test_session.add(user)
    test_session.commit()

    return user


@pytest.fixture(scope="function")
def other_user(test_session: Session):
    from forge.app.db.models.user import User

    user = User(email="other@example.com")
    test_session.add(user)
    test_session.commit()

    return user


@pytest.fixture(scope="function")
def test_team(test_session: Session, test_user):
    """A team with ``test_user`` as its only member."""
    from forge.app.db.models.team import Team, TeamMember

    team = Team(name="World Builders")
    test_session.add(team)
    test_session.flush()
    test_session.add(TeamMember(team_id=team.team_id, user_id=test_user.user_id))
    test_session.commit()

    return team


@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider()


@pytest_asyncio.fixture
async def vector_store(test_settings):
    """In-process Qdrant with every content collection created."""
    store = VectorStore(client=AsyncQdrantClient(location=":memory:"), settings=test_settings)
    await store.ensure_collections()

    yield store

    await store.close()


@pytest.fixture
def embedder(vector_store, fake_provider, test_settings):
    return ContentEmbedder(store=vector_store, provider=fake_provider, settings=test_settings)
