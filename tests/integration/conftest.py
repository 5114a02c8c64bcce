"""Fixtures for API tests: app with database, auth and embedder overridden."""

import asyncio

import pytest
from fastapi.testclient import TestClient
from qdrant_client import AsyncQdrantClient

from forge.app.api.auth import CurrentUser, get_current_user
from forge.app.context import ContextAggregator, get_context_aggregator
from forge.app.db.session import get_session
from forge.app.embedding import get_content_embedder
from forge.app.main import create_app
from forge.app.vector import VectorStore


@pytest.fixture
def vector_store(test_settings):
    """In-process Qdrant, prepared outside the client's event loop."""
    store = VectorStore(client=AsyncQdrantClient(location=":memory:"), settings=test_settings)
    asyncio.run(store.ensure_collections())

    yield store

    asyncio.run(store.close())


@pytest.fixture
def app(test_session_factory, embedder, test_settings):
    app = create_app(run_startup=False)

    def override_get_session():
        session = test_session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_content_embedder] = lambda: embedder
    app.dependency_overrides[get_context_aggregator] = lambda: ContextAggregator(
        session_factory=test_session_factory, embedder=embedder, settings=test_settings
    )

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(app):
    return TestClient(app)


@pytest.fixture
def client(app, test_user):
    """Client authenticated as ``test_user``."""
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(
        user_id=test_user.user_id, email=test_user.email
    )
    return TestClient(app)
