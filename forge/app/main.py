"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from forge.app.api.ai_context import router as ai_context_router
from forge.app.api.embeddings import router as embeddings_router
from forge.app.api.health import get_health
from forge.app.config import get_settings
from forge.app.errors import register_error_handlers
from forge.app.security.middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from forge.app.vector import StoreUnavailable, get_vector_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create missing vector collections on startup.

    The API still starts when Qdrant is unreachable; context building
    degrades and embedding routes report 503 until it comes back.
    """
    logger.info("Application starting up")
    try:
        created = await get_vector_store().ensure_collections()
        if created:
            logger.info(f"Created vector collections: {', '.join(created)}")
    except StoreUnavailable as e:
        logger.warning(f"Vector store unavailable at startup: {e}")
    yield
    logger.info("Application shutting down")


def create_app(run_startup: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        run_startup: Run the vector store bootstrap on startup (tests skip it)

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Forge Context API",
        description="Semantic search and AI context retrieval for game content",
        version="0.1.0",
        lifespan=lifespan if run_startup else None,
    )

    # Security middleware (before CORS)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.ui_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    @app.get("/healthz")
    async def healthz() -> dict[str, Any]:
        """Health check endpoint."""
        result = await get_health()
        return result.model_dump()

    app.include_router(embeddings_router)
    app.include_router(ai_context_router)

    return app


# Create app instance for uvicorn
app = create_app()
