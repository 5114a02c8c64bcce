"""Health check for the database, Redis and the vector store."""

import logging
from typing import Literal

import redis
from pydantic import BaseModel
from sqlalchemy import text

from forge.app.config import get_settings
from forge.app.db.session import get_session_factory
from forge.app.vector.store import VectorStore, get_vector_store

logger = logging.getLogger(__name__)

CheckStatus = Literal["ok", "down"]


class HealthStatus(BaseModel):
    """Health check response."""

    status: CheckStatus
    checks: dict[str, CheckStatus]


def _check_db() -> CheckStatus:
    try:
        with get_session_factory()() as session:
            session.execute(text("SELECT 1"))
        return "ok"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return "down"


def _check_redis() -> CheckStatus:
    try:
        client: redis.Redis = redis.from_url(  # type: ignore[no-untyped-call]
            get_settings().redis_url, decode_responses=True, socket_connect_timeout=2
        )
        client.ping()
        return "ok"
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return "down"


async def _check_qdrant(vector_store: VectorStore | None) -> CheckStatus:
    try:
        store = vector_store or get_vector_store()
        return "ok" if await store.health_check() else "down"
    except Exception as e:
        logger.warning(f"Qdrant health check failed: {e}")
        return "down"


async def get_health(vector_store: VectorStore | None = None) -> HealthStatus:
    """Check every backing service; overall status is down if any check is.

    Context building degrades instead of failing when Qdrant is down, so a
    ``down`` here does not mean the API is unusable.
    """
    checks: dict[str, CheckStatus] = {
        "db": _check_db(),
        "redis": _check_redis(),
        "qdrant": await _check_qdrant(vector_store),
    }
    overall: CheckStatus = "ok" if all(c == "ok" for c in checks.values()) else "down"
    return HealthStatus(status=overall, checks=checks)
