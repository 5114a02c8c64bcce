"""Tests for the rate limiting and security header middleware."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.testclient import TestClient

from forge.app.config import Settings
from forge.app.security import RateLimitMiddleware, SecurityHeadersMiddleware


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware)

    @app.get("/api/embeddings/stats")
    def stats():
        return {"ok": True}

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app


def _redis_client(eval_result=None, eval_error=None) -> MagicMock:
    client = MagicMock()
    client.eval = AsyncMock(return_value=eval_result, side_effect=eval_error)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def limited_settings():
    settings = Settings(rate_limit_enabled=True, ui_origin="http://localhost:3000")
    with patch("forge.app.security.middleware.get_settings", return_value=settings):
        yield settings


def test_request_within_limit_passes(limited_settings):
    client = _redis_client(eval_result=[1, 0])
    with patch("forge.app.security.middleware.redis.from_url", return_value=client):
        response = TestClient(_app()).get("/api/embeddings/stats")

    assert response.status_code == 200
    client.eval.assert_awaited_once()
    assert client.eval.await_args.args[3] == "120"


def test_exhausted_bucket_returns_429(limited_settings):
    client = _redis_client(eval_result=[0, 6])
    with patch("forge.app.security.middleware.redis.from_url", return_value=client):
        response = TestClient(_app()).get("/api/embeddings/stats")

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "6"
    assert response.json()["code"] == "RATE_LIMITED"


def test_redis_outage_fails_open(limited_settings):
    client = _redis_client(eval_error=redis.ConnectionError("refused"))
    with patch("forge.app.security.middleware.redis.from_url", return_value=client):
        response = TestClient(_app()).get("/api/embeddings/stats")

    assert response.status_code == 200
    client.aclose.assert_awaited()


def test_unlisted_paths_are_not_limited(limited_settings):
    with patch("forge.app.security.middleware.redis.from_url") as from_url:
        response = TestClient(_app()).get("/healthz")

    assert response.status_code == 200
    from_url.assert_not_called()


def test_disabled_limiter_never_calls_redis():
    settings = Settings(rate_limit_enabled=False)
    with (
        patch("forge.app.security.middleware.get_settings", return_value=settings),
        patch("forge.app.security.middleware.redis.from_url") as from_url,
    ):
        response = TestClient(_app()).get("/api/embeddings/stats")

    assert response.status_code == 200
    from_url.assert_not_called()


def test_security_headers_are_set(limited_settings):
    with patch(
        "forge.app.security.middleware.redis.from_url",
        return_value=_redis_client(eval_result=[1, 0]),
    ):
        response = TestClient(_app()).get("/api/embeddings/stats")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "Strict-Transport-Security" not in response.headers


def test_most_specific_prefix_wins():
    middleware = RateLimitMiddleware(MagicMock(), rate_limits=None)
    assert middleware._match_rule("/api/embeddings/batch") == ("/api/embeddings/batch", (10, 60))
    assert middleware._match_rule("/api/embeddings/embed-manifests")[1] == (2, 60)
    assert middleware._match_rule("/api/embeddings/embed")[1] == (60, 60)
    assert middleware._match_rule("/api/embeddings/npc/1") == ("/api/embeddings", (120, 60))
    assert middleware._match_rule("/api/ai-context/build")[1] == (30, 60)
    assert middleware._match_rule("/other") is None


def test_path_parameters_share_one_bucket(limited_settings):
    client = _redis_client(eval_result=[1, 0])
    app = _app()

    @app.delete("/api/embeddings/{content_type}/{content_id}")
    def delete(content_type: str, content_id: str):
        return {"success": True}

    with patch("forge.app.security.middleware.redis.from_url", return_value=client):
        test_client = TestClient(app)
        headers = {"X-Forwarded-For": "203.0.113.7"}
        test_client.delete("/api/embeddings/npc/guard", headers=headers)
        test_client.delete("/api/embeddings/lore/kingdom", headers=headers)

    keys = [call.args[2] for call in client.eval.await_args_list]
    assert keys == ["rate_limit:203.0.113.7:/api/embeddings"] * 2
