"""OpenAI embedding provider."""

import logging
import time
from typing import Protocol

import openai
from openai import AsyncOpenAI

from forge.app.config import Settings, get_openai_api_key, get_settings
from forge.app.metrics.core import record_embedding_call

from .exceptions import EmbeddingProviderError

logger = logging.getLogger(__name__)


class EmbeddingBackend(Protocol):
    """Anything that turns texts into vectors, in input order."""

    model: str
    dimensions: int

    async def embed_texts(self, texts: list[str]) -> list[list[float]]: ...


class OpenAIEmbeddingProvider:
    """Generates embeddings with the OpenAI embeddings API."""

    def __init__(self, client: AsyncOpenAI | None = None, settings: Settings | None = None):
        settings = settings or get_settings()
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions
        self.batch_size = settings.embedding_batch_size
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=get_openai_api_key())
        return self._client

    async def embed_text(self, text: str) -> list[float]:
        """Embed a single text."""
        return (await self.embed_texts([text]))[0]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in provider-sized batches, preserving input order.

        Any failed provider call fails the whole request.
        """
        if not texts:
            return []

        client = self._get_client()
        vectors: list[list[float]] = []

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            start_time = time.monotonic()
            try:
                response = await client.embeddings.create(
                    model=self.model,
                    input=batch,
                    dimensions=self.dimensions,
                )
            except openai.OpenAIError as e:
                latency_ms = int((time.monotonic() - start_time) * 1000)
                record_embedding_call(self.model, len(batch), latency_ms, ok=False)
                logger.error(f"Embedding batch of {len(batch)} texts failed: {e}")
                raise EmbeddingProviderError(f"Embedding provider call failed: {e}") from e

            latency_ms = int((time.monotonic() - start_time) * 1000)
            record_embedding_call(
                self.model,
                len(batch),
                latency_ms,
                ok=True,
                tokens_in=getattr(response.usage, "prompt_tokens", None),
            )
            ordered = sorted(response.data, key=lambda item: item.index)
            vectors.extend(item.embedding for item in ordered)

        return vectors


_provider: OpenAIEmbeddingProvider | None = None


def get_embedding_provider() -> OpenAIEmbeddingProvider:
    """Get the process-wide embedding provider singleton."""
    global _provider
    if _provider is None:
        _provider = OpenAIEmbeddingProvider()
    return _provider
