# infrastructure/embedding_services.py
"""Embedding generation through the OpenAI embeddings API"""
import logging
from typing import Any, List, Optional

import openai
from openai import AsyncOpenAI

from config import settings
from core.exceptions import ConfigurationError, EmbeddingError
from core.interfaces import IEmbeddingService

logger = logging.getLogger(settings.LOGGER_NAME)

MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Provider limit on inputs per embeddings request
MAX_BATCH_SIZE = 100


class OpenAIEmbeddingService(IEmbeddingService):
    """
    OpenAI embeddings with order-preserving batching.

    The batch endpoint tags every returned vector with the index of its input;
    vectors are placed back by that index, so provider-side reordering never
    leaks to callers. Sub-batches are sent one after another.

    Transient failures (connection errors, 429, 5xx) are retried by the
    openai client itself (max_retries, exponential backoff).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        dimensions: Optional[int] = None,
        base_url: Optional[str] = None,
        max_retries: int = settings.OPENAI_MAX_RETRIES,
        timeout: float = settings.OPENAI_TIMEOUT,
        client: Optional[Any] = None,
    ):
        if client is None and not api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for OpenAI embeddings")

        resolved_dimensions = dimensions or MODEL_DIMENSIONS.get(model)
        if not resolved_dimensions:
            raise ConfigurationError(
                f"Unknown embedding model '{model}': pass dimensions explicitly"
            )

        self._model = model
        self._dimensions = resolved_dimensions
        # Only v3 models accept a reduced output size
        self._request_dimensions = dimensions if dimensions and model.startswith("text-embedding-3") else None
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=max_retries,
            timeout=timeout,
        )
        logger.info(f"OpenAI embedding service ready: model={model}, dimensions={resolved_dimensions}")

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> List[float]:
        response = await self._create(text)

        if not response.data or not response.data[0].embedding:
            raise EmbeddingError("No embedding returned from OpenAI")

        return self._checked(response.data[0].embedding)

    async def embed_batch(self, texts: List[str], batch_size: int = MAX_BATCH_SIZE) -> List[List[float]]:
        if not texts:
            return []

        batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        results: List[List[float]] = []

        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            response = await self._create(batch)

            vectors: List[Optional[List[float]]] = [None] * len(batch)
            for item in response.data:
                if 0 <= item.index < len(batch):
                    vectors[item.index] = item.embedding

            missing = [start + i for i, vector in enumerate(vectors) if not vector]
            if missing:
                raise EmbeddingError(f"No embedding returned for input(s) {missing}")

            results.extend(self._checked(vector) for vector in vectors)
            logger.debug(f"Embedded batch {start // batch_size + 1}: {len(batch)} texts")

        return results

    async def _create(self, payload: Any) -> Any:
        kwargs = {"model": self._model, "input": payload}
        if self._request_dimensions:
            kwargs["dimensions"] = self._request_dimensions
        try:
            return await self._client.embeddings.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"OpenAI embedding request failed: {e}")
            raise EmbeddingError(f"Embedding request failed: {e}") from e

    def _checked(self, vector: List[float]) -> List[float]:
        if len(vector) != self._dimensions:
            raise EmbeddingError(
                f"Embedding has {len(vector)} dimensions, expected {self._dimensions}"
            )
        return list(vector)
