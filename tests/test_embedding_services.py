# tests/test_embedding_services.py
"""
Tests for infrastructure/embedding_services.py
OpenAI embeddings with a mocked client.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from core.exceptions import ConfigurationError, EmbeddingError
from infrastructure.embedding_services import OpenAIEmbeddingService

DIMS = 4


def _vector_for(text):
    # Distinct, recognisable vector per input text
    return [float(len(text)), float(ord(text[0])), 0.0, 1.0]


def _mock_client(reverse=True, drop=None):
    """Client whose embeddings.create answers with index-tagged items, shuffled."""

    async def create(model, input, **kwargs):
        inputs = [input] if isinstance(input, str) else list(input)
        items = [
            SimpleNamespace(index=i, embedding=_vector_for(text))
            for i, text in enumerate(inputs)
            if drop is None or text != drop
        ]
        if reverse:
            items.reverse()
        return SimpleNamespace(data=items)

    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=create)
    return client


def _service(client, **kwargs):
    return OpenAIEmbeddingService(model="custom-model", dimensions=DIMS, client=client, **kwargs)


class TestConstruction:
    """Configuration checks at construction time."""

    def test_missing_api_key_raises(self):
        with pytest.raises(ConfigurationError):
            OpenAIEmbeddingService(api_key=None)

    def test_known_model_dimensions(self):
        service = OpenAIEmbeddingService(model="text-embedding-3-large", client=MagicMock())
        assert service.dimensions == 3072
        assert service.model == "text-embedding-3-large"

    def test_unknown_model_needs_dimensions(self):
        with pytest.raises(ConfigurationError):
            OpenAIEmbeddingService(model="custom-model", client=MagicMock())

    def test_reduced_dimensions_are_requested_for_v3_models(self):
        async def create(model, input, **kwargs):
            assert kwargs == {"dimensions": 2}
            return SimpleNamespace(data=[SimpleNamespace(index=0, embedding=[0.6, 0.8])])

        client = MagicMock()
        client.embeddings.create = AsyncMock(side_effect=create)
        service = OpenAIEmbeddingService(model="text-embedding-3-small", dimensions=2, client=client)
        assert service.dimensions == 2


class TestEmbed:
    """Single text embedding."""

    async def test_embed_returns_vector(self):
        service = _service(_mock_client())
        assert await service.embed("hello") == _vector_for("hello")

    async def test_empty_response_raises(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(return_value=SimpleNamespace(data=[]))
        with pytest.raises(EmbeddingError):
            await _service(client).embed("hello")

    async def test_wrong_dimension_raises(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(index=0, embedding=[1.0, 2.0])])
        )
        with pytest.raises(EmbeddingError):
            await _service(client).embed("hello")

    async def test_provider_error_is_wrapped(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(side_effect=openai.OpenAIError("quota exceeded"))
        with pytest.raises(EmbeddingError) as excinfo:
            await _service(client).embed("hello")
        assert isinstance(excinfo.value.__cause__, openai.OpenAIError)


class TestEmbedBatch:
    """Order preservation and batching."""

    async def test_order_is_preserved_when_provider_reorders(self):
        service = _service(_mock_client(reverse=True))
        texts = ["a", "bb", "ccc"]
        assert await service.embed_batch(texts) == [_vector_for(t) for t in texts]

    async def test_empty_input_makes_no_request(self):
        client = _mock_client()
        assert await _service(client).embed_batch([]) == []
        client.embeddings.create.assert_not_called()

    async def test_large_input_is_split_into_provider_sized_requests(self):
        client = _mock_client()
        texts = [f"text number {i}" for i in range(250)]

        vectors = await _service(client).embed_batch(texts, batch_size=500)

        assert len(vectors) == 250
        assert vectors == [_vector_for(t) for t in texts]
        sizes = [len(call.kwargs["input"]) for call in client.embeddings.create.call_args_list]
        assert sizes == [100, 100, 50]

    async def test_custom_batch_size(self):
        client = _mock_client()
        await _service(client).embed_batch([f"t{i}" for i in range(7)], batch_size=3)
        sizes = [len(call.kwargs["input"]) for call in client.embeddings.create.call_args_list]
        assert sizes == [3, 3, 1]

    async def test_missing_vector_raises_with_position(self):
        client = _mock_client(drop="missing")
        with pytest.raises(EmbeddingError) as excinfo:
            await _service(client).embed_batch(["ok", "missing", "fine"])
        assert "[1]" in str(excinfo.value)
