# tests/conftest.py
"""
Pytest configuration and shared test doubles.

- pytest-asyncio for async tests (auto mode, see pyproject.toml)
- FakeEmbeddingService: deterministic bag-of-words hashing, no network
- FakeLLMService: scripted answers, records every call
- InMemoryVectorStore registry is cleared around every test
"""
import hashlib
import math
import re
from typing import AsyncIterator, Dict, List, Optional

import pytest

from core.domain import LLMConfig
from core.exceptions import LLMError
from core.interfaces import IEmbeddingService, ILLMService
from infrastructure.chunkers import RecursiveChunker
from infrastructure.memory_store import InMemoryVectorStore
from services.factory import RAGPipelineFactory

pytest_plugins = ["pytest_asyncio"]

WORD = re.compile(r"\w+")


class FakeEmbeddingService(IEmbeddingService):
    """Hashes lowercase words into buckets; shared words mean higher cosine."""

    def __init__(self, dimensions: int = 256):
        self._dimensions = dimensions
        self.embed_calls = 0
        self.batch_calls = 0

    @property
    def model(self) -> str:
        return "fake-bow"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def vector_for(self, text: str) -> List[float]:
        vector = [0.0] * self._dimensions
        for word in WORD.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % self._dimensions
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]

    async def embed(self, text: str) -> List[float]:
        self.embed_calls += 1
        return self.vector_for(text)

    async def embed_batch(self, texts: List[str], batch_size: int = 100) -> List[List[float]]:
        self.batch_calls += 1
        return [self.vector_for(text) for text in texts]


class FakeLLMService(ILLMService):
    """Returns a fixed answer; streams it word by word."""

    def __init__(self, answer: str = "The refund policy allows returns within 30 days. [Source: policy.md]"):
        self.answer = answer
        self.chat_calls = 0
        self.stream_calls = 0
        self.streams_closed = 0
        self.last_messages: Optional[List[Dict[str, str]]] = None
        self.last_config: Optional[LLMConfig] = None
        self.fail = False
        self.fail_after_tokens: Optional[int] = None

    def tokens(self) -> List[str]:
        return re.findall(r"\S+\s*", self.answer)

    async def chat(self, messages: List[Dict[str, str]], config: LLMConfig) -> str:
        self.chat_calls += 1
        self.last_messages = messages
        self.last_config = config
        if self.fail:
            raise LLMError("scripted failure")
        return self.answer

    async def stream_chat(self, messages: List[Dict[str, str]], config: LLMConfig) -> AsyncIterator[str]:
        self.stream_calls += 1
        self.last_messages = messages
        self.last_config = config
        if self.fail:
            raise LLMError("scripted failure")
        try:
            for position, token in enumerate(self.tokens()):
                if self.fail_after_tokens is not None and position >= self.fail_after_tokens:
                    raise LLMError("scripted stream interruption")
                yield token
        finally:
            self.streams_closed += 1


@pytest.fixture(autouse=True)
def clean_memory_store():
    InMemoryVectorStore.reset()
    yield
    InMemoryVectorStore.reset()


@pytest.fixture
def embedding_service():
    return FakeEmbeddingService()


@pytest.fixture
def llm_service():
    return FakeLLMService()


@pytest.fixture
def chunker():
    return RecursiveChunker(chunk_size=200, chunk_overlap=40)


@pytest.fixture
def factory(embedding_service, llm_service, chunker):
    return RAGPipelineFactory(
        embedding_service=embedding_service,
        chunker=chunker,
        llm_service=llm_service,
        vector_store_type="memory",
    )
