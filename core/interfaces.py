# core/interfaces.py
"""Core interfaces for the RAG system"""
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from core.domain import (
    Chunk, Document, FilterCondition, IndexResult, LLMConfig, QueryOptions,
    RAGResponse, SearchOptions, SearchResult, VectorPoint
)

# ============= Chunker Interface =============
class IChunker(ABC):
    """Splits raw document text into bounded segments"""

    strategy: str

    @abstractmethod
    def chunk(self, text: str, metadata: Dict[str, Any]) -> List[Chunk]:
        """
        Split text into chunks.

        Deterministic for identical input and configuration; only the
        chunk ids (UUID4) differ between runs.
        """
        pass

# ============= Embedding Service Interface =============
class IEmbeddingService(ABC):
    """
    Interface for embedding generation.

    Implementations must hold no mutable state beyond their configuration:
    one instance is shared by every tenant pipeline.
    """

    @property
    @abstractmethod
    def model(self) -> str:
        """Model name, fixed at construction"""
        pass

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Vector length, fixed at construction"""
        pass

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Generate the embedding of a single text"""
        pass

    @abstractmethod
    async def embed_batch(self, texts: List[str], batch_size: int = 100) -> List[List[float]]:
        """
        Generate embeddings for many texts.

        Output has the same length and order as the input; oversized
        inputs are split into sub-requests of at most batch_size texts.
        """
        pass

# ============= Vector Store Interface =============
class IVectorStore(ABC):
    """Interface for one tenant collection in a vector database"""

    collection_name: str
    vector_size: int

    @abstractmethod
    async def ensure_collection(self) -> None:
        """Create the collection (cosine distance) iff it does not exist"""
        pass

    @abstractmethod
    async def upsert(self, points: List[VectorPoint]) -> None:
        """Insert or overwrite points by id"""
        pass

    @abstractmethod
    async def search(self, vector: List[float], options: SearchOptions) -> List[SearchResult]:
        """Results sorted by descending score, all >= options.score_threshold"""
        pass

    @abstractmethod
    async def delete(self, filter: FilterCondition) -> None:
        """Delete every point matching the filter"""
        pass

    @abstractmethod
    async def delete_by_ids(self, ids: List[str]) -> None:
        pass

    @abstractmethod
    async def delete_collection(self) -> None:
        """Drop the whole collection; a missing collection counts as success"""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of points in the collection (0 when it does not exist)"""
        pass

# ============= LLM Service Interface =============
class ILLMService(ABC):
    """Chat completion provider"""

    @abstractmethod
    async def chat(self, messages: List[Dict[str, str]], config: LLMConfig) -> str:
        """Buffered completion: returns the full answer text"""
        pass

    @abstractmethod
    def stream_chat(self, messages: List[Dict[str, str]], config: LLMConfig) -> AsyncIterator[str]:
        """
        Streaming completion: yields text deltas as they arrive.

        Closing the iterator must close the upstream connection.
        """
        pass

# ============= Service Layer Interfaces =============
class IRAGPipeline(ABC):
    """Index and query operations for one tenant collection"""

    @abstractmethod
    async def index(self, documents: List[Document]) -> IndexResult:
        pass

    @abstractmethod
    async def query(self, question: str, options: Optional[QueryOptions] = None) -> RAGResponse:
        pass

    @abstractmethod
    def query_stream(self, question: str, options: Optional[QueryOptions] = None) -> "AsyncIterator[str]":
        """Token stream; the final RAGResponse is exposed once iteration ends"""
        pass

    @abstractmethod
    async def delete_documents(self, document_ids: List[str]) -> None:
        pass
