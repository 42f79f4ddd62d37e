# services/factory.py
import logging
from dataclasses import replace
from typing import Any, Dict, Optional, Union

import chromadb

from config import settings
from core.domain import LLMConfig
from core.exceptions import ConfigurationError
from core.interfaces import IChunker, IEmbeddingService, ILLMService, IVectorStore
from infrastructure.chunkers import create_chunker
from infrastructure.embedding_services import OpenAIEmbeddingService
from infrastructure.local_embeddings import SentenceTransformerEmbedding
from infrastructure.memory_store import InMemoryVectorStore
from infrastructure.vector_stores import ChromaDBVectorStore
from services.llm_service import OpenAILLMService
from services.rag_pipeline import RAGPipeline

logger = logging.getLogger(settings.LOGGER_NAME)

# Provider functions for each component
def get_embedding_service() -> IEmbeddingService:
    """Create embedding service based on configuration."""
    if settings.EMBEDDING_PROVIDER == "openai":
        return OpenAIEmbeddingService(
            api_key=settings.OPENAI_API_KEY,
            model=settings.EMBEDDING_MODEL_NAME,
            base_url=settings.OPENAI_BASE_URL,
        )
    elif settings.EMBEDDING_PROVIDER == "sentence_transformers":
        return SentenceTransformerEmbedding(settings.EMBEDDING_MODEL_NAME)
    else:
        raise ConfigurationError(f"Unknown embedding provider: {settings.EMBEDDING_PROVIDER}")

def get_llm_service() -> ILLMService:
    """Create LLM service based on configuration."""
    return OpenAILLMService(api_key=settings.OPENAI_API_KEY, base_url=settings.OPENAI_BASE_URL)

def get_chroma_client() -> Any:
    """Connect to the Chroma server."""
    return chromadb.HttpClient(host=settings.CHROMA_HOST, port=settings.CHROMA_PORT, ssl=settings.CHROMA_SSL)

def get_vector_store(
    collection_name: str,
    vector_size: int,
    store_type: Optional[str] = None,
    chroma_client: Optional[Any] = None,
) -> IVectorStore:
    """Create vector store based on configuration."""
    store_type = store_type or settings.VECTOR_STORE_TYPE
    if store_type == "chromadb":
        return ChromaDBVectorStore(chroma_client or get_chroma_client(), collection_name, vector_size)
    elif store_type == "memory":
        return InMemoryVectorStore(collection_name, vector_size)
    else:
        raise ConfigurationError(f"Unknown vector store type: {store_type}")

def default_llm_config() -> LLMConfig:
    return LLMConfig(
        model=settings.LLM_MODEL_NAME,
        temperature=settings.LLM_TEMPERATURE,
        max_tokens=settings.LLM_MAX_TOKENS,
    )


class RAGPipelineFactory:
    """
    Builds tenant-scoped pipelines.

    Each tenant gets its own collection (COLLECTION_PREFIX + tenant id) and a
    fresh vector store client. The embedding service, chunker and LLM service
    are created once and shared by every pipeline.
    """

    def __init__(
        self,
        embedding_service: Optional[IEmbeddingService] = None,
        chunker: Optional[IChunker] = None,
        llm_service: Optional[ILLMService] = None,
        vector_store_type: Optional[str] = None,
        chroma_client: Optional[Any] = None,
        collection_prefix: str = settings.COLLECTION_PREFIX,
    ):
        self.embedding_service = embedding_service or get_embedding_service()
        self.chunker = chunker or create_chunker()
        self.llm_service = llm_service or get_llm_service()
        self.vector_store_type = vector_store_type or settings.VECTOR_STORE_TYPE
        self.collection_prefix = collection_prefix

        if self.vector_store_type not in ("chromadb", "memory"):
            raise ConfigurationError(f"Unknown vector store type: {self.vector_store_type}")

        # Chroma clients are thread-safe and pooled; one per factory
        self._chroma_client = chroma_client
        if self.vector_store_type == "chromadb" and self._chroma_client is None:
            self._chroma_client = get_chroma_client()

        logger.info(
            f"Pipeline factory ready: embeddings={self.embedding_service.model} "
            f"({self.embedding_dimensions}d), store={self.vector_store_type}, chunker={self.chunker.strategy}"
        )

    @property
    def embedding_dimensions(self) -> int:
        return self.embedding_service.dimensions

    def collection_name_for(self, tenant_id: str) -> str:
        return f"{self.collection_prefix}{tenant_id}"

    def create_vector_store_for_tenant(self, tenant_id: str) -> IVectorStore:
        """Collection-only handle, used for cleanup without a full pipeline."""
        return get_vector_store(
            self.collection_name_for(tenant_id),
            self.embedding_dimensions,
            store_type=self.vector_store_type,
            chroma_client=self._chroma_client,
        )

    def create_for_tenant(
        self,
        tenant_id: str,
        llm_config: Optional[Union[LLMConfig, Dict[str, Any]]] = None,
    ) -> RAGPipeline:
        """
        Wire a pipeline bound to the tenant's collection.

        llm_config may be a full LLMConfig or a partial dict of overrides
        (model, temperature, max_tokens, system_prompt); missing values fall
        back to the configured defaults.
        """
        return RAGPipeline(
            embedding_service=self.embedding_service,
            vector_store=self.create_vector_store_for_tenant(tenant_id),
            chunker=self.chunker,
            llm_service=self.llm_service,
            llm_config=self._resolve_llm_config(llm_config),
            embedding_batch_size=settings.EMBEDDING_BATCH_SIZE,
        )

    @staticmethod
    def _resolve_llm_config(llm_config: Optional[Union[LLMConfig, Dict[str, Any]]]) -> LLMConfig:
        if isinstance(llm_config, LLMConfig):
            return llm_config

        overrides = {key: value for key, value in (llm_config or {}).items() if value is not None}
        unknown = set(overrides) - {"model", "temperature", "max_tokens", "system_prompt"}
        if unknown:
            raise ConfigurationError(f"Unknown LLM config keys: {sorted(unknown)}")
        return replace(default_llm_config(), **overrides)
