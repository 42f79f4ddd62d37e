"""Application configuration for the RAG core"""
from typing import Optional
from pydantic_settings import BaseSettings
from utils.common import get_log_file_path

class Settings(BaseSettings):
    """Application configuration"""

    # Logger configuration
    LOGGER_NAME: str = "corpus_rag"
    LOG_FILE_PATH: str = get_log_file_path()
    LOG_LEVEL: str = "INFO"

    # OpenAI (embeddings + chat completions)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    OPENAI_MAX_RETRIES: int = 2
    OPENAI_TIMEOUT: float = 60.0

    # Embedding model
    EMBEDDING_PROVIDER: str = "openai"  # Options: openai, sentence_transformers
    EMBEDDING_MODEL_NAME: str = "text-embedding-3-small"
    EMBEDDING_BATCH_SIZE: int = 100

    # Vector store
    VECTOR_STORE_TYPE: str = "chromadb"  # Options: chromadb, memory
    CHROMA_HOST: str = "localhost"
    CHROMA_PORT: int = 8000
    CHROMA_SSL: bool = False
    COLLECTION_PREFIX: str = "ai_"

    # Document processing
    CHUNKING_STRATEGY: str = "recursive"  # Options: recursive, markdown
    CHUNK_SIZE: int = 500
    CHUNK_OVERLAP: int = 100
    MARKDOWN_MAX_CHUNK_SIZE: int = 800
    MARKDOWN_INCLUDE_HEADERS: bool = True

    # LLM defaults (tenant config overrides per call)
    LLM_MODEL_NAME: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.2
    LLM_MAX_TOKENS: int = 1000

    # Retrieval defaults
    DEFAULT_TOP_K: int = 5
    DEFAULT_SCORE_THRESHOLD: float = 0.4
    SOURCE_EXCERPT_LENGTH: int = 200

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
