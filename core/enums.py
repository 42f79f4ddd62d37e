"""Shared enumerations used across the application."""
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes attached to typed pipeline failures."""
    CONFIGURATION = "CONFIGURATION"
    VECTOR_SIZE_MISMATCH = "VECTOR_SIZE_MISMATCH"
    EMBEDDING_FAILED = "EMBEDDING_FAILED"
    VECTOR_STORE_FAILED = "VECTOR_STORE_FAILED"
    LLM_FAILED = "LLM_FAILED"
    DELETION_FAILED = "DELETION_FAILED"


class ConfidenceLevel(str, Enum):
    """Coarse answer confidence derived from retrieval scores."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class StreamEventType(str, Enum):
    """Events emitted to the transport layer while streaming an answer."""
    TOKEN = "token"
    SOURCES = "sources"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamEventType.DONE, StreamEventType.ERROR)


class ChunkingStrategy(str, Enum):
    RECURSIVE = "recursive"
    MARKDOWN = "markdown"
