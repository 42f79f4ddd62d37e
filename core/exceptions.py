"""Typed failures raised by the RAG core."""
from typing import Dict, List, Optional

from core.enums import ErrorCode


class RAGError(Exception):
    """Base failure carrying a machine-readable error code"""

    error_code: ErrorCode = ErrorCode.CONFIGURATION

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)

    def __str__(self):
        # Format used for logging
        return f"[{self.error_code.value}] {self.message}"


class ConfigurationError(RAGError):
    """Invalid or missing configuration, raised at construction time."""
    error_code = ErrorCode.CONFIGURATION


class EmbeddingError(RAGError):
    """Embedding provider failed or returned no vector for an input."""
    error_code = ErrorCode.EMBEDDING_FAILED


class VectorStoreError(RAGError):
    """Vector database operation failed."""
    error_code = ErrorCode.VECTOR_STORE_FAILED


class VectorSizeMismatchError(VectorStoreError):
    """A vector does not match the collection's configured size."""
    error_code = ErrorCode.VECTOR_SIZE_MISMATCH

    def __init__(self, expected: int, actual: int, point_id: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        self.point_id = point_id
        target = f" for point {point_id}" if point_id else ""
        super().__init__(f"Expected vector of size {expected}, got {actual}{target}")


class LLMError(RAGError):
    """Chat completion failed (buffered or mid-stream)."""
    error_code = ErrorCode.LLM_FAILED


class DocumentDeletionError(RAGError):
    """
    Some documents could not be removed from the vector store.

    Every id is attempted; `failures` maps each failed document id to its
    exception so callers can retry narrowly, `deleted` lists the ids that went through.
    """
    error_code = ErrorCode.DELETION_FAILED

    def __init__(self, failures: Dict[str, Exception], deleted: List[str]):
        self.failures = failures
        self.deleted = deleted
        failed_ids = ", ".join(failures)
        super().__init__(f"Failed to delete vectors for {len(failures)} document(s): {failed_ids}")
