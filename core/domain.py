# core/domain.py
"""Domain models for the RAG core"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.enums import ConfidenceLevel, StreamEventType


# ============= Indexing =============

@dataclass
class Document:
    """Document handed in for indexing. Owned by the caller."""
    id: str
    content: str
    source: str  # display name
    metadata: Dict[str, Any] = field(default_factory=dict)

@dataclass
class Chunk:
    """
    Bounded text segment produced by a chunker.

    metadata always holds document_id, source and chunk_index; strategies add
    total_chunks (recursive) or header / header_level (markdown). Keys from
    the document's own metadata are passed through untouched.
    """
    id: str
    text: str
    index: int
    metadata: Dict[str, Any]

@dataclass
class IndexResult:
    documents_indexed: int
    chunks_created: int
    chunk_ids: List[str] = field(default_factory=list)


# ============= Vector Store =============

@dataclass
class VectorPoint:
    """Stored record: id equals the chunk id"""
    id: str
    vector: List[float]
    payload: Dict[str, Any] = field(default_factory=dict)

@dataclass
class SearchResult:
    """Similarity hit; score is cosine similarity in [-1, 1]"""
    id: str
    score: float
    payload: Dict[str, Any] = field(default_factory=dict)

@dataclass
class Range:
    gt: Optional[float] = None
    gte: Optional[float] = None
    lt: Optional[float] = None
    lte: Optional[float] = None

    def bounds(self) -> Dict[str, float]:
        """Only the bounds that are set, keyed by operator name."""
        return {
            op: value
            for op, value in (("gt", self.gt), ("gte", self.gte), ("lt", self.lt), ("lte", self.lte))
            if value is not None
        }

    def contains(self, value: Any) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if self.gt is not None and not value > self.gt:
            return False
        if self.gte is not None and not value >= self.gte:
            return False
        if self.lt is not None and not value < self.lt:
            return False
        if self.lte is not None and not value <= self.lte:
            return False
        return True

@dataclass
class FilterClause:
    """Condition on one payload key: exact match or numeric range"""
    key: str
    match: Optional[Any] = None
    range: Optional[Range] = None

    def __post_init__(self):
        if (self.match is None) == (self.range is None):
            raise ValueError(f"Filter clause on '{self.key}' needs exactly one of match or range")

    def matches(self, payload: Dict[str, Any]) -> bool:
        if self.key not in payload:
            return False
        value = payload[self.key]
        if self.range is not None:
            return self.range.contains(value)
        return value == self.match

@dataclass
class FilterCondition:
    """
    Structured boolean filter over payloads.

    must: every clause matches; should: at least one clause matches (when any
    are given); must_not: no clause matches.
    """
    must: List[FilterClause] = field(default_factory=list)
    should: List[FilterClause] = field(default_factory=list)
    must_not: List[FilterClause] = field(default_factory=list)

    @classmethod
    def match(cls, key: str, value: Any) -> "FilterCondition":
        return cls(must=[FilterClause(key=key, match=value)])

    def is_empty(self) -> bool:
        return not (self.must or self.should or self.must_not)

    def matches(self, payload: Dict[str, Any]) -> bool:
        if not all(clause.matches(payload) for clause in self.must):
            return False
        if self.should and not any(clause.matches(payload) for clause in self.should):
            return False
        return not any(clause.matches(payload) for clause in self.must_not)

@dataclass
class SearchOptions:
    limit: int
    score_threshold: Optional[float] = None
    filter: Optional[FilterCondition] = None
    with_payload: bool = True


# ============= Querying =============

@dataclass
class QueryOptions:
    top_k: int = 5
    score_threshold: float = 0.4
    filter: Optional[FilterCondition] = None
    include_sources: bool = True

@dataclass
class LLMConfig:
    """Per-tenant generation settings"""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 1000
    system_prompt: Optional[str] = None

@dataclass
class Source:
    """Citation derived from a search hit, never persisted by the core"""
    chunk_id: str
    document_source: str
    score: float
    text: str

@dataclass
class RAGResponse:
    answer: str
    sources: List[Source]
    context: str  # exact block sent to the LLM


# ============= Orchestration =============

@dataclass
class AssistantAnswer:
    """Answer as handed to the orchestration layer"""
    answer: str
    sources: List[Source]
    confidence: ConfidenceLevel
    latency_ms: Optional[int] = None
    warnings: List[str] = field(default_factory=list)

@dataclass
class StreamEvent:
    type: StreamEventType
    data: Dict[str, Any] = field(default_factory=dict)
