# infrastructure/memory_store.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional

import numpy as np

from config import settings
from core.domain import FilterCondition, SearchOptions, SearchResult, VectorPoint
from core.exceptions import ConfigurationError, VectorSizeMismatchError, VectorStoreError
from core.interfaces import IVectorStore

logger = logging.getLogger(settings.LOGGER_NAME)


@dataclass
class _Collection:
    vector_size: int
    vectors: Dict[str, np.ndarray] = field(default_factory=dict)
    payloads: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class InMemoryVectorStore(IVectorStore):
    """
    Process-local vector store with exact cosine search.

    Key points:
    - Collections live in a class-level registry, so every store created for
      the same collection name sees the same points (like clients of one server)
    - Vectors are kept L2-normalised; cosine similarity is a dot product
    - One asyncio.Lock per collection serialises mutations
    """

    registry: ClassVar[Dict[str, _Collection]] = {}

    def __init__(self, collection_name: str, vector_size: int):
        if vector_size <= 0:
            raise ConfigurationError(f"vector_size must be positive, got {vector_size}")
        self.collection_name = collection_name
        self.vector_size = vector_size

    @classmethod
    def reset(cls) -> None:
        """Drop every collection (test isolation)"""
        cls.registry.clear()

    def _get(self) -> Optional[_Collection]:
        return self.registry.get(self.collection_name)

    def _require(self) -> _Collection:
        collection = self._get()
        if collection is None:
            raise VectorStoreError(
                f"Collection '{self.collection_name}' does not exist; call ensure_collection() first"
            )
        return collection

    def _normalise(self, vector: List[float]) -> np.ndarray:
        arr = np.asarray(vector, dtype="float32")
        norm = np.linalg.norm(arr)
        return arr / norm if norm > 0 else arr

    async def ensure_collection(self) -> None:
        collection = self._get()
        if collection is None:
            self.registry[self.collection_name] = _Collection(vector_size=self.vector_size)
            logger.info(f"[MEMORY] Created collection '{self.collection_name}' (size={self.vector_size})")
        elif collection.vector_size != self.vector_size:
            raise ConfigurationError(
                f"Collection '{self.collection_name}' holds vectors of size {collection.vector_size}, "
                f"configured size is {self.vector_size}"
            )

    async def upsert(self, points: List[VectorPoint]) -> None:
        if not points:
            return

        collection = self._require()
        for point in points:
            if len(point.vector) != collection.vector_size:
                raise VectorSizeMismatchError(collection.vector_size, len(point.vector), point.id)

        async with collection.lock:
            for point in points:
                collection.vectors[point.id] = self._normalise(point.vector)
                collection.payloads[point.id] = dict(point.payload)

    async def search(self, vector: List[float], options: SearchOptions) -> List[SearchResult]:
        if len(vector) != self.vector_size:
            raise VectorSizeMismatchError(self.vector_size, len(vector))

        collection = self._get()
        if collection is None or not collection.vectors or options.limit <= 0:
            return []

        threshold = options.score_threshold if options.score_threshold is not None else 0.0
        query = self._normalise(vector)

        candidates = [
            point_id for point_id, payload in collection.payloads.items()
            if options.filter is None or options.filter.matches(payload)
        ]
        if not candidates:
            return []

        matrix = np.stack([collection.vectors[point_id] for point_id in candidates])
        scores = matrix @ query

        results = [
            SearchResult(
                id=point_id,
                score=float(score),
                payload=dict(collection.payloads[point_id]) if options.with_payload else {},
            )
            for point_id, score in zip(candidates, scores)
            if float(score) >= threshold
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:options.limit]

    async def delete(self, filter: FilterCondition) -> None:
        if filter.is_empty():
            raise VectorStoreError("Refusing to delete with an empty filter; use delete_collection()")

        collection = self._get()
        if collection is None:
            return

        async with collection.lock:
            doomed = [pid for pid, payload in collection.payloads.items() if filter.matches(payload)]
            for point_id in doomed:
                del collection.vectors[point_id]
                del collection.payloads[point_id]
        logger.debug(f"[MEMORY] Deleted {len(doomed)} points from '{self.collection_name}'")

    async def delete_by_ids(self, ids: List[str]) -> None:
        if not ids:
            return

        collection = self._get()
        if collection is None:
            return

        async with collection.lock:
            for point_id in ids:
                collection.vectors.pop(point_id, None)
                collection.payloads.pop(point_id, None)

    async def delete_collection(self) -> None:
        if self.registry.pop(self.collection_name, None) is None:
            logger.warning(f"[MEMORY] Collection '{self.collection_name}' not found, nothing to delete")

    async def count(self) -> int:
        collection = self._get()
        return len(collection.vectors) if collection else 0
