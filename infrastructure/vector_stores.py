# infrastructure/vector_stores.py
"""ChromaDB implementation of the tenant vector store"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from config import settings
from core.domain import FilterClause, FilterCondition, SearchOptions, SearchResult, VectorPoint
from core.exceptions import ConfigurationError, VectorSizeMismatchError, VectorStoreError
from core.interfaces import IVectorStore

logger = logging.getLogger(settings.LOGGER_NAME)

# Chroma stores the document text separately from metadata
TEXT_KEY = "text"

_NEGATED_BOUNDS = {"gt": "$lte", "gte": "$lt", "lt": "$gte", "lte": "$gt"}


def _clause_to_where(clause: FilterClause) -> Dict[str, Any]:
    if clause.range is None:
        return {clause.key: {"$eq": clause.match}}
    bounds = [{clause.key: {f"${op}": value}} for op, value in clause.range.bounds().items()]
    return _combine("$and", bounds)


def _negated_clause_to_where(clause: FilterClause) -> Dict[str, Any]:
    if clause.range is None:
        return {clause.key: {"$ne": clause.match}}
    # Outside the range means violating at least one bound
    bounds = [{clause.key: {_NEGATED_BOUNDS[op]: value}} for op, value in clause.range.bounds().items()]
    return _combine("$or", bounds)


def _combine(operator: str, conditions: List[Dict[str, Any]]) -> Dict[str, Any]:
    # Chroma rejects $and / $or with fewer than two operands
    if len(conditions) == 1:
        return conditions[0]
    return {operator: conditions}


def filter_to_where(filter: Optional[FilterCondition]) -> Optional[Dict[str, Any]]:
    """
    Translate a structured filter into a Chroma `where` clause.

    must -> $and of clauses, should -> $or of clauses, must_not -> $and of
    negated clauses. Returns None for an empty filter.
    """
    if filter is None or filter.is_empty():
        return None

    parts: List[Dict[str, Any]] = []
    parts.extend(_clause_to_where(clause) for clause in filter.must)
    if filter.should:
        parts.append(_combine("$or", [_clause_to_where(clause) for clause in filter.should]))
    parts.extend(_negated_clause_to_where(clause) for clause in filter.must_not)
    return _combine("$and", parts)


class ChromaDBVectorStore(IVectorStore):
    """
    ChromaDB collection scoped to one tenant.

    Collections are created with cosine space, so Chroma distances are
    1 - cos(a, b) and scores are recovered as 1 - distance. The configured
    vector size is recorded in the collection metadata and checked against
    existing collections and every upserted point.

    The chromadb client is synchronous; calls run in a worker thread.
    """

    def __init__(self, client: Any, collection_name: str, vector_size: int):
        if vector_size <= 0:
            raise ConfigurationError(f"vector_size must be positive, got {vector_size}")
        self._client = client
        self.collection_name = collection_name
        self.vector_size = vector_size
        self._collection: Any = None

    async def _collection_exists(self) -> bool:
        collections = await asyncio.to_thread(self._client.list_collections)
        # Newer chromadb returns names, older versions Collection objects
        names = {c if isinstance(c, str) else c.name for c in collections}
        return self.collection_name in names

    async def _get_collection(self) -> Optional[Any]:
        """Existing collection handle, or None when the collection is absent"""
        if self._collection is not None:
            return self._collection
        if not await self._collection_exists():
            return None
        self._collection = await asyncio.to_thread(
            self._client.get_collection,
            name=self.collection_name
        )
        return self._collection

    async def ensure_collection(self) -> None:
        try:
            collection = await self._get_collection()
            if collection is None:
                self._collection = await asyncio.to_thread(
                    self._client.get_or_create_collection,
                    name=self.collection_name,
                    metadata={"hnsw:space": "cosine", "vector_size": self.vector_size}
                )
                logger.info(f"Created collection '{self.collection_name}' (size={self.vector_size})")
                return
        except Exception as e:
            raise VectorStoreError(f"Failed to ensure collection '{self.collection_name}': {e}") from e

        existing_size = (collection.metadata or {}).get("vector_size")
        if existing_size is not None and int(existing_size) != self.vector_size:
            raise ConfigurationError(
                f"Collection '{self.collection_name}' holds vectors of size {existing_size}, "
                f"configured size is {self.vector_size}"
            )

    async def upsert(self, points: List[VectorPoint]) -> None:
        if not points:
            return

        for point in points:
            if len(point.vector) != self.vector_size:
                raise VectorSizeMismatchError(self.vector_size, len(point.vector), point.id)

        collection = await self._get_collection()
        if collection is None:
            raise VectorStoreError(
                f"Collection '{self.collection_name}' does not exist; call ensure_collection() first"
            )

        ids = [point.id for point in points]
        embeddings = [list(point.vector) for point in points]
        documents = [str(point.payload.get(TEXT_KEY, "")) for point in points]
        metadatas = [self._to_metadata(point.payload) for point in points]

        try:
            await asyncio.to_thread(
                collection.upsert,
                ids=ids,
                embeddings=embeddings,
                documents=documents,
                metadatas=metadatas
            )
        except Exception as e:
            logger.error(f"Failed to upsert {len(points)} points into '{self.collection_name}': {e}")
            raise VectorStoreError(f"Upsert failed: {e}") from e

    async def search(self, vector: List[float], options: SearchOptions) -> List[SearchResult]:
        if len(vector) != self.vector_size:
            raise VectorSizeMismatchError(self.vector_size, len(vector))
        if options.limit <= 0:
            return []

        collection = await self._get_collection()
        if collection is None:
            logger.warning(f"Search on missing collection '{self.collection_name}': no results")
            return []

        threshold = options.score_threshold if options.score_threshold is not None else 0.0

        try:
            total = await asyncio.to_thread(collection.count)
            if total == 0:
                return []

            results = await asyncio.to_thread(
                collection.query,
                query_embeddings=[list(vector)],
                n_results=min(options.limit, total),
                where=filter_to_where(options.filter),
                include=['metadatas', 'documents', 'distances']
            )
        except Exception as e:
            logger.error(f"Search failed in '{self.collection_name}': {e}")
            raise VectorStoreError(f"Search failed: {e}") from e

        search_results = []
        if results['ids'] and results['ids'][0]:
            for i, point_id in enumerate(results['ids'][0]):
                # Cosine space: distance = 1 - cos
                score = 1.0 - float(results['distances'][0][i])
                if score < threshold:
                    continue

                payload: Dict[str, Any] = {}
                if options.with_payload:
                    payload = dict(results['metadatas'][0][i] or {})
                    payload[TEXT_KEY] = results['documents'][0][i] or ""

                search_results.append(SearchResult(id=point_id, score=score, payload=payload))

        search_results.sort(key=lambda r: r.score, reverse=True)
        return search_results[:options.limit]

    async def delete(self, filter: FilterCondition) -> None:
        where = filter_to_where(filter)
        if where is None:
            raise VectorStoreError("Refusing to delete with an empty filter; use delete_collection()")

        collection = await self._get_collection()
        if collection is None:
            return

        try:
            await asyncio.to_thread(collection.delete, where=where)
        except Exception as e:
            logger.error(f"Filtered delete failed in '{self.collection_name}': {e}")
            raise VectorStoreError(f"Delete failed: {e}") from e

    async def delete_by_ids(self, ids: List[str]) -> None:
        if not ids:
            return

        collection = await self._get_collection()
        if collection is None:
            return

        try:
            await asyncio.to_thread(collection.delete, ids=list(ids))
        except Exception as e:
            raise VectorStoreError(f"Delete by ids failed: {e}") from e

    async def delete_collection(self) -> None:
        try:
            if await self._collection_exists():
                await asyncio.to_thread(
                    self._client.delete_collection,
                    name=self.collection_name
                )
                logger.info(f"Deleted collection '{self.collection_name}'")
            else:
                logger.warning(f"Collection '{self.collection_name}' not found, nothing to delete")
        except Exception as e:
            raise VectorStoreError(f"Failed to delete collection '{self.collection_name}': {e}") from e
        finally:
            self._collection = None

    async def count(self) -> int:
        collection = await self._get_collection()
        if collection is None:
            return 0
        return await asyncio.to_thread(collection.count)

    @staticmethod
    def _to_metadata(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Chroma metadata only takes scalar values; text goes to `documents`"""
        metadata = {
            key: value
            for key, value in payload.items()
            if key != TEXT_KEY and isinstance(value, (str, int, float, bool))
        }
        return metadata or None
