"""
RAG pipeline for one tenant collection.

Indexing:  documents -> chunker -> embed_batch -> upsert
Querying:  question -> embed -> search -> context -> LLM (buffered or streamed)
"""
import logging
import time
from typing import AsyncGenerator, Dict, List, Optional, Tuple, Union

from config import settings
from core.domain import (
    Chunk, Document, FilterCondition, IndexResult, LLMConfig, QueryOptions,
    RAGResponse, SearchOptions, Source, VectorPoint
)
from core.exceptions import DocumentDeletionError, EmbeddingError
from core.interfaces import IChunker, IEmbeddingService, ILLMService, IRAGPipeline, IVectorStore
from utils.common import preview

logger = logging.getLogger(settings.LOGGER_NAME)

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert assistant. Answer ONLY using the provided context.\n"
    "If the information is not in the context, answer "
    "\"I don't have this information in the provided documents.\"\n"
    "Cite your sources at the end of your answer using the format [Source: document_name]."
)

NO_RESULTS_ANSWER = "I couldn't find any relevant information in the provided documents."

CONTEXT_SEPARATOR = "\n\n---\n\n"


class QueryStream:
    """
    Pull-based token stream over a streamed RAG answer.

    Iterate to receive tokens; once iteration ends `response` holds the full
    RAGResponse. `aclose()` (or leaving an `async with` block) stops the
    stream early and closes the upstream LLM connection.
    """

    def __init__(self, generator: AsyncGenerator[Union[str, RAGResponse], None]):
        self._generator = generator
        self._response: Optional[RAGResponse] = None
        self._closed = False

    def __aiter__(self) -> "QueryStream":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration

        item = await self._generator.__anext__()
        if isinstance(item, RAGResponse):
            self._response = item
            await self.aclose()
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._generator.aclose()

    async def __aenter__(self) -> "QueryStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def done(self) -> bool:
        return self._response is not None

    @property
    def response(self) -> RAGResponse:
        if self._response is None:
            raise RuntimeError("Stream has not completed; iterate it to the end first")
        return self._response


class RAGPipeline(IRAGPipeline):
    def __init__(
        self,
        embedding_service: IEmbeddingService,
        vector_store: IVectorStore,
        chunker: IChunker,
        llm_service: ILLMService,
        llm_config: Optional[LLMConfig] = None,
        embedding_batch_size: int = settings.EMBEDDING_BATCH_SIZE,
    ):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.chunker = chunker
        self.llm_service = llm_service
        self.llm_config = llm_config or LLMConfig()
        self.embedding_batch_size = embedding_batch_size
        self.system_prompt = self.llm_config.system_prompt or DEFAULT_SYSTEM_PROMPT

    # ============= Indexing =============

    async def index(self, documents: List[Document]) -> IndexResult:
        started = time.perf_counter()
        await self.vector_store.ensure_collection()

        chunks: List[Chunk] = []
        for document in documents:
            chunks.extend(self.chunker.chunk(
                document.content,
                {**document.metadata, "document_id": document.id, "source": document.source},
            ))

        if not chunks:
            logger.info(f"No chunks produced for {len(documents)} document(s) in '{self.vector_store.collection_name}'")
            return IndexResult(documents_indexed=len(documents), chunks_created=0, chunk_ids=[])

        embeddings = await self.embedding_service.embed_batch(
            [chunk.text for chunk in chunks],
            batch_size=self.embedding_batch_size,
        )

        points = []
        for i, chunk in enumerate(chunks):
            vector = embeddings[i] if i < len(embeddings) else None
            if not vector:
                raise EmbeddingError(f"No embedding for chunk {chunk.id}")
            points.append(VectorPoint(
                id=chunk.id,
                vector=vector,
                payload={
                    "text": chunk.text,
                    "source": chunk.metadata["source"],
                    "document_id": chunk.metadata["document_id"],
                    "chunk_index": chunk.metadata["chunk_index"],
                },
            ))

        await self.vector_store.upsert(points)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Indexed {len(documents)} document(s) into '{self.vector_store.collection_name}': "
            f"{len(chunks)} chunks in {elapsed_ms}ms"
        )
        return IndexResult(
            documents_indexed=len(documents),
            chunks_created=len(chunks),
            chunk_ids=[chunk.id for chunk in chunks],
        )

    # ============= Querying =============

    async def _retrieve(self, question: str, options: QueryOptions) -> Tuple[List[Source], str]:
        question_embedding = await self.embedding_service.embed(question)

        results = await self.vector_store.search(
            question_embedding,
            SearchOptions(
                limit=options.top_k,
                score_threshold=options.score_threshold,
                filter=options.filter,
                with_payload=True,
            ),
        )

        sources = [
            Source(
                chunk_id=r.id,
                document_source=str(r.payload.get("source") or "unknown"),
                score=r.score,
                text=str(r.payload.get("text") or ""),
            )
            for r in results
        ]
        logger.debug(f"Retrieved {len(sources)} sources for '{preview(question)}'")
        return sources, self._build_context(sources)

    def _build_context(self, sources: List[Source]) -> str:
        return CONTEXT_SEPARATOR.join(f"[Source: {s.document_source}]\n{s.text}" for s in sources)

    def _build_messages(self, question: str, context: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": f"{self.system_prompt}\n\nCONTEXT:\n---\n{context}\n---"},
            {"role": "user", "content": question},
        ]

    async def query(self, question: str, options: Optional[QueryOptions] = None) -> RAGResponse:
        options = options or QueryOptions()
        sources, context = await self._retrieve(question, options)

        if not sources:
            logger.info(f"No relevant chunks in '{self.vector_store.collection_name}', skipping LLM call")
            return RAGResponse(answer=NO_RESULTS_ANSWER, sources=[], context="")

        answer = await self.llm_service.chat(self._build_messages(question, context), self.llm_config)

        return RAGResponse(
            answer=answer,
            sources=sources if options.include_sources else [],
            context=context,
        )

    def query_stream(self, question: str, options: Optional[QueryOptions] = None) -> QueryStream:
        return QueryStream(self._stream(question, options or QueryOptions()))

    async def _stream(self, question: str, options: QueryOptions) -> AsyncGenerator[Union[str, RAGResponse], None]:
        sources, context = await self._retrieve(question, options)

        if not sources:
            yield NO_RESULTS_ANSWER
            yield RAGResponse(answer=NO_RESULTS_ANSWER, sources=[], context="")
            return

        parts: List[str] = []
        tokens = self.llm_service.stream_chat(self._build_messages(question, context), self.llm_config)
        try:
            async for token in tokens:
                parts.append(token)
                yield token
        finally:
            # Runs on early close too, releasing the upstream stream
            await tokens.aclose()

        yield RAGResponse(
            answer="".join(parts),
            sources=sources if options.include_sources else [],
            context=context,
        )

    # ============= Deletion =============

    async def delete_documents(self, document_ids: List[str]) -> None:
        """
        Remove every vector of the given documents, one document at a time.

        Not atomic: all ids are attempted, then DocumentDeletionError reports
        the ids that failed.
        """
        failures: Dict[str, Exception] = {}
        deleted: List[str] = []

        for document_id in document_ids:
            try:
                await self.vector_store.delete(FilterCondition.match("document_id", document_id))
                deleted.append(document_id)
            except Exception as e:
                logger.error(f"Failed to delete vectors for document {document_id}: {e}")
                failures[document_id] = e

        if failures:
            raise DocumentDeletionError(failures=failures, deleted=deleted)

        logger.info(f"Deleted vectors for {len(deleted)} document(s) from '{self.vector_store.collection_name}'")
