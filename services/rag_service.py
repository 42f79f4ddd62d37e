# services/rag_service.py
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from config import settings
from core.domain import (
    AssistantAnswer, Document, IndexResult, LLMConfig, QueryOptions, Source, StreamEvent
)
from core.enums import ConfidenceLevel, StreamEventType
from services.behavior_rules import (
    AIBehaviorRules, add_uncertainty_prefix_if_needed, determine_confidence, validate_response
)
from services.factory import RAGPipelineFactory
from services.logger_config import setup_logging
from utils.common import make_excerpt, preview

logger = logging.getLogger(settings.LOGGER_NAME)

FALLBACK_ANSWER = "I'm sorry, I couldn't process your question. Please try again."
STREAM_FAILURE_MESSAGE = "Failed to generate response"

LLMConfigLike = Union[LLMConfig, Dict[str, Any]]


class RAGService:
    """
    Per-tenant entry point for the orchestration layer.

    Every call resolves a pipeline through the factory, so nothing here holds
    tenant state. Query failures never propagate: callers always get an
    answer (or a terminal stream event) they can show to the user.
    """

    def __init__(self, factory: RAGPipelineFactory):
        self.factory = factory

    @staticmethod
    def _default_options() -> QueryOptions:
        return QueryOptions(
            top_k=settings.DEFAULT_TOP_K,
            score_threshold=settings.DEFAULT_SCORE_THRESHOLD,
            include_sources=True,
        )

    @staticmethod
    def _format_sources(sources: List[Source]) -> List[Dict[str, Any]]:
        return [
            {
                "chunk_id": s.chunk_id,
                "document_source": s.document_source,
                "score": s.score,
                "excerpt": make_excerpt(s.text, settings.SOURCE_EXCERPT_LENGTH),
            }
            for s in sources
        ]

    async def index_document(self, tenant_id: str, document: Document) -> IndexResult:
        logger.info(f"Indexing document {document.id} for tenant {tenant_id}")

        pipeline = self.factory.create_for_tenant(tenant_id)
        result = await pipeline.index([document])

        logger.info(f"Indexed document {document.id}: {result.chunks_created} chunks created")
        return result

    async def query(
        self,
        tenant_id: str,
        question: str,
        llm_config: Optional[LLMConfigLike] = None,
        options: Optional[QueryOptions] = None,
        rules: Optional[AIBehaviorRules] = None,
    ) -> AssistantAnswer:
        logger.info(f"Query for tenant {tenant_id}: '{preview(question)}'")
        started = time.perf_counter()

        try:
            pipeline = self.factory.create_for_tenant(tenant_id, llm_config)
            response = await pipeline.query(question, options or self._default_options())
        except Exception as e:
            logger.error(f"RAG query failed for tenant {tenant_id}: {e}", exc_info=True)
            return AssistantAnswer(answer=FALLBACK_ANSWER, sources=[], confidence=ConfidenceLevel.LOW)

        latency_ms = int((time.perf_counter() - started) * 1000)
        confidence = determine_confidence(response.sources, rules)

        answer = response.answer
        if response.sources:
            answer = add_uncertainty_prefix_if_needed(answer, confidence, rules)

        validation = validate_response(answer, response.sources, rules)
        for warning in validation.warnings:
            logger.warning(f"Answer check for tenant {tenant_id}: {warning}")

        logger.info(
            f"Query response: {len(response.sources)} sources, confidence={confidence.value}, {latency_ms}ms"
        )
        return AssistantAnswer(
            answer=answer,
            sources=response.sources,
            confidence=confidence,
            latency_ms=latency_ms,
            warnings=validation.warnings,
        )

    async def query_stream(
        self,
        tenant_id: str,
        question: str,
        llm_config: Optional[LLMConfigLike] = None,
        options: Optional[QueryOptions] = None,
        rules: Optional[AIBehaviorRules] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream an answer as events.

        Emits `token` events, then one `sources` event, then exactly one
        terminal event: `done` with the full answer, or `error` with the
        fallback answer when anything fails along the way.
        """
        logger.info(f"Query stream for tenant {tenant_id}: '{preview(question)}'")
        started = time.perf_counter()

        try:
            pipeline = self.factory.create_for_tenant(tenant_id, llm_config)
            async with pipeline.query_stream(question, options or self._default_options()) as stream:
                async for token in stream:
                    yield StreamEvent(StreamEventType.TOKEN, {"token": token})
                response = stream.response

            confidence = determine_confidence(response.sources, rules)
            sources = self._format_sources(response.sources)
            yield StreamEvent(StreamEventType.SOURCES, {"sources": sources})
        except Exception as e:
            logger.error(f"RAG stream failed for tenant {tenant_id}: {e}", exc_info=True)
            yield StreamEvent(StreamEventType.ERROR, {
                "message": STREAM_FAILURE_MESSAGE,
                "answer": FALLBACK_ANSWER,
                "sources": [],
                "confidence": ConfidenceLevel.LOW.value,
            })
            return

        latency_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Query stream complete: {len(response.sources)} sources, answer length: "
            f"{len(response.answer)}, {latency_ms}ms"
        )
        yield StreamEvent(StreamEventType.DONE, {
            "answer": response.answer,
            "sources": sources,
            "confidence": confidence.value,
            "latency_ms": latency_ms,
        })

    async def delete_document_vectors(self, tenant_id: str, document_id: str) -> None:
        logger.info(f"Deleting vectors for document {document_id} from tenant {tenant_id}")

        pipeline = self.factory.create_for_tenant(tenant_id)
        await pipeline.delete_documents([document_id])

        logger.info(f"Vectors deleted for document {document_id}")

    async def delete_tenant_collection(self, tenant_id: str) -> None:
        logger.info(f"Deleting entire collection for tenant {tenant_id}")

        vector_store = self.factory.create_vector_store_for_tenant(tenant_id)
        try:
            await vector_store.delete_collection()
            logger.info(f"Collection deleted for tenant {tenant_id}")
        except Exception as e:
            logger.warning(f"Could not delete collection for tenant {tenant_id}: {e}")


def create_rag_service(**factory_options: Any) -> RAGService:
    """
    Application bootstrap: configures logging, then wires the factory and façade.
    Keyword arguments are passed through to RAGPipelineFactory.
    """
    setup_logging()
    factory = RAGPipelineFactory(**factory_options)
    logger.info("RAG service ready")
    return RAGService(factory)
