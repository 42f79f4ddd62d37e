# tests/test_rag_service.py
"""
Tests for services/rag_service.py
Tenant-level façade: confidence, fallbacks and stream events.
"""
import pytest

from core.domain import Document, QueryOptions
from core.enums import ConfidenceLevel, StreamEventType
from core.exceptions import DocumentDeletionError, VectorStoreError
from services.rag_pipeline import NO_RESULTS_ANSWER
from services.rag_service import FALLBACK_ANSWER, RAGService

POLICY = Document(
    id="doc-policy",
    content="The refund policy allows returns within 30 days of purchase.",
    source="policy.md",
)


@pytest.fixture
def service(factory):
    return RAGService(factory)


async def _collect(events):
    return [event async for event in events]


class TestQuery:

    async def test_exact_match_is_high_confidence(self, service):
        await service.index_document("t1", POLICY)

        answer = await service.query("t1", POLICY.content)

        assert answer.confidence == ConfidenceLevel.HIGH
        assert not answer.answer.startswith("Based on the available documents")
        assert answer.sources[0].document_source == "policy.md"
        assert answer.latency_ms is not None

    async def test_weak_match_gets_uncertainty_prefix(self, service):
        await service.index_document("t1", POLICY)

        answer = await service.query("t1", "refund", options=QueryOptions(score_threshold=0.1))

        assert answer.confidence == ConfidenceLevel.LOW
        assert answer.answer.startswith("Based on the available documents, ")

    async def test_no_results_answer_is_low_confidence(self, service, llm_service):
        answer = await service.query("t1", "anything")

        assert answer.answer == NO_RESULTS_ANSWER
        assert answer.confidence == ConfidenceLevel.LOW
        assert answer.sources == []
        assert llm_service.chat_calls == 0

    async def test_llm_failure_returns_fallback(self, service, llm_service):
        await service.index_document("t1", POLICY)
        llm_service.fail = True

        answer = await service.query("t1", POLICY.content)

        assert answer.answer == FALLBACK_ANSWER
        assert answer.confidence == ConfidenceLevel.LOW
        assert answer.sources == []

    async def test_warnings_are_reported(self, service, llm_service):
        await service.index_document("t1", POLICY)
        llm_service.answer = "As an AI I think returns are fine."

        answer = await service.query("t1", POLICY.content)

        assert "Response mentions being an AI" in answer.warnings


class TestQueryStream:

    async def test_event_sequence(self, service, llm_service):
        await service.index_document("t1", POLICY)

        events = await _collect(service.query_stream("t1", POLICY.content))
        types = [event.type for event in events]

        assert types[-2:] == [StreamEventType.SOURCES, StreamEventType.DONE]
        assert all(t == StreamEventType.TOKEN for t in types[:-2])
        assert sum(t.is_terminal for t in types) == 1

        tokens = "".join(event.data["token"] for event in events[:-2])
        done = events[-1].data
        assert tokens == done["answer"] == llm_service.answer
        assert done["confidence"] == "high"
        assert done["sources"][0]["excerpt"] == POLICY.content

    async def test_excerpts_are_truncated(self, service):
        long_doc = Document(id="long", content="refund " * 100, source="long.md")
        await service.index_document("t1", long_doc)

        events = await _collect(service.query_stream("t1", "refund", options=QueryOptions(score_threshold=0.1)))
        sources = next(e for e in events if e.type == StreamEventType.SOURCES).data["sources"]

        assert sources
        assert all(len(s["excerpt"]) <= 200 for s in sources)

    async def test_failure_mid_stream_ends_with_error_event(self, service, llm_service):
        await service.index_document("t1", POLICY)
        llm_service.fail_after_tokens = 2

        events = await _collect(service.query_stream("t1", POLICY.content))
        types = [event.type for event in events]

        assert types == [StreamEventType.TOKEN, StreamEventType.TOKEN, StreamEventType.ERROR]
        error = events[-1].data
        assert error["answer"] == FALLBACK_ANSWER
        assert error["confidence"] == "low"
        assert error["sources"] == []
        assert llm_service.streams_closed == 1

    async def test_failure_before_tokens_ends_with_error_event(self, service, llm_service):
        await service.index_document("t1", POLICY)
        llm_service.fail = True

        events = await _collect(service.query_stream("t1", POLICY.content))

        assert [event.type for event in events] == [StreamEventType.ERROR]

    async def test_consumer_can_stop_early(self, service, llm_service):
        await service.index_document("t1", POLICY)

        events = service.query_stream("t1", POLICY.content)
        first = await events.__anext__()
        await events.aclose()

        assert first.type == StreamEventType.TOKEN
        assert llm_service.streams_closed == 1


class TestDeletion:

    async def test_delete_document_vectors(self, service, factory):
        await service.index_document("t1", POLICY)

        await service.delete_document_vectors("t1", POLICY.id)

        assert await factory.create_vector_store_for_tenant("t1").count() == 0

    async def test_delete_document_failure_propagates(self, service, factory, monkeypatch):
        await service.index_document("t1", POLICY)

        async def broken_delete(self, filter):
            raise VectorStoreError("backend down")

        monkeypatch.setattr(type(factory.create_vector_store_for_tenant("t1")), "delete", broken_delete)

        with pytest.raises(DocumentDeletionError):
            await service.delete_document_vectors("t1", POLICY.id)

    async def test_delete_tenant_collection(self, service, factory):
        await service.index_document("t1", POLICY)

        await service.delete_tenant_collection("t1")

        assert await factory.create_vector_store_for_tenant("t1").count() == 0

    async def test_delete_missing_tenant_collection_does_not_raise(self, service):
        await service.delete_tenant_collection("never-created")
