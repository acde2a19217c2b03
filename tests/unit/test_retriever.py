import asyncio
from collections.abc import Sequence
from math import sqrt

import pytest

from chat_orchestrator.errors import EmbeddingDimensionError
from chat_orchestrator.ingest.embedder import Embedder, EmbeddingBatch
from chat_orchestrator.retrieval.fusion import FlatFusion
from chat_orchestrator.retrieval.retriever import RetrievalEngine, SearchOptions, normalize_query
from chat_orchestrator.retrieval.vector_store import InMemoryVectorStore, similarity_score
from chat_orchestrator.types import DocumentChunk, DocumentRecord, KnowledgeEntry, SearchResult


def _unit(cosine: float) -> list[float]:
    return [cosine, sqrt(1.0 - cosine * cosine)]


class StubEmbedder(Embedder):
    def __init__(self, vector: list[float]) -> None:
        self.vector = vector
        self.dimension = len(vector)
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return list(self.vector)

    async def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatch:
        return EmbeddingBatch(vectors=[await self.embed(text) for text in texts], total_tokens=0)


class BrokenKnowledgeStore(InMemoryVectorStore):
    async def query_knowledge(self, query_embedding, *, threshold, limit):
        raise RuntimeError("knowledge table unavailable")


def _seed(store: InMemoryVectorStore) -> None:
    async def seed() -> None:
        await store.add_document(
            DocumentRecord(
                document_id="doc-1",
                user_id="alice",
                conversation_id="alice",
                filename="handbook.pdf",
                file_type="pdf",
                file_size=100,
                content_text="Refunds are processed within 14 days.",
            )
        )
        await store.add_chunks(
            [
                DocumentChunk(
                    chunk_id="doc-1-chunk-0000",
                    document_id="doc-1",
                    chunk_index=0,
                    content="Refunds are processed within 14 days.",
                    embedding=_unit(0.81),
                    token_count=7,
                )
            ]
        )
        await store.add_knowledge_entry(
            KnowledgeEntry(
                entry_id="kb-1",
                title="Shipping",
                content="Orders ship in two business days.",
                embedding=_unit(0.62),
            )
        )

    asyncio.run(seed())


def _engine(store: InMemoryVectorStore | None = None) -> tuple[RetrievalEngine, StubEmbedder]:
    store = store if store is not None else InMemoryVectorStore()
    _seed(store)
    embedder = StubEmbedder([1.0, 0.0])
    return RetrievalEngine(store, embedder), embedder


def test_results_from_both_sources_are_ranked_by_similarity() -> None:
    engine, _ = _engine()

    results = asyncio.run(engine.search("refund policy", SearchOptions(threshold=0.5)))

    assert [result.source for result in results] == ["document", "knowledge_base"]
    assert results[0].similarity == pytest.approx(0.81)
    assert results[1].similarity == pytest.approx(0.62)
    assert results[0].label() == "Document: handbook.pdf"
    assert results[1].label() == "Knowledge Base: Shipping"
    assert results[0].metadata["document_id"] == "doc-1"


def test_threshold_and_limit_are_respected() -> None:
    engine, _ = _engine()

    assert asyncio.run(engine.search("refund policy", SearchOptions(threshold=1.0))) == []
    default = asyncio.run(engine.search("refund policy"))
    assert [result.source for result in default] == ["document"]
    limited = asyncio.run(engine.search("refund", SearchOptions(threshold=0.0, limit=1)))
    assert len(limited) == 1


def test_documents_are_scoped_to_the_requesting_user() -> None:
    engine, _ = _engine()

    results = asyncio.run(
        engine.search("refund", SearchOptions(threshold=0.5, user_id="bob"))
    )

    assert [result.source for result in results] == ["knowledge_base"]


def test_source_toggles() -> None:
    engine, _ = _engine()

    results = asyncio.run(
        engine.search("refund", SearchOptions(threshold=0.5, include_documents=False))
    )
    assert [result.source for result in results] == ["knowledge_base"]


def test_failing_source_contributes_no_results() -> None:
    engine, _ = _engine(BrokenKnowledgeStore())

    results = asyncio.run(engine.search("refund", SearchOptions(threshold=0.5)))

    assert [result.source for result in results] == ["document"]


class FlakyKnowledgeStore(InMemoryVectorStore):
    def __init__(self) -> None:
        super().__init__()
        self.failures_left = 1

    async def query_knowledge(self, query_embedding, *, threshold, limit):
        if self.failures_left:
            self.failures_left -= 1
            raise RuntimeError("knowledge table briefly unavailable")
        return await super().query_knowledge(query_embedding, threshold=threshold, limit=limit)


def test_results_missing_a_failed_source_are_not_cached() -> None:
    engine, _ = _engine(FlakyKnowledgeStore())

    async def scenario() -> tuple[list[SearchResult], list[SearchResult]]:
        first = await engine.search("refund", SearchOptions(threshold=0.5))
        second = await engine.search("refund", SearchOptions(threshold=0.5))
        return first, second

    first, second = asyncio.run(scenario())

    assert [result.source for result in first] == ["document"]
    assert [result.source for result in second] == ["document", "knowledge_base"]
    assert engine.cache_stats()["search_cache"]["keys"] == 1


class MismatchedChunkStore(InMemoryVectorStore):
    def __init__(self) -> None:
        super().__init__()
        self.finished = False

    async def query_chunks(self, query_embedding, *, threshold, limit, user_id=None):
        raise EmbeddingDimensionError(len(query_embedding), 3)

    async def query_knowledge(self, query_embedding, *, threshold, limit):
        await asyncio.sleep(0.01)
        self.finished = True
        return []


def test_fatal_source_error_waits_for_the_other_source() -> None:
    store = MismatchedChunkStore()
    engine = RetrievalEngine(store, StubEmbedder([1.0, 0.0]))

    with pytest.raises(EmbeddingDimensionError):
        asyncio.run(engine.search("refund", SearchOptions(threshold=0.0)))

    assert store.finished is True


def test_dimension_mismatch_is_fatal() -> None:
    store = InMemoryVectorStore()
    _seed(store)
    engine = RetrievalEngine(store, StubEmbedder([1.0, 0.0, 0.0]))

    with pytest.raises(EmbeddingDimensionError):
        asyncio.run(engine.search("refund", SearchOptions(threshold=0.0)))


def test_query_embeddings_and_results_are_cached() -> None:
    engine, embedder = _engine()

    async def scenario() -> None:
        await engine.embed_query("Refund   Policy")
        await engine.embed_query("refund policy")
        await engine.search("what about refunds", SearchOptions(threshold=0.5))
        await engine.search("What about  REFUNDS", SearchOptions(threshold=0.5))

    asyncio.run(scenario())

    assert len(embedder.calls) == 2
    assert engine.cache_stats()["search_cache"]["hits"] == 1
    engine.clear_caches()
    assert engine.cache_stats()["embedding_cache"]["keys"] == 0


def test_add_knowledge_embeds_title_and_content() -> None:
    engine, embedder = _engine()

    entry = asyncio.run(
        engine.add_knowledge("Returns", "Items can be returned within 30 days.", tags=["policy"])
    )

    assert embedder.calls == ["Returns\n\nItems can be returned within 30 days."]
    assert entry.tags == ("policy",)
    assert engine.store.stats()["knowledge_entries"] == 2


def test_flat_fusion_merges_and_truncates() -> None:
    fused = FlatFusion().fuse(
        {
            "document": [SearchResult("a", 0.5, "document")],
            "knowledge_base": [
                SearchResult("b", 0.9, "knowledge_base"),
                SearchResult("c", 0.1, "knowledge_base"),
            ],
        },
        limit=2,
    )

    assert [result.content for result in fused] == ["b", "a"]


def test_similarity_is_clamped_and_checks_dimensions() -> None:
    assert similarity_score([1.0, 0.0], [-1.0, 0.0]) == 0.0
    assert similarity_score([1.0, 0.0], [0.0, 0.0]) == 0.0
    assert similarity_score([2.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    with pytest.raises(EmbeddingDimensionError):
        similarity_score([1.0], [1.0, 0.0])
    assert normalize_query("  Hello   World ") == "hello world"
