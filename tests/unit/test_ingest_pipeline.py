import asyncio
from collections.abc import Sequence

import pytest

from chat_orchestrator.config import ChunkingConfig, IngestConfig
from chat_orchestrator.errors import EmbeddingError, IngestionFailure
from chat_orchestrator.ingest.embedder import EmbeddingBatch, HashingEmbedder
from chat_orchestrator.ingest.pipeline import DocumentIngestor, IngestPipeline, summarize_document
from chat_orchestrator.retrieval.vector_store import InMemoryVectorStore
from chat_orchestrator.types import Attachment


class FailingEmbedder(HashingEmbedder):
    async def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatch:
        raise EmbeddingError("provider down")


def _text_attachment(body: str, name: str = "policy.txt") -> Attachment:
    return Attachment(kind="document", data=body.encode("utf-8"), filename=name, mimetype="text/plain")


def _ingestor() -> DocumentIngestor:
    return DocumentIngestor(IngestConfig(chunking=ChunkingConfig(chunk_size=200, overlap=40)))


def test_process_stores_document_and_embedded_chunks() -> None:
    store = InMemoryVectorStore()
    pipeline = IngestPipeline(_ingestor(), HashingEmbedder(), store)
    body = "Employees must encrypt customer data at rest. " * 20

    result = asyncio.run(pipeline.process("alice", "chat-1", _text_attachment(body)))

    assert result.success is True
    assert result.document_id is not None
    chunks = asyncio.run(store.get_document_chunks(result.document_id))
    assert len(chunks) == len(result.chunks) > 1
    assert chunks[0].chunk_id == f"{result.document_id}-chunk-0000"
    assert chunks[0].metadata == {"start": result.chunks[0].start, "end": result.chunks[0].end}
    assert len(chunks[0].embedding) == 256
    assert result.metadata["parsing_method"] == "text"
    assert result.metadata["embedding_tokens"] > 0

    documents = asyncio.run(store.list_documents("alice"))
    assert [document.filename for document in documents] == ["policy.txt"]
    assert asyncio.run(store.list_documents("bob")) == []


def test_embedding_failure_removes_the_document() -> None:
    store = InMemoryVectorStore()
    pipeline = IngestPipeline(_ingestor(), FailingEmbedder(), store)

    with pytest.raises(EmbeddingError):
        asyncio.run(pipeline.process("alice", "chat-1", _text_attachment("Some text to embed.")))

    assert store.stats()["documents"] == 0


def test_process_many_turns_errors_into_failures() -> None:
    store = InMemoryVectorStore()
    pipeline = IngestPipeline(_ingestor(), FailingEmbedder(), store)

    results = asyncio.run(
        pipeline.process_many(
            "alice",
            "chat-1",
            [_text_attachment("Some text."), _text_attachment("", name="empty.txt")],
        )
    )

    assert [result.category for result in results] == [
        IngestionFailure.UNKNOWN,
        IngestionFailure.NO_TEXT,
    ]


def test_truncation_is_flagged() -> None:
    ingestor = DocumentIngestor(IngestConfig(max_text_length=100))

    result = asyncio.run(ingestor.ingest(_text_attachment("word " * 100)))

    assert result.metadata["truncated"] is True
    assert result.text.endswith("[Content truncated due to length...]")


def test_summary_lists_metadata() -> None:
    result = asyncio.run(_ingestor().ingest(_text_attachment("Short note about refunds.")))

    summary = summarize_document(result)

    assert summary.startswith("Document analysis:")
    assert "File: policy.txt" in summary
    assert "Words: 4" in summary
    assert "Parsing method: text" in summary
    assert "Chunks: 1" in summary
