"""Vector store interfaces and the in-memory implementation."""

from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from typing import Any, Protocol

from chat_orchestrator.errors import EmbeddingDimensionError
from chat_orchestrator.types import DocumentChunk, DocumentRecord, KnowledgeEntry


@dataclass(slots=True)
class ChunkHit:
    chunk: DocumentChunk
    document: DocumentRecord
    similarity: float


@dataclass(slots=True)
class KnowledgeHit:
    entry: KnowledgeEntry
    similarity: float


class VectorStore(Protocol):
    """Document, chunk and knowledge-base storage with similarity queries.

    Similarity is `1 - cosine distance`, clamped to [0, 1]. Query methods
    return rows at or above `threshold`, most similar first, at most `limit`.
    """

    async def add_document(self, document: DocumentRecord) -> None: ...

    async def add_chunks(self, chunks: list[DocumentChunk]) -> None: ...

    async def delete_document(self, document_id: str) -> bool: ...

    async def get_document(self, document_id: str) -> DocumentRecord | None: ...

    async def get_document_chunks(self, document_id: str) -> list[DocumentChunk]: ...

    async def list_documents(self, user_id: str) -> list[DocumentRecord]: ...

    async def add_knowledge_entry(self, entry: KnowledgeEntry) -> None: ...

    async def query_chunks(
        self,
        query_embedding: list[float],
        *,
        threshold: float,
        limit: int,
        user_id: str | None = None,
    ) -> list[ChunkHit]: ...

    async def query_knowledge(
        self,
        query_embedding: list[float],
        *,
        threshold: float,
        limit: int,
    ) -> list[KnowledgeHit]: ...

    def stats(self) -> dict[str, Any]: ...


class InMemoryVectorStore:
    """Deterministic vector store used for tests and local runs."""

    def __init__(self) -> None:
        self._documents: dict[str, DocumentRecord] = {}
        self._chunks: dict[str, list[DocumentChunk]] = {}
        self._knowledge: dict[str, KnowledgeEntry] = {}
        self.dimension: int | None = None

    async def add_document(self, document: DocumentRecord) -> None:
        self._documents[document.document_id] = document
        self._chunks.setdefault(document.document_id, [])

    async def add_chunks(self, chunks: list[DocumentChunk]) -> None:
        for chunk in chunks:
            if chunk.document_id not in self._documents:
                raise KeyError(f"Unknown document: {chunk.document_id}")
            self._check_dimension(len(chunk.embedding))
        for chunk in chunks:
            stored = self._chunks[chunk.document_id]
            stored.append(chunk)
            stored.sort(key=lambda item: item.chunk_index)

    async def delete_document(self, document_id: str) -> bool:
        self._chunks.pop(document_id, None)
        return self._documents.pop(document_id, None) is not None

    async def get_document(self, document_id: str) -> DocumentRecord | None:
        return self._documents.get(document_id)

    async def get_document_chunks(self, document_id: str) -> list[DocumentChunk]:
        return list(self._chunks.get(document_id, []))

    async def list_documents(self, user_id: str) -> list[DocumentRecord]:
        documents = [doc for doc in self._documents.values() if doc.user_id == user_id]
        return sorted(documents, key=lambda doc: doc.created_at, reverse=True)

    async def add_knowledge_entry(self, entry: KnowledgeEntry) -> None:
        self._check_dimension(len(entry.embedding))
        self._knowledge[entry.entry_id] = entry

    async def query_chunks(
        self,
        query_embedding: list[float],
        *,
        threshold: float,
        limit: int,
        user_id: str | None = None,
    ) -> list[ChunkHit]:
        hits: list[ChunkHit] = []
        for document_id, chunks in self._chunks.items():
            document = self._documents[document_id]
            if user_id is not None and document.user_id != user_id:
                continue
            for chunk in chunks:
                similarity = similarity_score(query_embedding, chunk.embedding)
                if similarity >= threshold:
                    hits.append(ChunkHit(chunk=chunk, document=document, similarity=similarity))
        hits.sort(key=lambda hit: hit.similarity, reverse=True)
        return hits[:limit]

    async def query_knowledge(
        self,
        query_embedding: list[float],
        *,
        threshold: float,
        limit: int,
    ) -> list[KnowledgeHit]:
        hits = [
            KnowledgeHit(entry=entry, similarity=similarity)
            for entry in self._knowledge.values()
            if (similarity := similarity_score(query_embedding, entry.embedding)) >= threshold
        ]
        hits.sort(key=lambda hit: hit.similarity, reverse=True)
        return hits[:limit]

    def stats(self) -> dict[str, Any]:
        return {
            "documents": len(self._documents),
            "chunks": sum(len(chunks) for chunks in self._chunks.values()),
            "knowledge_entries": len(self._knowledge),
            "dimension": self.dimension,
        }

    def _check_dimension(self, size: int) -> None:
        if self.dimension is None:
            self.dimension = size
        elif size != self.dimension:
            raise EmbeddingDimensionError(self.dimension, size)


def similarity_score(query: list[float], stored: list[float]) -> float:
    """Return `1 - cosine distance` clamped to [0, 1]."""
    if len(query) != len(stored):
        raise EmbeddingDimensionError(len(query), len(stored))
    numerator = sum(x * y for x, y in zip(query, stored, strict=True))
    norm_a = sqrt(sum(x * x for x in query))
    norm_b = sqrt(sum(y * y for y in stored))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(0.0, min(1.0, numerator / (norm_a * norm_b)))
