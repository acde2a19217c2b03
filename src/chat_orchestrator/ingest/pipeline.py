"""End-to-end ingest pipeline: extract -> clean -> chunk -> embed -> store."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from chat_orchestrator.config import IngestConfig
from chat_orchestrator.errors import IngestionExhaustedError, IngestionFailure
from chat_orchestrator.ingest.chunker import TextChunker
from chat_orchestrator.ingest.cleaning import clean_text, truncate
from chat_orchestrator.ingest.embedder import Embedder
from chat_orchestrator.ingest.extractors import (
    classify_failure,
    detect_format,
    diagnostic_for,
    format_diagnostic,
    run_cascade,
    strategies_for,
)
from chat_orchestrator.retrieval.vector_store import VectorStore
from chat_orchestrator.types import Attachment, DocumentChunk, DocumentRecord, TextChunk

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestionResult:
    """Outcome of ingesting one attachment. Failures are values, not exceptions."""

    success: bool
    text: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    chunks: list[TextChunk] = field(default_factory=list)
    document_id: str | None = None
    error: str | None = None
    category: IngestionFailure | None = None
    hints: list[str] = field(default_factory=list)

    @classmethod
    def failure(
        cls, category: IngestionFailure, metadata: dict[str, Any] | None = None
    ) -> "IngestionResult":
        _, hints = diagnostic_for(category)
        return cls(
            success=False,
            metadata=dict(metadata or {}),
            error=format_diagnostic(category),
            category=category,
            hints=hints,
        )


class DocumentIngestor:
    """Turns an attachment into cleaned text and chunks without storing anything."""

    def __init__(self, config: IngestConfig | None = None) -> None:
        self.config = config or IngestConfig()
        self.chunker = TextChunker(self.config.chunking)

    async def ingest(self, attachment: Attachment) -> IngestionResult:
        started = perf_counter()
        base_metadata = {
            "filename": attachment.filename,
            "mimetype": attachment.mimetype,
            "file_size": len(attachment.data),
        }

        if len(attachment.data) > self.config.max_file_bytes:
            logger.warning(
                "Attachment %s rejected: %d bytes exceeds limit of %d",
                attachment.filename,
                len(attachment.data),
                self.config.max_file_bytes,
            )
            return IngestionResult.failure(IngestionFailure.RESOURCE, base_metadata)

        fmt = detect_format(attachment)
        strategies = strategies_for(attachment)
        if not strategies:
            return IngestionResult.failure(IngestionFailure.UNSUPPORTED_FORMAT, base_metadata)

        try:
            parsed = await asyncio.to_thread(run_cascade, strategies, attachment.data, self.config)
        except IngestionExhaustedError as exc:
            category = classify_failure([error for _, error in exc.attempts])
            logger.warning(
                "Ingestion of %s failed (%s): %s", attachment.filename, category.value, exc
            )
            return IngestionResult.failure(category, base_metadata)

        text = clean_text(parsed.text, remove_furniture=fmt == "pdf")
        text, truncated = truncate(text, self.config.max_text_length)
        chunks = self.chunker.split(text)

        metadata = {
            "title": None,
            "author": None,
            "pages": None,
            "has_images": False,
            **parsed.metadata,
            **base_metadata,
            "word_count": len(text.split()),
            "char_count": len(text),
            "truncated": truncated,
            "processing_time_ms": round((perf_counter() - started) * 1000.0, 1),
        }
        return IngestionResult(success=True, text=text, metadata=metadata, chunks=chunks)


class IngestPipeline:
    """Coordinates extraction, embedding and storage for user uploads."""

    def __init__(
        self,
        ingestor: DocumentIngestor,
        embedder: Embedder,
        store: VectorStore,
    ) -> None:
        self._ingestor = ingestor
        self._embedder = embedder
        self._store = store

    async def process(
        self, user_id: str, conversation_id: str, attachment: Attachment
    ) -> IngestionResult:
        """Ingest one attachment and index its chunks for the user.

        Embedding failures propagate; the document record is removed first so
        no chunkless document is left behind.
        """
        result = await self._ingestor.ingest(attachment)
        if not result.success:
            return result

        document = DocumentRecord(
            document_id=str(uuid.uuid4()),
            user_id=user_id,
            conversation_id=conversation_id,
            filename=attachment.filename or "document",
            file_type=detect_format(attachment),
            file_size=len(attachment.data),
            content_text=result.text,
            metadata=result.metadata,
        )
        await self._store.add_document(document)
        result.document_id = document.document_id

        if not result.chunks:
            return result

        try:
            batch = await self._embedder.embed_batch([chunk.content for chunk in result.chunks])
        except Exception:
            await self._store.delete_document(document.document_id)
            raise

        stored = [
            DocumentChunk(
                chunk_id=f"{document.document_id}-chunk-{chunk.index:04d}",
                document_id=document.document_id,
                chunk_index=chunk.index,
                content=chunk.content,
                embedding=vector,
                token_count=chunk.token_count,
                metadata={"start": chunk.start, "end": chunk.end},
            )
            for chunk, vector in zip(result.chunks, batch.vectors, strict=True)
        ]
        await self._store.add_chunks(stored)
        result.metadata["embedding_tokens"] = batch.total_tokens
        logger.info(
            "Indexed %s as %s with %d chunks",
            document.filename,
            document.document_id,
            len(stored),
            extra={"document_id": document.document_id, "chunks": len(stored)},
        )
        return result

    async def process_many(
        self, user_id: str, conversation_id: str, attachments: Sequence[Attachment]
    ) -> list[IngestionResult]:
        outcomes = await asyncio.gather(
            *(self.process(user_id, conversation_id, attachment) for attachment in attachments),
            return_exceptions=True,
        )
        results: list[IngestionResult] = []
        for attachment, outcome in zip(attachments, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Processing %s failed: %s", attachment.filename, outcome)
                failed = IngestionResult.failure(
                    IngestionFailure.UNKNOWN, {"filename": attachment.filename}
                )
                results.append(failed)
            else:
                results.append(outcome)
        return results


def summarize_document(result: IngestionResult) -> str:
    """Render a short human-readable analysis of an ingestion result."""
    if not result.success:
        return f"Document processing failed.\n\n{result.error}"

    meta = result.metadata
    lines = ["Document analysis:"]
    if meta.get("filename"):
        lines.append(f"File: {meta['filename']}")
    if meta.get("title"):
        lines.append(f"Title: {meta['title']}")
    if meta.get("author"):
        lines.append(f"Author: {meta['author']}")
    if meta.get("pages"):
        lines.append(f"Pages: {meta['pages']}")
    lines.append(f"Words: {meta.get('word_count', 0):,}")
    lines.append(f"Characters: {meta.get('char_count', 0):,}")
    if meta.get("has_images"):
        lines.append("Contains images")
    lines.append(f"Parsing method: {meta.get('parsing_method', 'unknown')}")
    if meta.get("truncated"):
        lines.append("Content was truncated due to length")
    lines.append(f"Chunks: {len(result.chunks)}")
    return "\n".join(lines)
