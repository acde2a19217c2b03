"""Embedding abstractions and deterministic baseline implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from hashlib import blake2b
from math import sqrt

from langchain_core.embeddings import Embeddings

from chat_orchestrator.errors import EmbeddingError
from chat_orchestrator.obs.tracing import estimate_token_count

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    total_tokens: int


class Embedder(ABC):
    """Embedder interface used by ingest and retrieval components."""

    dimension: int

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one text. Raises `EmbeddingError` on failure or empty input."""

    @abstractmethod
    async def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatch:
        """Embed many texts, preserving order."""


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    This class is primarily used for local tests and offline runs. In
    production, use `LangChainEmbedder` over a real embedding model.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        return self._embed(text)

    async def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatch:
        vectors = [await self.embed(text) for text in texts]
        return EmbeddingBatch(
            vectors=vectors,
            total_tokens=sum(estimate_token_count(text) for text in texts),
        )

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbedder(Embedder):
    """Adapts a LangChain `Embeddings` model (e.g. `OpenAIEmbeddings`)."""

    def __init__(self, model: Embeddings, *, dimension: int, batch_size: int = 100) -> None:
        self.model = model
        self.dimension = dimension
        self.batch_size = batch_size

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        try:
            return list(await self.model.aembed_query(text.strip()))
        except Exception as exc:
            logger.error("Embedding request failed: %s", exc)
            raise EmbeddingError(f"Failed to generate embedding: {exc}") from exc

    async def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatch:
        cleaned = [text.strip() for text in texts]
        if any(not text for text in cleaned):
            raise EmbeddingError("Cannot embed empty text")

        vectors: list[list[float]] = []
        for start in range(0, len(cleaned), self.batch_size):
            batch = cleaned[start : start + self.batch_size]
            try:
                vectors.extend(list(vector) for vector in await self.model.aembed_documents(batch))
            except Exception as exc:
                logger.error("Batch embedding failed at offset %d: %s", start, exc)
                raise EmbeddingError(f"Failed to generate batch embeddings: {exc}") from exc
        return EmbeddingBatch(
            vectors=vectors,
            total_tokens=sum(estimate_token_count(text) for text in cleaned),
        )
