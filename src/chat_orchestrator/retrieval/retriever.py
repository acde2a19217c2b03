"""Two-source retrieval engine with embedding and result caching."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import Any

from chat_orchestrator.cache import TTLCache
from chat_orchestrator.config import RetrievalConfig
from chat_orchestrator.errors import EmbeddingDimensionError, RetrievalSourceError
from chat_orchestrator.ingest.embedder import Embedder
from chat_orchestrator.retrieval.fusion import FlatFusion, FusionStrategy
from chat_orchestrator.retrieval.vector_store import VectorStore
from chat_orchestrator.types import KnowledgeEntry, SearchResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SearchOptions:
    """Per-call overrides; `None` fields fall back to `RetrievalConfig`."""

    limit: int | None = None
    threshold: float | None = None
    user_id: str | None = None
    include_documents: bool | None = None
    include_knowledge_base: bool | None = None


@dataclass(frozen=True, slots=True)
class _ResolvedOptions:
    limit: int
    threshold: float
    user_id: str | None
    include_documents: bool
    include_knowledge_base: bool


class RetrievalEngine:
    """Embeds the query, searches documents and knowledge base, fuses the hits.

    Embedding failures propagate. A failing source is logged and contributes
    no results, and a search that lost a source is not cached. Cached search
    results are only invalidated by expiry.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        *,
        config: RetrievalConfig | None = None,
        fusion: FusionStrategy | None = None,
        embedding_cache: TTLCache | None = None,
        search_cache: TTLCache | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.config = config or RetrievalConfig()
        self.fusion = fusion or FlatFusion()
        self.embedding_cache = embedding_cache or TTLCache(
            ttl_seconds=0,
            max_keys=self.config.embedding_cache_max_keys * 2,
            soft_cap=self.config.embedding_cache_max_keys,
            keep_recent=self.config.embedding_cache_keep,
        )
        self.search_cache = search_cache or TTLCache(
            ttl_seconds=self.config.search_cache_ttl_seconds,
            max_keys=self.config.search_cache_max_keys,
        )

    async def embed_query(self, query: str) -> list[float]:
        key = _hash(normalize_query(query))
        cached = self.embedding_cache.get(key)
        if cached is not None:
            return cached
        embedding = await self.embedder.embed(query.strip())
        self.embedding_cache.set(key, embedding)
        return embedding

    async def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        resolved = self._resolve(options or SearchOptions())
        cache_key = _hash(
            json.dumps(
                {"query": normalize_query(query), **asdict(resolved)}, sort_keys=True
            )
        )
        cached = self.search_cache.get(cache_key)
        if cached is not None:
            logger.debug("Search cache hit for %r", query)
            return list(cached)

        embedding = await self.embed_query(query)

        tasks = {}
        if resolved.include_documents:
            tasks["document"] = self._search_documents(embedding, resolved)
        if resolved.include_knowledge_base:
            tasks["knowledge_base"] = self._search_knowledge(embedding, resolved)
        # Every source settles before a fatal error is re-raised.
        outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        sources: dict[str, list[SearchResult]] = {}
        failed: list[str] = []
        for name, results in zip(tasks, outcomes, strict=True):
            if results is None:
                failed.append(name)
                results = []
            sources[name] = results

        results = self.fusion.fuse(sources, resolved.limit)
        if failed:
            logger.warning("Not caching degraded search results (failed sources: %s)", failed)
        else:
            self.search_cache.set(cache_key, list(results))
        logger.info(
            "Search returned %d results (documents=%d, knowledge_base=%d)",
            len(results),
            len(sources.get("document", [])),
            len(sources.get("knowledge_base", [])),
        )
        return results

    async def add_knowledge(
        self,
        title: str,
        content: str,
        *,
        source: str | None = None,
        tags: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
    ) -> KnowledgeEntry:
        embedding = await self.embedder.embed(f"{title}\n\n{content}")
        entry = KnowledgeEntry(
            entry_id=str(uuid.uuid4()),
            title=title,
            content=content,
            embedding=embedding,
            source=source,
            tags=tuple(tags),
            metadata=dict(metadata or {}),
        )
        await self.store.add_knowledge_entry(entry)
        logger.info("Added knowledge entry %s (%s)", entry.entry_id, title)
        return entry

    def cache_stats(self) -> dict[str, Any]:
        return {
            "embedding_cache": self.embedding_cache.stats(),
            "search_cache": self.search_cache.stats(),
        }

    def clear_caches(self) -> None:
        self.embedding_cache.flush_all()
        self.search_cache.flush_all()

    async def _search_documents(
        self, embedding: list[float], options: _ResolvedOptions
    ) -> list[SearchResult] | None:
        try:
            hits = await self.store.query_chunks(
                embedding,
                threshold=options.threshold,
                limit=options.limit,
                user_id=options.user_id,
            )
        except EmbeddingDimensionError:
            raise
        except Exception as exc:
            logger.error("%s", RetrievalSourceError("document", str(exc)), exc_info=True)
            return None
        return [
            SearchResult(
                content=hit.chunk.content,
                similarity=hit.similarity,
                source="document",
                metadata={
                    **hit.chunk.metadata,
                    "document_id": hit.document.document_id,
                    "filename": hit.document.filename,
                    "file_type": hit.document.file_type,
                    "chunk_index": hit.chunk.chunk_index,
                },
            )
            for hit in hits
        ]

    async def _search_knowledge(
        self, embedding: list[float], options: _ResolvedOptions
    ) -> list[SearchResult] | None:
        try:
            hits = await self.store.query_knowledge(
                embedding, threshold=options.threshold, limit=options.limit
            )
        except EmbeddingDimensionError:
            raise
        except Exception as exc:
            logger.error("%s", RetrievalSourceError("knowledge_base", str(exc)), exc_info=True)
            return None
        return [
            SearchResult(
                content=hit.entry.content,
                similarity=hit.similarity,
                source="knowledge_base",
                metadata={
                    **hit.entry.metadata,
                    "entry_id": hit.entry.entry_id,
                    "title": hit.entry.title,
                    "source": hit.entry.source,
                    "tags": list(hit.entry.tags),
                },
            )
            for hit in hits
        ]

    def _resolve(self, options: SearchOptions) -> _ResolvedOptions:
        config = self.config
        return _ResolvedOptions(
            limit=options.limit if options.limit is not None else config.limit,
            threshold=options.threshold if options.threshold is not None else config.threshold,
            user_id=options.user_id,
            include_documents=(
                options.include_documents
                if options.include_documents is not None
                else config.include_documents
            ),
            include_knowledge_base=(
                options.include_knowledge_base
                if options.include_knowledge_base is not None
                else config.include_knowledge_base
            ),
        )


def normalize_query(query: str) -> str:
    return " ".join(query.lower().split())


def _hash(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()
