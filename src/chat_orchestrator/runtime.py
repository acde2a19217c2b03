"""Process-wide state and component wiring."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chat_orchestrator.agent.executor import ToolExecutionEngine
from chat_orchestrator.agent.memory import ConversationMemory
from chat_orchestrator.agent.registry import SlidingWindowRateLimiter, ToolRegistry
from chat_orchestrator.agent.remote import RemoteToolRegistry
from chat_orchestrator.agent.router import ResponseRouter
from chat_orchestrator.agent.tools import register_builtin_tools
from chat_orchestrator.cache import CacheSweeper, TTLCache
from chat_orchestrator.config import Settings
from chat_orchestrator.ingest.embedder import Embedder
from chat_orchestrator.ingest.pipeline import DocumentIngestor, IngestPipeline
from chat_orchestrator.llm.base import LLMClient
from chat_orchestrator.obs.tracing import TraceStore
from chat_orchestrator.retrieval.retriever import RetrievalEngine
from chat_orchestrator.retrieval.vector_store import InMemoryVectorStore, VectorStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    """Owns every piece of mutable shared state for one process.

    Construct it once with `build_runtime`, call `start()` before serving and
    `aclose()` on shutdown.
    """

    settings: Settings
    cache: TTLCache
    embedding_cache: TTLCache
    search_cache: TTLCache
    registry: ToolRegistry
    remote_registry: RemoteToolRegistry
    rate_limiter: SlidingWindowRateLimiter
    memory: ConversationMemory
    trace_store: TraceStore
    store: VectorStore
    executor: ToolExecutionEngine
    retrieval: RetrievalEngine
    ingest: IngestPipeline
    router: ResponseRouter
    sweeper: CacheSweeper
    started: bool = False

    async def start(self) -> None:
        if self.started:
            return
        servers = await self.remote_registry.connect_all()
        await self.registry.initialize_all()
        await self.remote_registry.initialize_all()
        self.sweeper.start()
        self.started = True
        logger.info(
            "Runtime started with %d local tools and remote servers %s",
            len(self.registry),
            servers,
        )

    async def aclose(self) -> None:
        if not self.started:
            return
        await self.sweeper.stop()
        await self.executor.aclose()
        await self.registry.cleanup_all()
        await self.remote_registry.cleanup_all()
        await self.remote_registry.disconnect_all()
        self.started = False
        logger.info("Runtime stopped")

    def flush_caches(self) -> None:
        self.cache.flush_all()
        self.retrieval.clear_caches()


def build_runtime(
    settings: Settings,
    llm: LLMClient,
    embedder: Embedder,
    store: VectorStore | None = None,
) -> Runtime:
    """Construct all components over one set of shared state."""
    retrieval_config = settings.retrieval
    cache = TTLCache(
        ttl_seconds=settings.cache.ttl_seconds,
        max_keys=settings.cache.max_keys,
    )
    embedding_cache = TTLCache(
        ttl_seconds=0,
        max_keys=retrieval_config.embedding_cache_max_keys * 2,
        soft_cap=retrieval_config.embedding_cache_max_keys,
        keep_recent=retrieval_config.embedding_cache_keep,
    )
    search_cache = TTLCache(
        ttl_seconds=retrieval_config.search_cache_ttl_seconds,
        max_keys=retrieval_config.search_cache_max_keys,
    )

    registry = ToolRegistry()
    register_builtin_tools(registry)
    remote_registry = RemoteToolRegistry(settings.tools.remote_servers)
    rate_limiter = SlidingWindowRateLimiter()
    executor = ToolExecutionEngine(
        registry,
        remote=remote_registry,
        rate_limiter=rate_limiter,
        timeout_seconds=settings.tools.timeout_seconds,
    )

    store = store if store is not None else InMemoryVectorStore()
    retrieval = RetrievalEngine(
        store,
        embedder,
        config=retrieval_config,
        embedding_cache=embedding_cache,
        search_cache=search_cache,
    )
    ingest = IngestPipeline(DocumentIngestor(settings.ingest), embedder, store)

    memory = ConversationMemory(max_turns=settings.memory.max_turns)
    trace_store = TraceStore()
    router = ResponseRouter(
        llm,
        executor=executor,
        memory=memory,
        retrieval=retrieval,
        ingest=ingest,
        config=settings.router,
        memory_config=settings.memory,
        trace_store=trace_store,
    )
    sweeper = CacheSweeper(
        [cache, embedding_cache, search_cache],
        interval_seconds=settings.cache.sweep_interval_seconds,
    )
    return Runtime(
        settings=settings,
        cache=cache,
        embedding_cache=embedding_cache,
        search_cache=search_cache,
        registry=registry,
        remote_registry=remote_registry,
        rate_limiter=rate_limiter,
        memory=memory,
        trace_store=trace_store,
        store=store,
        executor=executor,
        retrieval=retrieval,
        ingest=ingest,
        router=router,
        sweeper=sweeper,
    )
