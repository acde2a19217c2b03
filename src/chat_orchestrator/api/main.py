"""FastAPI entrypoint standing in for the chat transport."""

from __future__ import annotations

import base64
import binascii
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from chat_orchestrator.config import Settings
from chat_orchestrator.ingest.embedder import Embedder, HashingEmbedder, LangChainEmbedder
from chat_orchestrator.ingest.pipeline import summarize_document
from chat_orchestrator.llm.base import LLMClient
from chat_orchestrator.llm.fallback import DeterministicLLM
from chat_orchestrator.llm.langchain_client import LangChainChatClient
from chat_orchestrator.obs.logging import configure_logging
from chat_orchestrator.retrieval.retriever import SearchOptions
from chat_orchestrator.runtime import Runtime, build_runtime
from chat_orchestrator.types import Attachment, InboundMessage

_EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


def _create_llm(settings: Settings) -> LLMClient:
    if not settings.openai_api_key:
        return DeterministicLLM()

    from langchain_openai import ChatOpenAI

    model = ChatOpenAI(
        model=settings.openai_model,
        api_key=settings.openai_api_key,
        temperature=settings.router.temperature,
    )
    return LangChainChatClient(model, provider="openai")


def _create_embedder(settings: Settings) -> Embedder:
    if not settings.openai_api_key:
        return HashingEmbedder()

    from langchain_openai import OpenAIEmbeddings

    model = OpenAIEmbeddings(
        model=settings.openai_embedding_model,
        api_key=settings.openai_api_key,
    )
    dimension = _EMBEDDING_DIMENSIONS.get(settings.openai_embedding_model, 1536)
    return LangChainEmbedder(model, dimension=dimension)


class AttachmentPayload(BaseModel):
    kind: Literal["document", "image", "audio", "video"] = "document"
    filename: str | None = None
    mimetype: str | None = None
    data_base64: str | None = None
    text: str | None = None
    caption: str | None = None

    def to_attachment(self) -> Attachment:
        if self.data_base64 is not None:
            try:
                data = base64.b64decode(self.data_base64, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise HTTPException(status_code=400, detail="Invalid base64 payload") from exc
        elif self.text is not None:
            data = self.text.encode("utf-8")
        else:
            raise HTTPException(status_code=400, detail="Attachment needs data_base64 or text")
        return Attachment(
            kind=self.kind,
            data=data,
            filename=self.filename,
            mimetype=self.mimetype,
            caption=self.caption,
        )


class MessageRequest(BaseModel):
    id: str | None = None
    content: str = ""
    sender_id: str = Field(min_length=1)
    sender_name: str | None = None
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class IngestRequest(AttachmentPayload):
    user_id: str = Field(min_length=1)
    conversation_id: str | None = None


class KnowledgeRequest(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    source: str | None = None
    tags: list[str] = Field(default_factory=list)


class SourceSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=20)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    user_id: str | None = None
    include_documents: bool = True
    include_knowledge_base: bool = True


def create_app(runtime: Runtime | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the app; without a runtime one is wired from `settings` (or the environment)."""
    if runtime is None:
        settings = settings or Settings.from_env()
        runtime = build_runtime(settings, _create_llm(settings), _create_embedder(settings))
    configure_logging(runtime.settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await runtime.start()
        try:
            yield
        finally:
            await runtime.aclose()

    app = FastAPI(title="Chat Orchestrator", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_provider": runtime.router.llm.provider,
            "tools": len(runtime.registry),
            "remote_servers": runtime.remote_registry.connected_servers,
            "store": runtime.store.stats(),
            "trace_count": len(runtime.trace_store),
        }

    @app.post("/messages")
    async def messages(request: MessageRequest) -> dict[str, Any]:
        message = InboundMessage(
            id=request.id or str(uuid.uuid4()),
            content=request.content,
            sender_id=request.sender_id,
            sender_name=request.sender_name,
            attachments=[item.to_attachment() for item in request.attachments],
        )
        response = await runtime.router.route(message)
        if response is None:
            return {"ignored": True, "response": None}
        return {"ignored": False, "response": asdict(response)}

    @app.post("/ingest")
    async def ingest(request: IngestRequest) -> dict[str, Any]:
        attachment = request.to_attachment()
        result = await runtime.ingest.process(
            request.user_id, request.conversation_id or request.user_id, attachment
        )
        return {
            "success": result.success,
            "document_id": result.document_id,
            "chunks_created": len(result.chunks),
            "metadata": result.metadata,
            "category": result.category.value if result.category else None,
            "hints": result.hints,
            "summary": summarize_document(result),
        }

    @app.post("/knowledge")
    async def add_knowledge(request: KnowledgeRequest) -> dict[str, Any]:
        entry = await runtime.retrieval.add_knowledge(
            request.title, request.content, source=request.source, tags=request.tags
        )
        return {"entry_id": entry.entry_id, "title": entry.title}

    @app.post("/sources/search")
    async def source_search(request: SourceSearchRequest) -> dict[str, Any]:
        results = await runtime.retrieval.search(
            request.query,
            SearchOptions(
                limit=request.limit,
                threshold=request.threshold,
                user_id=request.user_id,
                include_documents=request.include_documents,
                include_knowledge_base=request.include_knowledge_base,
            ),
        )
        return {
            "items": [
                {
                    "content": result.content,
                    "similarity": result.similarity,
                    "source": result.source,
                    "label": result.label(),
                    "metadata": result.metadata,
                }
                for result in results
            ]
        }

    @app.get("/tools")
    def tools() -> dict[str, Any]:
        return {
            "local": [
                tool.model_dump() for tool in runtime.registry.descriptors(include_disabled=True)
            ],
            "remote": [
                tool.model_dump()
                for tool in runtime.remote_registry.descriptors(include_disabled=True)
            ],
            "servers": runtime.remote_registry.server_status(),
            "stats": runtime.registry.stats(),
        }

    @app.post("/tools/{name}/enable")
    def enable_tool(name: str) -> dict[str, Any]:
        return _toggle(runtime, name, enabled=True)

    @app.post("/tools/{name}/disable")
    def disable_tool(name: str) -> dict[str, Any]:
        return _toggle(runtime, name, enabled=False)

    @app.delete("/conversations/{user_id}")
    def clear_conversation(user_id: str) -> dict[str, Any]:
        runtime.memory.clear(user_id)
        return {"cleared": user_id}

    @app.post("/cache/flush")
    def flush_cache() -> dict[str, Any]:
        runtime.flush_caches()
        return {"flushed": True}

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        records = [asdict(record) for record in runtime.trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = runtime.trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return {
            **runtime.trace_store.summary(),
            "caches": {"general": runtime.cache.stats(), **runtime.retrieval.cache_stats()},
            "memory": runtime.memory.stats(),
            "tools": runtime.registry.stats(),
            "abandoned_tool_tasks": runtime.executor.abandoned_count,
        }

    return app


def _toggle(runtime: Runtime, name: str, *, enabled: bool) -> dict[str, Any]:
    for registry in (runtime.registry, runtime.remote_registry):
        if name in registry:
            if enabled:
                registry.enable(name)
            else:
                registry.disable(name)
            return {"name": name, "enabled": enabled}
    raise HTTPException(status_code=404, detail=f"Tool '{name}' not found")


app = create_app()
