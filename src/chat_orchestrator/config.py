"""Configuration models for the orchestration engine."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, model_validator

_DEFAULT_SYSTEM_PROMPT = """
You are a helpful chat assistant with access to tools and a document
knowledge base. Answer concisely, use tools when a question needs live data
or exact computation, and say so when you cannot verify something.
""".strip()


class ChunkingConfig(BaseModel):
    """Configures fixed-window chunking with boundary snapping."""

    chunk_size: int = Field(default=1000, ge=100)
    overlap: int = Field(default=200, ge=0)
    break_ratio: float = Field(default=0.5, ge=0.0, lt=1.0)

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap >= self.chunk_size:
            raise ValueError("overlap must be less than chunk_size")
        return self


class IngestConfig(BaseModel):
    """Limits and feature flags for the document ingestion cascade."""

    max_file_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    max_text_length: int = Field(default=100_000, ge=100)
    max_pages: int = Field(default=100, ge=1)
    enable_image_conversion: bool = False
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)


class RetrievalConfig(BaseModel):
    """Configures two-source similarity search and its caches."""

    limit: int = Field(default=5, ge=1)
    threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    include_documents: bool = True
    include_knowledge_base: bool = True
    search_cache_ttl_seconds: float = Field(default=30 * 60, gt=0.0)
    search_cache_max_keys: int = Field(default=1000, ge=1)
    embedding_cache_max_keys: int = Field(default=1000, ge=1)
    embedding_cache_keep: int = Field(default=800, ge=1)


class CacheConfig(BaseModel):
    """General-purpose TTL cache settings."""

    ttl_seconds: float = Field(default=3600.0, gt=0.0)
    max_keys: int = Field(default=1000, ge=1)
    sweep_interval_seconds: float = Field(default=600.0, gt=0.0)


class RemoteServerConfig(BaseModel):
    """A remote tool server entry; only its name selects placeholder tools."""

    name: str = Field(min_length=1)
    command: str = ""
    args: list[str] = Field(default_factory=list)
    enabled: bool = True


class ToolConfig(BaseModel):
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    remote_servers: list[RemoteServerConfig] = Field(default_factory=list)


class MemoryConfig(BaseModel):
    """Bounded per-user history."""

    max_turns: int = Field(default=20, ge=2)
    history_window: int = Field(default=10, ge=0)


class RouterConfig(BaseModel):
    """Configures response generation."""

    system_prompt: str = _DEFAULT_SYSTEM_PROMPT
    max_tokens: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    model: str | None = None
    enable_rag: bool = True
    enable_vision: bool = True


class Settings(BaseModel):
    """Aggregate configuration for one process."""

    router: RouterConfig = Field(default_factory=RouterConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    tools: ToolConfig = Field(default_factory=ToolConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        router = RouterConfig(
            system_prompt=os.getenv("BOT_SYSTEM_PROMPT") or _DEFAULT_SYSTEM_PROMPT,
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "1000")),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            model=os.getenv("LLM_MODEL") or None,
            enable_rag=_env_flag("ENABLE_RAG", True),
            enable_vision=_env_flag("ENABLE_VISION", True),
        )
        ingest = IngestConfig(
            enable_image_conversion=_env_flag("ENABLE_PDF_IMAGE_CONVERSION", False),
        )
        servers = [
            RemoteServerConfig(name=name.strip())
            for name in os.getenv("REMOTE_TOOL_SERVERS", "").split(",")
            if name.strip()
        ]
        tools = ToolConfig(
            timeout_seconds=float(os.getenv("TOOL_TIMEOUT_SECONDS", "30")),
            remote_servers=servers,
        )
        return cls(
            router=router,
            ingest=ingest,
            tools=tools,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_embedding_model=os.getenv(
                "OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
