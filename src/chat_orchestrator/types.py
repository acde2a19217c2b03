"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Role = Literal["user", "assistant", "system"]
SourceKind = Literal["document", "knowledge_base"]

# Text or a list of {"type": "text"|"image", ...} blocks.
Content = str | list[dict[str, Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Turn:
    """One conversation message."""

    role: Role
    content: Content

    def text(self) -> str:
        """Return the textual part of the content, dropping image blocks."""
        if isinstance(self.content, str):
            return self.content
        return " ".join(
            str(block.get("text", ""))
            for block in self.content
            if block.get("type") == "text"
        ).strip()


@dataclass(slots=True)
class Attachment:
    """Raw media delivered with an inbound message."""

    kind: Literal["document", "image", "audio", "video"]
    data: bytes
    filename: str | None = None
    mimetype: str | None = None
    caption: str | None = None


@dataclass(slots=True)
class InboundMessage:
    id: str
    content: str
    sender_id: str
    attachments: list[Attachment] = field(default_factory=list)
    sender_name: str | None = None


@dataclass(slots=True)
class BotResponse:
    """A response ready for the chat transport."""

    content: str
    path: str
    quoted_message_id: str | None = None
    trace_id: str | None = None
    tools_used: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by the LLM."""

    id: str
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Outcome of one tool call. `error_kind` is set only on failures."""

    tool_call_id: str
    success: bool
    data: Any = None
    error: str | None = None
    message: str | None = None
    error_kind: str | None = None

    def summary(self) -> str:
        if self.message:
            return self.message
        if self.success:
            return str(self.data)
        return self.error or "unknown error"


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    success: bool = True


@dataclass(slots=True)
class ParsedDocument:
    """Text produced by one extraction strategy, before cleaning."""

    text: str
    metadata: dict[str, Any]


@dataclass(frozen=True, slots=True)
class TextChunk:
    """A window of cleaned text with its offsets into that text."""

    index: int
    content: str
    start: int
    end: int
    token_count: int


@dataclass(slots=True)
class DocumentRecord:
    document_id: str
    user_id: str
    conversation_id: str
    filename: str
    file_type: str
    file_size: int
    content_text: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class DocumentChunk:
    """An embedded chunk of a stored document."""

    chunk_id: str
    document_id: str
    chunk_index: int
    content: str
    embedding: list[float]
    token_count: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class KnowledgeEntry:
    entry_id: str
    title: str
    content: str
    embedding: list[float]
    source: str | None = None
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A ranked retrieval hit from either source."""

    content: str
    similarity: float
    source: SourceKind
    metadata: dict[str, Any] = field(default_factory=dict)

    def label(self) -> str:
        if self.source == "document":
            return f"Document: {self.metadata.get('filename') or 'Unknown'}"
        return f"Knowledge Base: {self.metadata.get('title') or 'Unknown'}"
