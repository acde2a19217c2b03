"""Prompt assembly for the routing paths."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from chat_orchestrator.agent.registry import ToolDescriptor
from chat_orchestrator.types import SearchResult, ToolCall, ToolResult

CONTEXT_HEADER = "Relevant context from documents and knowledge base:"
NO_CONTEXT = "No relevant context found."
TOOL_RESULTS_HEADER = "Tool results:"
SNIPPET_SEPARATOR = "\n\n---\n\n"


def capability_prompt(base_prompt: str, tools: Sequence[ToolDescriptor]) -> str:
    """Append the live tool catalog to the system prompt."""
    if not tools:
        return base_prompt
    lines = [f"- {tool.name}: {tool.description}" for tool in tools]
    return (
        f"{base_prompt}\n\n"
        "You have access to the following tools. Call them when they help answer "
        "the user; you may call several at once.\n" + "\n".join(lines)
    )


def capability_summary(tools: Sequence[ToolDescriptor]) -> str:
    if not tools:
        return "I don't have any tools enabled right now, but I can still chat and answer questions."
    lines = [f"• {tool.name}: {tool.description}" for tool in tools]
    return "I can use these tools:\n" + "\n".join(lines)


def format_context(results: Sequence[SearchResult]) -> str:
    if not results:
        return NO_CONTEXT
    blocks = [
        f"[{index}] {result.label()} (Similarity: {result.similarity * 100:.1f}%)\n{result.content}"
        for index, result in enumerate(results, start=1)
    ]
    return SNIPPET_SEPARATOR.join(blocks)


def rag_prompt(base_prompt: str, results: Sequence[SearchResult]) -> str:
    # The context block stays last so the snippets end the prompt.
    return (
        f"{base_prompt}\n\n"
        "Use the context below when it is relevant and mention which source you relied on. "
        "If the context does not answer the question, say so and answer from general knowledge.\n\n"
        f"{CONTEXT_HEADER}\n\n{format_context(results)}"
    )


def tool_results_message(calls: Sequence[ToolCall], results: Sequence[ToolResult]) -> str:
    lines = []
    for call, result in zip(calls, results, strict=True):
        status = "ok" if result.success else "failed"
        lines.append(f"- {call.name} ({status}): {result.summary()}")
    return f"{TOOL_RESULTS_HEADER}\n" + "\n".join(lines)


def tool_call_message(calls: Sequence[ToolCall]) -> str:
    names = ", ".join(call.name for call in calls)
    return f"Calling tools: {names}"


def usage_summary(calls: Sequence[ToolCall]) -> str:
    counts = Counter(call.name for call in calls)
    parts = [f"{name} ({count}x)" if count > 1 else name for name, count in counts.items()]
    return "Tools used: " + ", ".join(parts)


def sources_line(count: int, search_ms: float) -> str:
    noun = "document" if count == 1 else "documents"
    return f"Sources used: {count} {noun} found in {search_ms:.0f}ms"
