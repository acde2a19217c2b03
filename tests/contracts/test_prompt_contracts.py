from chat_orchestrator.agent.prompts import (
    CONTEXT_HEADER,
    NO_CONTEXT,
    capability_prompt,
    format_context,
    rag_prompt,
    sources_line,
    tool_results_message,
    usage_summary,
)
from chat_orchestrator.agent.registry import ToolRegistry
from chat_orchestrator.agent.tools import register_builtin_tools
from chat_orchestrator.types import SearchResult, ToolCall, ToolResult


def test_capability_prompt_lists_exactly_the_enabled_tools() -> None:
    registry = ToolRegistry()
    register_builtin_tools(registry)
    registry.disable("uuid")

    prompt = capability_prompt("You are helpful.", registry.descriptors())

    assert prompt.startswith("You are helpful.")
    for name in ("calculator", "weather", "time", "search"):
        assert f"- {name}: " in prompt
    assert "- uuid: " not in prompt
    assert capability_prompt("Base.", []) == "Base."


def test_context_block_labels_sources_and_comes_last() -> None:
    results = [
        SearchResult("Refunds take 14 days.", 0.812, "document", {"filename": "policy.pdf"}),
        SearchResult("Ships in 2 days.", 0.5, "knowledge_base", {"title": "Shipping"}),
    ]

    context = format_context(results)
    prompt = rag_prompt("Base.", results)

    assert context.startswith("[1] Document: policy.pdf (Similarity: 81.2%)\nRefunds take 14 days.")
    assert "[2] Knowledge Base: Shipping (Similarity: 50.0%)" in context
    assert prompt.endswith(context)
    assert CONTEXT_HEADER in prompt
    assert rag_prompt("Base.", []).endswith(NO_CONTEXT)


def test_tool_result_and_usage_lines() -> None:
    calls = [
        ToolCall(id="1", name="weather", parameters={"location": "Paris"}),
        ToolCall(id="2", name="weather", parameters={"location": "Tokyo"}),
        ToolCall(id="3", name="calculator", parameters={"expression": "1/0"}),
    ]
    results = [
        ToolResult(tool_call_id="1", success=True, message="Weather in Paris: 20°C"),
        ToolResult(tool_call_id="2", success=True, message="Weather in Tokyo: 25°C"),
        ToolResult(tool_call_id="3", success=False, error="Tool execution failed: Division by zero"),
    ]

    message = tool_results_message(calls, results)

    assert message.splitlines() == [
        "Tool results:",
        "- weather (ok): Weather in Paris: 20°C",
        "- weather (ok): Weather in Tokyo: 25°C",
        "- calculator (failed): Tool execution failed: Division by zero",
    ]
    assert usage_summary(calls) == "Tools used: weather (2x), calculator"
    assert sources_line(1, 12.4) == "Sources used: 1 document found in 12ms"
    assert sources_line(3, 40) == "Sources used: 3 documents found in 40ms"
