import asyncio

from chat_orchestrator.agent.prompts import rag_prompt
from chat_orchestrator.agent.registry import ToolRegistry
from chat_orchestrator.agent.tools import register_builtin_tools
from chat_orchestrator.llm.base import GenerateOptions
from chat_orchestrator.llm.fallback import DeterministicLLM, plan_tool_calls
from chat_orchestrator.types import SearchResult, Turn


def _catalog():
    registry = ToolRegistry()
    register_builtin_tools(registry)
    return registry.descriptors()


def test_plans_calls_from_detectors() -> None:
    calc = plan_tool_calls("Calculate 12 * 8")
    weather = plan_tool_calls("What's the weather in Paris and in Tokyo?")
    ids = plan_tool_calls("Generate 3 UUIDs please")

    assert [(call.name, call.parameters) for call in calc] == [
        ("calculator", {"expression": "12 * 8"})
    ]
    assert [call.parameters["location"] for call in weather] == ["Paris", "Tokyo"]
    assert ids[0].parameters == {"type": "uuid4", "count": 3}
    assert plan_tool_calls("Tell me a joke") == []


def test_only_offered_tools_are_called() -> None:
    llm = DeterministicLLM()
    catalog = [tool for tool in _catalog() if tool.name != "calculator"]

    response = asyncio.run(
        llm.generate(
            [Turn(role="user", content="Calculate 12 * 8")],
            GenerateOptions(tools=catalog, tool_choice="auto"),
        )
    )

    assert response.tool_calls == []
    assert response.content


def test_summarizes_tool_results_without_tools() -> None:
    llm = DeterministicLLM()
    messages = [
        Turn(role="user", content="Calculate 12 * 8"),
        Turn(role="assistant", content="Calling tools: calculator"),
        Turn(role="user", content="Tool results:\n- calculator (ok): 12 * 8 = 96"),
    ]

    response = asyncio.run(llm.generate(messages, GenerateOptions()))

    assert response.tool_calls == []
    assert response.content == "Here is what I found:\n- calculator (ok): 12 * 8 = 96"
    assert response.usage.output_tokens > 0


def test_answers_from_retrieved_context() -> None:
    llm = DeterministicLLM()
    hit = SearchResult("Refunds take 14 days.", 0.9, "knowledge_base", {"title": "Refunds"})

    with_context = asyncio.run(
        llm.generate(
            [Turn(role="user", content="How long do refunds take?")],
            GenerateOptions(system_prompt=rag_prompt("Be helpful.", [hit])),
        )
    )
    without_context = asyncio.run(
        llm.generate(
            [Turn(role="user", content="How long do refunds take?")],
            GenerateOptions(system_prompt=rag_prompt("Be helpful.", [])),
        )
    )

    assert with_context.content.startswith("Based on your documents:")
    assert "Refunds take 14 days." in with_context.content
    assert "couldn't find" in without_context.content
