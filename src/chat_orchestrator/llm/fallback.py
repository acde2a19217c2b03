"""Deterministic offline LLM used when no provider key is configured."""

from __future__ import annotations

import re
import uuid
from collections.abc import Sequence

from chat_orchestrator.agent.classifier import DETECTORS
from chat_orchestrator.agent.prompts import CONTEXT_HEADER, NO_CONTEXT, SNIPPET_SEPARATOR, TOOL_RESULTS_HEADER
from chat_orchestrator.agent.tools import CITY_TIMEZONES
from chat_orchestrator.llm.base import GenerateOptions, LLMClient, LLMResponse, Usage
from chat_orchestrator.obs.tracing import estimate_token_count
from chat_orchestrator.types import ToolCall, Turn

_EXPRESSION = re.compile(r"(?:sqrt\s*)?[\d(][\d\s.+\-*/^%()×÷]*[\d)]")
_OPERATOR = re.compile(r"[-+*/^%×÷]|sqrt")
_PLACE = re.compile(
    r"\bin\s+([A-Za-z][A-Za-z .'-]*?)(?=\s+(?:and|also|then|in|with)\b|[?.!,;]|$)"
)
_SEARCH_QUERY = re.compile(
    r"\b(?:search(?: for)?|look up|lookup|google|news about|find (?:information|info|news)(?: about| on)?)\s+(.+)",
    re.IGNORECASE,
)
_ID_COUNT = re.compile(r"\b(\d+)\s+(?:uuids|guids|ids|identifiers|nanoids)\b", re.IGNORECASE)


class DeterministicLLM(LLMClient):
    """Plans tool calls from pattern detectors and answers from tool output or context.

    It never reaches the network. With tools offered it returns tool calls for
    whatever detectors match the last user turn; without tools it summarizes the
    latest tool results or retrieved snippets.
    """

    provider = "deterministic"

    async def generate(self, messages: Sequence[Turn], options: GenerateOptions) -> LLMResponse:
        question = _last_user_text(messages)
        prompt_tokens = sum(estimate_token_count(turn.text()) for turn in messages)
        prompt_tokens += estimate_token_count(options.system_prompt or "")

        if options.tools and options.tool_choice != "none":
            offered = {tool.name for tool in options.tools}
            calls = [call for call in plan_tool_calls(question) if call.name in offered]
            if calls:
                return LLMResponse(
                    content="",
                    tool_calls=calls,
                    usage=Usage(input_tokens=prompt_tokens, output_tokens=0),
                )

        answer = _compose_answer(messages, question, options.system_prompt or "")
        return LLMResponse(
            content=answer,
            usage=Usage(input_tokens=prompt_tokens, output_tokens=estimate_token_count(answer)),
        )


def plan_tool_calls(text: str) -> list[ToolCall]:
    calls: list[ToolCall] = []

    if DETECTORS["calculator"].search(text):
        for match in _EXPRESSION.finditer(text):
            expression = match.group(0).strip()
            if _OPERATOR.search(expression):
                calls.append(_call("calculator", expression=expression))

    places = [place.strip() for place in _PLACE.findall(text)]
    if DETECTORS["weather"].search(text):
        for place in places or ["your area"]:
            calls.append(_call("weather", location=place))

    if DETECTORS["time"].search(text):
        zones = [place for place in places if place.lower() in CITY_TIMEZONES]
        for zone in zones or ["UTC"]:
            calls.append(_call("time", timezone=zone))

    if DETECTORS["search"].search(text):
        match = _SEARCH_QUERY.search(text)
        query = match.group(1).strip(" ?.!") if match else text.strip()
        calls.append(_call("search", query=query))

    if DETECTORS["uuid"].search(text):
        count_match = _ID_COUNT.search(text)
        count = min(int(count_match.group(1)), 20) if count_match else 1
        id_type = "nanoid" if "nanoid" in text.lower() else "uuid4"
        calls.append(_call("uuid", type=id_type, count=max(count, 1)))

    return calls


def _call(name: str, **parameters: object) -> ToolCall:
    return ToolCall(id=f"call_{uuid.uuid4().hex[:12]}", name=name, parameters=parameters)


def _last_user_text(messages: Sequence[Turn]) -> str:
    for turn in reversed(messages):
        if turn.role == "user" and not turn.text().startswith(TOOL_RESULTS_HEADER):
            return turn.text()
    return ""


def _compose_answer(messages: Sequence[Turn], question: str, system_prompt: str) -> str:
    last = messages[-1] if messages else None
    if last is not None and last.role == "user" and last.text().startswith(TOOL_RESULTS_HEADER):
        findings = last.text()[len(TOOL_RESULTS_HEADER):].strip()
        return f"Here is what I found:\n{findings}"

    context_answer = _answer_from_context(system_prompt)
    if context_answer is not None:
        return context_answer
    if question:
        return (
            "I'm running without a language model right now, so I can only use my tools "
            f"and your documents. You asked: {question}"
        )
    return "I'm here. How can I help?"


def _answer_from_context(system_prompt: str) -> str | None:
    if CONTEXT_HEADER not in system_prompt:
        return None
    body = system_prompt.split(CONTEXT_HEADER, 1)[1].strip()
    if not body or body.startswith(NO_CONTEXT):
        return "I couldn't find anything relevant in your documents or the knowledge base."
    best = body.split(SNIPPET_SEPARATOR, 1)[0].strip()
    return f"Based on your documents:\n{best}"
