"""Adapter from any LangChain chat model to `LLMClient`."""

from __future__ import annotations

import base64
import logging
import uuid
from collections.abc import Sequence
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from chat_orchestrator.errors import LLMProviderError
from chat_orchestrator.llm.base import GenerateOptions, LLMClient, LLMResponse, Usage
from chat_orchestrator.types import ToolCall, Turn

logger = logging.getLogger(__name__)


class LangChainChatClient(LLMClient):
    """Wraps a LangChain chat model, e.g. `ChatOpenAI`."""

    def __init__(self, model: BaseChatModel, *, provider: str = "langchain") -> None:
        self.model = model
        self.provider = provider

    async def generate(self, messages: Sequence[Turn], options: GenerateOptions) -> LLMResponse:
        lc_messages = to_langchain_messages(messages, options.system_prompt)
        runnable: Any = self.model
        if options.tools:
            runnable = self.model.bind_tools(
                [tool.as_openai_function() for tool in options.tools],
                tool_choice=options.tool_choice or "auto",
            )

        kwargs: dict[str, Any] = {
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if options.model:
            kwargs["model"] = options.model

        try:
            reply = await runnable.ainvoke(lc_messages, **kwargs)
        except Exception as exc:
            logger.error("LLM call to %s failed: %s", self.provider, exc)
            raise LLMProviderError(self.provider, str(exc) or type(exc).__name__) from exc

        tool_calls: list[ToolCall] = []
        if options.tools:
            tool_calls = [
                ToolCall(
                    id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                    name=call["name"],
                    parameters=dict(call.get("args") or {}),
                )
                for call in getattr(reply, "tool_calls", None) or []
            ]

        return LLMResponse(
            content=message_text(reply),
            tool_calls=tool_calls,
            usage=_usage(reply),
        )


def to_langchain_messages(
    turns: Sequence[Turn], system_prompt: str | None = None
) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    if system_prompt:
        converted.append(SystemMessage(content=system_prompt))
    for turn in turns:
        if turn.role == "system":
            converted.append(SystemMessage(content=turn.text()))
        elif turn.role == "assistant":
            converted.append(AIMessage(content=turn.text()))
        else:
            converted.append(HumanMessage(content=_human_content(turn)))
    return converted


def message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            elif isinstance(item, str):
                parts.append(item)
        return " ".join(parts).strip()
    return str(content or "")


def _human_content(turn: Turn) -> str | list[str | dict[str, Any]]:
    if isinstance(turn.content, str):
        return turn.content
    blocks: list[str | dict[str, Any]] = []
    for block in turn.content:
        if block.get("type") == "image":
            data = block.get("data", b"")
            encoded = data if isinstance(data, str) else base64.b64encode(data).decode("ascii")
            mimetype = block.get("mimetype") or "image/jpeg"
            blocks.append(
                {"type": "image_url", "image_url": {"url": f"data:{mimetype};base64,{encoded}"}}
            )
        else:
            blocks.append({"type": "text", "text": str(block.get("text", ""))})
    return blocks


def _usage(message: Any) -> Usage | None:
    metadata = getattr(message, "usage_metadata", None)
    if not metadata:
        return None
    return Usage(
        input_tokens=int(metadata.get("input_tokens", 0)),
        output_tokens=int(metadata.get("output_tokens", 0)),
    )
