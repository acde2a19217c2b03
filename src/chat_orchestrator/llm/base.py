"""LLM interface consumed by the router."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from chat_orchestrator.agent.registry import ToolDescriptor
from chat_orchestrator.types import ToolCall, Turn

ToolChoice = Literal["auto", "none", "required"]


@dataclass(slots=True)
class GenerateOptions:
    max_tokens: int = 1000
    temperature: float = 0.7
    model: str | None = None
    system_prompt: str | None = None
    tools: list[ToolDescriptor] = field(default_factory=list)
    tool_choice: ToolChoice | None = None


@dataclass(slots=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass(slots=True)
class LLMResponse:
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage | None = None


class LLMClient(ABC):
    """Chat-completion provider.

    Implementations raise `LLMProviderError` on transport or auth failures and
    must not return tool calls when `options.tools` is empty.
    """

    provider: str = "unknown"

    @abstractmethod
    async def generate(self, messages: Sequence[Turn], options: GenerateOptions) -> LLMResponse:
        raise NotImplementedError
