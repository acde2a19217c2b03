"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chat_orchestrator.errors import ToolValidationError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolContext:
    """Per-call execution context handed to tool handlers.

    The engine gives every dispatched call its own copy; `cancel_event` is set
    when the call times out and long-running handlers should check it.
    """

    caller_id: str
    conversation_id: str | None = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    metadata: dict[str, Any] = field(default_factory=dict)

    def for_call(self) -> "ToolContext":
        return replace(self, cancel_event=asyncio.Event(), metadata=dict(self.metadata))

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass(slots=True)
class ToolOutput:
    """Successful handler output; failures are raised instead."""

    data: Any = None
    message: str | None = None


# Returns ToolOutput, ToolResult or a bare value, sync or async.
ToolHandler = Callable[[Any, ToolContext], Any]


class RateLimit(BaseModel):
    max_calls: int = Field(ge=1)
    window_seconds: float = Field(gt=0.0)


class ToolDescriptor(BaseModel):
    """Public description of a tool, as shown to the LLM and the API."""

    name: str
    description: str
    parameter_schema: dict[str, Any]
    enabled: bool = True
    category: str = "general"
    rate_limit: RateLimit | None = None

    def as_openai_function(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameter_schema,
            },
        }


class ToolSpec(BaseModel):
    """Declarative tool specification, validated at registration time."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(min_length=1, pattern=r"^[A-Za-z][A-Za-z0-9_\-]*$")
    description: str = Field(min_length=1)
    args_schema: type[BaseModel]
    handler: ToolHandler
    enabled: bool = True
    category: str = "general"
    version: str = "1.0.0"
    rate_limit: RateLimit | None = None
    initialize: Callable[[], Any] | None = None
    cleanup: Callable[[], Any] | None = None

    def parse(self, payload: Mapping[str, Any]) -> BaseModel:
        return self.args_schema.model_validate(dict(payload))

    def describe(self, *, enabled: bool | None = None) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            parameter_schema=self.args_schema.model_json_schema(),
            enabled=self.enabled if enabled is None else enabled,
            category=self.category,
            rate_limit=self.rate_limit,
        )

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.handler)


@dataclass(slots=True)
class ToolStats:
    usage_count: int = 0
    error_count: int = 0
    last_used: datetime | None = None


class ToolRegistry:
    """Stores tool specs with their enablement and usage counters."""

    source = "local"

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._enabled: dict[str, bool] = {}
        self._stats: dict[str, ToolStats] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ToolValidationError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec
        self._enabled[spec.name] = spec.enabled
        self._stats[spec.name] = ToolStats()
        logger.debug("Registered %s tool %s", self.source, spec.name)

    def register_definition(self, definition: Mapping[str, Any]) -> ToolSpec:
        """Validate a loosely-typed tool definition and register it.

        Used at plugin boundaries where definitions arrive as plain mappings.
        Missing or malformed fields fail here rather than at call time.
        """
        try:
            spec = ToolSpec.model_validate(dict(definition))
        except ValidationError as exc:
            name = definition.get("name", "<unnamed>")
            raise ToolValidationError(f"Invalid tool definition {name!r}: {exc}") from exc
        self.register(spec)
        return spec

    def register_many(self, specs: Iterable[ToolSpec]) -> None:
        for spec in specs:
            self.register(spec)

    def unregister(self, name: str) -> bool:
        if self._tools.pop(name, None) is None:
            return False
        self._enabled.pop(name, None)
        self._stats.pop(name, None)
        return True

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def is_enabled(self, name: str) -> bool:
        return self._enabled.get(name, False)

    def enable(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def descriptors(self, *, include_disabled: bool = False) -> list[ToolDescriptor]:
        return [
            spec.describe(enabled=self._enabled[spec.name])
            for spec in self._tools.values()
            if include_disabled or self._enabled[spec.name]
        ]

    def record_usage(self, name: str, *, success: bool) -> None:
        stats = self._stats.get(name)
        if stats is None:
            return
        stats.usage_count += 1
        if not success:
            stats.error_count += 1
        stats.last_used = datetime.now(timezone.utc)

    def tool_stats(self, name: str) -> ToolStats | None:
        return self._stats.get(name)

    def stats(self) -> dict[str, Any]:
        categories: dict[str, int] = {}
        for spec in self._tools.values():
            categories[spec.category] = categories.get(spec.category, 0) + 1
        return {
            "total": len(self._tools),
            "enabled": sum(1 for value in self._enabled.values() if value),
            "categories": categories,
            "tools": {
                name: {
                    "usage_count": stats.usage_count,
                    "error_count": stats.error_count,
                    "last_used": stats.last_used.isoformat() if stats.last_used else None,
                    "enabled": self._enabled[name],
                    "version": self._tools[name].version,
                }
                for name, stats in self._stats.items()
            },
        }

    async def initialize_all(self) -> None:
        """Run `initialize` hooks; a failing tool is disabled, not fatal."""
        for spec in self._tools.values():
            if spec.initialize is None:
                continue
            try:
                await _maybe_await(spec.initialize())
            except Exception:
                logger.exception("Tool %s failed to initialize; disabling it", spec.name)
                self._enabled[spec.name] = False

    async def cleanup_all(self) -> None:
        for spec in self._tools.values():
            if spec.cleanup is None:
                continue
            try:
                await _maybe_await(spec.cleanup())
            except Exception:
                logger.exception("Tool %s cleanup failed", spec.name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def _set_enabled(self, name: str, value: bool) -> bool:
        if name not in self._tools:
            return False
        self._enabled[name] = value
        logger.info("Tool %s %s", name, "enabled" if value else "disabled")
        return True


class SlidingWindowRateLimiter:
    """Per-(tool, caller) sliding-window call counter."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._calls: dict[tuple[str, str], deque[float]] = {}

    def try_acquire(self, tool_name: str, caller_id: str, limit: RateLimit) -> bool:
        """Record a call and return True, or return False if the window is full."""
        now = self._clock()
        key = (tool_name, caller_id)
        calls = self._calls.setdefault(key, deque())
        cutoff = now - limit.window_seconds
        while calls and calls[0] <= cutoff:
            calls.popleft()
        if len(calls) >= limit.max_calls:
            return False
        calls.append(now)
        return True

    def reset(self, tool_name: str | None = None) -> None:
        if tool_name is None:
            self._calls.clear()
            return
        for key in [key for key in self._calls if key[0] == tool_name]:
            del self._calls[key]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
