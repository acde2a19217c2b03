"""Concurrent tool dispatch with per-call timeouts and rate limiting."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from time import perf_counter
from typing import Any

from pydantic import ValidationError

from chat_orchestrator.agent.registry import (
    SlidingWindowRateLimiter,
    ToolContext,
    ToolOutput,
    ToolRegistry,
    ToolSpec,
)
from chat_orchestrator.errors import (
    ToolDisabledError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolRateLimitedError,
    ToolTimeoutError,
)
from chat_orchestrator.types import ToolCall, ToolResult, ToolTrace

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class ToolExecutionEngine:
    """Runs tool calls concurrently; never raises for tool failures.

    Results come back in input order. A call that outlives the timeout gets a
    failed result immediately; its task is left running with the cancel event
    set, tracked until it finishes, and its late result is discarded.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        remote: ToolRegistry | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> None:
        self.registry = registry
        self.remote = remote
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self.timeout_seconds = timeout_seconds
        self._observer = observer
        self._abandoned: set[asyncio.Future[Any]] = set()

    @property
    def abandoned_count(self) -> int:
        return len(self._abandoned)

    def resolve(self, name: str) -> tuple[ToolRegistry, ToolSpec] | None:
        """Find a tool, preferring the local registry over the remote one."""
        for registry in (self.registry, self.remote):
            if registry is None:
                continue
            spec = registry.get(name)
            if spec is not None:
                return registry, spec
        return None

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        return (await self.execute_all([call], context))[0]

    async def execute_all(
        self,
        calls: Sequence[ToolCall],
        context: ToolContext,
        *,
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> list[ToolResult]:
        observer = observer or self._observer
        # Admission runs in input order so rate-limit accounting is deterministic.
        slots: list[ToolResult | asyncio.Future[ToolResult]] = []
        pending: list[asyncio.Future[ToolResult]] = []
        for call in calls:
            admitted = self._admit(call, context)
            if isinstance(admitted, ToolResult):
                slots.append(admitted)
                continue
            registry, spec = admitted
            future = asyncio.ensure_future(self._dispatch(registry, spec, call, context, observer))
            slots.append(future)
            pending.append(future)

        if pending:
            await asyncio.gather(*pending)
        return [slot if isinstance(slot, ToolResult) else slot.result() for slot in slots]

    async def aclose(self) -> None:
        """Cancel abandoned tasks that are still running."""
        tasks = list(self._abandoned)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._abandoned.clear()

    def _admit(
        self, call: ToolCall, context: ToolContext
    ) -> ToolResult | tuple[ToolRegistry, ToolSpec]:
        resolved = self.resolve(call.name)
        if resolved is None:
            return self._failure(call, ToolNotFoundError(call.name))
        registry, spec = resolved
        if not registry.is_enabled(spec.name):
            return self._failure(call, ToolDisabledError(spec.name))
        if spec.rate_limit is not None and not self.rate_limiter.try_acquire(
            spec.name, context.caller_id, spec.rate_limit
        ):
            logger.warning(
                "Rate limit hit for tool %s by %s",
                spec.name,
                context.caller_id,
                extra={"tool": spec.name, "caller_id": context.caller_id},
            )
            return self._failure(call, ToolRateLimitedError(spec.name))
        return registry, spec

    async def _dispatch(
        self,
        registry: ToolRegistry,
        spec: ToolSpec,
        call: ToolCall,
        context: ToolContext,
        observer: Callable[[ToolTrace], None] | None,
    ) -> ToolResult:
        call_context = context.for_call()
        logger.info(
            "Tool %s started",
            spec.name,
            extra={"tool": spec.name, "tool_call_id": call.id},
        )
        start = perf_counter()
        task = asyncio.ensure_future(self._invoke(spec, call, call_context))
        done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)
        latency_ms = (perf_counter() - start) * 1000.0

        if not done:
            call_context.cancel_event.set()
            self._abandon(task, spec.name)
            result = self._failure(call, ToolTimeoutError(spec.name, self.timeout_seconds))
            logger.warning(
                "Tool %s timed out after %.0f ms",
                spec.name,
                latency_ms,
                extra={"tool": spec.name, "latency_ms": latency_ms},
            )
        else:
            result = self._settle(spec, call, task)
            logger.info(
                "Tool %s finished in %.1f ms (success=%s)",
                spec.name,
                latency_ms,
                result.success,
                extra={"tool": spec.name, "latency_ms": latency_ms, "success": result.success},
            )

        registry.record_usage(spec.name, success=result.success)
        if observer is not None:
            observer(
                ToolTrace(
                    name=spec.name,
                    input_payload=dict(call.parameters),
                    output_preview=result.summary()[:320],
                    latency_ms=latency_ms,
                    success=result.success,
                )
            )
        return result

    async def _invoke(self, spec: ToolSpec, call: ToolCall, context: ToolContext) -> Any:
        args = spec.parse(call.parameters)
        if spec.is_async:
            return await spec.handler(args, context)
        return await asyncio.to_thread(spec.handler, args, context)

    def _settle(self, spec: ToolSpec, call: ToolCall, task: asyncio.Future[Any]) -> ToolResult:
        try:
            output = task.result()
        except ValidationError as exc:
            reasons = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'input'}: {error['msg']}"
                for error in exc.errors()
            )
            return self._failure(call, ToolExecutionError(spec.name, f"invalid parameters ({reasons})"))
        except ToolError as exc:
            return self._failure(call, exc)
        except Exception as exc:
            logger.debug("Tool %s raised", spec.name, exc_info=True)
            return self._failure(call, ToolExecutionError(spec.name, str(exc) or type(exc).__name__))

        if isinstance(output, ToolResult):
            return replace(output, tool_call_id=call.id)
        if isinstance(output, ToolOutput):
            return ToolResult(
                tool_call_id=call.id, success=True, data=output.data, message=output.message
            )
        return ToolResult(tool_call_id=call.id, success=True, data=output)

    def _abandon(self, task: asyncio.Future[Any], tool_name: str) -> None:
        self._abandoned.add(task)

        def _on_done(finished: asyncio.Future[Any]) -> None:
            self._abandoned.discard(finished)
            if finished.cancelled():
                logger.info("Abandoned tool %s task cancelled", tool_name)
                return
            error = finished.exception()
            logger.info(
                "Abandoned tool %s completed late (error=%s); result discarded",
                tool_name,
                error,
                extra={"tool": tool_name},
            )

        task.add_done_callback(_on_done)

    @staticmethod
    def _failure(call: ToolCall, error: ToolError) -> ToolResult:
        return ToolResult(
            tool_call_id=call.id,
            success=False,
            error=str(error),
            error_kind=error.kind.value,
        )
