"""Top-level response routing for inbound chat messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chat_orchestrator.agent.classifier import Classification, HeuristicClassifier, QueryClassifier
from chat_orchestrator.agent.executor import ToolExecutionEngine
from chat_orchestrator.agent.memory import ConversationMemory
from chat_orchestrator.agent.prompts import (
    capability_prompt,
    capability_summary,
    rag_prompt,
    sources_line,
    tool_call_message,
    tool_results_message,
    usage_summary,
)
from chat_orchestrator.agent.registry import ToolContext, ToolDescriptor
from chat_orchestrator.config import MemoryConfig, RouterConfig
from chat_orchestrator.ingest.pipeline import IngestPipeline
from chat_orchestrator.llm.base import GenerateOptions, LLMClient, Usage
from chat_orchestrator.obs.tracing import Timer, TraceStore, estimate_token_count
from chat_orchestrator.retrieval.retriever import RetrievalEngine, SearchOptions
from chat_orchestrator.types import (
    Attachment,
    BotResponse,
    InboundMessage,
    SearchResult,
    ToolCall,
    ToolTrace,
    Turn,
)

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Sorry, I encountered an error processing your message. Please try again."
EMPTY_ANSWER_MESSAGE = "I need a moment to think. Please try again."
DEFAULT_IMAGE_PROMPT = "What's in this image?"


class RoutePath(str, Enum):
    META = "meta"
    TOOL = "tool"
    RETRIEVAL = "retrieval"
    HYBRID = "hybrid"
    DIRECT = "direct"
    INGEST = "ingest"


class ToolFlowState(str, Enum):
    AWAITING_TOOL_DECISION = "awaiting_tool_decision"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_FINAL_ANSWER = "awaiting_final_answer"
    DONE = "done"


@dataclass(slots=True)
class _Outcome:
    text: str
    usage: Usage = field(default_factory=Usage)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_traces: list[ToolTrace] = field(default_factory=list)
    sources: list[SearchResult] = field(default_factory=list)
    states: list[ToolFlowState] = field(default_factory=list)


class ResponseRouter:
    """Chooses a response path for each message and produces the reply.

    Paths, in precedence order: meta-queries get a static capability summary,
    tool-relevant queries take the two-step tool flow (hybrid when retrieval is
    also available), other queries use retrieval when enabled, else a direct
    LLM call. Any failure becomes a generic apology and leaves memory untouched.
    """

    def __init__(
        self,
        llm: LLMClient,
        *,
        executor: ToolExecutionEngine,
        memory: ConversationMemory,
        retrieval: RetrievalEngine | None = None,
        ingest: IngestPipeline | None = None,
        classifier: QueryClassifier | None = None,
        config: RouterConfig | None = None,
        memory_config: MemoryConfig | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.llm = llm
        self.executor = executor
        self.memory = memory
        self.retrieval = retrieval
        self.ingest = ingest
        self.classifier = classifier or HeuristicClassifier()
        self.config = config or RouterConfig()
        self.memory_config = memory_config or MemoryConfig()
        self.trace_store = trace_store or TraceStore()

    @property
    def retrieval_enabled(self) -> bool:
        return self.config.enable_rag and self.retrieval is not None

    def catalog(self) -> list[ToolDescriptor]:
        """Enabled local tools followed by enabled remote tools not shadowed locally."""
        tools = self.executor.registry.descriptors()
        if self.executor.remote is not None:
            local = {tool.name for tool in tools}
            tools.extend(
                tool for tool in self.executor.remote.descriptors() if tool.name not in local
            )
        return tools

    def choose_path(self, classification: Classification) -> RoutePath:
        if classification.is_meta:
            return RoutePath.META
        if classification.needs_tools:
            return RoutePath.HYBRID if self.retrieval_enabled else RoutePath.TOOL
        if self.retrieval_enabled:
            return RoutePath.RETRIEVAL
        return RoutePath.DIRECT

    async def route(
        self,
        message: InboundMessage,
        user_id: str | None = None,
        history: list[Turn] | None = None,
    ) -> BotResponse | None:
        """Produce a response, or `None` for commands and empty messages."""
        text = message.content.strip()
        if text.startswith("/") or (not text and not message.attachments):
            return None

        user_id = user_id or message.sender_id
        path = RoutePath.DIRECT
        classification = Classification()
        outcome = _Outcome(text="")
        failed = False

        with Timer() as timer:
            try:
                notes, images = await self._handle_attachments(user_id, message)
                user_turn = self._user_turn(text, images, message.attachments)

                if not text and not images:
                    path = RoutePath.INGEST
                    outcome = _Outcome(text="\n\n".join(notes))
                else:
                    if text:
                        classification = self.classifier.classify(text)
                        path = self.choose_path(classification)
                    logger.info(
                        "Routing message %s via %s path (multi_tool_hint=%s)",
                        message.id,
                        path.value,
                        classification.multi_tool,
                        extra={
                            "path": path.value,
                            "multi_tool_hint": classification.multi_tool,
                            "signals": list(classification.tool_signals),
                        },
                    )
                    if history is None:
                        history = self.memory.get(user_id, limit=self.memory_config.history_window)
                    outcome = await self._run_path(path, user_id, text, history, user_turn)
                    answer = outcome.text.strip() or EMPTY_ANSWER_MESSAGE
                    outcome.text = "\n\n".join([*notes, answer]) if notes else answer
            except Exception:
                logger.exception("Failed to generate a response for message %s", message.id)
                failed = True
                outcome = _Outcome(text=FALLBACK_MESSAGE)
            else:
                self.memory.append(user_id, user_turn, Turn(role="assistant", content=outcome.text))

        record = self.trace_store.create_record(
            user_id=user_id,
            message=text,
            answer=outcome.text,
            path=path.value,
            tool_traces=outcome.tool_traces,
            input_tokens=outcome.usage.input_tokens or estimate_token_count(text),
            output_tokens=outcome.usage.output_tokens or estimate_token_count(outcome.text),
            latency_ms=timer.elapsed_ms,
            multi_tool_hint=classification.multi_tool,
            failed=failed,
            sources=[result.label() for result in outcome.sources],
        )
        return BotResponse(
            content=outcome.text,
            path=path.value,
            quoted_message_id=message.id,
            trace_id=record.trace_id,
            tools_used=[call.name for call in outcome.tool_calls],
        )

    async def _run_path(
        self,
        path: RoutePath,
        user_id: str,
        text: str,
        history: list[Turn],
        user_turn: Turn,
    ) -> _Outcome:
        if path is RoutePath.META:
            return _Outcome(text=capability_summary(self.catalog()))
        if path is RoutePath.TOOL:
            return await self._tool_flow(user_id, history, user_turn)
        if path is RoutePath.HYBRID:
            return await self._hybrid_flow(user_id, text, history, user_turn)
        if path is RoutePath.RETRIEVAL:
            return await self._retrieval_flow(user_id, text, history, user_turn)
        return await self._direct_flow(history, user_turn)

    async def _direct_flow(self, history: list[Turn], user_turn: Turn) -> _Outcome:
        response = await self.llm.generate(
            [*history, user_turn], self._options(self.config.system_prompt)
        )
        return _Outcome(text=response.content, usage=response.usage or Usage())

    async def _tool_flow(self, user_id: str, history: list[Turn], user_turn: Turn) -> _Outcome:
        outcome = _Outcome(text="", states=[ToolFlowState.AWAITING_TOOL_DECISION])
        catalog = self.catalog()
        system_prompt = capability_prompt(self.config.system_prompt, catalog)
        messages = [*history, user_turn]

        first = await self.llm.generate(
            messages, self._options(system_prompt, tools=catalog, tool_choice="auto")
        )
        outcome.usage += first.usage or Usage()
        if not first.tool_calls:
            outcome.text = first.content
            outcome.states.append(ToolFlowState.DONE)
            return outcome

        outcome.states.append(ToolFlowState.EXECUTING_TOOLS)
        calls = list(first.tool_calls)
        results = await self.executor.execute_all(
            calls,
            ToolContext(caller_id=user_id, conversation_id=user_id),
            observer=outcome.tool_traces.append,
        )
        outcome.tool_calls = calls

        outcome.states.append(ToolFlowState.AWAITING_FINAL_ANSWER)
        followup = [
            *messages,
            Turn(role="assistant", content=first.content or tool_call_message(calls)),
            Turn(role="user", content=tool_results_message(calls, results)),
        ]
        final = await self.llm.generate(followup, self._options(system_prompt))
        outcome.usage += final.usage or Usage()
        outcome.states.append(ToolFlowState.DONE)
        logger.debug("Tool flow states: %s", [state.value for state in outcome.states])

        answer = final.content.strip() or EMPTY_ANSWER_MESSAGE
        outcome.text = f"{answer}\n\n{usage_summary(calls)}"
        return outcome

    async def _retrieval_flow(
        self, user_id: str, text: str, history: list[Turn], user_turn: Turn
    ) -> _Outcome:
        with Timer() as search_timer:
            results = await self._search(user_id, text)
        response = await self.llm.generate(
            [*history, user_turn],
            self._options(rag_prompt(self.config.system_prompt, results)),
        )
        answer = response.content
        if results and answer.strip():
            answer = f"{answer.strip()}\n\n{sources_line(len(results), search_timer.elapsed_ms)}"
        return _Outcome(text=answer, usage=response.usage or Usage(), sources=list(results))

    async def _hybrid_flow(
        self, user_id: str, text: str, history: list[Turn], user_turn: Turn
    ) -> _Outcome:
        outcome = await self._tool_flow(user_id, history, user_turn)
        try:
            with Timer() as search_timer:
                results = await self._search(user_id, text)
        except Exception as exc:
            logger.warning("Retrieval for hybrid answer failed; answering without sources: %s", exc)
            return outcome
        if results:
            outcome.sources = list(results)
            provenance = "\n".join(
                f"• {result.label()} ({result.similarity * 100:.1f}%)" for result in results
            )
            outcome.text = (
                f"{outcome.text}\n\nRelated sources:\n{provenance}\n"
                f"{sources_line(len(results), search_timer.elapsed_ms)}"
            )
        return outcome

    async def _search(self, user_id: str, text: str) -> list[SearchResult]:
        if self.retrieval is None:
            raise RuntimeError("Retrieval is not configured")
        return await self.retrieval.search(text, SearchOptions(user_id=user_id))

    async def _handle_attachments(
        self, user_id: str, message: InboundMessage
    ) -> tuple[list[str], list[Attachment]]:
        notes: list[str] = []
        documents = [item for item in message.attachments if item.kind == "document"]
        images = [item for item in message.attachments if item.kind == "image"]
        other = [item for item in message.attachments if item.kind not in {"document", "image"}]

        if documents:
            if self.ingest is None:
                notes.append("Document processing is not available right now.")
            else:
                results = await self.ingest.process_many(user_id, user_id, documents)
                for attachment, result in zip(documents, results, strict=True):
                    name = attachment.filename or "document"
                    if result.success:
                        notes.append(
                            f"Processed {name}: {len(result.chunks)} chunks indexed "
                            f"({result.metadata.get('word_count', 0):,} words)."
                        )
                    else:
                        notes.append(f"Could not process {name}.\n{result.error}")
        if images and not self.config.enable_vision:
            notes.append("Image analysis is disabled.")
            images = []
        if other:
            notes.append("Audio and video attachments are not supported yet.")
        return notes, images

    def _user_turn(self, text: str, images: list[Attachment], attachments: list[Attachment]) -> Turn:
        if images:
            blocks: list[dict[str, Any]] = [{"type": "text", "text": text or DEFAULT_IMAGE_PROMPT}]
            blocks.extend(
                {"type": "image", "data": image.data, "mimetype": image.mimetype or "image/jpeg"}
                for image in images
            )
            return Turn(role="user", content=blocks)
        if not text and attachments:
            names = ", ".join(item.filename or item.kind for item in attachments)
            return Turn(role="user", content=f"[Attached: {names}]")
        return Turn(role="user", content=text)

    def _options(
        self,
        system_prompt: str,
        *,
        tools: list[ToolDescriptor] | None = None,
        tool_choice: str | None = None,
    ) -> GenerateOptions:
        return GenerateOptions(
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            model=self.config.model,
            system_prompt=system_prompt,
            tools=list(tools or []),
            tool_choice=tool_choice if tools else None,  # type: ignore[arg-type]
        )
