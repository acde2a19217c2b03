"""Exception taxonomy for the orchestration engine.

Tool errors never escape the execution engine: they are converted into failed
`ToolResult`s carrying a `ToolErrorKind`. Embedding and provider errors
propagate to the router, which replaces them with a generic apology.
"""

from __future__ import annotations

from enum import Enum


class OrchestratorError(Exception):
    """Base class for all engine errors."""


class ToolErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    DISABLED = "disabled"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    EXECUTION_ERROR = "execution_error"


class ToolError(OrchestratorError):
    kind: ToolErrorKind = ToolErrorKind.EXECUTION_ERROR

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class ToolNotFoundError(ToolError):
    kind = ToolErrorKind.NOT_FOUND

    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, f"Tool '{tool_name}' not found")


class ToolDisabledError(ToolError):
    kind = ToolErrorKind.DISABLED

    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, f"Tool '{tool_name}' is disabled")


class ToolRateLimitedError(ToolError):
    kind = ToolErrorKind.RATE_LIMITED

    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, f"Rate limit exceeded for tool '{tool_name}'")


class ToolTimeoutError(ToolError):
    kind = ToolErrorKind.TIMEOUT

    def __init__(self, tool_name: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            tool_name, f"Tool '{tool_name}' timed out after {timeout_seconds:g}s"
        )


class ToolExecutionError(ToolError):
    kind = ToolErrorKind.EXECUTION_ERROR

    def __init__(self, tool_name: str, reason: str) -> None:
        super().__init__(tool_name, f"Tool execution failed: {reason}")


class ToolValidationError(OrchestratorError):
    """Raised at registration time when a tool definition is malformed."""


class EmbeddingError(OrchestratorError):
    """Embedding provider failure; fatal to the search that needed it."""


class EmbeddingDimensionError(EmbeddingError):
    """Stored and query vectors disagree on dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: query has {expected}, stored vector has {actual}"
        )


class RetrievalSourceError(OrchestratorError):
    """A single retrieval source failed; callers treat it as zero results."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        super().__init__(f"{source} search failed: {reason}")


class IngestionFailure(str, Enum):
    """Symptom class of a failed ingestion, most specific first."""

    PASSWORD = "password/encrypted"
    UNSUPPORTED_VERSION = "unsupported-version"
    RESOURCE = "resource-exhaustion"
    CORRUPT = "corrupt"
    NO_TEXT = "no-text-layer"
    UNSUPPORTED_FORMAT = "unsupported-format"
    UNKNOWN = "unknown"


class ExtractionError(OrchestratorError):
    """One extraction strategy could not produce text.

    `category` is set when the strategy already knows the symptom.
    """

    def __init__(self, message: str, category: IngestionFailure | None = None) -> None:
        self.category = category
        super().__init__(message)


class IngestionExhaustedError(OrchestratorError):
    """Every extraction strategy failed; carries each strategy's error."""

    def __init__(self, attempts: list[tuple[str, BaseException]]) -> None:
        self.attempts = attempts
        summary = "; ".join(f"{name}: {error}" for name, error in attempts)
        super().__init__(f"All extraction strategies failed ({summary})")


class LLMProviderError(OrchestratorError):
    """Transport, auth or response failure from an LLM provider."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")
