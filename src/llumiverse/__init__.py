"""Unified driver layer over LLM backends."""

from llumiverse.core import (
    AbstractDriver,
    DriverOptions,
    ErrorContext,
    LlumiverseError,
    Retryable,
    execute_with_retry,
)
from llumiverse.core.types import (
    CompletionResult,
    ExecutionOptions,
    ExecutionResponse,
    Modality,
    PromptRole,
    PromptSegment,
    ToolDefinition,
    ToolUse,
)

__version__ = "0.1.0"

__all__ = [
    "AbstractDriver",
    "CompletionResult",
    "DriverOptions",
    "ErrorContext",
    "ExecutionOptions",
    "ExecutionResponse",
    "LlumiverseError",
    "Modality",
    "PromptRole",
    "PromptSegment",
    "Retryable",
    "ToolDefinition",
    "ToolUse",
    "__version__",
    "execute_with_retry",
]
