"""Custom exceptions for driver operations."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class Retryable(str, Enum):
    """Whether an identical retry is reasonably expected to succeed.

    UNKNOWN is a first-class verdict: the caller applies its own policy.
    """

    RETRYABLE = "retryable"
    NOT_RETRYABLE = "not_retryable"
    UNKNOWN = "unknown"

    @classmethod
    def from_bool(cls, value: bool | None) -> "Retryable":
        if value is None:
            return cls.UNKNOWN
        return cls.RETRYABLE if value else cls.NOT_RETRYABLE


@dataclass(frozen=True)
class ErrorContext:
    """Where and how an error occurred."""

    provider: str
    model: str
    operation: str  # execute | stream | list_models | ...
    prompt: Any = None


class LlumiverseError(Exception):
    """Normalized error raised by every driver.

    Wraps the error first observed at the driver boundary, whatever the
    backend SDK. The ``retryable`` verdict lets callers decide on retries
    without backend specific knowledge.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: Retryable,
        context: ErrorContext,
        original_error: object,
        code: int | None = None,
        name: str | None = None,
    ) -> None:
        self.message = message
        self.retryable = retryable
        self.context = context
        self.original_error = original_error
        self.code = code
        self.name = name or "LlumiverseError"
        super().__init__(message)

    @property
    def provider(self) -> str:
        return self.context.provider

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging, without the original error object."""
        context = asdict(self.context)
        context.pop("prompt", None)
        return {
            "name": self.name,
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable.value,
            "context": context,
            "original_error_message": str(self.original_error),
        }


class LlumiverseConfigurationError(Exception):
    """Raised when a driver is misconfigured (e.g., missing API key)."""

    def __init__(self, message: str, *, provider: str = "unknown") -> None:
        self.provider = provider
        super().__init__(message)


class ResultValidationError(Exception):
    """Raised when a completion does not match the requested result schema."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code  # validation_error | json_error
        self.message = message
        super().__init__(message)
