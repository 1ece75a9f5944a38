"""Backend independent driver core."""

from llumiverse.core.driver import AbstractDriver, DriverOptions
from llumiverse.core.errors import format_llumiverse_error, is_retryable_error
from llumiverse.core.exceptions import (
    ErrorContext,
    LlumiverseConfigurationError,
    LlumiverseError,
    ResultValidationError,
    Retryable,
)
from llumiverse.core.protocol import CapabilityOracle, CompletionStream, Driver
from llumiverse.core.retry import execute_with_retry, retry_if_retryable
from llumiverse.core.stream import DefaultCompletionStream, FallbackCompletionStream

__all__ = [
    "AbstractDriver",
    "CapabilityOracle",
    "CompletionStream",
    "DefaultCompletionStream",
    "Driver",
    "DriverOptions",
    "ErrorContext",
    "FallbackCompletionStream",
    "LlumiverseConfigurationError",
    "LlumiverseError",
    "ResultValidationError",
    "Retryable",
    "execute_with_retry",
    "format_llumiverse_error",
    "is_retryable_error",
    "retry_if_retryable",
]
