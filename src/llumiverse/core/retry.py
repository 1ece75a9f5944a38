"""Caller side retry policy driven by the ``retryable`` verdict.

Drivers never retry a failed exchange themselves. Callers that want to can
use ``execute_with_retry`` or plug ``retry_if_retryable`` into their own
tenacity policy.
"""

from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_base,
    stop_after_attempt,
    wait_exponential,
)

from llumiverse.core.exceptions import LlumiverseError, Retryable
from llumiverse.core.types import ExecutionOptions, ExecutionResponse, PromptSegment

if TYPE_CHECKING:
    from llumiverse.core.driver import AbstractDriver


class retry_if_retryable(retry_base):  # noqa: N801
    """Retry a failed attempt whose ``LlumiverseError`` verdict allows it.

    Errors that are not ``LlumiverseError`` are never retried.
    """

    def __init__(self, *, include_unknown: bool = False) -> None:
        self.include_unknown = include_unknown

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False

        error = outcome.exception()
        if not isinstance(error, LlumiverseError):
            return False
        if error.retryable is Retryable.RETRYABLE:
            return True
        return error.retryable is Retryable.UNKNOWN and self.include_unknown


async def execute_with_retry(
    driver: "AbstractDriver[object]",
    segments: list[PromptSegment],
    options: ExecutionOptions,
    *,
    max_attempts: int = 3,
    retry_unknown: bool = False,
    max_wait: float = 10.0,
) -> ExecutionResponse:
    """Run ``driver.execute`` again while the failure is retryable.

    Args:
        driver: Driver running the exchange.
        segments: Prompt segments, rebuilt on every attempt.
        options: Execution options. Their ``conversation`` is reused as is.
        max_attempts: Total attempts including the first one.
        retry_unknown: Also retry errors classified as UNKNOWN.
        max_wait: Upper bound in seconds of the exponential backoff.

    Returns:
        The first successful response.

    Raises:
        LlumiverseError: The last error once retries are exhausted, or the
            first non-retryable one.
    """

    def log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        driver.logger.warning(
            "driver_execute_retry",
            model=options.model,
            attempt=retry_state.attempt_number,
            max_attempts=max_attempts,
            retryable=error.retryable.value if isinstance(error, LlumiverseError) else None,
            error=str(error),
        )

    retrying = AsyncRetrying(
        retry=retry_if_retryable(include_unknown=retry_unknown),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, max=max_wait),
        before_sleep=log_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            response = await driver.execute(segments, options)
    return response
