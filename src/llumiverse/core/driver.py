"""Base class handling the execution of an exchange with a model.

Each backend (OpenAI, Bedrock, Vertex AI, ...) subclasses ``AbstractDriver``
and implements the request hooks. The base class owns the shared state
machine: prompt building, dispatch, result validation, streaming strategy and
error normalization.
"""

import json
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, fields
from typing import Any, Generic, TypeVar

import structlog

from llumiverse.core import errors
from llumiverse.core.exceptions import (
    ErrorContext,
    LlumiverseError,
    ResultValidationError,
    Retryable,
)
from llumiverse.core.formatters import format_text_prompt
from llumiverse.core.protocol import CompletionStream
from llumiverse.core.results import normalize_finish_reason
from llumiverse.core.stream import DefaultCompletionStream, FallbackCompletionStream
from llumiverse.core.types import (
    AIModel,
    Completion,
    CompletionChunk,
    CompletionResult,
    EmbeddingsOptions,
    EmbeddingsResult,
    ExecutionOptions,
    ExecutionResponse,
    Modality,
    ModelSearchPayload,
    PromptSegment,
    ToolUse,
    TrainingJob,
    TrainingOptions,
    TrainingPromptOptions,
    ValidationErrorInfo,
)
from llumiverse.core.validation import validate_result
from llumiverse.observability import get_tracer

tracer = get_tracer(__name__)

PromptT = TypeVar("PromptT")


@dataclass
class DriverOptions:
    """Construction options shared by all drivers.

    Attributes:
        logger: Structlog logger used by the driver. A logger bound to the
            provider name is created when omitted.
    """

    logger: Any = None


def _as_response(
    completion: Completion, prompt: Any, execution_time: float
) -> ExecutionResponse:
    values = {f.name: getattr(completion, f.name) for f in fields(Completion)}
    return ExecutionResponse(**values, prompt=prompt, execution_time=execution_time)


class AbstractDriver(ABC, Generic[PromptT]):
    """Base class of every driver.

    A driver instance holds no per-exchange state and can serve concurrent
    independent exchanges. The ``conversation`` passed in the options must
    not be shared between concurrent calls.
    """

    provider: str = "unknown"

    def __init__(self, options: DriverOptions | None = None) -> None:
        self.options = options or DriverOptions()
        self.logger = self.options.logger or structlog.get_logger(
            "llumiverse"
        ).bind(provider=self.provider)

    # Prompt building

    async def format_prompt(
        self, segments: list[PromptSegment], options: ExecutionOptions
    ) -> PromptT:
        """Override to build a backend-native prompt."""
        return format_text_prompt(segments, options.result_schema)  # type: ignore[return-value]

    async def create_prompt(
        self, segments: list[PromptSegment], options: ExecutionOptions
    ) -> PromptT:
        if options.format is not None:
            return options.format(segments, options.result_schema)  # type: ignore[no-any-return]
        return await self.format_prompt(segments, options)

    # Execution

    async def execute(
        self, segments: list[PromptSegment], options: ExecutionOptions
    ) -> ExecutionResponse:
        """Build the prompt and run a blocking completion.

        Args:
            segments: Prompt segments supplied by the caller.
            options: Model, schema, tools and conversation of the exchange.

        Returns:
            The completion with its prompt and execution time.

        Raises:
            LlumiverseError: If prompt building or the request fails.
        """
        try:
            prompt = await self.create_prompt(segments, options)
        except LlumiverseError:
            raise
        except Exception as e:
            raise self._tag_error(e, options, "execute") from e
        return await self._execute(prompt, options)

    async def _execute(self, prompt: PromptT, options: ExecutionOptions) -> ExecutionResponse:
        """Dispatch an already built prompt."""
        self.logger.debug("driver_execute_start", model=options.model)

        with tracer.start_as_current_span("llm.execute") as span:
            span.set_attribute("llm.provider", self.provider)
            span.set_attribute("llm.model", options.model)
            span.set_attribute("llm.operation", "execute")

            start = time.perf_counter()
            try:
                if self.is_image_model(options):
                    completion = await self.request_image_generation(prompt, options)
                else:
                    completion = await self.request_text_completion(prompt, options)
                    normalize_finish_reason(completion)
                    self.validate_result(completion, options)
            except LlumiverseError as e:
                span.record_exception(e)
                raise
            except Exception as e:
                span.record_exception(e)
                raise self._tag_error(e, options, "execute", prompt) from e

            execution_time = time.perf_counter() - start
            span.set_attribute("llm.execution_time", execution_time)

        self.logger.debug(
            "driver_execute_success",
            model=options.model,
            execution_time=execution_time,
            finish_reason=completion.finish_reason,
        )
        return _as_response(completion, prompt, execution_time)

    async def stream(
        self, segments: list[PromptSegment], options: ExecutionOptions
    ) -> CompletionStream:
        """Build the prompt and choose a streaming strategy.

        Image models and models for which ``can_stream`` is false are served
        by a blocking execution replayed as a single chunk.
        """
        prompt: Any = None
        try:
            prompt = await self.create_prompt(segments, options)
            if not self.is_image_model(options) and await self.can_stream(options):
                return DefaultCompletionStream(self, prompt, options)
            return FallbackCompletionStream(self, prompt, options)
        except LlumiverseError:
            raise
        except Exception as e:
            raise self._tag_error(e, options, "stream", prompt) from e

    def validate_result(self, completion: Completion, options: ExecutionOptions) -> None:
        """Validate a completion against the requested schema.

        A mismatch is recorded on ``completion.error`` instead of raised, so
        callers still get the unconfirmed result.
        """
        if completion.error or completion.tool_use or not options.result_schema:
            return
        try:
            completion.result = validate_result(completion.result, options.result_schema)
        except ResultValidationError as e:
            self.logger.error(
                "result_validation_error",
                model=options.model,
                code=e.code,
                error=e.message,
            )
            completion.error = ValidationErrorInfo(
                code=e.code, message=e.message, data=completion.result
            )

    # Overridable predicates

    def is_image_model(self, options: ExecutionOptions) -> bool:
        return options.output_modality is Modality.IMAGE

    async def can_stream(self, options: ExecutionOptions) -> bool:
        """Whether the execution can be truly streamed.

        Override and return False for models that cannot stream; the stream
        then falls back on a blocking execution.
        """
        return True

    def build_streaming_conversation(
        self,
        prompt: PromptT,
        results: list[CompletionResult],
        tool_use: list[ToolUse] | None,
        options: ExecutionOptions,
    ) -> Any:
        """Return the conversation after a streamed exchange, or None if unsupported."""
        return None

    # Error handling

    def is_retryable_error(self, code: int | None, message: str) -> Retryable:
        """Override to consult backend specific error types first."""
        return errors.is_retryable_error(code, message)

    def format_llumiverse_error(
        self, error: object, context: ErrorContext
    ) -> LlumiverseError:
        return errors.format_llumiverse_error(
            error, context, classify=self.is_retryable_error
        )

    def _tag_error(
        self,
        error: Exception,
        options: ExecutionOptions,
        operation: str,
        prompt: Any = None,
    ) -> LlumiverseError:
        context = ErrorContext(
            provider=self.provider,
            model=options.model,
            operation=operation,
            prompt=prompt,
        )
        tagged = self.format_llumiverse_error(error, context)
        self.logger.warning(
            "driver_request_failed",
            model=options.model,
            operation=operation,
            code=tagged.code,
            error_name=tagged.name,
            retryable=tagged.retryable.value,
            error=tagged.message,
        )
        return tagged

    # Lifecycle

    async def destroy(self) -> None:
        """Called when the driver is evicted from a cache."""
        return None

    # Training

    async def create_training_prompt(self, options: TrainingPromptOptions) -> str:
        prompt = await self.create_prompt(
            options.segments,
            ExecutionOptions(model=options.model, result_schema=options.schema),
        )
        completion = (
            options.completion
            if isinstance(options.completion, str)
            else json.dumps(options.completion)
        )
        return json.dumps({"prompt": prompt, "completion": completion}, default=str)

    async def start_training(self, dataset: Any, options: TrainingOptions) -> TrainingJob:
        raise NotImplementedError("Method not implemented.")

    async def cancel_training(self, job_id: str) -> TrainingJob:
        raise NotImplementedError("Method not implemented.")

    async def get_training_job(self, job_id: str) -> TrainingJob:
        raise NotImplementedError("Method not implemented.")

    async def list_trainable_models(self) -> list[AIModel]:
        return []

    # Backend hooks

    @abstractmethod
    async def request_text_completion(
        self, prompt: PromptT, options: ExecutionOptions
    ) -> Completion:
        """Run a blocking text completion against the backend."""

    @abstractmethod
    def request_text_completion_stream(
        self, prompt: PromptT, options: ExecutionOptions
    ) -> AsyncIterator[CompletionChunk | str]:
        """Return the backend's chunk sequence, usually an async generator."""

    async def request_image_generation(
        self, prompt: PromptT, options: ExecutionOptions
    ) -> Completion:
        raise NotImplementedError("Image generation not implemented.")

    @abstractmethod
    async def list_models(self, params: ModelSearchPayload | None = None) -> list[AIModel]:
        """List the models available in this environment."""

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Check that the environment can be reached."""

    @abstractmethod
    async def generate_embeddings(self, options: EmbeddingsOptions) -> EmbeddingsResult:
        """Generate embeddings for a text or an image."""
