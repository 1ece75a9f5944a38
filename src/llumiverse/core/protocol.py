"""Protocol definitions for drivers and their collaborators."""

from collections.abc import AsyncIterator
from typing import Any, Protocol

from llumiverse.core.types import (
    AIModel,
    EmbeddingsOptions,
    EmbeddingsResult,
    ExecutionOptions,
    ExecutionResponse,
    ModelCapabilities,
    ModelSearchPayload,
    PromptSegment,
    TrainingJob,
    TrainingOptions,
    TrainingPromptOptions,
)


class CompletionStream(Protocol):
    """Async sequence of text chunks followed by a final completion.

    ``completion`` is set once the sequence has been fully consumed.
    """

    completion: ExecutionResponse | None

    def __aiter__(self) -> AsyncIterator[str]: ...


class CapabilityOracle(Protocol):
    """Static lookup of what a model supports.

    Drivers only read the tool support flags to decide on streaming.
    """

    def get_model_capabilities(self, model: str, provider: str) -> ModelCapabilities:
        ...


class Driver(Protocol):
    """Protocol for driver implementations.

    This is the single conversational surface exposed to callers whatever the
    backend (OpenAI, Bedrock, Vertex AI, ...).
    """

    provider: str

    async def create_prompt(
        self, segments: list[PromptSegment], options: ExecutionOptions
    ) -> Any:
        """Build the backend-native prompt from prompt segments."""
        ...

    async def execute(
        self, segments: list[PromptSegment], options: ExecutionOptions
    ) -> ExecutionResponse:
        """Run a blocking completion.

        Raises:
            LlumiverseError: If the exchange fails for any reason.
        """
        ...

    async def stream(
        self, segments: list[PromptSegment], options: ExecutionOptions
    ) -> CompletionStream:
        """Start a streamed completion.

        Raises:
            LlumiverseError: If the exchange fails for any reason, including
                while the stream is iterated.
        """
        ...

    async def create_training_prompt(self, options: TrainingPromptOptions) -> str: ...

    async def start_training(self, dataset: Any, options: TrainingOptions) -> TrainingJob: ...

    async def cancel_training(self, job_id: str) -> TrainingJob: ...

    async def get_training_job(self, job_id: str) -> TrainingJob: ...

    async def list_models(self, params: ModelSearchPayload | None = None) -> list[AIModel]: ...

    async def list_trainable_models(self) -> list[AIModel]: ...

    async def validate_connection(self) -> bool: ...

    async def generate_embeddings(self, options: EmbeddingsOptions) -> EmbeddingsResult: ...

    async def destroy(self) -> None:
        """Release resources when the driver is evicted from a cache."""
        ...
