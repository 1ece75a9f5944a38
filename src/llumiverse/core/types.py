"""Data model shared by every driver."""

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

JSONValue = Any
JSONSchema = dict[str, Any]


class PromptRole(str, Enum):
    """Role of a prompt segment."""

    SAFETY = "safety"
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    NEGATIVE = "negative"
    MASK = "mask"
    TOOL = "tool"  # response of a tool call


class Modality(str, Enum):
    """Output modality requested from a model."""

    TEXT = "text"
    IMAGE = "image"


class ResultType(str, Enum):
    """Kind of value carried by a completion result."""

    TEXT = "text"
    JSON = "json"
    IMAGE = "image"


class DataSource(Protocol):
    """A file attached to a prompt segment."""

    name: str
    mime_type: str

    async def get_stream(self) -> AsyncIterator[bytes]: ...

    async def get_url(self) -> str: ...


@dataclass(frozen=True)
class PromptSegment:
    """One logical turn fragment supplied by the caller."""

    role: PromptRole
    content: str
    tool_use_id: str | None = None  # set when the segment answers a tool call
    files: tuple[DataSource, ...] = ()


@dataclass
class ToolDefinition:
    """A tool the model may call."""

    name: str
    input_schema: JSONSchema
    description: str | None = None


@dataclass
class ToolUse:
    """A model-issued function call request.

    The id joins the call with its eventual result.
    """

    id: str
    tool_name: str
    tool_input: JSONValue = None


@dataclass
class CompletionResult:
    """One typed part of a completion."""

    type: ResultType
    value: Any

    @classmethod
    def text(cls, value: str) -> "CompletionResult":
        return cls(type=ResultType.TEXT, value=value)

    @classmethod
    def json(cls, value: JSONValue) -> "CompletionResult":
        return cls(type=ResultType.JSON, value=value)

    @classmethod
    def image(cls, value: str) -> "CompletionResult":
        return cls(type=ResultType.IMAGE, value=value)


@dataclass
class ExecutionTokenUsage:
    """Token accounting reported by the backend."""

    prompt: int | None = None
    result: int | None = None
    total: int | None = None


@dataclass
class ValidationErrorInfo:
    """Result validation failure recorded on a completion."""

    code: str  # validation_error | json_error | content_policy_violation
    message: str
    data: Any = None


@dataclass
class Completion:
    """A finished, non-streaming model response."""

    result: list[CompletionResult] = field(default_factory=list)
    token_usage: ExecutionTokenUsage | None = None
    tool_use: list[ToolUse] | None = None
    finish_reason: str | None = None  # stop | length | tool_use | backend specific
    error: ValidationErrorInfo | None = None
    original_response: Any = None
    conversation: Any = None


@dataclass
class ExecutionResponse(Completion):
    """A completion together with its execution metadata."""

    prompt: Any = None
    execution_time: float | None = None  # seconds
    chunks: int | None = None  # number of chunks for streamed executions


@dataclass
class CompletionChunk:
    """Incremental fragment yielded by a backend streaming hook."""

    result: list[CompletionResult] = field(default_factory=list)
    finish_reason: str | None = None
    token_usage: ExecutionTokenUsage | None = None
    tool_use: list[ToolUse] | None = None


PromptFormatter = Callable[[list[PromptSegment], JSONSchema | None], Any]


@dataclass
class ExecutionOptions:
    """Options for a single exchange with a model.

    ``conversation`` is an opaque, backend-native history. Each driver returns
    an updated value on the completion which can be passed back here on the
    next turn.
    """

    model: str
    model_options: dict[str, Any] | None = None
    output_modality: Modality = Modality.TEXT
    result_schema: JSONSchema | None = None
    tools: list[ToolDefinition] | None = None
    conversation: Any = None
    include_original_response: bool = False
    format: PromptFormatter | None = None


@dataclass
class ModelModalities:
    text: bool = False
    image: bool = False
    video: bool = False
    audio: bool = False
    embed: bool = False


@dataclass
class ModelCapabilities:
    """Static capabilities of a model as reported by a capability oracle."""

    input: ModelModalities = field(default_factory=ModelModalities)
    output: ModelModalities = field(default_factory=ModelModalities)
    tool_support: bool | None = None
    tool_support_streaming: bool | None = None


class ModelType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    EMBEDDING = "embedding"
    CHAT = "chat"
    UNKNOWN = "unknown"


@dataclass
class AIModel:
    """A model available in an execution environment."""

    id: str
    name: str
    provider: str
    description: str | None = None
    owner: str | None = None
    type: ModelType | None = None
    can_stream: bool | None = None
    tool_support: bool | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class ModelSearchPayload:
    text: str = ""
    type: ModelType | None = None
    tags: list[str] = field(default_factory=list)
    owner: str | None = None


@dataclass
class EmbeddingsOptions:
    """Input for embeddings generation. One of text or image is required."""

    text: str | None = None
    image: str | None = None
    model: str | None = None


@dataclass
class EmbeddingsResult:
    values: list[float]
    model: str
    token_count: int | None = None


class TrainingJobStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TrainingOptions:
    name: str
    model: str
    params: dict[str, Any] | None = None


@dataclass
class TrainingPromptOptions:
    segments: list[PromptSegment]
    completion: str | dict[str, Any]
    model: str
    schema: JSONSchema | None = None


@dataclass
class TrainingJob:
    id: str
    status: TrainingJobStatus
    details: str | None = None
    model: str | None = None
