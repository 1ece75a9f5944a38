"""Tests for the OpenAI chat completions driver."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from aiobreaker import CircuitBreakerError, CircuitBreakerState
from openai import (
    APIConnectionError,
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    ConflictError,
    ContentFilterFinishReasonError,
    InternalServerError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    UnprocessableEntityError,
)

from llumiverse.core.driver import DriverOptions
from llumiverse.core.exceptions import (
    ErrorContext,
    LlumiverseConfigurationError,
    LlumiverseError,
    Retryable,
)
from llumiverse.core.stream import DefaultCompletionStream, FallbackCompletionStream
from llumiverse.core.types import (
    CompletionResult,
    EmbeddingsOptions,
    ExecutionOptions,
    ModelCapabilities,
    PromptRole,
    PromptSegment,
    ToolDefinition,
    ToolUse,
)
from llumiverse.drivers.openai import OpenAIDriver, classify_openai_error

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
CONTEXT = ErrorContext(provider="openai", model="gpt-4", operation="execute")

SEGMENTS = [
    PromptSegment(role=PromptRole.SYSTEM, content="You are helpful."),
    PromptSegment(role=PromptRole.USER, content="Hello"),
]

WEATHER_TOOL = ToolDefinition(
    name="get_weather",
    description="Current weather for a city",
    input_schema={"type": "object", "properties": {"city": {"type": "string"}}},
)


def status_error(cls, status, body, headers=None):
    response = httpx.Response(status, request=REQUEST, headers=headers or {})
    return cls(body.get("message", "error"), response=response, body=body)


def sdk_call(**kwargs):
    """AsyncMock for an SDK method called through the circuit breaker.

    The breaker skips functions flagged ``_ignore_on_call``, which a bare
    mock answers with a truthy child mock.
    """
    call = AsyncMock(**kwargs)
    call._ignore_on_call = False
    return call


def tool_call(call_id, name, arguments):
    call = MagicMock()
    call.id = call_id
    call.function.name = name
    call.function.arguments = arguments
    return call


def chat_response(content="Test response", tool_calls=None, finish_reason="stop"):
    response = MagicMock()
    choice = MagicMock()
    choice.message.content = content
    choice.message.tool_calls = tool_calls
    choice.finish_reason = finish_reason
    response.choices = [choice]
    response.usage.prompt_tokens = 12
    response.usage.completion_tokens = 4
    response.usage.total_tokens = 16
    return response


def stream_chunk(content=None, tool_calls=None, finish_reason=None, usage=None):
    chunk = MagicMock()
    chunk.usage = usage
    if content is None and tool_calls is None and finish_reason is None:
        chunk.choices = []
        return chunk
    choice = MagicMock()
    choice.delta.content = content
    choice.delta.tool_calls = tool_calls
    choice.finish_reason = finish_reason
    chunk.choices = [choice]
    return chunk


def tool_delta(index, call_id=None, name=None, arguments=None):
    delta = MagicMock()
    delta.index = index
    delta.id = call_id
    delta.function.name = name
    delta.function.arguments = arguments
    return delta


def pending_call_conversation():
    """A user question followed by an assistant turn calling get_weather."""
    return [
        {"role": "user", "content": "Weather?"},
        {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "get_weather", "arguments": "{}"},
                }
            ],
        },
    ]


async def collect(stream):
    return [chunk async for chunk in stream]


class FakeStream:
    """Async iterable standing in for the SDK's AsyncStream."""

    def __init__(self, chunks):
        self.chunks = chunks
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk

    async def close(self):
        self.closed = True


@pytest.fixture
def driver():
    """Create a driver with a mocked client and a mock logger."""
    return OpenAIDriver(
        api_key="test-key",
        transport_retry_max_wait=0,
        options=DriverOptions(logger=MagicMock()),
    )


class TestOpenAIDriverInit:
    """Tests for OpenAIDriver initialization."""

    def test_init_with_valid_api_key(self):
        driver = OpenAIDriver(api_key="test-key")

        assert driver.provider == "openai"
        assert driver._timeout == 60.0

    def test_init_with_empty_api_key_raises(self):
        with pytest.raises(LlumiverseConfigurationError) as exc_info:
            OpenAIDriver(api_key="")

        assert "API key is required" in str(exc_info.value)
        assert exc_info.value.provider == "openai"

    def test_init_with_custom_circuit_breaker_settings(self):
        driver = OpenAIDriver(
            api_key="test-key",
            circuit_breaker_fail_max=3,
            circuit_breaker_timeout=30.0,
        )

        assert driver._breaker.fail_max == 3


class TestFormatPrompt:
    """Tests for chat message building."""

    async def test_message_order(self, driver):
        segments = [
            PromptSegment(role=PromptRole.SAFETY, content="No secrets"),
            PromptSegment(role=PromptRole.USER, content="Hi"),
            PromptSegment(role=PromptRole.SYSTEM, content="Be brief"),
            PromptSegment(role=PromptRole.ASSISTANT, content="Hello"),
            PromptSegment(role=PromptRole.TOOL, content="sunny", tool_use_id="call_1"),
            PromptSegment(role=PromptRole.NEGATIVE, content="dropped"),
        ]

        messages = await driver.create_prompt(segments, ExecutionOptions(model="gpt-4"))

        assert messages == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
            {"role": "tool", "tool_call_id": "call_1", "content": "sunny"},
            {"role": "system", "content": "IMPORTANT: No secrets"},
        ]

    async def test_schema_notice_last(self, driver):
        options = ExecutionOptions(model="gpt-4", result_schema={"type": "object"})

        messages = await driver.create_prompt(SEGMENTS, options)

        assert messages[-1]["role"] == "system"
        assert "JSON Schema" in messages[-1]["content"]

    async def test_tool_segment_without_id_rejected(self, driver):
        segments = [PromptSegment(role=PromptRole.TOOL, content="orphan")]

        with pytest.raises(LlumiverseError) as exc_info:
            await driver.execute(segments, ExecutionOptions(model="gpt-4"))

        assert "tool_use_id" in exc_info.value.message

    async def test_image_file_as_content_part(self, driver):
        image = MagicMock()
        image.mime_type = "image/png"
        image.get_url = AsyncMock(return_value="https://example.com/cat.png")
        segments = [PromptSegment(role=PromptRole.USER, content="What is this?", files=(image,))]

        messages = await driver.create_prompt(segments, ExecutionOptions(model="gpt-4o"))

        assert messages[0]["content"] == [
            {"type": "text", "text": "What is this?"},
            {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
        ]


class TestExecute:
    """Tests for blocking completions."""

    async def test_text_completion(self, driver):
        driver._client.chat.completions.create = sdk_call(return_value=chat_response())

        response = await driver.execute(SEGMENTS, ExecutionOptions(model="gpt-4"))

        assert response.result == [CompletionResult.text("Test response")]
        assert response.finish_reason == "stop"
        assert response.token_usage.prompt == 12
        assert response.token_usage.result == 4
        assert response.token_usage.total == 16
        assert response.original_response is None
        assert response.conversation[-1] == {"role": "assistant", "content": "Test response"}

    async def test_request_parameters(self, driver):
        driver._client.chat.completions.create = sdk_call(return_value=chat_response())
        options = ExecutionOptions(
            model="gpt-4",
            model_options={"temperature": 0.2, "max_tokens": 100, "_option_id": "openai-text"},
            tools=[WEATHER_TOOL],
        )

        await driver.execute(SEGMENTS, options)

        kwargs = driver._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_completion_tokens"] == 100
        assert "_option_id" not in kwargs
        assert kwargs["tools"] == [
            {
                "type": "function",
                "function": {
                    "name": "get_weather",
                    "parameters": WEATHER_TOOL.input_schema,
                    "description": "Current weather for a city",
                },
            }
        ]

    async def test_tool_calls_mapped(self, driver):
        driver._client.chat.completions.create = sdk_call(
            return_value=chat_response(
                content=None,
                tool_calls=[tool_call("call_1", "get_weather", '{"city": "Paris"}')],
                finish_reason="tool_calls",
            )
        )

        response = await driver.execute(
            SEGMENTS, ExecutionOptions(model="gpt-4", tools=[WEATHER_TOOL])
        )

        assert response.tool_use == [
            ToolUse(id="call_1", tool_name="get_weather", tool_input={"city": "Paris"})
        ]
        assert response.finish_reason == "tool_use"
        assert response.conversation[-1]["tool_calls"][0]["id"] == "call_1"

    async def test_orphaned_tool_calls_repaired_before_request(self, driver):
        """A conversation with unanswered calls is fixed before being sent."""
        driver._client.chat.completions.create = sdk_call(return_value=chat_response())
        conversation = pending_call_conversation()
        segments = [PromptSegment(role=PromptRole.USER, content="Never mind")]

        await driver.execute(segments, ExecutionOptions(model="gpt-4", conversation=conversation))

        sent = driver._client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in sent] == ["user", "assistant", "tool", "user"]
        assert sent[2]["tool_call_id"] == "call_1"
        assert len(conversation) == 2
        driver.logger.info.assert_called_once()
        assert driver.logger.info.call_args.args[0] == "conversation_orphaned_tool_use_fixed"

    async def test_answered_tool_calls_sent_unchanged(self, driver):
        """Tool results in the prompt answer the calls of the previous turn."""
        driver._client.chat.completions.create = sdk_call(return_value=chat_response())
        segments = [
            PromptSegment(role=PromptRole.SYSTEM, content="Be brief"),
            PromptSegment(role=PromptRole.TOOL, content="sunny", tool_use_id="call_1"),
        ]

        response = await driver.execute(
            segments,
            ExecutionOptions(model="gpt-4", conversation=pending_call_conversation()),
        )

        sent = driver._client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in sent] == ["user", "assistant", "tool", "system"]
        assert [m["content"] for m in sent if m["role"] == "tool"] == ["sunny"]
        tool_messages = [m for m in response.conversation if m["role"] == "tool"]
        assert [m["content"] for m in tool_messages] == ["sunny"]
        driver.logger.info.assert_not_called()

    async def test_original_response_included(self, driver):
        raw = chat_response()
        driver._client.chat.completions.create = sdk_call(return_value=raw)

        response = await driver.execute(
            SEGMENTS, ExecutionOptions(model="gpt-4", include_original_response=True)
        )

        assert response.original_response is raw

    async def test_empty_response_is_an_error(self, driver):
        driver._client.chat.completions.create = sdk_call(
            return_value=chat_response(content=None)
        )

        with pytest.raises(LlumiverseError) as exc_info:
            await driver.execute(SEGMENTS, ExecutionOptions(model="gpt-4"))

        assert "no data" in exc_info.value.message

    async def test_rate_limit_normalized(self, driver):
        driver._client.chat.completions.create = sdk_call(
            side_effect=status_error(RateLimitError, 429, {"message": "Rate limit exceeded"})
        )

        with pytest.raises(LlumiverseError) as exc_info:
            await driver.execute(SEGMENTS, ExecutionOptions(model="gpt-4"))

        assert exc_info.value.code == 429
        assert exc_info.value.retryable is Retryable.RETRYABLE
        assert exc_info.value.name == "RateLimitError"

    async def test_connection_error_retried(self, driver):
        """Transport failures are retried before surfacing."""
        driver._client.chat.completions.create = sdk_call(
            side_effect=[APIConnectionError(request=REQUEST), chat_response()]
        )

        response = await driver.execute(SEGMENTS, ExecutionOptions(model="gpt-4"))

        assert response.result == [CompletionResult.text("Test response")]
        assert driver._client.chat.completions.create.call_count == 2

    async def test_timeout_after_retries(self, driver):
        driver._client.chat.completions.create = sdk_call(
            side_effect=APITimeoutError(request=REQUEST)
        )

        with pytest.raises(LlumiverseError) as exc_info:
            await driver.execute(SEGMENTS, ExecutionOptions(model="gpt-4"))

        assert exc_info.value.retryable is Retryable.RETRYABLE
        assert exc_info.value.name == "APITimeoutError"
        assert driver._client.chat.completions.create.call_count == 2

    async def test_circuit_breaker_opens(self):
        """Repeated server failures open the circuit and fail fast."""
        driver = OpenAIDriver(
            api_key="test-key",
            circuit_breaker_fail_max=2,
            transport_retry_attempts=1,
            options=DriverOptions(logger=MagicMock()),
        )
        driver._client.chat.completions.create = sdk_call(
            side_effect=status_error(InternalServerError, 500, {"message": "boom"})
        )

        with pytest.raises(LlumiverseError) as exc_info:
            await driver.execute(SEGMENTS, ExecutionOptions(model="gpt-4"))
        assert exc_info.value.name == "InternalServerError"
        assert driver._breaker.fail_counter == 1

        for _ in range(2):
            with pytest.raises(LlumiverseError) as exc_info:
                await driver.execute(SEGMENTS, ExecutionOptions(model="gpt-4"))

        assert exc_info.value.name == "CircuitBreakerError"
        assert exc_info.value.retryable is Retryable.RETRYABLE
        assert driver._breaker.current_state is CircuitBreakerState.OPEN
        assert driver._client.chat.completions.create.call_count == 2

    async def test_client_errors_do_not_open_circuit(self):
        """Rejected requests are not counted as service failures."""
        driver = OpenAIDriver(
            api_key="test-key",
            circuit_breaker_fail_max=2,
            options=DriverOptions(logger=MagicMock()),
        )
        driver._client.chat.completions.create = sdk_call(
            side_effect=status_error(BadRequestError, 400, {"message": "bad"})
        )

        for _ in range(3):
            with pytest.raises(LlumiverseError) as exc_info:
                await driver.execute(SEGMENTS, ExecutionOptions(model="gpt-4"))

        assert exc_info.value.name == "BadRequestError"
        assert driver._breaker.fail_counter == 0
        assert driver._breaker.current_state is CircuitBreakerState.CLOSED
        assert driver._client.chat.completions.create.call_count == 3

    async def test_rate_limits_count_as_failures(self):
        driver = OpenAIDriver(
            api_key="test-key",
            circuit_breaker_fail_max=5,
            options=DriverOptions(logger=MagicMock()),
        )
        driver._client.chat.completions.create = sdk_call(
            side_effect=status_error(RateLimitError, 429, {"message": "slow down"})
        )

        with pytest.raises(LlumiverseError):
            await driver.execute(SEGMENTS, ExecutionOptions(model="gpt-4"))

        assert driver._breaker.fail_counter == 1


class TestStream:
    """Tests for streamed completions."""

    async def test_text_stream(self, driver):
        usage = MagicMock(prompt_tokens=7, completion_tokens=2, total_tokens=9)
        fake = FakeStream(
            [
                stream_chunk(content="Hel"),
                stream_chunk(content="lo", finish_reason="stop"),
                stream_chunk(usage=usage),
            ]
        )
        driver._client.chat.completions.create = sdk_call(return_value=fake)

        stream = await driver.stream(SEGMENTS, ExecutionOptions(model="gpt-4"))
        chunks = [chunk async for chunk in stream]

        assert chunks == ["Hel", "lo"]
        assert stream.completion.result == [CompletionResult.text("Hello")]
        assert stream.completion.token_usage.total == 9
        assert stream.completion.conversation[-1] == {"role": "assistant", "content": "Hello"}
        assert fake.closed
        kwargs = driver._client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["stream_options"] == {"include_usage": True}

    async def test_tool_call_fragments(self, driver):
        """Fragments after the first are matched to the call id by index."""
        fake = FakeStream(
            [
                stream_chunk(tool_calls=[tool_delta(0, "call_1", "get_weather", "")]),
                stream_chunk(tool_calls=[tool_delta(0, arguments='{"city": ')]),
                stream_chunk(tool_calls=[tool_delta(0, arguments='"Oslo"}')]),
                stream_chunk(finish_reason="tool_calls"),
            ]
        )
        driver._client.chat.completions.create = sdk_call(return_value=fake)

        stream = await driver.stream(
            SEGMENTS, ExecutionOptions(model="gpt-4", tools=[WEATHER_TOOL])
        )
        assert [chunk async for chunk in stream] == []

        assert stream.completion.tool_use == [
            ToolUse(id="call_1", tool_name="get_weather", tool_input={"city": "Oslo"})
        ]
        assert stream.completion.finish_reason == "tool_use"
        last = stream.completion.conversation[-1]
        assert last["tool_calls"][0]["function"]["arguments"] == '{"city": "Oslo"}'

    async def test_call_without_arguments_matches_blocking(self, driver):
        """A call with no arguments has the same input streamed or not."""
        options = ExecutionOptions(model="gpt-4", tools=[WEATHER_TOOL])
        driver._client.chat.completions.create = sdk_call(
            return_value=FakeStream(
                [
                    stream_chunk(tool_calls=[tool_delta(0, "call_1", "get_weather", "")]),
                    stream_chunk(finish_reason="tool_calls"),
                ]
            )
        )
        stream = await driver.stream(SEGMENTS, options)
        await collect(stream)

        driver._client.chat.completions.create = sdk_call(
            return_value=chat_response(
                content=None,
                tool_calls=[tool_call("call_1", "get_weather", "")],
                finish_reason="tool_calls",
            )
        )
        executed = await driver.execute(SEGMENTS, options)

        assert stream.completion.tool_use == executed.tool_use
        assert executed.tool_use[0].tool_input == {}

    async def test_answered_tool_calls_in_streamed_conversation(self, driver):
        driver._client.chat.completions.create = sdk_call(
            return_value=FakeStream([stream_chunk(content="Sunny", finish_reason="stop")])
        )
        segments = [PromptSegment(role=PromptRole.TOOL, content="sunny", tool_use_id="call_1")]

        stream = await driver.stream(
            segments,
            ExecutionOptions(model="gpt-4", conversation=pending_call_conversation()),
        )
        await collect(stream)

        conversation = stream.completion.conversation
        assert [m["role"] for m in conversation] == ["user", "assistant", "tool", "assistant"]
        assert conversation[2]["content"] == "sunny"

    async def test_tool_streaming_unsupported_falls_back(self, driver):
        oracle = MagicMock()
        oracle.get_model_capabilities.return_value = ModelCapabilities(
            tool_support=True, tool_support_streaming=False
        )
        driver.capability_oracle = oracle

        with_tools = await driver.stream(
            SEGMENTS, ExecutionOptions(model="gpt-4", tools=[WEATHER_TOOL])
        )
        without_tools = await driver.stream(SEGMENTS, ExecutionOptions(model="gpt-4"))

        assert isinstance(with_tools, FallbackCompletionStream)
        assert isinstance(without_tools, DefaultCompletionStream)

    async def test_o1_does_not_stream(self, driver):
        stream = await driver.stream(SEGMENTS, ExecutionOptions(model="o1"))
        assert isinstance(stream, FallbackCompletionStream)


class TestManagementApi:
    """Tests for model listing, connection check and embeddings."""

    async def test_list_models_filters_non_chat(self, driver):
        page = MagicMock()
        page.data = [
            MagicMock(id="gpt-4o", owned_by="openai", object="model"),
            MagicMock(id="text-embedding-3-small", owned_by="openai", object="model"),
            MagicMock(id="gpt-3.5-turbo", owned_by="openai", object="model"),
        ]
        driver._client.models.list = AsyncMock(return_value=page)

        models = await driver.list_models()

        assert [m.id for m in models] == ["gpt-3.5-turbo", "gpt-4o"]
        assert models[0].provider == "openai"

    async def test_validate_connection(self, driver):
        driver._client.models.list = AsyncMock(return_value=MagicMock())
        assert await driver.validate_connection() is True

        driver._client.models.list = AsyncMock(side_effect=APIConnectionError(request=REQUEST))
        assert await driver.validate_connection() is False

    async def test_generate_embeddings(self, driver):
        response = MagicMock()
        response.data = [MagicMock(embedding=[0.1, 0.2, 0.3])]
        response.usage.total_tokens = 3
        driver._client.embeddings.create = sdk_call(return_value=response)

        result = await driver.generate_embeddings(EmbeddingsOptions(text="hello"))

        assert result.values == [0.1, 0.2, 0.3]
        assert result.model == "text-embedding-3-small"
        assert result.token_count == 3

    async def test_image_embeddings_rejected(self, driver):
        with pytest.raises(ValueError, match="Image embeddings not supported"):
            await driver.generate_embeddings(EmbeddingsOptions(image="aGVsbG8="))

    async def test_destroy_closes_client(self, driver):
        driver._client.close = AsyncMock()

        await driver.destroy()

        driver._client.close.assert_awaited_once()


class TestErrorFormatting:
    """Tests for OpenAI specific error normalization."""

    def test_bad_request_details(self, driver):
        error = status_error(
            BadRequestError,
            400,
            {
                "message": "Invalid 'temperature': decimal above maximum value.",
                "type": "invalid_request_error",
                "param": "temperature",
                "code": "decimal_above_max_value",
            },
            headers={"x-request-id": "req_test_123"},
        )

        formatted = driver.format_llumiverse_error(error, CONTEXT)

        assert formatted.code == 400
        assert formatted.message.startswith("[openai] [400]")
        assert "temperature" in formatted.message
        assert "decimal_above_max_value" in formatted.message
        assert "req_test_123" in formatted.message
        assert formatted.name == "BadRequestError"
        assert formatted.retryable is Retryable.NOT_RETRYABLE
        assert formatted.original_error is error

    @pytest.mark.parametrize(
        ("cls", "status"),
        [(RateLimitError, 429), (InternalServerError, 500)],
    )
    def test_retryable_status_errors(self, driver, cls, status):
        formatted = driver.format_llumiverse_error(
            status_error(cls, status, {"message": "x"}), CONTEXT
        )
        assert formatted.retryable is Retryable.RETRYABLE
        assert formatted.name == cls.__name__

    @pytest.mark.parametrize(
        ("cls", "status"),
        [
            (BadRequestError, 400),
            (AuthenticationError, 401),
            (PermissionDeniedError, 403),
            (NotFoundError, 404),
            (ConflictError, 409),
            (UnprocessableEntityError, 422),
        ],
    )
    def test_non_retryable_status_errors(self, driver, cls, status):
        formatted = driver.format_llumiverse_error(
            status_error(cls, status, {"message": "x"}), CONTEXT
        )
        assert formatted.code == status
        assert formatted.retryable is Retryable.NOT_RETRYABLE

    def test_connection_errors_retryable(self, driver):
        for error in (APIConnectionError(request=REQUEST), APITimeoutError(request=REQUEST)):
            formatted = driver.format_llumiverse_error(error, CONTEXT)
            assert formatted.code is None
            assert formatted.retryable is Retryable.RETRYABLE
            assert formatted.name == type(error).__name__

    def test_content_filter_not_retryable(self, driver):
        formatted = driver.format_llumiverse_error(ContentFilterFinishReasonError(), CONTEXT)
        assert formatted.retryable is Retryable.NOT_RETRYABLE

    def test_circuit_breaker_retryable(self, driver):
        formatted = driver.format_llumiverse_error(
            CircuitBreakerError("Circuit breaker still open", datetime.now()),
            CONTEXT,
        )
        assert formatted.retryable is Retryable.RETRYABLE

    def test_non_openai_error_uses_default(self, driver):
        formatted = driver.format_llumiverse_error(RuntimeError("Regular error"), CONTEXT)

        assert formatted.message == "[openai] Regular error"
        assert formatted.retryable is Retryable.UNKNOWN

    def test_provider_from_context(self, driver):
        context = ErrorContext(provider="azure_openai", model="gpt-4", operation="execute")
        formatted = driver.format_llumiverse_error(
            status_error(RateLimitError, 429, {"message": "Rate limit exceeded"}), context
        )
        assert formatted.provider == "azure_openai"
        assert formatted.message.startswith("[azure_openai]")


class TestClassifyOpenAIError:
    """Tests for the SDK level verdict."""

    def error(self):
        return status_error(BadRequestError, 400, {})

    @pytest.mark.parametrize(
        "code", ["timeout", "server_error", "service_unavailable", "rate_limit_exceeded"]
    )
    def test_retryable_codes(self, code):
        assert classify_openai_error(self.error(), None, code, None) is Retryable.RETRYABLE

    @pytest.mark.parametrize(
        "code",
        ["invalid_api_key", "model_not_found", "insufficient_quota", "invalid_parameter"],
    )
    def test_non_retryable_codes(self, code):
        assert classify_openai_error(self.error(), None, code, None) is Retryable.NOT_RETRYABLE

    def test_error_types(self):
        error = self.error()
        assert classify_openai_error(error, None, None, "server_error") is Retryable.RETRYABLE
        assert (
            classify_openai_error(error, None, None, "authentication_error")
            is Retryable.NOT_RETRYABLE
        )

    def test_status_takes_precedence(self):
        error = self.error()
        assert classify_openai_error(error, 503, "invalid_parameter", None) is Retryable.RETRYABLE
        assert classify_openai_error(error, 403, "timeout", None) is Retryable.NOT_RETRYABLE

    def test_unknown_when_inconclusive(self):
        assert classify_openai_error(self.error(), None, None, None) is Retryable.UNKNOWN
