"""OpenAI chat completions driver.

Works against any OpenAI compatible endpoint through ``base_url``.

Includes resilience patterns:
- Retries with exponential backoff on connection failures and timeouts
- Circuit breaker to fail fast after repeated server side failures
- Configurable timeouts
"""

import json
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import timedelta
from typing import Any

from aiobreaker import CircuitBreaker, CircuitBreakerError
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    ContentFilterFinishReasonError,
    LengthFinishReasonError,
    OpenAIError,
)
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from llumiverse.core import errors
from llumiverse.core.conversation.openai import fix_orphaned_tool_use
from llumiverse.core.driver import AbstractDriver, DriverOptions
from llumiverse.core.exceptions import (
    ErrorContext,
    LlumiverseConfigurationError,
    LlumiverseError,
    Retryable,
)
from llumiverse.core.formatters import get_json_safety_notice
from llumiverse.core.protocol import CapabilityOracle
from llumiverse.core.types import (
    AIModel,
    Completion,
    CompletionChunk,
    CompletionResult,
    EmbeddingsOptions,
    EmbeddingsResult,
    ExecutionOptions,
    ExecutionTokenUsage,
    ModelSearchPayload,
    ModelType,
    PromptRole,
    PromptSegment,
    ResultType,
    ToolDefinition,
    ToolUse,
)
from llumiverse.observability import add_span_attributes, traced

OpenAIMessage = dict[str, Any]

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

# Models listed by the API that are not chat models
_NON_CHAT_MODEL_WORDS = (
    "embed",
    "whisper",
    "transcribe",
    "audio",
    "moderation",
    "tts",
    "realtime",
    "dall-e",
    "babbage",
    "davinci",
)

# model_options keys renamed for the chat completions API
_OPTION_NAMES = {
    "max_tokens": "max_completion_tokens",
    "stop_sequence": "stop",
}

_RETRYABLE_ERROR_CODES = frozenset(
    {"timeout", "server_error", "service_unavailable", "rate_limit_exceeded"}
)
_NOT_RETRYABLE_ERROR_CODES = frozenset(
    {
        "invalid_api_key",
        "invalid_request_error",
        "model_not_found",
        "insufficient_quota",
        "invalid_model",
        "invalid_parameter",
    }
)
_NOT_RETRYABLE_ERROR_TYPES = frozenset(
    {"invalid_request_error", "authentication_error", "permission_error"}
)


def classify_openai_error(
    error: OpenAIError,
    status: int | None,
    error_code: str | None,
    error_type: str | None,
) -> Retryable:
    """Retry verdict from what the OpenAI SDK knows about an error.

    Returns UNKNOWN when the SDK error carries nothing conclusive.
    """
    if isinstance(error, (LengthFinishReasonError, ContentFilterFinishReasonError)):
        return Retryable.NOT_RETRYABLE
    if isinstance(error, APIConnectionError):
        return Retryable.RETRYABLE
    if status is not None:
        return errors.is_retryable_error(status, "")
    if error_code in _RETRYABLE_ERROR_CODES:
        return Retryable.RETRYABLE
    if error_code in _NOT_RETRYABLE_ERROR_CODES:
        return Retryable.NOT_RETRYABLE
    if error_type == "server_error":
        return Retryable.RETRYABLE
    if error_type in _NOT_RETRYABLE_ERROR_TYPES:
        return Retryable.NOT_RETRYABLE
    return Retryable.UNKNOWN


def _is_client_error(error: Exception) -> bool:
    """Rejected requests say nothing about the health of the service."""
    return (
        isinstance(error, APIStatusError)
        and error.status_code < 500
        and error.status_code not in (408, 429)
    )


def _finish_reason(reason: str | None) -> str | None:
    if reason == "tool_calls":
        return "tool_use"
    return reason


def _parse_arguments(arguments: str | None) -> Any:
    if not arguments:
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError:
        return arguments


def _tool_definition(tool: ToolDefinition) -> dict[str, Any]:
    function: dict[str, Any] = {"name": tool.name, "parameters": tool.input_schema}
    if tool.description:
        function["description"] = tool.description
    return {"type": "function", "function": function}


def _model_params(model_options: dict[str, Any] | None) -> dict[str, Any]:
    """Map model options to request parameters, dropping unset and private keys."""
    params: dict[str, Any] = {}
    for key, value in (model_options or {}).items():
        if value is None or key.startswith("_"):
            continue
        params[_OPTION_NAMES.get(key, key)] = value
    return params


def _token_usage(usage: Any) -> ExecutionTokenUsage | None:
    if usage is None:
        return None
    return ExecutionTokenUsage(
        prompt=usage.prompt_tokens,
        result=usage.completion_tokens,
        total=usage.total_tokens,
    )


def _assistant_message(text: str | None, tool_use: list[ToolUse] | None) -> OpenAIMessage:
    message: OpenAIMessage = {"role": "assistant", "content": text}
    if tool_use:
        message["tool_calls"] = [
            {
                "id": tool.id,
                "type": "function",
                "function": {
                    "name": tool.tool_name,
                    "arguments": (
                        tool.tool_input
                        if isinstance(tool.tool_input, str)
                        else json.dumps(tool.tool_input)
                    ),
                },
            }
            for tool in tool_use
        ]
    return message


class OpenAIDriver(AbstractDriver[list[OpenAIMessage]]):
    """Driver for the OpenAI chat completions API."""

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout_seconds: float = 60.0,
        circuit_breaker_fail_max: int = 5,
        circuit_breaker_timeout: float = 60.0,
        transport_retry_attempts: int = 2,
        transport_retry_max_wait: float = 5.0,
        capability_oracle: CapabilityOracle | None = None,
        options: DriverOptions | None = None,
    ) -> None:
        """Initialize the OpenAI driver.

        Args:
            api_key: OpenAI API key.
            base_url: Endpoint of an OpenAI compatible API. Defaults to OpenAI.
            timeout_seconds: Request timeout in seconds.
            circuit_breaker_fail_max: Open circuit after this many failures.
            circuit_breaker_timeout: Time in seconds before attempting recovery.
            transport_retry_attempts: Attempts on connection errors and timeouts.
            transport_retry_max_wait: Upper bound in seconds between attempts.
            capability_oracle: Lookup used to decide whether tool calls can
                be streamed.
            options: Shared driver options such as the logger.

        Raises:
            LlumiverseConfigurationError: If API key is missing.
        """
        if not api_key:
            raise LlumiverseConfigurationError(
                "OpenAI API key is required", provider=self.provider
            )
        super().__init__(options)

        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self._timeout = timeout_seconds
        self._transport_retry_attempts = transport_retry_attempts
        self._transport_retry_max_wait = transport_retry_max_wait
        self.capability_oracle = capability_oracle

        # Circuit breaker: fail fast after repeated failures
        self._breaker = CircuitBreaker(
            fail_max=circuit_breaker_fail_max,
            timeout_duration=timedelta(seconds=circuit_breaker_timeout),
            exclude=[_is_client_error],
        )

    # Prompt building

    async def format_prompt(
        self, segments: list[PromptSegment], options: ExecutionOptions
    ) -> list[OpenAIMessage]:
        """Build chat messages: system first, conversation, then safety."""
        system: list[OpenAIMessage] = []
        messages: list[OpenAIMessage] = []
        safety: list[OpenAIMessage] = []

        for segment in segments:
            if segment.role is PromptRole.SYSTEM:
                system.append({"role": "system", "content": segment.content})
            elif segment.role is PromptRole.SAFETY:
                safety.append({"role": "system", "content": f"IMPORTANT: {segment.content}"})
            elif segment.role is PromptRole.TOOL:
                if not segment.tool_use_id:
                    raise ValueError("Tool prompt segment requires a tool_use_id")
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": segment.tool_use_id,
                        "content": segment.content,
                    }
                )
            elif segment.role in (PromptRole.USER, PromptRole.ASSISTANT):
                messages.append(
                    {"role": segment.role.value, "content": await self._content(segment)}
                )

        if options.result_schema:
            safety.append(
                {"role": "system", "content": get_json_safety_notice(options.result_schema)}
            )

        return system + messages + safety

    async def _content(self, segment: PromptSegment) -> str | list[dict[str, Any]]:
        images = [f for f in segment.files if f.mime_type.startswith("image/")]
        if not images or segment.role is not PromptRole.USER:
            return segment.content

        parts: list[dict[str, Any]] = []
        if segment.content:
            parts.append({"type": "text", "text": segment.content})
        for image in images:
            parts.append({"type": "image_url", "image_url": {"url": await image.get_url()}})
        return parts

    # Requests

    def _conversation_input(
        self, prompt: list[OpenAIMessage], options: ExecutionOptions
    ) -> list[OpenAIMessage]:
        # Tool results answer the previous turn's calls and must follow them directly
        results = [m for m in prompt if m["role"] == "tool"]
        rest = [m for m in prompt if m["role"] != "tool"]
        return fix_orphaned_tool_use(
            [*(options.conversation or []), *results, *rest], logger=self.logger
        )

    def _request_params(
        self, messages: list[OpenAIMessage], options: ExecutionOptions
    ) -> dict[str, Any]:
        params = _model_params(options.model_options)
        params["model"] = options.model
        params["messages"] = messages
        if options.tools:
            params["tools"] = [_tool_definition(t) for t in options.tools]
        return params

    async def _with_resilience(self, call: Callable[..., Awaitable[Any]], **kwargs: Any) -> Any:
        """Run a request behind the circuit breaker, retrying transport failures."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((APIConnectionError, APITimeoutError)),
            stop=stop_after_attempt(self._transport_retry_attempts),
            wait=wait_exponential(multiplier=1, max=self._transport_retry_max_wait),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await self._breaker.call_async(call, **kwargs)
        return result

    async def request_text_completion(
        self, prompt: list[OpenAIMessage], options: ExecutionOptions
    ) -> Completion:
        messages = self._conversation_input(prompt, options)

        self.logger.debug(
            "llm_request_start",
            model=options.model,
            message_count=len(messages),
        )

        response = await self._with_resilience(
            self._client.chat.completions.create,
            **self._request_params(messages, options),
        )

        choice = response.choices[0]
        message = choice.message
        tool_use = [
            ToolUse(
                id=call.id,
                tool_name=call.function.name,
                tool_input=_parse_arguments(call.function.arguments),
            )
            for call in message.tool_calls or []
        ] or None

        if not message.content and not tool_use:
            raise ValueError("Response is not valid: no data")

        completion = Completion(
            result=[CompletionResult.text(message.content)] if message.content else [],
            token_usage=_token_usage(response.usage),
            tool_use=tool_use,
            finish_reason=_finish_reason(choice.finish_reason),
            conversation=[*messages, _assistant_message(message.content, tool_use)],
        )
        if options.include_original_response:
            completion.original_response = response

        if completion.token_usage:
            add_span_attributes(
                {
                    "llm.tokens.prompt": completion.token_usage.prompt,
                    "llm.tokens.result": completion.token_usage.result,
                }
            )

        self.logger.debug(
            "llm_request_success",
            model=options.model,
            finish_reason=completion.finish_reason,
            tool_calls=len(tool_use or []),
        )
        return completion

    async def request_text_completion_stream(
        self, prompt: list[OpenAIMessage], options: ExecutionOptions
    ) -> AsyncIterator[CompletionChunk | str]:
        messages = self._conversation_input(prompt, options)

        self.logger.debug(
            "llm_stream_request_start",
            model=options.model,
            message_count=len(messages),
        )

        stream = await self._with_resilience(
            self._client.chat.completions.create,
            **self._request_params(messages, options),
            stream=True,
            stream_options={"include_usage": True},
        )

        # Only the first fragment of a tool call carries its id
        call_ids: dict[int, str] = {}
        try:
            async for chunk in stream:
                yield self._map_chunk(chunk, call_ids)
        finally:
            await stream.close()

    def _map_chunk(self, chunk: Any, call_ids: dict[int, str]) -> CompletionChunk:
        mapped = CompletionChunk(token_usage=_token_usage(chunk.usage))
        if not chunk.choices:
            return mapped

        choice = chunk.choices[0]
        delta = choice.delta
        mapped.finish_reason = _finish_reason(choice.finish_reason)
        if delta.content:
            mapped.result = [CompletionResult.text(delta.content)]

        tools = []
        for call in delta.tool_calls or []:
            if call.id:
                call_ids[call.index] = call.id
            function = call.function
            tools.append(
                ToolUse(
                    id=call_ids.get(call.index, str(call.index)),
                    tool_name=(function.name if function else None) or "",
                    tool_input=(function.arguments if function else None) or None,
                )
            )
        mapped.tool_use = tools or None
        return mapped

    def build_streaming_conversation(
        self,
        prompt: list[OpenAIMessage],
        results: list[CompletionResult],
        tool_use: list[ToolUse] | None,
        options: ExecutionOptions,
    ) -> list[OpenAIMessage]:
        text = "".join(
            r.value if r.type is ResultType.TEXT else json.dumps(r.value) for r in results
        )
        return [
            *self._conversation_input(prompt, options),
            _assistant_message(text or None, tool_use),
        ]

    async def can_stream(self, options: ExecutionOptions) -> bool:
        model = options.model
        # o1 full does not stream
        if "o1" in model and not ("mini" in model or "preview" in model):
            return False
        if options.tools and self.capability_oracle is not None:
            capabilities = self.capability_oracle.get_model_capabilities(model, self.provider)
            if capabilities.tool_support_streaming is False:
                return False
        return True

    # Management API

    @traced(span_name="llm.list_models", attributes={"llm.provider": "openai"})
    async def list_models(self, params: ModelSearchPayload | None = None) -> list[AIModel]:
        try:
            page = await self._client.models.list()
        except Exception as e:
            raise self._management_error(e, "list_models") from e

        models = [
            AIModel(
                id=m.id,
                name=m.id,
                provider=self.provider,
                owner=m.owned_by,
                type=ModelType.TEXT if m.object == "model" else ModelType.UNKNOWN,
                can_stream=True,
            )
            for m in page.data
            if not any(word in m.id for word in _NON_CHAT_MODEL_WORDS)
        ]
        if params and params.text:
            models = [m for m in models if params.text.lower() in m.id.lower()]
        if params and params.owner:
            models = [m for m in models if m.owner == params.owner]
        return sorted(models, key=lambda m: m.id)

    async def validate_connection(self) -> bool:
        try:
            await self._client.models.list()
        except OpenAIError as e:
            self.logger.warning("llm_connection_invalid", error=str(e))
            return False
        return True

    @traced(span_name="llm.generate_embeddings", attributes={"llm.provider": "openai"})
    async def generate_embeddings(self, options: EmbeddingsOptions) -> EmbeddingsResult:
        model = options.model or DEFAULT_EMBEDDING_MODEL
        if options.image:
            raise ValueError("Image embeddings not supported by OpenAI")
        if not options.text:
            raise ValueError("No text provided")

        try:
            response = await self._with_resilience(
                self._client.embeddings.create, input=options.text, model=model
            )
        except Exception as e:
            raise self._management_error(e, "generate_embeddings", model) from e

        values = response.data[0].embedding if response.data else []
        if not values:
            raise ValueError("No embedding found")
        usage = getattr(response, "usage", None)
        return EmbeddingsResult(
            values=values,
            model=model,
            token_count=usage.total_tokens if usage else None,
        )

    async def destroy(self) -> None:
        await self._client.close()

    # Error handling

    def _management_error(
        self, error: Exception, operation: str, model: str = ""
    ) -> LlumiverseError:
        context = ErrorContext(provider=self.provider, model=model, operation=operation)
        return self.format_llumiverse_error(error, context)

    def format_llumiverse_error(
        self, error: object, context: ErrorContext
    ) -> LlumiverseError:
        """Normalize OpenAI SDK errors, keeping status, code, param and request id."""
        if isinstance(error, LlumiverseError):
            return error

        if isinstance(error, CircuitBreakerError):
            return LlumiverseError(
                f"[{context.provider}] Service temporarily unavailable: {error}",
                retryable=Retryable.RETRYABLE,
                context=context,
                original_error=error,
                name=type(error).__name__,
            )

        if not isinstance(error, OpenAIError):
            return super().format_llumiverse_error(error, context)

        status = error.status_code if isinstance(error, APIStatusError) else None
        error_code = getattr(error, "code", None)
        error_type = getattr(error, "type", None)
        param = getattr(error, "param", None)
        request_id = getattr(error, "request_id", None)

        body = getattr(error, "body", None)
        message = body.get("message") if isinstance(body, dict) else None
        message = message or getattr(error, "message", None) or str(error)

        parts = [f"[{context.provider}]"]
        if status is not None:
            parts.append(f"[{status}]")
        parts.append(message)
        details = [
            f"{label}: {value}"
            for label, value in (
                ("code", error_code),
                ("param", param),
                ("request_id", request_id),
            )
            if value
        ]
        if details:
            parts.append(f"({', '.join(details)})")

        retryable = classify_openai_error(
            error,
            status,
            error_code if isinstance(error_code, str) else None,
            error_type if isinstance(error_type, str) else None,
        )
        if retryable is Retryable.UNKNOWN:
            retryable = self.is_retryable_error(status, message)

        return LlumiverseError(
            " ".join(parts),
            retryable=retryable,
            context=context,
            original_error=error,
            code=status,
            name=type(error).__name__,
        )
