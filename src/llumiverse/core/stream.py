"""Streaming strategies exposing a response as an async sequence of text chunks.

``DefaultCompletionStream`` consumes the backend's chunk sequence as it
arrives. ``FallbackCompletionStream`` performs one blocking execution and
replays it as a single chunk. In both cases ``completion`` holds the final
response once iteration is over.

There is no explicit cancel operation: a caller cancels by abandoning the
iteration, which closes the backend's chunk sequence.
"""

import json
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

from llumiverse.core.exceptions import LlumiverseError
from llumiverse.core.results import normalize_finish_reason, render_results
from llumiverse.core.types import (
    CompletionChunk,
    CompletionResult,
    ExecutionOptions,
    ExecutionResponse,
    ExecutionTokenUsage,
    ResultType,
    ToolUse,
)
from llumiverse.observability import get_tracer

if TYPE_CHECKING:
    from llumiverse.core.driver import AbstractDriver

tracer = get_tracer(__name__)


@asynccontextmanager
async def _closing(
    source: AsyncIterator[CompletionChunk | str],
) -> AsyncIterator[AsyncIterator[CompletionChunk | str]]:
    """Close the backend sequence when iteration ends or is abandoned."""
    try:
        yield source
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


def _merge_results(
    accumulated: list[CompletionResult], incoming: list[CompletionResult]
) -> None:
    """Append results, combining consecutive text or JSON parts."""
    for result in incoming:
        last = accumulated[-1] if accumulated else None
        if last is not None and last.type is result.type is ResultType.TEXT:
            last.value = f"{last.value}{result.value}"
        elif last is not None and last.type is result.type is ResultType.JSON:
            if isinstance(last.value, dict) and isinstance(result.value, dict):
                last.value = {**last.value, **result.value}
            else:
                left = last.value if isinstance(last.value, str) else json.dumps(last.value)
                right = result.value if isinstance(result.value, str) else json.dumps(result.value)
                last.value = left + right
        else:
            accumulated.append(CompletionResult(type=result.type, value=result.value))


def _merge_tool_use(accumulated: dict[str, ToolUse], incoming: list[ToolUse]) -> None:
    """Accumulate tool call fragments keyed by call id.

    Streamed arguments arrive as string pieces to concatenate; object inputs
    are merged. A name sent in a later fragment wins.
    """
    for tool in incoming:
        existing = accumulated.get(tool.id)
        if existing is None:
            accumulated[tool.id] = ToolUse(
                id=tool.id, tool_name=tool.tool_name, tool_input=tool.tool_input
            )
            continue

        if tool.tool_input is not None:
            current = existing.tool_input
            if isinstance(current, str) and isinstance(tool.tool_input, str):
                existing.tool_input = current + tool.tool_input
            elif isinstance(current, dict) and isinstance(tool.tool_input, dict):
                existing.tool_input = {**current, **tool.tool_input}
            else:
                existing.tool_input = tool.tool_input
        if tool.tool_name:
            existing.tool_name = tool.tool_name


def _finalize_tool_use(accumulated: dict[str, ToolUse]) -> list[ToolUse] | None:
    if not accumulated:
        return None
    tools = list(accumulated.values())
    for tool in tools:
        # Calls without arguments carry an empty object, as in blocking responses
        if tool.tool_input is None or tool.tool_input == "":
            tool.tool_input = {}
        elif isinstance(tool.tool_input, str):
            try:
                tool.tool_input = json.loads(tool.tool_input)
            except json.JSONDecodeError:
                pass  # not JSON, keep the raw arguments
    return tools


class DefaultCompletionStream:
    """Incremental consumption of the backend's chunk sequence."""

    def __init__(
        self,
        driver: "AbstractDriver[Any]",
        prompt: Any,
        options: ExecutionOptions,
    ) -> None:
        self.driver = driver
        self.prompt = prompt
        self.options = options
        self.chunks = 0
        self.completion: ExecutionResponse | None = None

    async def __aiter__(self) -> AsyncIterator[str]:
        self.completion = None
        self.chunks = 0
        driver = self.driver
        options = self.options

        results: list[CompletionResult] = []
        tool_uses: dict[str, ToolUse] = {}
        finish_reason: str | None = None
        prompt_tokens = 0
        result_tokens: int | None = None

        driver.logger.debug("driver_stream_start", model=options.model)

        span = tracer.start_span(
            "llm.stream",
            attributes={
                "llm.provider": driver.provider,
                "llm.model": options.model,
                "llm.operation": "stream",
            },
        )
        start = time.perf_counter()
        try:
            source = driver.request_text_completion_stream(self.prompt, options)
            async with _closing(source) as chunks:
                iterator = chunks.__aiter__()
                while True:
                    # Backend work and its log events belong to the stream span
                    with trace.use_span(
                        span,
                        end_on_exit=False,
                        record_exception=False,
                        set_status_on_exception=False,
                    ):
                        try:
                            chunk = await iterator.__anext__()
                        except StopAsyncIteration:
                            break

                    if not chunk:
                        continue

                    if isinstance(chunk, str):
                        _merge_results(results, [CompletionResult.text(chunk)])
                        self.chunks += 1
                        yield chunk
                        continue

                    # Empty finish reasons may follow "stop" or "length"
                    if chunk.finish_reason:
                        finish_reason = chunk.finish_reason
                    if chunk.token_usage:
                        # Counts include prior parts of the stream and some
                        # models report the final count first
                        prompt_tokens = max(prompt_tokens, chunk.token_usage.prompt or 0)
                        result_tokens = max(result_tokens or 0, chunk.token_usage.result or 0)
                    if chunk.tool_use:
                        _merge_tool_use(tool_uses, chunk.tool_use)
                    if chunk.result:
                        _merge_results(results, chunk.result)
                        text = render_results(chunk.result)
                        if text:
                            self.chunks += 1
                            yield text

            tool_use = _finalize_tool_use(tool_uses)
            token_usage = (
                ExecutionTokenUsage(
                    prompt=prompt_tokens,
                    result=result_tokens,
                    total=prompt_tokens + result_tokens,
                )
                if result_tokens
                else None
            )
            completion = ExecutionResponse(
                result=results,
                prompt=self.prompt,
                execution_time=time.perf_counter() - start,
                token_usage=token_usage,
                finish_reason=finish_reason,
                chunks=self.chunks,
                tool_use=tool_use,
            )
            normalize_finish_reason(completion)

            conversation = driver.build_streaming_conversation(
                self.prompt, results, tool_use, options
            )
            if conversation is not None:
                completion.conversation = conversation

            driver.validate_result(completion, options)
            self.completion = completion

        except LlumiverseError as e:
            span.record_exception(e)
            raise
        except Exception as e:
            span.record_exception(e)
            raise driver._tag_error(e, options, "stream", self.prompt) from e
        finally:
            span.set_attribute("llm.chunks", self.chunks)
            span.end()

        driver.logger.debug(
            "driver_stream_success",
            model=options.model,
            chunks=self.chunks,
            finish_reason=self.completion.finish_reason,
        )


class FallbackCompletionStream:
    """Blocking execution replayed as a single synthetic chunk."""

    def __init__(
        self,
        driver: "AbstractDriver[Any]",
        prompt: Any,
        options: ExecutionOptions,
    ) -> None:
        self.driver = driver
        self.prompt = prompt
        self.options = options
        self.completion: ExecutionResponse | None = None

    async def __aiter__(self) -> AsyncIterator[str]:
        self.completion = None
        self.driver.logger.debug(
            "driver_stream_fallback",
            model=self.options.model,
            reason="streaming not supported, falling back to blocking execution",
        )
        try:
            completion = await self.driver._execute(self.prompt, self.options)
        except LlumiverseError:
            raise
        except Exception as e:
            raise self.driver._tag_error(e, self.options, "stream", self.prompt) from e

        completion.chunks = 1
        self.completion = completion
        yield render_results(completion.result)
