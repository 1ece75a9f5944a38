"""Helpers shared by blocking and streamed completions."""

import json
from collections.abc import Iterable

from llumiverse.core.types import Completion, CompletionResult, ResultType

IMAGE_PREVIEW_LENGTH = 10


def render_result(result: CompletionResult) -> str:
    """Render one completion result as streamed text."""
    if result.type is ResultType.TEXT:
        return str(result.value)
    if result.type is ResultType.JSON:
        return json.dumps(result.value)
    if result.type is ResultType.IMAGE:
        return f"[Image: {str(result.value)[:IMAGE_PREVIEW_LENGTH]}...]"
    return str(result.value or "")


def render_results(results: Iterable[CompletionResult]) -> str:
    return "".join(render_result(r) for r in results)


def normalize_finish_reason(completion: Completion) -> None:
    """Make ``finish_reason`` report a tool call exactly when tools were called."""
    if completion.tool_use:
        completion.finish_reason = "tool_use"
    elif completion.finish_reason == "tool_use":
        completion.finish_reason = "stop"
