"""Span helpers used by drivers around backend requests."""

import asyncio
from collections.abc import Callable, Mapping
from functools import wraps
from typing import Any, ParamSpec, TypeVar, overload

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode, Tracer

P = ParamSpec("P")
R = TypeVar("R")

AttributeValue = str | int | float | bool


def get_tracer(name: str) -> Tracer:
    """Return the tracer for a module, typically called with ``__name__``."""
    return trace.get_tracer(name)


def add_span_attributes(attributes: Mapping[str, AttributeValue | None]) -> None:
    """Set attributes on the current span, skipping ``None`` values.

    Args:
        attributes: Key-value pairs such as ``{"llm.tokens.prompt": 12}``.
    """
    span = trace.get_current_span()
    if not span.is_recording():
        return
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, value)


def get_current_trace_id() -> str | None:
    """Return the active trace id as 32 hex characters, or None outside a span."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return format(span_context.trace_id, "032x")
    return None


def get_current_span_id() -> str | None:
    """Return the active span id as 16 hex characters, or None outside a span."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return format(span_context.span_id, "016x")
    return None


@overload
def traced(  # noqa: UP047
    func: Callable[P, R],
) -> Callable[P, R]: ...


@overload
def traced(
    func: None = None,
    *,
    span_name: str | None = None,
    attributes: dict[str, AttributeValue] | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]: ...


def traced(  # noqa: UP047
    func: Callable[P, R] | None = None,
    *,
    span_name: str | None = None,
    attributes: dict[str, AttributeValue] | None = None,
) -> Callable[P, R] | Callable[[Callable[P, R]], Callable[P, R]]:
    """Run a function inside a span, with or without parentheses.

    The span is marked as failed and the exception recorded before it
    propagates.

    Examples:
        @traced(span_name="llm.list_models", attributes={"llm.provider": "openai"})
        async def list_models(self):
            ...
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        tracer = get_tracer(fn.__module__)
        name = span_name or fn.__qualname__

        def start(span: Any) -> None:
            for key, value in (attributes or {}).items():
                span.set_attribute(key, value)

        def fail(span: Any, error: Exception) -> None:
            span.record_exception(error)
            span.set_status(Status(StatusCode.ERROR, str(error)))

        if asyncio.iscoroutinefunction(fn):

            @wraps(fn)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                with tracer.start_as_current_span(
                    name, record_exception=False, set_status_on_exception=False
                ) as span:
                    start(span)
                    try:
                        return await fn(*args, **kwargs)
                    except Exception as e:
                        fail(span, e)
                        raise

            return async_wrapper  # type: ignore[return-value]

        @wraps(fn)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with tracer.start_as_current_span(
                name, record_exception=False, set_status_on_exception=False
            ) as span:
                start(span)
                try:
                    return fn(*args, **kwargs)
                except Exception as e:
                    fail(span, e)
                    raise

        return sync_wrapper

    if func is not None:
        return decorator(func)
    return decorator
