"""Error classification for driver failures.

Converts an arbitrary raised error plus its call context into one
``LlumiverseError`` carrying a tri-state retry verdict.

The verdict is:
- driven by the numeric status code when one is available
- otherwise derived from case-insensitive message heuristics
- UNKNOWN when nothing matches

Message heuristics are a best effort: a message that merely mentions a
timeout in an unrelated sentence is still classified as retryable.
"""

from collections.abc import Callable, Mapping

from llumiverse.core.exceptions import ErrorContext, LlumiverseError, Retryable

RetryClassifier = Callable[[int | None, str], Retryable]

_STATUS_LOCATIONS = ("status", "status_code", "statusCode", "code")


def _lookup(error: object, key: str) -> object:
    if isinstance(error, Mapping):
        return error.get(key)
    return getattr(error, key, None)


def _as_status(value: object) -> int | None:
    # bool is an int subclass and never a status code
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def extract_status_code(error: object) -> int | None:
    """Return the numeric status code carried by an error, if any."""
    for key in _STATUS_LOCATIONS:
        status = _as_status(_lookup(error, key))
        if status is not None:
            return status

    response = _lookup(error, "response")
    if response is not None:
        return _as_status(_lookup(response, "status_code"))
    return None


def extract_error_name(error: object) -> str | None:
    """Return the error name, preferring an explicit ``name`` field."""
    name = _lookup(error, "name")
    if isinstance(name, str) and name:
        return name
    if isinstance(error, BaseException):
        return type(error).__name__
    return None


def extract_error_message(error: object) -> str:
    """Return a human readable message for any raised value."""
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    message = _lookup(error, "message")
    if isinstance(message, str) and message:
        return message
    return str(error)


def _has_all(text: str, *needles: str) -> bool:
    return all(needle in text for needle in needles)


def is_retryable_error(code: int | None, message: str) -> Retryable:
    """Decide whether an error with this status code and message is retryable.

    A numeric status code always takes precedence over the message.
    """
    if code is not None:
        if code in (429, 408, 529):
            return Retryable.RETRYABLE
        if 500 <= code <= 599:
            return Retryable.RETRYABLE
        return Retryable.NOT_RETRYABLE

    text = message.lower()
    if (
        _has_all(text, "rate", "limit")
        or "timeout" in text
        or _has_all(text, "timed", "out")
        or _has_all(text, "time", "out")
        or _has_all(text, "resource", "exhaust")
        or "retry" in text
        or "overload" in text
        or "throttl" in text
        or "429" in text
        or "529" in text
    ):
        return Retryable.RETRYABLE

    return Retryable.UNKNOWN


def format_llumiverse_error(
    error: object,
    context: ErrorContext,
    *,
    classify: RetryClassifier = is_retryable_error,
) -> LlumiverseError:
    """Normalize a raised value into a ``LlumiverseError``.

    An error that is already a ``LlumiverseError`` is returned unchanged.

    Args:
        error: The raised value as first observed.
        context: Provider, model, operation and prompt of the failed call.
        classify: Retry classifier, overridable per backend.

    Returns:
        The normalized error. The caller is responsible for raising it.
    """
    if isinstance(error, LlumiverseError):
        return error

    code = extract_status_code(error)
    message = extract_error_message(error)

    return LlumiverseError(
        f"[{context.provider}] {message}",
        retryable=classify(code, message),
        context=context,
        original_error=error,
        code=code,
        name=extract_error_name(error),
    )
