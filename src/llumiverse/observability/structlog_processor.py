"""Structlog processor correlating driver log events with the active span."""

from typing import Any

from llumiverse.observability.tracing import get_current_span_id, get_current_trace_id


def add_trace_context(
    logger: Any,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add ``trace_id`` and ``span_id`` to the event when a span is active.

    Events logged inside ``llm.execute`` or ``llm.stream`` then carry the ids
    of the exchange that produced them.
    """
    trace_id = get_current_trace_id()
    if trace_id is not None:
        event_dict["trace_id"] = trace_id
        event_dict["span_id"] = get_current_span_id()
    return event_dict
