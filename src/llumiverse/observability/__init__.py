"""OpenTelemetry tracing and structlog configuration for llumiverse drivers."""

from llumiverse.observability.setup import (
    init_observability,
    shutdown_observability,
)
from llumiverse.observability.structlog_processor import add_trace_context
from llumiverse.observability.tracing import (
    add_span_attributes,
    get_current_span_id,
    get_current_trace_id,
    get_tracer,
    traced,
)

__all__ = [
    "add_span_attributes",
    "add_trace_context",
    "get_current_span_id",
    "get_current_trace_id",
    "get_tracer",
    "init_observability",
    "shutdown_observability",
    "traced",
]
