"""Logging, tracing and metrics shared by the index and search layers."""

from hister.observability.context import get_trace_context, set_trace_context, trace_context
from hister.observability.logging import JsonFormatter, configure_logging
from hister.observability.metrics import (
    DOCUMENTS,
    ERROR_COUNT,
    INDEX_DOC_COUNT,
    OPERATION_LATENCY,
    get_metrics,
    init_metrics,
    track_latency,
)
from hister.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "DOCUMENTS",
    "ERROR_COUNT",
    "INDEX_DOC_COUNT",
    "OPERATION_LATENCY",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_tracer",
    "get_trace_context",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
