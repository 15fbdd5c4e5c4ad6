"""Observability and logging facades."""

from .logging import (
    TRACE,
    LogGuard,
    LoggingPipeline,
    LoggingPipelineBuilder,
    Rotation,
    active_pipeline,
    configure_logging,
    get_logger,
    log_context,
    log_exception,
    parse_level,
    parse_rotation,
)
from .tracing import (
    add_span_event,
    get_trace_context,
    record_exception,
    trace_span,
    traced,
)

__all__ = [
    # Logging
    "TRACE",
    "LogGuard",
    "LoggingPipeline",
    "LoggingPipelineBuilder",
    "Rotation",
    "active_pipeline",
    "configure_logging",
    "get_logger",
    "log_context",
    "log_exception",
    "parse_level",
    "parse_rotation",
    # Tracing
    "add_span_event",
    "get_trace_context",
    "record_exception",
    "trace_span",
    "traced",
]
