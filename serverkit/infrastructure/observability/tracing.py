"""OpenTelemetry tracing support for serverkit.

The telemetry sink of the logging pipeline exports spans over OTLP to the
configured ``open_telemetry_endpoint``. Log records become events on the
current span. Until the pipeline activates a provider, all tracing helpers
are no-ops.

Usage:
    from serverkit.infrastructure.observability import trace_span, traced

    with trace_span("bind_listener", variant="StaticTls"):
        # ... operation ...

    @traced("issue_certificate")
    async def issue(domain: str) -> KeyCert:
        ...
"""

from __future__ import annotations

import functools
import inspect
import logging
from contextlib import AbstractContextManager
from contextvars import ContextVar
from typing import Any, Callable, TypeVar

# The logging module imports this one for log/trace correlation.
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Type definitions
# ---------------------------------------------------------------------------

F = TypeVar("F", bound=Callable[..., Any])

MAX_EVENTS_PER_SPAN = 32
MAX_ATTRIBUTES_PER_SPAN = 64

# ---------------------------------------------------------------------------
# Tracing state
# ---------------------------------------------------------------------------

_tracer: Any = None
_tracing_enabled: bool = False

# Context variable for trace/span IDs (used for log correlation)
_trace_context: ContextVar[dict[str, str]] = ContextVar(
    "trace_context", default={}
)


def get_trace_context() -> dict[str, str]:
    """Get current trace context for log correlation."""
    return _trace_context.get()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def build_tracer_provider(
    service_name: str,
    endpoint: str | None,
    *,
    exporter: Any = None,
) -> Any:
    """Create a tracer provider exporting spans for ``service_name``.

    Args:
        service_name: Value of the ``service.name`` resource attribute.
        endpoint: OTLP gRPC endpoint (e.g. "http://localhost:4317").
        exporter: Span exporter to use instead of OTLP (tests).

    Returns:
        An ``opentelemetry.sdk.trace.TracerProvider`` exporting from a
        background batch processor; call ``force_flush`` to export now.
    """
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import SpanLimits, TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.trace.id_generator import RandomIdGenerator

    if exporter is None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        exporter = OTLPSpanExporter(endpoint=endpoint)

    provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: service_name}),
        id_generator=RandomIdGenerator(),
        span_limits=SpanLimits(
            max_events=MAX_EVENTS_PER_SPAN,
            max_span_attributes=MAX_ATTRIBUTES_PER_SPAN,
        ),
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def activate_tracing(provider: Any, service_name: str) -> None:
    """Make ``provider`` the source of spans for the tracing helpers."""
    global _tracer, _tracing_enabled

    _tracer = provider.get_tracer(service_name)
    _tracing_enabled = True
    logger.info(f"Tracing enabled for service '{service_name}'")


def deactivate_tracing() -> None:
    global _tracer, _tracing_enabled

    _tracer = None
    _tracing_enabled = False


class SpanEventHandler(logging.Handler):
    """Logging handler recording each record as an event on the current span.

    When no span is recording, a short span named after the logger carries
    the event so the record still reaches the exporter. Records logged while
    instrumentation is suppressed (the exporter's own export calls) are
    ignored so a failing export cannot feed itself.
    """

    def __init__(self, tracer: Any, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.tracer = tracer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            from opentelemetry import trace
            from opentelemetry.context import _SUPPRESS_INSTRUMENTATION_KEY, get_value

            if get_value(_SUPPRESS_INSTRUMENTATION_KEY):
                return

            attributes = {
                "log.severity": record.levelname,
                "log.logger": record.name,
                "code.function": record.funcName,
                "code.lineno": record.lineno,
            }
            message = record.getMessage()
            span = trace.get_current_span()
            if span.is_recording():
                span.add_event(message, attributes=attributes)
                return
            with self.tracer.start_as_current_span(record.name) as span:
                span.add_event(message, attributes=attributes)
        except Exception:
            self.handleError(record)


# ---------------------------------------------------------------------------
# Tracing helpers
# ---------------------------------------------------------------------------


class trace_span(AbstractContextManager):
    def __init__(self, name: str, *, kind: str = "internal", **attributes: Any):
        self.name = name
        self.kind = kind
        self.attributes = attributes
        self.span = None
        self.ctx_token = None

    def __enter__(self):
        if not _tracing_enabled or _tracer is None:
            return None
        from opentelemetry.trace import SpanKind

        kind_map = {
            "internal": SpanKind.INTERNAL,
            "server": SpanKind.SERVER,
            "client": SpanKind.CLIENT,
            "producer": SpanKind.PRODUCER,
            "consumer": SpanKind.CONSUMER,
        }
        span_kind = kind_map.get(self.kind, SpanKind.INTERNAL)
        # Failures are recorded once, by record_exception in __exit__.
        self.span_ctx = _tracer.start_as_current_span(
            self.name,
            kind=span_kind,
            record_exception=False,
            set_status_on_exception=False,
        )
        self.span = self.span_ctx.__enter__()
        for key, value in self.attributes.items():
            if value is not None:
                self.span.set_attribute(key, str(value))
        ctx = self.span.get_span_context()
        if ctx.is_valid:
            self.ctx_token = _trace_context.set({
                "trace_id": format(ctx.trace_id, "032x"),
                "span_id": format(ctx.span_id, "016x"),
            })
        return self.span

    def __exit__(self, exc_type, exc_value, traceback):
        if self.ctx_token is not None:
            _trace_context.reset(self.ctx_token)
        if self.span is not None and exc_value is not None:
            record_exception(exc_value)
        if hasattr(self, "span_ctx"):
            self.span_ctx.__exit__(exc_type, exc_value, traceback)
        return False


def traced(
    name: str | None = None,
    *,
    kind: str = "internal",
) -> Callable[[F], F]:
    """Decorator to trace a function.

    Args:
        name: Span name (defaults to function name).
        kind: Span kind.

    Example:
        @traced("load_config")
        async def load_config(app_name: str) -> ServerSettings:
            ...
    """
    def decorator(func: F) -> F:
        span_name = name or func.__name__

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace_span(span_name, kind=kind):
                return func(*args, **kwargs)

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace_span(span_name, kind=kind):
                return await func(*args, **kwargs)

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator


def add_span_event(name: str, **attributes: Any) -> None:
    """Add an event to the current span.

    Args:
        name: Event name.
        **attributes: Event attributes.
    """
    if not _tracing_enabled:
        return

    from opentelemetry import trace

    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name, attributes=attributes)


def record_exception(exception: BaseException) -> None:
    """Record an exception on the current span and mark it failed."""
    if not _tracing_enabled:
        return

    from opentelemetry import trace

    span = trace.get_current_span()
    if span and span.is_recording():
        span.record_exception(exception)
        span.set_status(trace.Status(trace.StatusCode.ERROR))
