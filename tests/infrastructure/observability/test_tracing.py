"""Tests for OpenTelemetry tracing module."""

import asyncio
import logging

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from serverkit.infrastructure.observability.logging import ContextualFormatter
from serverkit.infrastructure.observability.tracing import (
    MAX_EVENTS_PER_SPAN,
    SpanEventHandler,
    activate_tracing,
    add_span_event,
    build_tracer_provider,
    deactivate_tracing,
    get_trace_context,
    record_exception,
    trace_span,
    traced,
)


class Spans:
    """In-memory exporter behind an active provider."""

    def __init__(self) -> None:
        self.exporter = InMemorySpanExporter()
        self.provider = build_tracer_provider("billing", None, exporter=self.exporter)

    def finished(self):
        self.provider.force_flush()
        return self.exporter.get_finished_spans()


@pytest.fixture
def spans():
    spans = Spans()
    activate_tracing(spans.provider, "billing")
    yield spans
    deactivate_tracing()
    spans.provider.shutdown()


class TestTracingDisabled:
    """Tests when no provider is active (default state)."""

    def test_trace_span_noop_when_disabled(self):
        """trace_span yields None when tracing is disabled."""
        with trace_span("test_span", key="value") as span:
            assert span is None

    def test_traced_decorator_works_when_disabled(self):
        @traced("test_function")
        def my_function(x: int) -> int:
            return x * 2

        assert my_function(21) == 42

    def test_traced_decorator_async_works_when_disabled(self):
        @traced("async_function")
        async def my_async_function(x: int) -> int:
            return x * 2

        assert asyncio.run(my_async_function(21)) == 42

    def test_get_trace_context_empty_when_disabled(self):
        assert get_trace_context() == {}

    def test_helpers_noop_when_disabled(self):
        # Should not raise
        add_span_event("test_event", key="value")
        record_exception(ValueError("test error"))


class TestTracingEnabled:
    def test_span_is_exported_with_attributes(self, spans):
        with trace_span("server.start", variant="StaticTls") as span:
            assert span is not None
            assert set(get_trace_context()) == {"trace_id", "span_id"}

        (finished,) = spans.finished()
        assert finished.name == "server.start"
        assert finished.attributes["variant"] == "StaticTls"
        assert finished.resource.attributes["service.name"] == "billing"
        assert get_trace_context() == {}

    def test_traced_async_function(self, spans):
        @traced("acme.obtain")
        async def obtain() -> str:
            add_span_event("certbot.finished", status=0)
            return "ok"

        assert asyncio.run(obtain()) == "ok"
        (finished,) = spans.finished()
        assert finished.name == "acme.obtain"
        assert [event.name for event in finished.events] == ["certbot.finished"]

    def test_record_exception_marks_span_failed(self, spans):
        from opentelemetry.trace import StatusCode

        with trace_span("bind"):
            record_exception(OSError("address in use"))

        (finished,) = spans.finished()
        assert finished.status.status_code is StatusCode.ERROR

    def test_failing_span_records_exception_once(self, spans):
        from opentelemetry.trace import StatusCode

        with pytest.raises(OSError):
            with trace_span("bind"):
                raise OSError("address in use")

        (finished,) = spans.finished()
        assert finished.status.status_code is StatusCode.ERROR
        assert [event.name for event in finished.events] == ["exception"]

    def test_span_event_limit(self, spans):
        with trace_span("chatty"):
            for i in range(MAX_EVENTS_PER_SPAN + 10):
                add_span_event(f"event-{i}")

        (finished,) = spans.finished()
        assert len(finished.events) == MAX_EVENTS_PER_SPAN

    def test_log_lines_carry_trace_ids(self, spans):
        formatter = ContextualFormatter("%(message)s")
        record = logging.LogRecord("billing", logging.INFO, __file__, 1, "bound", None, None)

        with trace_span("server.start"):
            ids = get_trace_context()
            line = formatter.format(record)

        assert line == f"bound [trace_id={ids['trace_id']} span_id={ids['span_id']}]"
        assert formatter.format(record) == "bound"


class TestSpanEventHandler:
    def _handler(self, spans):
        return SpanEventHandler(spans.provider.get_tracer("billing"))

    def test_record_without_span_gets_own_span(self):
        spans = Spans()
        handler = self._handler(spans)
        record = logging.LogRecord("billing.api", logging.WARNING, __file__, 3, "slow", None, None)

        handler.emit(record)

        (finished,) = spans.finished()
        assert finished.name == "billing.api"
        assert finished.events[0].name == "slow"
        assert finished.events[0].attributes["log.severity"] == "WARNING"
        spans.provider.shutdown()

    def test_record_joins_current_span(self):
        spans = Spans()
        handler = self._handler(spans)
        tracer = spans.provider.get_tracer("billing")
        record = logging.LogRecord("billing", logging.INFO, __file__, 3, "inside", None, None)

        with tracer.start_as_current_span("request"):
            handler.emit(record)

        (finished,) = spans.finished()
        assert finished.name == "request"
        assert [event.name for event in finished.events] == ["inside"]
        spans.provider.shutdown()

    def test_records_during_export_are_ignored(self):
        from opentelemetry.context import (
            _SUPPRESS_INSTRUMENTATION_KEY,
            attach,
            detach,
            set_value,
        )

        spans = Spans()
        handler = self._handler(spans)
        record = logging.LogRecord(
            "billing", logging.WARNING, __file__, 3, "Transient error, retrying", None, None)

        token = attach(set_value(_SUPPRESS_INSTRUMENTATION_KEY, True))
        try:
            handler.emit(record)
        finally:
            detach(token)

        assert spans.finished() == ()
        spans.provider.shutdown()
