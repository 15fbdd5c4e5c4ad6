"""Logging utilities for serverkit.

This module provides the contextual formatting helpers used throughout the
project and the builder for the process-wide logging pipeline: up to three
independently levelled sinks (console, rotating file, OpenTelemetry) composed
on the root logger.
"""

from __future__ import annotations

import logging
import logging.handlers
import queue
import sys
import threading
import weakref
from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

from serverkit.domain.capabilities import Capabilities
from serverkit.errors import InvalidLevelError, InvalidRotationError, LogBackendInitError

from .tracing import get_trace_context

if TYPE_CHECKING:
    from serverkit.domain.models.settings import ServerSettings


TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"
DEFAULT_MAX_LOG_FILES = 5
DEFAULT_QUEUE_SIZE = 128_000

# Loggers of the serving stack; their records are dropped unless unfiltered.
FRAMEWORK_LOGGERS = (
    "uvicorn",
    "hypercorn",
    "starlette",
    "fastapi",
    "watchfiles",
    "aioquic",
    "h11",
    "h2",
    "wsproto",
    "asyncio",
)

# The span exporter logs through these; the telemetry sink never records them.
TELEMETRY_LOGGERS = ("opentelemetry", "grpc")


# ---------------------------------------------------------------------------
# Context variables for structured logging
# ---------------------------------------------------------------------------

_log_context: ContextVar[dict[str, Any]] = ContextVar(
    "log_context", default={})


def _current_fields() -> dict[str, Any]:
    return {**_log_context.get(), **get_trace_context()}


class ContextualFormatter(logging.Formatter):
    """Formatter that appends context fields to log messages.

    Context is taken from ``record.log_context`` when a handler stamped it
    (records crossing to the file sink's flush thread), otherwise from the
    current context. Inside a traced operation the ``trace_id`` and
    ``span_id`` are appended as well, so log lines can be matched to spans.
    """

    def formatMessage(self, record: logging.LogRecord) -> str:
        ctx = getattr(record, "log_context", None)
        if ctx is None:
            ctx = _current_fields()
        if not ctx:
            return super().formatMessage(record)
        ctx_str = " ".join(f"{k}={v}" for k, v in ctx.items())
        original = record.message
        record.message = f"{original} [{ctx_str}]"
        try:
            return super().formatMessage(record)
        finally:
            record.message = original


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Temporarily add context fields to all log messages.

    Usage::

        with log_context(app_name="billing", variant="StaticTls"):
            logger.info("Binding listener")  # message includes context

    Fields are merged with any existing context and restored on exit.
    """
    current = _log_context.get()
    merged = {**current, **fields}
    token = _log_context.set(merged)
    try:
        yield
    finally:
        _log_context.reset(token)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given name (typically ``__name__``)."""
    return logging.getLogger(name)


def log_exception(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    **context: Any,
) -> None:
    """Log an exception with context fields.

    Args:
        logger: Logger instance.
        message: Human-readable message describing the error.
        exc: The exception that was raised.
        **context: Additional context fields to include.
    """
    with log_context(**context):
        logger.error(f"{message}: {exc}")


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}


class Rotation(str, Enum):
    """File sink rotation policy."""

    NEVER = "never"
    DAILY = "daily"
    HOURLY = "hourly"
    MINUTELY = "minutely"

    @property
    def when(self) -> str | None:
        """``TimedRotatingFileHandler`` interval code, None for no rotation."""
        return {"daily": "D", "hourly": "H", "minutely": "M"}.get(self.value)


def parse_level(value: str) -> int:
    """Map ``error|warn|info|debug|trace`` to a logging level."""
    try:
        return _LEVELS[value]
    except KeyError:
        raise InvalidLevelError(value) from None


def parse_rotation(value: str | None) -> Rotation:
    """Map ``never|daily|hourly|minutely`` to a :class:`Rotation` (None is never)."""
    if value is None:
        return Rotation.NEVER
    try:
        return Rotation(value)
    except ValueError:
        raise InvalidRotationError(value) from None


# ---------------------------------------------------------------------------
# Filters and handlers
# ---------------------------------------------------------------------------


class FrameworkNoiseFilter(logging.Filter):
    """Drop records emitted by the serving framework's own modules."""

    def __init__(self, prefixes: tuple[str, ...] = FRAMEWORK_LOGGERS) -> None:
        super().__init__()
        self.prefixes = prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        return not any(
            name == prefix or name.startswith(prefix + ".") for prefix in self.prefixes
        )


class _ContextStamp(logging.Filter):
    """Copy the current log context onto the record before it changes threads."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "log_context"):
            record.log_context = _current_fields()
        return True


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that discards records when the flush queue is full."""

    def __init__(self, log_queue: queue.Queue) -> None:
        super().__init__(log_queue)
        self.dropped = 0

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


def _stop_flushing(
    listener: logging.handlers.QueueListener, handler: logging.Handler
) -> None:
    listener.stop()
    handler.close()


class LogGuard:
    """Ownership handle of the background file sink.

    The file sink flushes on a background thread for as long as the guard is
    alive. Closing the guard, or losing the last reference to it, drains the
    queue and stops file logging; nothing is reported when that happens.
    """

    def __init__(
        self,
        listener: logging.handlers.QueueListener,
        file_handler: logging.Handler,
        path: Path,
    ) -> None:
        self.path = path
        self._finalizer = weakref.finalize(
            self, _stop_flushing, listener, file_handler)

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def close(self) -> None:
        self._finalizer()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

_install_lock = threading.Lock()
_active_pipeline: "LoggingPipeline | None" = None


def active_pipeline() -> "LoggingPipeline | None":
    """Return the pipeline installed for this process, if any."""
    return _active_pipeline


class LoggingPipeline:
    """Composed sinks ready to be installed on the root logger."""

    def __init__(
        self,
        *,
        handlers: dict[str, logging.Handler],
        levels: dict[str, int],
        guard: LogGuard | None = None,
        tracer_provider: Any = None,
        service_name: str = "serverkit",
    ) -> None:
        self.handlers = handlers
        self.levels = levels
        self.guard = guard
        self.tracer_provider = tracer_provider
        self.service_name = service_name
        self._installed = False

    @property
    def sinks(self) -> list[str]:
        return list(self.handlers)

    def install(self) -> None:
        """Register the sinks as the process-wide logging backend.

        Raises:
            LogBackendInitError: a pipeline is already installed.
        """
        global _active_pipeline
        with _install_lock:
            if _active_pipeline is not None:
                raise LogBackendInitError(
                    "A logging backend is already installed for this process.")
            _active_pipeline = self
            self._installed = True

        root = logging.getLogger()
        if self.levels:
            root.setLevel(min(self.levels.values()))
        for handler in self.handlers.values():
            root.addHandler(handler)

        if self.tracer_provider is not None:
            from . import tracing

            tracing.activate_tracing(self.tracer_provider, self.service_name)

    def uninstall(self) -> None:
        """Detach the sinks, stop the file sink and release the registration."""
        global _active_pipeline
        root = logging.getLogger()
        for handler in self.handlers.values():
            root.removeHandler(handler)
        if self.guard is not None:
            self.guard.close()
        if self.tracer_provider is not None:
            from . import tracing

            tracing.deactivate_tracing()
            self.tracer_provider.shutdown()
        with _install_lock:
            if _active_pipeline is self:
                _active_pipeline = None
            self._installed = False


class LoggingPipelineBuilder:
    """Build the console, file and telemetry sinks from server settings.

    Level and rotation strings are parsed eagerly in the constructor so a
    misconfiguration surfaces before anything is created.
    """

    def __init__(
        self,
        settings: "ServerSettings",
        capabilities: Capabilities | None = None,
        *,
        span_exporter: Any = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.settings = settings
        self.capabilities = capabilities or Capabilities.detect()
        self.span_exporter = span_exporter
        self.queue_size = queue_size

        self.console_level: int | None
        if settings.log_level is not None:
            self.console_level = parse_level(settings.log_level)
        elif self.capabilities.debug:
            self.console_level = logging.DEBUG
        else:
            self.console_level = None

        self.file_level = (
            parse_level(settings.log_file_level)
            if settings.log_file_level is not None
            else None
        )
        self.rotation = parse_rotation(settings.log_rolling)

    def _filtered(self, handler: logging.Handler, level: int) -> logging.Handler:
        handler.setLevel(level)
        if not self.capabilities.unfiltered_logs:
            handler.addFilter(FrameworkNoiseFilter())
        return handler

    def _console_handler(self, level: int) -> logging.Handler:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ContextualFormatter(LOG_FORMAT))
        return self._filtered(handler, level)

    def _file_handler(self, path: Path) -> logging.Handler:
        when = self.rotation.when
        if when is None:
            return logging.FileHandler(path, encoding="utf-8")
        max_files = self.settings.log_rolling_max_files
        return logging.handlers.TimedRotatingFileHandler(
            path,
            when=when,
            backupCount=DEFAULT_MAX_LOG_FILES if max_files is None else max_files,
            encoding="utf-8",
        )

    def _file_sink(self, level: int) -> tuple[logging.Handler, LogGuard]:
        path = Path(self.settings.log_dir) / f"{self.settings.app_name}.log"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = self._file_handler(path)
        except OSError as exc:
            raise LogBackendInitError(
                f"Failed to initialize logging to file {path}: {exc}") from exc
        file_handler.setFormatter(ContextualFormatter(LOG_FORMAT))

        log_queue: queue.Queue = queue.Queue(maxsize=self.queue_size)
        queue_handler = _DroppingQueueHandler(log_queue)
        queue_handler.addFilter(_ContextStamp())
        listener = logging.handlers.QueueListener(log_queue, file_handler)
        listener.start()
        return self._filtered(queue_handler, level), LogGuard(listener, file_handler, path)

    def _telemetry_sink(self, level: int) -> tuple[logging.Handler, Any]:
        from . import tracing

        provider = tracing.build_tracer_provider(
            self.settings.app_name,
            self.settings.open_telemetry_endpoint,
            exporter=self.span_exporter,
        )
        handler = tracing.SpanEventHandler(
            provider.get_tracer(self.settings.app_name))
        handler.addFilter(FrameworkNoiseFilter(TELEMETRY_LOGGERS))
        return self._filtered(handler, level), provider

    def build(self) -> LoggingPipeline:
        handlers: dict[str, logging.Handler] = {}
        levels: dict[str, int] = {}
        guard: LogGuard | None = None
        provider: Any = None

        if self.console_level is not None:
            handlers["console"] = self._console_handler(self.console_level)
            levels["console"] = self.console_level

        if self.file_level is not None:
            handlers["file"], guard = self._file_sink(self.file_level)
            levels["file"] = self.file_level

        if (
            self.capabilities.otel
            and self.settings.open_telemetry_endpoint
            and self.console_level is not None
        ):
            handlers["telemetry"], provider = self._telemetry_sink(
                self.console_level)
            levels["telemetry"] = self.console_level

        return LoggingPipeline(
            handlers=handlers,
            levels=levels,
            guard=guard,
            tracer_provider=provider,
            service_name=self.settings.app_name,
        )


def configure_logging(
    settings: "ServerSettings",
    capabilities: Capabilities | None = None,
    **builder_options: Any,
) -> LoggingPipeline:
    """Build the pipeline for ``settings`` and install it.

    Call this once at startup; a second call in the same process raises
    :class:`LogBackendInitError`.
    """
    pipeline = LoggingPipelineBuilder(
        settings, capabilities, **builder_options).build()
    try:
        pipeline.install()
    except LogBackendInitError:
        if pipeline.guard is not None:
            pipeline.guard.close()
        raise
    return pipeline


__all__ = [
    "ContextualFormatter",
    "FrameworkNoiseFilter",
    "TELEMETRY_LOGGERS",
    "LogGuard",
    "LoggingPipeline",
    "LoggingPipelineBuilder",
    "Rotation",
    "TRACE",
    "active_pipeline",
    "configure_logging",
    "get_logger",
    "log_context",
    "log_exception",
    "parse_level",
    "parse_rotation",
]
