"""Wait for an external process to publish the listening port in a file.

When ``server_port_achiever`` is configured the final port is decided by
another process (a supervisor, a port allocator) that writes it to a plain
text file. :class:`PortWatcher` watches that file and returns the first value
that parses as a port.

Filesystem events are produced by ``watchfiles.awatch`` in its own task and
handed to the consumer through a bounded ``asyncio.Queue``; the producer
awaits ``put`` so backpressure never blocks the watcher thread.
"""

from __future__ import annotations

import asyncio
import re
from contextlib import suppress
from pathlib import Path

from watchfiles import Change, awatch

from serverkit.errors import WatchFailureError
from serverkit.infrastructure.observability import get_logger

logger = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 16
_PORT_RE = re.compile(r"\+?[0-9]+")
_ACCEPTED_CHANGES = (Change.added, Change.modified)


def parse_port(text: str) -> int | None:
    """Return the port in ``text`` or None when it is not a valid u16."""
    value = text.strip()
    if not _PORT_RE.fullmatch(value):
        return None
    port = int(value)
    if port > 65535:
        return None
    return port


class PortWatcher:
    """Watch ``path`` until it contains a valid port number."""

    def __init__(
        self,
        path: Path | str,
        *,
        timeout: float | None = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self.queue_size = queue_size

    async def wait(self) -> int:
        """Block until a port is written; no timeout unless one was given.

        Raises:
            WatchFailureError: the watch could not be set up or failed, or the
                optional timeout elapsed.
        """
        stop_event = asyncio.Event()
        events: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        producer = asyncio.create_task(self._produce(events, stop_event))
        logger.info(f"Waiting for the server port to be written to {self.path}")
        try:
            if self.timeout is None:
                return await self._consume(events)
            try:
                return await asyncio.wait_for(self._consume(events), self.timeout)
            except asyncio.TimeoutError:
                raise WatchFailureError(
                    f"No valid port was written to {self.path} within {self.timeout}s."
                ) from None
        finally:
            stop_event.set()
            producer.cancel()
            with suppress(asyncio.CancelledError):
                await producer

    async def _produce(self, events: asyncio.Queue, stop_event: asyncio.Event) -> None:
        try:
            async for changes in awatch(
                self.path,
                watch_filter=None,
                stop_event=stop_event,
                recursive=False,
            ):
                await events.put(changes)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await events.put(exc)
            return
        await events.put(None)

    async def _consume(self, events: asyncio.Queue) -> int:
        # Items are change batches, the exception that ended the producer, or
        # None once the event stream closed.
        while True:
            item = await events.get()
            if isinstance(item, BaseException):
                logger.error(f"Watch error: {item!r}")
                raise WatchFailureError(
                    f"Failed to watch {self.path}: {item}") from item
            if item is None:
                raise WatchFailureError(
                    f"The event stream for {self.path} closed before a port was written.")
            if not any(change in _ACCEPTED_CHANGES for change, _ in item):
                continue
            port = self._read_port()
            if port is not None:
                logger.info(f"Server port {port} read from {self.path}")
                return port
            logger.debug(f"Ignoring contents of {self.path}: not a port number")

    def _read_port(self) -> int | None:
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None
        return parse_port(text)


async def watch_port(path: Path | str, *, timeout: float | None = None) -> int:
    """Shortcut for ``PortWatcher(path, timeout=timeout).wait()``."""
    return await PortWatcher(path, timeout=timeout).wait()


__all__ = ["PortWatcher", "parse_port", "watch_port"]
