"""Control handles shared by the listener backends."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from serverkit.infrastructure.observability import get_logger

logger = get_logger(__name__)


def format_address(host: str, port: int) -> str:
    """Render ``host:port``, bracketing IPv6 literals."""
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class ServerHandle:
    """Stop/control handle of a running listener.

    ``stop_graceful`` may be called any number of times from any task; only
    the first call has an effect. Handles linked with :meth:`link` are stopped
    together.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._stop_requested = False
        self._stopped = asyncio.Event()
        self._linked: list[ServerHandle] = []

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def link(self, other: "ServerHandle") -> None:
        self._linked.append(other)

    def stop_graceful(self, timeout: float | None = None) -> None:
        """Stop accepting connections and let in-flight requests finish.

        Args:
            timeout: Seconds to wait for in-flight requests before they are
                cut off. None leaves the deadline to the backend: uvicorn
                waits for as long as requests take, hypercorn cuts off after
                its default graceful timeout.
        """
        for other in self._linked:
            other.stop_graceful(timeout)
        if self._stop_requested or self.stopped:
            return
        self._stop_requested = True
        logger.info(f"Graceful stop of the {self.name} listener requested")
        self._request_stop(timeout)

    def _request_stop(self, timeout: float | None) -> None:
        raise NotImplementedError

    def mark_stopped(self, _task: "asyncio.Future | None" = None) -> None:
        self._stopped.set()

    async def wait_stopped(self) -> None:
        await self._stopped.wait()


@dataclass
class RunningServer:
    """A serving task with its control handle.

    ``addresses`` lists the bound ``(host, port)`` pairs; with port 0 in the
    configuration they carry the port picked by the OS. ``companions`` are
    auxiliary listeners (the HTTPS redirect) stopped together with this one.
    """

    task: asyncio.Task
    handle: ServerHandle
    addresses: list[tuple[str, int]] = field(default_factory=list)
    shutdown_task: asyncio.Task | None = None
    companions: list["RunningServer"] = field(default_factory=list)

    @property
    def port(self) -> int | None:
        return self.addresses[0][1] if self.addresses else None

    async def wait(self) -> None:
        """Wait for the server to finish; re-raises a serving failure."""
        await self.task
        for companion in self.companions:
            await companion.wait()
        if self.shutdown_task is not None and not self.shutdown_task.done():
            await self.shutdown_task


__all__ = ["RunningServer", "ServerHandle", "format_address"]
