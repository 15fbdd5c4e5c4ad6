"""Graceful shutdown on signals or caller-supplied triggers."""

from __future__ import annotations

import asyncio
import signal
from typing import Any, Awaitable, Callable, Sequence

from serverkit.infrastructure.observability import get_logger
from serverkit.infrastructure.serving import ServerHandle

logger = get_logger(__name__)

TriggerFactory = Callable[[], Awaitable[Any]]

REASON_STOPPED = "stopped"
REASON_TRIGGER = "trigger"


class ShutdownCoordinator:
    """Stop a running server when the first shutdown condition fires.

    Conditions raced against each other: one of ``signals`` being delivered,
    any trigger added with :meth:`add_trigger` completing, and the server
    stopping on its own. Only a signal or trigger causes a graceful stop.

    Example:
        coordinator = ShutdownCoordinator(server.handle, timeout=30)
        coordinator.add_trigger(lambda: deploy_finished.wait())
        reason = await coordinator.wait()
    """

    def __init__(
        self,
        handle: ServerHandle,
        *,
        signals: Sequence[signal.Signals] = (signal.SIGINT,),
        timeout: float | None = None,
    ) -> None:
        self.handle = handle
        self.signals = tuple(signals)
        self.timeout = timeout
        self._triggers: list[TriggerFactory] = []

    def add_trigger(self, trigger: TriggerFactory) -> "ShutdownCoordinator":
        """Add a callable returning an awaitable; its completion stops the server."""
        self._triggers.append(trigger)
        return self

    def _install_signal_handlers(
        self, loop: asyncio.AbstractEventLoop, received: asyncio.Future
    ) -> list[signal.Signals]:
        def on_signal(sig: signal.Signals) -> None:
            if not received.done():
                received.set_result(sig)

        installed = []
        for sig in self.signals:
            try:
                loop.add_signal_handler(sig, on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as exc:
                logger.warning(f"Cannot listen for {sig.name}: {exc}")
                continue
            installed.append(sig)
        return installed

    async def wait(self) -> str:
        """Wait for the first shutdown condition and return its reason.

        The reason is ``"signal:<NAME>"``, ``"trigger"`` or ``"stopped"``.
        """
        loop = asyncio.get_running_loop()
        received: asyncio.Future = loop.create_future()
        installed = self._install_signal_handlers(loop, received)

        stopped = asyncio.ensure_future(self.handle.wait_stopped())
        triggers = [asyncio.ensure_future(factory()) for factory in self._triggers]
        waiters = [received, stopped, *triggers]
        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if received in done:
            reason = f"signal:{received.result().name}"
        elif any(trigger in done for trigger in triggers):
            reason = REASON_TRIGGER
            for trigger in triggers:
                if trigger in done and not trigger.cancelled() and trigger.exception():
                    logger.warning(f"Shutdown trigger failed: {trigger.exception()}")
        else:
            logger.info(f"The {self.handle.name} listener stopped on its own")
            return REASON_STOPPED

        logger.info(f"Shutting down ({reason})")
        self.handle.stop_graceful(self.timeout)
        return reason


__all__ = ["ShutdownCoordinator", "TriggerFactory"]
