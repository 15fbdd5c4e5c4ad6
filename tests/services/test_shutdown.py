from __future__ import annotations

import asyncio
import os
import signal

import pytest

from serverkit.infrastructure.serving import ServerHandle
from serverkit.services import ShutdownCoordinator


class RecordingHandle(ServerHandle):
    def __init__(self) -> None:
        super().__init__("test")
        self.timeouts: list[float | None] = []

    def _request_stop(self, timeout):
        self.timeouts.append(timeout)
        self.mark_stopped()


def test_trigger_stops_server():
    async def scenario():
        handle = RecordingHandle()
        release = asyncio.Event()
        coordinator = ShutdownCoordinator(handle, signals=(), timeout=5)
        coordinator.add_trigger(release.wait)
        waiting = asyncio.create_task(coordinator.wait())
        await asyncio.sleep(0)
        release.set()
        return await waiting, handle

    reason, handle = asyncio.run(scenario())

    assert reason == "trigger"
    assert handle.timeouts == [5]
    assert handle.stopped


def test_server_stopping_on_its_own_needs_no_stop():
    async def scenario():
        handle = RecordingHandle()
        coordinator = ShutdownCoordinator(handle, signals=())
        coordinator.add_trigger(lambda: asyncio.sleep(3600))
        waiting = asyncio.create_task(coordinator.wait())
        await asyncio.sleep(0)
        handle.mark_stopped()
        return await waiting, handle

    reason, handle = asyncio.run(scenario())

    assert reason == "stopped"
    assert handle.timeouts == []
    assert not handle.stop_requested


def test_failing_trigger_still_shuts_down():
    async def broken():
        raise RuntimeError("health check crashed")

    async def scenario():
        handle = RecordingHandle()
        coordinator = ShutdownCoordinator(handle, signals=())
        coordinator.add_trigger(broken)
        return await coordinator.wait(), handle

    reason, handle = asyncio.run(scenario())

    assert reason == "trigger"
    assert handle.timeouts == [None]


@pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="POSIX signals required")
def test_signal_stops_server_and_handler_is_removed():
    async def scenario():
        handle = RecordingHandle()
        coordinator = ShutdownCoordinator(handle, signals=(signal.SIGUSR1,))
        waiting = asyncio.create_task(coordinator.wait())
        await asyncio.sleep(0.05)
        os.kill(os.getpid(), signal.SIGUSR1)
        reason = await asyncio.wait_for(waiting, 5)
        return reason, handle

    previous = signal.getsignal(signal.SIGUSR1)
    try:
        reason, handle = asyncio.run(scenario())
    finally:
        signal.signal(signal.SIGUSR1, previous)

    assert reason == "signal:SIGUSR1"
    assert handle.stop_requested


def test_stop_graceful_is_idempotent_and_stops_linked_handles():
    main, redirect = RecordingHandle(), RecordingHandle()
    main.link(redirect)

    async def scenario():
        main.stop_graceful(3)
        main.stop_graceful(3)
        redirect.stop_graceful()

    asyncio.run(scenario())

    assert main.timeouts == [3]
    assert redirect.timeouts == [3]
