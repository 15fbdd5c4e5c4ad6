"""Plain HTTP/1.1 listeners served by uvicorn."""

from __future__ import annotations

import asyncio
import contextlib
import socket
from typing import Any, Iterator

import uvicorn

from serverkit.errors import BindFailureError
from serverkit.infrastructure.observability import get_logger

from .handle import ServerHandle, format_address

logger = get_logger(__name__)


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the shutdown coordinator."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class UvicornHandle(ServerHandle):
    def __init__(self, server: uvicorn.Server, name: str = "http") -> None:
        super().__init__(name)
        self._server = server

    def _request_stop(self, timeout: float | None) -> None:
        self._server.config.timeout_graceful_shutdown = timeout
        self._server.should_exit = True


def bind_tcp(host: str, port: int) -> socket.socket:
    """Create a listening TCP socket.

    Raises:
        BindFailureError: the address cannot be resolved or bound.
    """
    address = format_address(host, port)
    try:
        family = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)[0][0]
        return socket.create_server((host, port), family=family)
    except OSError as exc:
        raise BindFailureError(address, exc.strerror or str(exc)) from exc


class UvicornListener:
    """Bind eagerly, then serve an ASGI app over plain HTTP."""

    def __init__(
        self,
        app: Any,
        host: str,
        port: int,
        *,
        name: str = "http",
        lifespan: str = "auto",
    ) -> None:
        self.host = host
        self.port = port
        self.name = name
        self.config = uvicorn.Config(
            app,
            host=host,
            port=port,
            lifespan=lifespan,
            log_config=None,
        )
        self._socket: socket.socket | None = None

    def bind(self) -> list[tuple[str, int]]:
        self._socket = bind_tcp(self.host, self.port)
        bound = self._socket.getsockname()
        return [(self.host, bound[1])]

    def serve(self) -> tuple[asyncio.Task, UvicornHandle]:
        if self._socket is None:
            raise RuntimeError("bind() must be called before serve()")
        server = _EmbeddedServer(self.config)
        handle = UvicornHandle(server, self.name)
        task = asyncio.create_task(server.serve(sockets=[self._socket]))
        task.add_done_callback(handle.mark_stopped)
        logger.info(f"Listening on http://{format_address(self.host, self._socket.getsockname()[1])}")
        return task, handle


__all__ = ["UvicornHandle", "UvicornListener", "bind_tcp"]
