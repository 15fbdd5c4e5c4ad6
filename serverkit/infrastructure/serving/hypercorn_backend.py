"""TLS (HTTP/2) and QUIC (HTTP/3) listeners served by hypercorn.

Sockets are created up front with ``Config.create_sockets`` and handed to
hypercorn's worker loop, the same split hypercorn uses for its own
multi-worker mode, so bind errors surface before the serving task starts.
QUIC sockets need the ``aioquic`` package (the ``http3`` capability).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from hypercorn.asyncio.run import worker_serve
from hypercorn.config import Config as HypercornConfig
from hypercorn.utils import wrap_app

from serverkit.errors import BindFailureError
from serverkit.infrastructure.observability import get_logger
from serverkit.infrastructure.tls import KeyCert

from .handle import ServerHandle

logger = get_logger(__name__)

ALPN_PROTOCOLS = ["h2", "http/1.1"]
# hypercorn's own default; its QUIC server only exits once this deadline passes.
DEFAULT_GRACEFUL_TIMEOUT = 5.0


class HypercornHandle(ServerHandle):
    def __init__(self, config: HypercornConfig, name: str = "https") -> None:
        super().__init__(name)
        self._config = config
        self._shutdown = asyncio.Event()

    async def shutdown_trigger(self) -> None:
        await self._shutdown.wait()

    def _request_stop(self, timeout: float | None) -> None:
        self._config.graceful_timeout = (
            DEFAULT_GRACEFUL_TIMEOUT if timeout is None else timeout)
        self._shutdown.set()


class HypercornListener:
    """Serve an ASGI app over TLS, QUIC, or both on the same address."""

    def __init__(
        self,
        app: Any,
        keycert: KeyCert,
        *,
        tcp_bind: str | None,
        quic_bind: str | None = None,
        name: str = "https",
    ) -> None:
        if tcp_bind is None and quic_bind is None:
            raise ValueError("at least one of tcp_bind and quic_bind is required")
        self.app = app
        self.name = name
        self.config = HypercornConfig()
        self.config.bind = [tcp_bind] if tcp_bind else []
        self.config.insecure_bind = []
        self.config.quic_bind = [quic_bind] if quic_bind else []
        self.config.certfile = str(keycert.cert_path)
        self.config.keyfile = str(keycert.key_path)
        self.config.alpn_protocols = list(ALPN_PROTOCOLS)
        self.config.accesslog = None
        self.config.errorlog = logging.getLogger("hypercorn.error")
        self.quic_port: int | None = None
        self._sockets: Any = None

    def bind(self) -> list[tuple[str, int]]:
        binds = self.config.bind + self.config.quic_bind
        try:
            self._sockets = self.config.create_sockets()
        except OSError as exc:
            raise BindFailureError(", ".join(binds), exc.strerror or str(exc)) from exc

        # create_sockets leaves TCP sockets unlistened until worker_serve starts.
        for sock in self._sockets.secure_sockets:
            sock.listen(self.config.backlog)

        bound = []
        for sock in [*self._sockets.secure_sockets, *self._sockets.quic_sockets]:
            host, port = sock.getsockname()[:2]
            bound.append((host, port))
        if self._sockets.quic_sockets:
            self.quic_port = bound[-1][1]
        return bound

    def serve(self) -> tuple[asyncio.Task, HypercornHandle]:
        if self._sockets is None:
            raise RuntimeError("bind() must be called before serve()")
        handle = HypercornHandle(self.config, self.name)
        task = asyncio.create_task(
            worker_serve(
                wrap_app(self.app, self.config.wsgi_max_body_size, "asgi"),
                self.config,
                sockets=self._sockets,
                shutdown_trigger=handle.shutdown_trigger,
            )
        )
        task.add_done_callback(handle.mark_stopped)
        schemes = []
        if self.config.bind:
            schemes.append(f"https://{self.config.bind[0]}")
        if self.config.quic_bind:
            schemes.append(f"quic://{self.config.quic_bind[0]}")
        logger.info(f"Listening on {' and '.join(schemes)}")
        return task, handle


__all__ = ["ALPN_PROTOCOLS", "DEFAULT_GRACEFUL_TIMEOUT", "HypercornHandle", "HypercornListener"]
