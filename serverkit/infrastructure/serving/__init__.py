"""Listener backends: uvicorn for plain HTTP, hypercorn for TLS and QUIC."""

from .handle import RunningServer, ServerHandle, format_address
from .hypercorn_backend import HypercornHandle, HypercornListener
from .uvicorn_backend import UvicornHandle, UvicornListener, bind_tcp

__all__ = [
    "HypercornHandle",
    "HypercornListener",
    "RunningServer",
    "ServerHandle",
    "UvicornHandle",
    "UvicornListener",
    "bind_tcp",
    "format_address",
]
