"""
serverkit package initializer.

This package turns a declarative YAML configuration into a validated, running
ASGI service: plain HTTP, TLS (HTTP/2) or QUIC (HTTP/3), with static or
ACME-issued certificates, a multi-sink logging pipeline and graceful shutdown.

The package exposes a ``__version__`` attribute indicating the installed
version of serverkit. The version is read from pyproject.toml via
importlib.metadata – this is the single source of truth.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("serverkit")
except PackageNotFoundError:
    # Package is not installed (running from source without pip install -e .)
    __version__ = "0.0.0.dev"

__all__: list[str] = ["__version__"]
