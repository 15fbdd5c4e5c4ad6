"""Optional feature set available to the running process.

Each flag mirrors an optional install extra: a feature whose packages are not
installed is simply unavailable, and the variants or sinks depending on it are
never constructed.
"""

from __future__ import annotations

import importlib.util
import sys
from dataclasses import dataclass


def _installed(module: str) -> bool:
    try:
        return importlib.util.find_spec(module) is not None
    except ModuleNotFoundError:
        # Parent package missing for a dotted name.
        return False


@dataclass(frozen=True)
class Capabilities:
    """Feature flags consulted by variant resolution and the logging pipeline."""

    acme: bool = True
    http3: bool = True
    oapi: bool = True
    cors: bool = True
    otel: bool = True
    # Emit framework-internal records instead of filtering them out.
    unfiltered_logs: bool = False
    # Enables the console sink at DEBUG when no ``log_level`` is configured.
    debug: bool = False

    @classmethod
    def detect(cls) -> "Capabilities":
        """Derive capabilities from the installed packages."""
        return cls(
            acme=_installed("certbot"),
            http3=_installed("aioquic"),
            otel=_installed("opentelemetry.exporter.otlp.proto.grpc"),
            debug=bool(sys.flags.dev_mode),
        )

    @classmethod
    def minimal(cls) -> "Capabilities":
        """Capabilities with every optional transport and exporter disabled."""
        return cls(acme=False, http3=False, otel=False)


__all__ = ["Capabilities"]
