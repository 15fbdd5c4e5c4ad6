"""Resolved, ready-to-launch server state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from serverkit.domain.capabilities import Capabilities
from serverkit.domain.models.settings import DeploymentVariant

if TYPE_CHECKING:
    from serverkit.infrastructure.observability.logging import LogGuard


@dataclass(frozen=True)
class ServerRuntimeState:
    """State produced once by :func:`serverkit.services.state.load_state`.

    ``file_log_guard`` keeps the background file sink flushing; hold on to the
    state (or the guard) for as long as the process runs. Copies share the
    same guard.
    """

    variant: DeploymentVariant
    file_log_guard: "LogGuard | None" = None
    capabilities: Capabilities = field(default_factory=Capabilities)


__all__ = ["ServerRuntimeState"]
