"""Bootstrap services: runtime state, listener startup and shutdown."""

from .shutdown import ShutdownCoordinator
from .startup import (
    get_root_router,
    spawn_migration,
    start,
    start_clean,
    start_https_redirect,
)
from .state import load_state

__all__ = [
    "ShutdownCoordinator",
    "get_root_router",
    "load_state",
    "spawn_migration",
    "start",
    "start_clean",
    "start_https_redirect",
]
