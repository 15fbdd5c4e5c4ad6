"""Configuration loading and dynamic port discovery."""

from .loader import (
    SYSTEM_CONFIG_DIR,
    config_candidates,
    load_config,
    load_settings,
    read_config_document,
)
from .port_watcher import PortWatcher, parse_port, watch_port

__all__ = [
    "PortWatcher",
    "SYSTEM_CONFIG_DIR",
    "config_candidates",
    "load_config",
    "load_settings",
    "parse_port",
    "read_config_document",
    "watch_port",
]
