"""Configuration loading for serverkit.

The configuration for an application named ``app`` is read from ``app.yaml``
in the working directory, falling back to ``/etc/app.yaml``. The first file
that can be opened wins; the two are never merged.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence, TypeVar

import yaml
from pydantic import ValidationError

from serverkit.domain.capabilities import Capabilities
from serverkit.domain.models.settings import ServerSettings
from serverkit.errors import (
    ConfigMalformedError,
    ConfigNotFoundError,
    MissingFieldError,
    ServerKitError,
)
from serverkit.infrastructure.observability import get_logger

from .port_watcher import PortWatcher

logger = get_logger(__name__)

CONFIG_EXTENSION = "yaml"
SYSTEM_CONFIG_DIR = Path("/etc")

S = TypeVar("S", bound=ServerSettings)

_OAPI_FIELDS = ("oapi_name", "oapi_ver", "oapi_api_addr")


def config_candidates(
    app_name: str, search_dirs: Sequence[Path | str] | None = None
) -> list[Path]:
    """Return the paths tried for ``app_name``, in order."""
    dirs = [Path(d) for d in search_dirs] if search_dirs is not None else [
        Path("."), SYSTEM_CONFIG_DIR]
    filename = f"{app_name}.{CONFIG_EXTENSION}"
    return [d / filename for d in dirs]


def read_config_document(
    app_name: str, search_dirs: Sequence[Path | str] | None = None
) -> tuple[Path, dict[str, Any]]:
    """Locate and parse the YAML document for ``app_name``.

    Returns:
        The path that was read and the parsed mapping.

    Raises:
        ConfigNotFoundError: no candidate could be opened.
        ConfigMalformedError: the file could not be read or is not a YAML
            mapping.
    """
    candidates = config_candidates(app_name, search_dirs)
    for path in candidates:
        try:
            handle = open(path, "rb")
        except OSError:
            continue
        with handle:
            try:
                raw = handle.read().decode("utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise ConfigMalformedError(str(path), f"cannot read file: {exc}") from exc
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ConfigMalformedError(str(path), str(exc)) from exc
        if not isinstance(data, dict):
            raise ConfigMalformedError(str(path), "expected a mapping at the top level")
        logger.debug(f"Configuration read from {path}")
        return path, data

    raise ConfigNotFoundError(app_name, [str(p) for p in candidates])


def _check_documentation(settings: ServerSettings, capabilities: Capabilities) -> None:
    if not capabilities.oapi or not settings.docs_enabled:
        return
    for field in _OAPI_FIELDS:
        if getattr(settings, field) is None:
            raise MissingFieldError(field)


def load_settings(
    app_name: str,
    settings_cls: type[S] = ServerSettings,  # type: ignore[assignment]
    *,
    search_dirs: Sequence[Path | str] | None = None,
    capabilities: Capabilities | None = None,
) -> S:
    """Read and validate the configuration without resolving a watched port.

    Raises:
        ConfigNotFoundError, ConfigMalformedError, MissingFieldError
    """
    capabilities = capabilities or Capabilities.detect()
    try:
        path, data = read_config_document(app_name, search_dirs)
        try:
            settings = settings_cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigMalformedError(str(path), str(exc)) from exc

        settings = settings.model_copy(update={"app_name": app_name})
        _check_documentation(settings, capabilities)
    except ServerKitError as exc:
        logger.error(exc.message)
        raise
    return settings


async def load_config(
    app_name: str,
    settings_cls: type[S] = ServerSettings,  # type: ignore[assignment]
    *,
    search_dirs: Sequence[Path | str] | None = None,
    capabilities: Capabilities | None = None,
) -> S:
    """Load the configuration for ``app_name``.

    When ``server_port_achiever`` is set this waits until a port is written
    to that file and uses it as ``server_port``.

    Raises:
        ConfigNotFoundError, ConfigMalformedError, MissingFieldError,
        WatchFailureError
    """
    settings = load_settings(
        app_name,
        settings_cls,
        search_dirs=search_dirs,
        capabilities=capabilities,
    )

    if settings.server_port_achiever is not None:
        watcher = PortWatcher(
            settings.server_port_achiever,
            timeout=settings.server_port_achiever_timeout,
        )
        try:
            port = await watcher.wait()
        except ServerKitError as exc:
            logger.error(exc.message)
            raise
        settings = settings.model_copy(update={"server_port": port})

    return settings


__all__ = [
    "CONFIG_EXTENSION",
    "SYSTEM_CONFIG_DIR",
    "config_candidates",
    "load_config",
    "load_settings",
    "read_config_document",
]
