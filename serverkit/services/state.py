"""Turn loaded settings into runtime state."""

from __future__ import annotations

from typing import Any

from serverkit.domain.capabilities import Capabilities
from serverkit.domain.models import ServerRuntimeState, ServerSettings
from serverkit.domain.variants import resolve_variant
from serverkit.errors import LogBackendInitError
from serverkit.infrastructure.observability import LoggingPipelineBuilder, get_logger

logger = get_logger(__name__)


def load_state(
    settings: ServerSettings,
    capabilities: Capabilities | None = None,
    **builder_options: Any,
) -> ServerRuntimeState:
    """Resolve the deployment variant and install the logging pipeline.

    Variant, level and rotation strings are all validated before any sink is
    created, so a configuration error leaves logging untouched. Logging can
    only be installed once per process: calling this twice raises
    :class:`LogBackendInitError`.

    Raises:
        UnknownVariantError, ForbiddenFieldError, MissingFieldError,
        InvalidLevelError, InvalidRotationError, LogBackendInitError
    """
    capabilities = capabilities or Capabilities.detect()
    variant = resolve_variant(settings, capabilities)

    builder = LoggingPipelineBuilder(settings, capabilities, **builder_options)
    pipeline = builder.build()
    try:
        pipeline.install()
    except LogBackendInitError:
        if pipeline.guard is not None:
            pipeline.guard.close()
        raise

    logger.debug(f"Logging sinks installed: {', '.join(pipeline.sinks) or 'none'}")
    logger.info(f"Server '{settings.app_name}' resolved to the {variant} variant")
    return ServerRuntimeState(
        variant=variant,
        file_log_guard=pipeline.guard,
        capabilities=capabilities,
    )


__all__ = ["load_state"]
