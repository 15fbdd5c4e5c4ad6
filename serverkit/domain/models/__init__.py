"""Domain models package.

This package contains the settings, variant and runtime state models.
"""

from .settings import DeploymentVariant, ServerSettings
from .state import ServerRuntimeState

__all__ = ["DeploymentVariant", "ServerRuntimeState", "ServerSettings"]
