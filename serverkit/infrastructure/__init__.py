"""Infrastructure layer for serverkit.

Holds adapters for configuration files, observability, certificate
provisioning and the listener backends.
"""

from . import config, observability, serving, tls

__all__ = ["config", "observability", "serving", "tls"]
