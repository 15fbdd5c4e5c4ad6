"""ASGI application assembly.

Routers and middleware are collected on a :class:`ServerAppBuilder` and
turned into a single FastAPI application when the server starts.
"""

from .builder import DocsOptions, ServerAppBuilder, get_root_router
from .middleware import AltSvcMiddleware, HttpsRedirectApp, alt_svc_value

__all__ = [
    "AltSvcMiddleware",
    "DocsOptions",
    "HttpsRedirectApp",
    "ServerAppBuilder",
    "alt_svc_value",
    "get_root_router",
]
