"""Ordered assembly of the ASGI application.

Application routers and middleware are accumulated on a
:class:`ServerAppBuilder`; the ``FastAPI`` object is only constructed in
:meth:`ServerAppBuilder.build`, after the orchestrator has added the
documentation endpoints and the CORS policy, so nothing has to patch the app
after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from scalar_fastapi import get_scalar_api_reference

from serverkit.domain.models import ServerRuntimeState, ServerSettings
from serverkit.infrastructure.observability import get_logger

from .middleware import AltSvcMiddleware

logger = get_logger(__name__)

DOCS_FRONTENDS = ("SwaggerUI", "ReDoc", "Scalar")

CORS_ALLOW_HEADERS = [
    "Authorization",
    "Accept",
    "Access-Control-Allow-Headers",
    "Content-Type",
    "Origin",
    "X-Requested-With",
    "Cookie",
]
CORS_EXPOSE_HEADERS = ["Set-Cookie"]
CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

BEARER_SCHEME = {"type": "http", "scheme": "bearer", "bearerFormat": "JSON"}


@dataclass(frozen=True)
class DocsOptions:
    """Where and how the OpenAPI document is published."""

    title: str
    version: str
    mount_path: str
    frontend: str | None = None

    @property
    def openapi_url(self) -> str:
        return f"{self.mount_path.rstrip('/')}/openapi.json"

    @classmethod
    def from_settings(cls, settings: ServerSettings) -> "DocsOptions":
        # The loader guarantees name, version and path when docs are enabled.
        return cls(
            title=settings.oapi_name or settings.app_name,
            version=settings.oapi_ver or "",
            mount_path=settings.oapi_api_addr or "/api",
            frontend=settings.oapi_frontend_type,
        )


@dataclass
class _Middleware:
    cls: type
    options: dict[str, Any] = field(default_factory=dict)


class ServerAppBuilder:
    """Collect routers and middleware, then build one immutable app.

    Middleware is applied in the order added, the last one added being the
    outermost.
    """

    def __init__(self, state: ServerRuntimeState, settings: ServerSettings) -> None:
        self.state = state
        self.settings = settings
        self._routers: list[tuple[APIRouter, dict[str, Any]]] = []
        self._middleware: list[_Middleware] = []
        self._docs: DocsOptions | None = None

    def copy(self) -> "ServerAppBuilder":
        """Return an independent builder with the same routers and middleware."""
        clone = ServerAppBuilder(self.state, self.settings)
        clone._routers = list(self._routers)
        clone._middleware = list(self._middleware)
        clone._docs = self._docs
        return clone

    def include_router(self, router: APIRouter, **options: Any) -> "ServerAppBuilder":
        self._routers.append((router, options))
        return self

    def add_middleware(self, middleware_cls: type, **options: Any) -> "ServerAppBuilder":
        self._middleware.append(_Middleware(middleware_cls, options))
        return self

    def with_docs(self, docs: DocsOptions) -> "ServerAppBuilder":
        self._docs = docs
        return self

    def with_cors(self, origin: str) -> "ServerAppBuilder":
        return self.add_middleware(
            CORSMiddleware,
            allow_origins=[origin],
            allow_credentials=origin != "*",
            allow_headers=CORS_ALLOW_HEADERS,
            expose_headers=CORS_EXPOSE_HEADERS,
            allow_methods=CORS_ALLOW_METHODS,
        )

    def _create_app(self) -> FastAPI:
        docs = self._docs
        if docs is None:
            return FastAPI(
                title=self.settings.app_name,
                openapi_url=None,
                docs_url=None,
                redoc_url=None,
            )

        if docs.frontend is not None and docs.frontend not in DOCS_FRONTENDS:
            logger.warning(
                f"Unknown OpenAPI frontend '{docs.frontend}'; "
                f"only {docs.openapi_url} will be served"
            )
        app = FastAPI(
            title=docs.title,
            version=docs.version,
            openapi_url=docs.openapi_url,
            docs_url=docs.mount_path if docs.frontend == "SwaggerUI" else None,
            redoc_url=docs.mount_path if docs.frontend == "ReDoc" else None,
        )
        if docs.frontend == "Scalar":
            _add_scalar_page(app, docs)
        _add_bearer_scheme(app)
        return app

    def build(self) -> FastAPI:
        app = self._create_app()
        app.state.settings = self.settings
        app.state.server_state = self.state
        for router, options in self._routers:
            app.include_router(router, **options)
        for middleware in self._middleware:
            app.add_middleware(middleware.cls, **middleware.options)
        if self._docs is not None:
            logger.info(f"API is available on {self._docs.mount_path}")
        return app


def _add_scalar_page(app: FastAPI, docs: DocsOptions) -> None:
    @app.get(docs.mount_path, include_in_schema=False)
    async def scalar_reference() -> HTMLResponse:
        return get_scalar_api_reference(
            openapi_url=docs.openapi_url,
            title=f"{docs.title} - API @ Scalar",
        )


def _add_bearer_scheme(app: FastAPI) -> None:
    generate = app.openapi

    def openapi() -> dict[str, Any]:
        if app.openapi_schema is not None:
            return app.openapi_schema
        schema = generate()
        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {})["bearer"] = dict(BEARER_SCHEME)
        app.openapi_schema = schema
        return schema

    app.openapi = openapi  # type: ignore[method-assign]


def get_root_router(state: ServerRuntimeState, settings: ServerSettings) -> ServerAppBuilder:
    """Return the builder every application starts from.

    The settings and runtime state are injected into ``app.state`` and, for
    QUIC-capable variants, every response advertises the HTTP/3 endpoint.
    """
    builder = ServerAppBuilder(state, settings)
    if state.variant.uses_quic:
        builder.add_middleware(AltSvcMiddleware, port=settings.server_port)
    return builder


__all__ = [
    "CORS_ALLOW_HEADERS",
    "CORS_ALLOW_METHODS",
    "DocsOptions",
    "ServerAppBuilder",
    "get_root_router",
]
