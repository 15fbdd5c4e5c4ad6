"""ASGI middleware and helper apps installed by the orchestrator."""

from __future__ import annotations

from starlette.datastructures import URL, MutableHeaders
from starlette.responses import RedirectResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

ALT_SVC_MAX_AGE = 2592000
DEFAULT_TLS_PORT = 443


def alt_svc_value(port: int) -> str:
    return f'h3=":{port}"; ma={ALT_SVC_MAX_AGE}'


class AltSvcMiddleware:
    """Advertise the HTTP/3 endpoint on every HTTP response.

    Clients that see ``alt-svc: h3=":<port>"`` may switch subsequent
    connections to QUIC on that port. Without a fixed port (None or 0) the
    port the QUIC socket was bound to is read from ``app.state.quic_port``,
    falling back to the port the request arrived on.
    """

    def __init__(self, app: ASGIApp, port: int | None = None) -> None:
        self.app = app
        self.header_value = alt_svc_value(port) if port else None

    def _value_for(self, scope: Scope) -> str:
        if self.header_value is not None:
            return self.header_value
        state = getattr(scope.get("app"), "state", None)
        port = getattr(state, "quic_port", None)
        if port is None:
            server = scope.get("server")
            port = server[1] if server and server[1] else DEFAULT_TLS_PORT
        return alt_svc_value(port)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        header_value = self._value_for(scope)

        async def send_with_alt_svc(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers["alt-svc"] = header_value
            await send(message)

        await self.app(scope, receive, send_with_alt_svc)


class HttpsRedirectApp:
    """Answer every plain HTTP request with a redirect to the TLS listener."""

    def __init__(self, https_port: int, status_code: int = 308) -> None:
        self.https_port = https_port
        self.status_code = status_code

    def target(self, scope: Scope) -> str:
        url = URL(scope=scope)
        netloc = url.hostname or "localhost"
        if ":" in netloc:
            netloc = f"[{netloc}]"
        if self.https_port != DEFAULT_TLS_PORT:
            netloc = f"{netloc}:{self.https_port}"
        return str(url.replace(scheme="https", netloc=netloc))

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return
        response = RedirectResponse(self.target(scope), status_code=self.status_code)
        await response(scope, receive, send)


__all__ = ["AltSvcMiddleware", "HttpsRedirectApp", "alt_svc_value"]
