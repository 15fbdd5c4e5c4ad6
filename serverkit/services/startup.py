"""Launch the configured listener for a resolved deployment variant.

:func:`start_clean` does, in order: spawn the migration binary, finish the
application (documentation endpoints, CORS), obtain or validate certificates,
bind the listening sockets and start serving. Every failure up to and
including the bind surfaces as a :class:`ServerKitError` before anything is
served. :func:`start` additionally attaches a :class:`ShutdownCoordinator`.
"""

from __future__ import annotations

import asyncio
import signal
import subprocess
from typing import Any, Sequence

from serverkit.app.builder import DocsOptions, ServerAppBuilder, get_root_router
from serverkit.app.middleware import HttpsRedirectApp
from serverkit.domain.models import DeploymentVariant, ServerRuntimeState, ServerSettings
from serverkit.errors import MigrationSpawnError, ServerKitError
from serverkit.infrastructure.observability import (
    add_span_event,
    get_logger,
    log_context,
    log_exception,
    trace_span,
    traced,
)
from serverkit.infrastructure.serving import (
    HypercornListener,
    RunningServer,
    UvicornListener,
    format_address,
)
from serverkit.infrastructure.tls import CertbotIssuer, KeyCert

from .shutdown import ShutdownCoordinator, TriggerFactory

logger = get_logger(__name__)

LOCALHOST = "127.0.0.1"
REDIRECT_BIND_HOST = "0.0.0.0"

# Variants with a TCP TLS listener that plain HTTP can be redirected to.
_REDIRECTABLE = (
    DeploymentVariant.AUTO_TLS_HTTP,
    DeploymentVariant.STATIC_TLS,
    DeploymentVariant.AUTO_TLS_QUIC,
    DeploymentVariant.STATIC_TLS_QUIC,
)

# Migrations still running; finished ones are dropped on the next spawn.
_migrations: list[subprocess.Popen] = []


def spawn_migration(binary: str | None) -> subprocess.Popen | None:
    """Start ``binary`` without waiting for it.

    Raises:
        MigrationSpawnError: the binary could not be launched.
    """
    if not binary:
        return None
    try:
        process = subprocess.Popen([binary])
    except OSError as exc:
        raise MigrationSpawnError(
            f"Failed to start migration binary '{binary}': {exc}") from exc
    _migrations[:] = [running for running in _migrations if running.poll() is None]
    _migrations.append(process)
    logger.info(f"Migration '{binary}' started with pid {process.pid}")
    return process


def _finish_app(
    state: ServerRuntimeState, settings: ServerSettings, builder: ServerAppBuilder
) -> Any:
    builder = builder.copy()
    if state.capabilities.oapi and settings.docs_enabled:
        builder.with_docs(DocsOptions.from_settings(settings))
    if state.capabilities.cors and settings.allow_cors_domain:
        # Added last so it wraps every other middleware.
        builder.with_cors(settings.allow_cors_domain)
    return builder.build()


@traced("acme.obtain")
async def _obtain_certificate(issuer: CertbotIssuer, domain: str) -> KeyCert:
    keycert = await asyncio.to_thread(issuer.obtain, domain)
    keycert.validate()
    add_span_event("certificate.obtained", domain=domain)
    return keycert


async def _keycert_for(
    state: ServerRuntimeState,
    settings: ServerSettings,
    issuer: CertbotIssuer | None,
) -> KeyCert:
    if state.variant.uses_acme:
        issuer = issuer or CertbotIssuer(settings.acme_cache_path, email=settings.acme_email)
        return await _obtain_certificate(issuer, settings.acme_domain)

    keycert = KeyCert.from_paths(settings.ssl_crt_path, settings.ssl_key_path)
    keycert.validate()
    return keycert


def _serve(listener: Any) -> RunningServer:
    addresses = listener.bind()
    add_span_event(
        "listener.bound",
        listener=listener.name,
        addresses=[format_address(host, port) for host, port in addresses],
    )
    task, handle = listener.serve()
    return RunningServer(task=task, handle=handle, addresses=addresses)


async def _launch(
    state: ServerRuntimeState,
    settings: ServerSettings,
    app: Any,
    issuer: CertbotIssuer | None,
) -> RunningServer:
    variant = state.variant
    port = settings.server_port

    if variant is DeploymentVariant.LOCALHOST_HTTP:
        return _serve(UvicornListener(app, LOCALHOST, port))
    if variant is DeploymentVariant.UNSAFE_HTTP:
        return _serve(UvicornListener(app, settings.server_host, port))

    keycert = await _keycert_for(state, settings, issuer)
    address = format_address(settings.server_host, port)
    if variant in (DeploymentVariant.AUTO_TLS_HTTP, DeploymentVariant.STATIC_TLS):
        listener = HypercornListener(app, keycert, tcp_bind=address)
    elif variant is DeploymentVariant.QUIC_ONLY:
        listener = HypercornListener(app, keycert, tcp_bind=None, quic_bind=address)
    else:
        listener = HypercornListener(app, keycert, tcp_bind=address, quic_bind=address)
    server = _serve(listener)
    if listener.quic_port is not None:
        app.state.quic_port = listener.quic_port
    return server


async def start_https_redirect(
    listen_port: int,
    redirect_port: int,
    host: str = REDIRECT_BIND_HOST,
) -> RunningServer:
    """Serve plain HTTP on ``listen_port``, redirecting every request to HTTPS.

    Raises:
        BindFailureError: the port cannot be bound.
    """
    app = HttpsRedirectApp(redirect_port)
    server = _serve(
        UvicornListener(app, host, listen_port, name="redirect", lifespan="off"))
    logger.info(f"Redirecting HTTP on port {server.port} to HTTPS port {redirect_port}")
    return server


async def _attach_redirect(settings: ServerSettings, server: RunningServer) -> None:
    try:
        redirect = await start_https_redirect(
            settings.force_https_redirect_port,
            server.port or settings.server_port,
            settings.server_host or REDIRECT_BIND_HOST,
        )
    except BaseException:
        server.handle.stop_graceful()
        await asyncio.gather(server.task, return_exceptions=True)
        raise
    server.handle.link(redirect.handle)
    server.companions.append(redirect)


async def start_clean(
    state: ServerRuntimeState,
    settings: ServerSettings,
    builder: ServerAppBuilder,
    *,
    issuer: CertbotIssuer | None = None,
) -> RunningServer:
    """Start serving ``builder``'s application for ``state.variant``.

    No shutdown handling is attached; stop the server through the returned
    handle.

    Args:
        state: Runtime state from :func:`serverkit.services.state.load_state`.
        settings: The loaded (and port-resolved) settings.
        builder: Application builder, usually from :func:`get_root_router`.
        issuer: Certificate issuer for the ACME variants; defaults to certbot
            with the configured cache directory.

    Raises:
        MigrationSpawnError, CertificateFailureError, BindFailureError
    """
    variant = str(state.variant)
    with log_context(app=settings.app_name, variant=variant), trace_span(
        "server.start", variant=variant, app=settings.app_name
    ):
        try:
            spawn_migration(settings.auto_migrate_bin)
            app = _finish_app(state, settings, builder)
            server = await _launch(state, settings, app, issuer)
            if settings.force_https_redirect_port is not None:
                if state.variant in _REDIRECTABLE:
                    await _attach_redirect(settings, server)
                else:
                    logger.warning(
                        f"force_https_redirect_port is ignored for the {variant} variant")
        except ServerKitError as exc:
            log_exception(logger, "Server start failed", exc, kind=exc.kind)
            raise
    return server


async def start(
    state: ServerRuntimeState,
    settings: ServerSettings,
    builder: ServerAppBuilder,
    *,
    issuer: CertbotIssuer | None = None,
    shutdown_triggers: Sequence[TriggerFactory] = (),
    signals: Sequence[signal.Signals] = (signal.SIGINT,),
    shutdown_timeout: float | None = None,
) -> RunningServer:
    """Start serving and stop gracefully on SIGINT or any shutdown trigger.

    Await :meth:`RunningServer.wait` to block until the server is down.
    """
    server = await start_clean(state, settings, builder, issuer=issuer)
    coordinator = ShutdownCoordinator(
        server.handle, signals=signals, timeout=shutdown_timeout)
    for trigger in shutdown_triggers:
        coordinator.add_trigger(trigger)
    server.shutdown_task = asyncio.create_task(coordinator.wait())
    return server


__all__ = [
    "get_root_router",
    "spawn_migration",
    "start",
    "start_clean",
    "start_https_redirect",
]
