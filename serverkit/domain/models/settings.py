"""Server settings model and deployment variants."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class DeploymentVariant(str, Enum):
    """Transport and certificate configuration a server can start in."""

    LOCALHOST_HTTP = "LocalhostHttp"
    UNSAFE_HTTP = "UnsafeHttp"
    AUTO_TLS_HTTP = "AutoTlsHttp"
    STATIC_TLS = "StaticTls"
    AUTO_TLS_QUIC = "AutoTlsQuic"
    STATIC_TLS_QUIC = "StaticTlsQuic"
    QUIC_ONLY = "QuicOnly"

    def __str__(self) -> str:
        return self.value

    @property
    def uses_quic(self) -> bool:
        return self in (
            DeploymentVariant.AUTO_TLS_QUIC,
            DeploymentVariant.STATIC_TLS_QUIC,
            DeploymentVariant.QUIC_ONLY,
        )

    @property
    def uses_acme(self) -> bool:
        return self in (DeploymentVariant.AUTO_TLS_HTTP, DeploymentVariant.AUTO_TLS_QUIC)

    @property
    def uses_static_tls(self) -> bool:
        return self in (
            DeploymentVariant.STATIC_TLS,
            DeploymentVariant.STATIC_TLS_QUIC,
            DeploymentVariant.QUIC_ONLY,
        )


class ServerSettings(BaseModel):
    """Generic server configuration read from ``{app_name}.yaml``.

    Applications subclass this model to add their own values (database URLs
    and the like); unknown keys in the document are ignored. Instances are
    frozen once loaded.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    # Injected by the loader from the invocation context.
    app_name: str = Field(default="generic", exclude=True)

    startup_type: str
    server_host: str | None = None
    server_port: int | None = Field(default=None, ge=0, le=65535)

    acme_domain: str | None = None
    acme_email: str | None = None
    acme_cache_path: Path = Path("tmp/letsencrypt")
    ssl_key_path: str | None = None
    ssl_crt_path: str | None = None

    # Binary run once, unsupervised, right before the listener starts.
    auto_migrate_bin: str | None = None
    server_port_achiever: Path | None = None
    server_port_achiever_timeout: float | None = Field(default=None, gt=0)

    allow_cors_domain: str | None = None

    allow_oapi_access: bool | None = None
    oapi_frontend_type: str | None = None
    oapi_name: str | None = None
    oapi_ver: str | None = None
    oapi_api_addr: str | None = None

    log_level: str | None = None
    log_file_level: str | None = None
    log_rolling: str | None = None
    log_rolling_max_files: int | None = Field(default=None, ge=0)
    log_dir: Path = Path("logs")

    open_telemetry_endpoint: str | None = None

    force_https_redirect_port: int | None = Field(default=None, ge=0, le=65535)

    @property
    def docs_enabled(self) -> bool:
        return bool(self.allow_oapi_access)


__all__ = ["DeploymentVariant", "ServerSettings"]
