"""Registry of deployment variants and ``startup_type`` resolution.

The registry is the closed list of variants this package knows about. Which of
them may be selected depends on the process :class:`Capabilities`: a variant
needing ACME or HTTP/3 support is absent from :func:`available_variants` when
that support is not installed, so naming it fails exactly like naming an
unknown string.
"""

from __future__ import annotations

from dataclasses import dataclass

from serverkit.domain.capabilities import Capabilities
from serverkit.domain.models.settings import DeploymentVariant, ServerSettings
from serverkit.errors import ForbiddenFieldError, MissingFieldError, UnknownVariantError


@dataclass(frozen=True)
class VariantSpec:
    """Static description of one deployment variant."""

    startup_type: str
    variant: DeploymentVariant
    required_fields: tuple[str, ...]
    needs_acme: bool = False
    needs_http3: bool = False
    host_forbidden: bool = False

    def is_available(self, capabilities: Capabilities) -> bool:
        if self.needs_acme and not capabilities.acme:
            return False
        if self.needs_http3 and not capabilities.http3:
            return False
        return True


_HOST = "server_host"
_PORT = "server_port"
_STATIC_TLS_FIELDS = (_HOST, "ssl_key_path", "ssl_crt_path", _PORT)
_ACME_FIELDS = (_HOST, "acme_domain", _PORT)

VARIANT_REGISTRY: tuple[VariantSpec, ...] = (
    VariantSpec("http_localhost", DeploymentVariant.LOCALHOST_HTTP, (_PORT,), host_forbidden=True),
    VariantSpec("unsafe_http", DeploymentVariant.UNSAFE_HTTP, (_HOST, _PORT)),
    VariantSpec("https_acme", DeploymentVariant.AUTO_TLS_HTTP, _ACME_FIELDS, needs_acme=True),
    VariantSpec("https_only", DeploymentVariant.STATIC_TLS, _STATIC_TLS_FIELDS),
    VariantSpec(
        "quinn_acme",
        DeploymentVariant.AUTO_TLS_QUIC,
        _ACME_FIELDS,
        needs_acme=True,
        needs_http3=True,
    ),
    VariantSpec("quinn", DeploymentVariant.STATIC_TLS_QUIC, _STATIC_TLS_FIELDS, needs_http3=True),
    VariantSpec("quinn_only", DeploymentVariant.QUIC_ONLY, _STATIC_TLS_FIELDS, needs_http3=True),
)


def available_variants(capabilities: Capabilities) -> dict[str, VariantSpec]:
    """Return the selectable variants keyed by their ``startup_type`` string."""
    return {
        entry.startup_type: entry
        for entry in VARIANT_REGISTRY
        if entry.is_available(capabilities)
    }


def resolve_variant(
    settings: ServerSettings, capabilities: Capabilities | None = None
) -> DeploymentVariant:
    """Map ``settings.startup_type`` to a variant and check its required fields.

    Raises:
        UnknownVariantError: the string is not an available variant.
        ForbiddenFieldError: ``http_localhost`` was given a host.
        MissingFieldError: a field the variant needs is absent.
    """
    capabilities = capabilities or Capabilities.detect()
    variants = available_variants(capabilities)
    entry = variants.get(settings.startup_type)
    if entry is None:
        raise UnknownVariantError(settings.startup_type, sorted(variants))

    if entry.host_forbidden and settings.server_host is not None:
        raise ForbiddenFieldError(
            _HOST,
            entry.variant,
            "Server will only listen on the 127.0.0.1 address because of the "
            "`http_localhost` startup variant. Remove `server_host` or consider "
            "`unsafe_http`, `https_only` or `quinn`.",
        )

    for field in entry.required_fields:
        if getattr(settings, field) is None:
            raise MissingFieldError(field, entry.variant)

    return entry.variant


__all__ = [
    "VARIANT_REGISTRY",
    "VariantSpec",
    "available_variants",
    "resolve_variant",
]
