from __future__ import annotations

import datetime
import ipaddress
import logging
from pathlib import Path
from typing import Iterator

import pytest

from serverkit.domain.capabilities import Capabilities
from serverkit.domain.models import ServerSettings
from serverkit.infrastructure.observability import active_pipeline
from serverkit.infrastructure.tls import KeyCert


@pytest.fixture(autouse=True)
def _reset_logging_pipeline() -> Iterator[None]:
    """Each test starts without a process-wide logging pipeline."""
    root_level = logging.getLogger().level
    yield
    pipeline = active_pipeline()
    if pipeline is not None:
        pipeline.uninstall()
    logging.getLogger().setLevel(root_level)


@pytest.fixture
def capabilities() -> Capabilities:
    """Capabilities with HTTP/3 and ACME available, telemetry off."""
    return Capabilities(otel=False)


@pytest.fixture
def make_settings():
    def factory(**overrides) -> ServerSettings:
        data = {"startup_type": "http_localhost", "server_port": 0}
        data.update(overrides)
        return ServerSettings.model_validate(data)

    return factory


@pytest.fixture
def write_config(tmp_path: Path):
    """Write ``{name}.yaml`` into a fresh directory and return that directory."""

    def writer(name: str, text: str, directory: str = "cwd") -> Path:
        target = tmp_path / directory
        target.mkdir(exist_ok=True)
        (target / f"{name}.yaml").write_text(text, encoding="utf-8")
        return target

    return writer


@pytest.fixture
def self_signed(tmp_path: Path) -> KeyCert:
    """A one-day certificate for localhost and 127.0.0.1 with its key."""
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(hours=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    keycert = KeyCert(tmp_path / "server.crt", tmp_path / "server.key")
    keycert.cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    keycert.key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return keycert
