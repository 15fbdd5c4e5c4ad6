"""Certificate/key pairs used by the TLS and QUIC listeners."""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from pathlib import Path

from serverkit.errors import CertificateFailureError


@dataclass(frozen=True)
class KeyCert:
    """PEM certificate chain and private key on disk."""

    cert_path: Path
    key_path: Path

    @classmethod
    def from_paths(cls, cert_path: str | Path, key_path: str | Path) -> "KeyCert":
        return cls(Path(cert_path), Path(key_path))

    def validate(self) -> None:
        """Load the pair into an SSL context to fail before binding.

        Raises:
            CertificateFailureError: a file is missing or unreadable, or the
                key does not match the certificate.
        """
        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        try:
            context.load_cert_chain(certfile=str(self.cert_path), keyfile=str(self.key_path))
        except (OSError, ssl.SSLError) as exc:
            raise CertificateFailureError(
                f"cannot load certificate {self.cert_path} with key {self.key_path}: {exc}"
            ) from exc


__all__ = ["KeyCert"]
