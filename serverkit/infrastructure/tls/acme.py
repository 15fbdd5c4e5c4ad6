"""Automatic certificate issuance through certbot.

The ACME protocol itself is handled by certbot, run as ``python -m certbot``
in standalone mode before the listener binds. Issued certificates are cached
under ``acme_cache_path`` and reused until they approach expiry
(``--keep-until-expiring``), so restarts do not hit the CA.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Callable, Sequence

from serverkit.errors import CertificateFailureError
from serverkit.infrastructure.observability import get_logger

from .keycert import KeyCert

logger = get_logger(__name__)

Runner = Callable[..., "subprocess.CompletedProcess[str]"]

# Number of stderr lines carried into the error message.
_STDERR_TAIL = 5


class CertbotIssuer:
    """Obtain (or reuse) a certificate for a domain with certbot.

    Example:
        issuer = CertbotIssuer(Path("tmp/letsencrypt"), email="ops@example.com")
        keycert = issuer.obtain("example.com")
    """

    def __init__(
        self,
        cache_dir: Path | str = Path("tmp/letsencrypt"),
        *,
        email: str | None = None,
        command: Sequence[str] | None = None,
        runner: Runner = subprocess.run,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.email = email
        self.command = list(command) if command is not None else [
            sys.executable, "-m", "certbot"]
        self._runner = runner

    def build_args(self, domain: str) -> list[str]:
        args = [
            *self.command,
            "certonly",
            "--standalone",
            "--non-interactive",
            "--agree-tos",
            "--keep-until-expiring",
            "--preferred-challenges",
            "http",
            "--config-dir",
            str(self.cache_dir / "config"),
            "--work-dir",
            str(self.cache_dir / "work"),
            "--logs-dir",
            str(self.cache_dir / "logs"),
            "-d",
            domain,
        ]
        if self.email:
            args += ["--email", self.email]
        else:
            args.append("--register-unsafely-without-email")
        return args

    def live_keycert(self, domain: str) -> KeyCert:
        live = self.cache_dir / "config" / "live" / domain
        return KeyCert(live / "fullchain.pem", live / "privkey.pem")

    def obtain(self, domain: str) -> KeyCert:
        """Run certbot for ``domain`` and return the cached certificate pair.

        Raises:
            CertificateFailureError: certbot could not be started, exited
                with an error, or left no certificate behind.
        """
        logger.info(f"Requesting certificate for {domain} via ACME")
        try:
            result = self._runner(
                self.build_args(domain),
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise CertificateFailureError(f"cannot run certbot: {exc}") from exc

        if result.returncode != 0:
            tail = "\n".join((result.stderr or "").strip().splitlines()[-_STDERR_TAIL:])
            raise CertificateFailureError(
                f"certbot exited with status {result.returncode} for {domain}: {tail}"
            )

        keycert = self.live_keycert(domain)
        if not keycert.cert_path.exists() or not keycert.key_path.exists():
            raise CertificateFailureError(
                f"certbot finished but no certificate was found in {keycert.cert_path.parent}"
            )
        logger.info(f"Certificate for {domain} ready in {keycert.cert_path.parent}")
        return keycert


__all__ = ["CertbotIssuer"]
