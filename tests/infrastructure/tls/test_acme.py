from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from serverkit.errors import CertificateFailureError
from serverkit.infrastructure.tls import CertbotIssuer, KeyCert


class FakeRunner:
    def __init__(self, returncode: int = 0, stderr: str = "", on_run=None) -> None:
        self.returncode = returncode
        self.stderr = stderr
        self.on_run = on_run
        self.calls: list[list[str]] = []

    def __call__(self, args, **kwargs):
        self.calls.append(args)
        if self.on_run is not None:
            self.on_run()
        return subprocess.CompletedProcess(args, self.returncode, "", self.stderr)


def _issue_files(cache: Path, domain: str) -> None:
    live = cache / "config" / "live" / domain
    live.mkdir(parents=True)
    (live / "fullchain.pem").write_text("cert", encoding="utf-8")
    (live / "privkey.pem").write_text("key", encoding="utf-8")


def test_build_args_use_cache_dirs(tmp_path):
    issuer = CertbotIssuer(tmp_path, email="ops@example.com", command=["certbot"])

    args = issuer.build_args("example.com")

    assert args[:3] == ["certbot", "certonly", "--standalone"]
    assert args[args.index("--config-dir") + 1] == str(tmp_path / "config")
    assert args[args.index("-d") + 1] == "example.com"
    assert args[args.index("--email") + 1] == "ops@example.com"


def test_build_args_without_email(tmp_path):
    args = CertbotIssuer(tmp_path, command=["certbot"]).build_args("example.com")

    assert "--register-unsafely-without-email" in args
    assert "--email" not in args


def test_obtain_returns_live_pair(tmp_path):
    runner = FakeRunner(on_run=lambda: _issue_files(tmp_path, "example.com"))
    issuer = CertbotIssuer(tmp_path, command=["certbot"], runner=runner)

    keycert = issuer.obtain("example.com")

    assert len(runner.calls) == 1
    assert keycert == KeyCert(
        tmp_path / "config" / "live" / "example.com" / "fullchain.pem",
        tmp_path / "config" / "live" / "example.com" / "privkey.pem",
    )


def test_certbot_failure_carries_stderr_tail(tmp_path):
    stderr = "\n".join(f"line {i}" for i in range(10))
    issuer = CertbotIssuer(
        tmp_path, command=["certbot"], runner=FakeRunner(returncode=1, stderr=stderr))

    with pytest.raises(CertificateFailureError) as excinfo:
        issuer.obtain("example.com")

    message = str(excinfo.value)
    assert "status 1" in message
    assert "line 9" in message
    assert "line 4" not in message


def test_missing_certificate_after_success(tmp_path):
    issuer = CertbotIssuer(tmp_path, command=["certbot"], runner=FakeRunner())

    with pytest.raises(CertificateFailureError, match="no certificate"):
        issuer.obtain("example.com")


def test_certbot_not_runnable(tmp_path):
    def runner(args, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", args[0])

    issuer = CertbotIssuer(tmp_path, command=["missing-certbot"], runner=runner)

    with pytest.raises(CertificateFailureError, match="cannot run certbot"):
        issuer.obtain("example.com")


def test_keycert_validate_rejects_garbage(tmp_path):
    (tmp_path / "crt.pem").write_text("not a certificate", encoding="utf-8")
    (tmp_path / "key.pem").write_text("not a key", encoding="utf-8")

    with pytest.raises(CertificateFailureError):
        KeyCert.from_paths(tmp_path / "crt.pem", tmp_path / "key.pem").validate()


def test_keycert_validate_missing_files(tmp_path):
    with pytest.raises(CertificateFailureError):
        KeyCert.from_paths(tmp_path / "crt.pem", tmp_path / "key.pem").validate()
