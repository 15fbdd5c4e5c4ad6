"""Certificate provisioning: static key/cert pairs and ACME issuance."""

from .acme import CertbotIssuer
from .keycert import KeyCert

__all__ = ["CertbotIssuer", "KeyCert"]
