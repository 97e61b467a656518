"""Pluggable certificate transports (ACME, certbot, self-signed)."""

from hostplane.acme.base import AcmeTransport, ObtainedCertificate
from hostplane.acme.registry import load_acme_transport

__all__ = ["AcmeTransport", "ObtainedCertificate", "load_acme_transport"]
