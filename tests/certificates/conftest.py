"""Shared certificate material for the certificate tests."""

from __future__ import annotations

import base64
from datetime import UTC, datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from hostplane.certificates.material import generate_self_signed

ISSUED = datetime(2025, 3, 14, 12, 0, tzinfo=UTC)


@pytest.fixture(scope="session")
def pem_pair() -> tuple[str, str]:
    """EC certificate for example.com and www.example.com, valid 90 days."""
    return generate_self_signed(
        ["example.com", "www.example.com"],
        days=90,
        now=ISSUED,
        key_type="ec256",
    )


@pytest.fixture(scope="session")
def other_pair() -> tuple[str, str]:
    return generate_self_signed(["example.org"], days=30, now=ISSUED, key_type="ec256")


@pytest.fixture(scope="session")
def corrupted_pair(pem_pair) -> tuple[str, str]:
    """*pem_pair* with the last byte of the certificate signature flipped."""
    der = x509.load_pem_x509_certificate(pem_pair[0].encode()).public_bytes(serialization.Encoding.DER)
    b64 = base64.b64encode(der[:-1] + bytes([der[-1] ^ 0x01])).decode()
    body = "\n".join(b64[i : i + 64] for i in range(0, len(b64), 64))
    return f"-----BEGIN CERTIFICATE-----\n{body}\n-----END CERTIFICATE-----\n", pem_pair[1]
