"""Certificate material helpers built on :mod:`cryptography`.

Everything the lifecycle manager knows about a certificate's validity,
hostnames and identity is parsed from the PEM itself here.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from hostplane.core.errors import CertificateError, CertificateMismatchError

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

_RSA_KEY_SIZE = 2048


@dataclass(frozen=True)
class CertificateInfo:
    subject: str
    issuer: str
    not_before: datetime
    not_after: datetime
    serial_number: str
    hostnames: tuple[str, ...]
    signature_algorithm: str
    fingerprint: str

    @property
    def self_signed(self) -> bool:
        return self.subject == self.issuer

    def to_dict(self) -> dict:
        return {
            "subject": self.subject,
            "issuer": self.issuer,
            "not_before": self.not_before.isoformat(),
            "not_after": self.not_after.isoformat(),
            "serial_number": self.serial_number,
            "hostnames": list(self.hostnames),
            "signature_algorithm": self.signature_algorithm,
            "fingerprint": self.fingerprint,
        }


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def load_certificate(pem: str) -> x509.Certificate:
    """Load the first certificate of *pem* (leaf first in a chain)."""
    try:
        return x509.load_pem_x509_certificate(pem.encode())
    except ValueError as exc:
        msg = f"Certificate could not be parsed: {exc}"
        raise CertificateError(msg) from exc


def load_private_key(pem: str) -> PrivateKeyTypes:
    try:
        return serialization.load_pem_private_key(pem.encode(), password=None)
    except (ValueError, TypeError) as exc:
        msg = f"Private key could not be parsed: {exc}"
        raise CertificateError(msg) from exc


def _common_name(name: x509.Name) -> str:
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if attrs:
        return str(attrs[0].value)
    return name.rfc4514_string()


def _san_names(cert: x509.Certificate) -> tuple[str, ...]:
    try:
        ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return ()
    return tuple(ext.value.get_values_for_type(x509.DNSName))


def fingerprint(cert: x509.Certificate) -> str:
    """SHA-256 of the DER encoding, lower-case hex."""
    return hashlib.sha256(cert.public_bytes(serialization.Encoding.DER)).hexdigest()


def parse_certificate(pem: str) -> CertificateInfo:
    """Describe the leaf certificate in *pem*.

    Raises
    ------
    CertificateError
        If *pem* holds no parsable certificate.

    """
    cert = load_certificate(pem)
    sig = cert.signature_hash_algorithm
    return CertificateInfo(
        subject=_common_name(cert.subject),
        issuer=_common_name(cert.issuer),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        serial_number=format(cert.serial_number, "x"),
        hostnames=_san_names(cert) or (_common_name(cert.subject),),
        signature_algorithm=sig.name if sig is not None else "unknown",
        fingerprint=fingerprint(cert),
    )


def split_chain(pem: str) -> list[str]:
    """Split concatenated PEM certificates into individual blocks."""
    marker = "-----END CERTIFICATE-----"
    blocks = []
    for part in pem.split(marker):
        part = part.strip()
        if part:
            blocks.append(f"{part}\n{marker}\n")
    return blocks


# ---------------------------------------------------------------------------
# Pairing
# ---------------------------------------------------------------------------


def _public_der(key) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def signature_valid(cert: x509.Certificate, ca_bundle: str | None = None) -> bool:
    """Check the signature of *cert* against its issuer.

    The issuer is the first certificate of *ca_bundle*, or *cert* itself
    when it is self-issued.  A certificate from an unknown issuer and no
    bundle has nothing to be checked against and passes.
    """
    if ca_bundle and ca_bundle.strip():
        try:
            issuer = load_certificate(ca_bundle)
        except CertificateError:
            return False
    elif cert.issuer == cert.subject:
        issuer = cert
    else:
        return True
    try:
        cert.verify_directly_issued_by(issuer)
    except (InvalidSignature, ValueError, TypeError):
        return False
    return True


def keys_match(certificate_pem: str, private_key_pem: str, ca_bundle: str | None = None) -> bool:
    """``True`` only for an intact certificate and its own private key.

    The key's public half must be the certificate's key and the
    certificate's signature must verify (see :func:`signature_valid`).
    Unparsable material of either kind yields ``False``.
    """
    try:
        cert = load_certificate(certificate_pem)
        key = load_private_key(private_key_pem)
    except CertificateError:
        return False
    if _public_der(cert.public_key()) != _public_der(key.public_key()):
        return False
    return signature_valid(cert, ca_bundle)


def verify_pair(
    certificate_pem: str,
    private_key_pem: str,
    ca_bundle: str | None = None,
) -> CertificateInfo:
    """Check that the pair matches and return the certificate's details.

    Raises
    ------
    CertificateError
        If either piece of material cannot be parsed.
    CertificateMismatchError
        If the key does not belong to the certificate, or the
        certificate's signature does not verify.

    """
    info = parse_certificate(certificate_pem)
    key = load_private_key(private_key_pem)
    cert = load_certificate(certificate_pem)
    if _public_der(cert.public_key()) != _public_der(key.public_key()):
        msg = f"Private key does not match the certificate for {info.subject}"
        raise CertificateMismatchError(msg)
    if not signature_valid(cert, ca_bundle):
        msg = f"Certificate signature for {info.subject} does not verify against its issuer"
        raise CertificateMismatchError(msg)
    return info


def build_fullchain(certificate_pem: str, ca_bundle: str | None) -> str:
    leaf = certificate_pem.strip() + "\n"
    if not ca_bundle:
        return leaf
    return leaf + ca_bundle.strip() + "\n"


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def generate_private_key(key_type: str = "rsa2048") -> PrivateKeyTypes:
    if key_type == "ec256":
        return ec.generate_private_key(ec.SECP256R1())
    if key_type == "ec384":
        return ec.generate_private_key(ec.SECP384R1())
    size = {"rsa2048": 2048, "rsa3072": 3072, "rsa4096": 4096}.get(key_type)
    if size is None:
        msg = f"Unsupported key type '{key_type}'"
        raise CertificateError(msg)
    return rsa.generate_private_key(public_exponent=65537, key_size=size)


def private_key_pem(key: PrivateKeyTypes) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


def generate_self_signed(
    hostnames: list[str],
    *,
    days: int = 365,
    now: datetime | None = None,
    key_type: str = "rsa2048",
) -> tuple[str, str]:
    """Create a self-signed certificate for *hostnames*.

    Returns
    -------
    tuple[str, str]
        ``(certificate_pem, private_key_pem)``.

    """
    if not hostnames:
        msg = "At least one hostname is required"
        raise CertificateError(msg)
    now = now or datetime.now(UTC)
    key = generate_private_key(key_type)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostnames[0])])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=days))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(h) for h in hostnames]),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode(), private_key_pem(key)


@dataclass(frozen=True)
class CsrSubject:
    common_name: str
    organization: str | None = None
    organizational_unit: str | None = None
    country: str | None = None
    state: str | None = None
    locality: str | None = None
    email: str | None = None


_CSR_FIELDS = (
    ("country", NameOID.COUNTRY_NAME),
    ("state", NameOID.STATE_OR_PROVINCE_NAME),
    ("locality", NameOID.LOCALITY_NAME),
    ("organization", NameOID.ORGANIZATION_NAME),
    ("organizational_unit", NameOID.ORGANIZATIONAL_UNIT_NAME),
    ("common_name", NameOID.COMMON_NAME),
    ("email", NameOID.EMAIL_ADDRESS),
)


def build_csr(
    key: PrivateKeyTypes,
    hostnames: list[str],
    subject: CsrSubject | None = None,
) -> x509.CertificateSigningRequest:
    """Sign a CSR for *hostnames* with *key*.

    The subject defaults to a bare common name of the first host name.
    """
    subject = subject or CsrSubject(common_name=hostnames[0])
    try:
        attributes = [
            x509.NameAttribute(oid, getattr(subject, attr))
            for attr, oid in _CSR_FIELDS
            if getattr(subject, attr)
        ]
        return (
            x509.CertificateSigningRequestBuilder()
            .subject_name(x509.Name(attributes))
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(h) for h in hostnames]),
                critical=False,
            )
            .sign(key, hashes.SHA256())
        )
    except ValueError as exc:
        msg = f"Invalid CSR subject: {exc}"
        raise CertificateError(msg) from exc


def generate_csr(subject: CsrSubject, hostnames: list[str] | None = None) -> tuple[str, str]:
    """Create an RSA 2048 key and a CSR for *subject*.

    Returns
    -------
    tuple[str, str]
        ``(csr_pem, private_key_pem)``.

    """
    key = rsa.generate_private_key(public_exponent=65537, key_size=_RSA_KEY_SIZE)
    csr = build_csr(key, hostnames or [subject.common_name], subject)
    return csr.public_bytes(serialization.Encoding.PEM).decode(), private_key_pem(key)
