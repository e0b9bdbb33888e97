"""Certificate utility functions for parsing, purpose classification and key matching."""

import hashlib
import re
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID, ExtensionOID, NameOID

from cert_installer.lib.models import Purpose

CN_PATTERN = re.compile(r"[a-zA-Z0-9.-]+")

PEM_CERT_BEGIN = b"-----BEGIN CERTIFICATE-----"

# Raised lazily by cryptography when an extension, name or public key of an
# already loaded certificate cannot be decoded
CERTIFICATE_ERRORS = (ValueError, UnsupportedAlgorithm)


def load_certificates(pem_data: bytes) -> list[x509.Certificate]:
    """Load every CERTIFICATE block from PEM bytes.

    Returns an empty list when the data holds no certificate or any block
    fails to parse; such files are never host-certificate candidates.
    """
    if PEM_CERT_BEGIN not in pem_data:
        return []
    try:
        return x509.load_pem_x509_certificates(pem_data)
    except ValueError:
        return []


def load_first_certificate(path: Path) -> x509.Certificate | None:
    """Return the first certificate of a PEM file, or None if unreadable."""
    try:
        certificates = load_certificates(path.read_bytes())
    except OSError:
        return None
    return certificates[0] if certificates else None


def render_name(name: x509.Name) -> str:
    """Render a subject/issuer name as a canonical string for exact comparison."""
    return name.rfc4514_string()


def extract_common_name(cert: x509.Certificate) -> str:
    """Extract and validate the subject CN.

    Raises:
        ValueError: If the CN is absent, not a string, or contains characters
            outside ``[a-zA-Z0-9.-]``
    """
    attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        raise ValueError("certificate subject has no CN")
    cn = attributes[0].value
    if not isinstance(cn, str):
        raise ValueError("CN must be string")
    if not CN_PATTERN.fullmatch(cn):
        raise ValueError(f"CN {cn!r} contains characters outside [a-zA-Z0-9.-]")
    return cn


def is_expired(cert: x509.Certificate, now: datetime | None = None) -> bool:
    """Return True if notAfter is in the past (no clock skew allowance)."""
    now = now or datetime.now(UTC)
    return cert.not_valid_after_utc < now


def public_key_fingerprint(public_key) -> str:
    """SHA-256 over the DER-encoded SubjectPublicKeyInfo."""
    spki = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(spki).hexdigest()


def certificate_fingerprint(cert: x509.Certificate) -> str:
    """Public-key fingerprint of a certificate."""
    return public_key_fingerprint(cert.public_key())


def private_key_fingerprint(pem_data: bytes) -> str:
    """Public-key fingerprint derived from an unencrypted PEM private key.

    Raises:
        ValueError: If the data is not an unencrypted private key
    """
    try:
        key = serialization.load_pem_private_key(pem_data, password=None)
    except TypeError as e:
        raise ValueError("private key is encrypted") from e
    except UnsupportedAlgorithm as e:
        raise ValueError(f"unsupported private key algorithm: {e}") from e
    return public_key_fingerprint(key.public_key())


def _extension(cert: x509.Certificate, oid: x509.ObjectIdentifier):
    try:
        return cert.extensions.get_extension_for_oid(oid).value
    except x509.ExtensionNotFound:
        return None


def is_ca(cert: x509.Certificate) -> bool:
    """Return True if OpenSSL would treat the certificate as a CA.

    A keyUsage without keyCertSign rules it out. Otherwise basicConstraints
    decides when present. Without basicConstraints, a self-issued v1
    certificate or a keyUsage asserting keyCertSign is a CA.
    """
    key_usage = _extension(cert, ExtensionOID.KEY_USAGE)
    if key_usage is not None and not key_usage.key_cert_sign:
        return False
    constraints = _extension(cert, ExtensionOID.BASIC_CONSTRAINTS)
    if constraints is not None:
        return constraints.ca
    if cert.version is x509.Version.v1 and cert.subject == cert.issuer:
        return True
    return key_usage is not None


def _eku_allows(cert: x509.Certificate, oid: x509.ObjectIdentifier) -> bool:
    # anyExtendedKeyUsage does not stand in for serverAuth or clientAuth
    eku = _extension(cert, ExtensionOID.EXTENDED_KEY_USAGE)
    return eku is None or oid in eku


def is_ssl_server(cert: x509.Certificate) -> bool:
    """SSL server purpose: EKU allows serverAuth and KU allows a TLS server key exchange."""
    if not _eku_allows(cert, ExtendedKeyUsageOID.SERVER_AUTH):
        return False
    key_usage = _extension(cert, ExtensionOID.KEY_USAGE)
    if key_usage is None:
        return True
    return key_usage.digital_signature or key_usage.key_encipherment or key_usage.key_agreement


def is_ssl_client(cert: x509.Certificate) -> bool:
    """SSL client purpose: EKU allows clientAuth and KU allows client authentication."""
    if not _eku_allows(cert, ExtendedKeyUsageOID.CLIENT_AUTH):
        return False
    key_usage = _extension(cert, ExtensionOID.KEY_USAGE)
    if key_usage is None:
        return True
    return key_usage.digital_signature or key_usage.key_agreement


def certificate_purposes(cert: x509.Certificate) -> frozenset[Purpose]:
    """Classify a certificate.

    A CA certificate is classified as CA only; it is never a leaf candidate.
    Otherwise the result holds SERVER and/or CLIENT, or nothing.
    """
    if is_ca(cert):
        return frozenset({Purpose.CA})
    purposes = set()
    if is_ssl_server(cert):
        purposes.add(Purpose.SERVER)
    if is_ssl_client(cert):
        purposes.add(Purpose.CLIENT)
    return frozenset(purposes)
