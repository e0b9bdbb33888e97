"""Test fixtures for cert_installer tests."""

import grp
import logging
import os
import pwd
from collections.abc import Callable, Generator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, ExtensionOID, NameOID

from cert_installer.lib.config import InstallerConfig, RoleConfig
from cert_installer.lib.errors import ReloadError
from cert_installer.lib.models import Role


def make_name(common_name: str | None, organization: str = "Test Org") -> x509.Name:
    attributes = [
        x509.NameAttribute(NameOID.COUNTRY_NAME, "GB"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
    ]
    if common_name is not None:
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    return x509.Name(attributes)


def generate_key() -> ec.EllipticCurvePrivateKey:
    """Generate EC P-256 key (faster than RSA for tests)."""
    return ec.generate_private_key(ec.SECP256R1())


def cert_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def key_pem(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _key_usage(*, digital_signature: bool = False, key_cert_sign: bool = False) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=digital_signature,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=key_cert_sign,
        crl_sign=key_cert_sign,
        encipher_only=False,
        decipher_only=False,
    )


def build_ca(
    subject: x509.Name,
    key: ec.EllipticCurvePrivateKey,
    issuer: x509.Name | None = None,
    issuer_key: ec.EllipticCurvePrivateKey | None = None,
) -> x509.Certificate:
    """Build a CA certificate, self-signed unless an issuer is given."""
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer or subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(key_cert_sign=True), critical=True)
        .sign(issuer_key or key, hashes.SHA256())
    )


@dataclass
class Leaf:
    """Leaf certificate with its key and PEM encodings."""

    cert: x509.Certificate
    key: ec.EllipticCurvePrivateKey

    @property
    def cert_pem(self) -> bytes:
        return cert_pem(self.cert)

    @property
    def key_pem(self) -> bytes:
        return key_pem(self.key)


@pytest.fixture(scope="session")
def root_key() -> ec.EllipticCurvePrivateKey:
    return generate_key()


@pytest.fixture(scope="session")
def root_cert(root_key: ec.EllipticCurvePrivateKey) -> x509.Certificate:
    """Self-signed Root CA certificate."""
    return build_ca(make_name("Test Root CA"), root_key)


@pytest.fixture(scope="session")
def intermediate_key() -> ec.EllipticCurvePrivateKey:
    return generate_key()


@pytest.fixture(scope="session")
def intermediate_cert(
    intermediate_key: ec.EllipticCurvePrivateKey,
    root_cert: x509.Certificate,
    root_key: ec.EllipticCurvePrivateKey,
) -> x509.Certificate:
    """Intermediate CA certificate signed by Root CA."""
    return build_ca(make_name("Test Intermediate CA"), intermediate_key, root_cert.subject, root_key)


@pytest.fixture(scope="session")
def chain_pem(intermediate_cert: x509.Certificate, root_cert: x509.Certificate) -> bytes:
    """Issuer chain of a leaf: Intermediate followed by Root."""
    return cert_pem(intermediate_cert) + cert_pem(root_cert)


@pytest.fixture(scope="session")
def issue_leaf(
    intermediate_cert: x509.Certificate,
    intermediate_key: ec.EllipticCurvePrivateKey,
) -> Callable[..., Leaf]:
    """Factory issuing leaf certificates signed by the Intermediate CA.

    Keyword args:
        cn: Subject CN (None for no CN attribute)
        server / client: Extended key usages to assert
        key: Reuse an existing key (renewal)
        valid_days: Days until notAfter (negative for an expired cert)
        eku: Set False to omit the EKU extension entirely
        extensions: Replace every default extension with these (non-critical)
    """

    def _issue(
        cn: str | None = "foo",
        *,
        server: bool = True,
        client: bool = True,
        key: ec.EllipticCurvePrivateKey | None = None,
        valid_days: int = 30,
        eku: bool = True,
        extensions: list[x509.ExtensionType] | None = None,
    ) -> Leaf:
        key = key or generate_key()
        now = datetime.now(UTC)
        builder = (
            x509.CertificateBuilder()
            .subject_name(make_name(cn))
            .issuer_name(intermediate_cert.subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=60))
            .not_valid_after(now + timedelta(days=valid_days))
        )
        if extensions is not None:
            for extension in extensions:
                builder = builder.add_extension(extension, critical=False)
            return Leaf(cert=builder.sign(intermediate_key, hashes.SHA256()), key=key)
        builder = builder.add_extension(
            x509.BasicConstraints(ca=False, path_length=None), critical=True
        ).add_extension(_key_usage(digital_signature=True), critical=False)
        usages = []
        if server:
            usages.append(ExtendedKeyUsageOID.SERVER_AUTH)
        if client:
            usages.append(ExtendedKeyUsageOID.CLIENT_AUTH)
        if not usages:
            usages.append(ExtendedKeyUsageOID.CODE_SIGNING)
        if eku:
            builder = builder.add_extension(x509.ExtendedKeyUsage(usages), critical=False)
        return Leaf(cert=builder.sign(intermediate_key, hashes.SHA256()), key=key)

    return _issue


@pytest.fixture(scope="session")
def malformed_key_usage() -> x509.UnrecognizedExtension:
    """keyUsage extension whose value is an OCTET STRING instead of a BIT STRING."""
    return x509.UnrecognizedExtension(ExtensionOID.KEY_USAGE, b"\x04\x00")


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    path = tmp_path / "upload"
    path.mkdir()
    return path


@pytest.fixture
def installer_config(tmp_path: Path, upload_dir: Path) -> InstallerConfig:
    """Config rooted in tmp_path, owned by the current user and group."""
    owner = pwd.getpwuid(os.getuid()).pw_name
    group = grp.getgrgid(os.getgid()).gr_name
    staging_parent = tmp_path / "staging"
    staging_parent.mkdir()
    return InstallerConfig(
        upload_directory=upload_dir,
        server=RoleConfig(
            role=Role.SERVER,
            certificate_directory=tmp_path / "server",
            group=group,
            services=["nginx", "postfix"],
        ),
        client=RoleConfig(
            role=Role.CLIENT,
            certificate_directory=tmp_path / "client",
            group=group,
            services=["openvpn"],
        ),
        owner=owner,
        lock_file=tmp_path / "install_certificates.lock",
        settle_delay_seconds=0,
        staging_parent=staging_parent,
    )


class RecordingReloader:
    """ServiceReloader fake that records calls and fails on request."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.calls: list[str] = []
        self.failing = failing or set()

    def reload(self, service: str) -> None:
        self.calls.append(service)
        if service in self.failing:
            raise ReloadError(service, "simulated failure")


@pytest.fixture
def reloader() -> RecordingReloader:
    return RecordingReloader()


@pytest.fixture
def propagate_logs() -> Generator[None]:
    """Let caplog see records from the non-propagating package logger."""
    logger = logging.getLogger("cert_installer")
    logger.propagate = True
    try:
        yield
    finally:
        logger.propagate = False
