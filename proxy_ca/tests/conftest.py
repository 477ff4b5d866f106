"""Test fixtures for proxy_ca tests."""

import logging
import threading
from collections.abc import Callable, Generator
from datetime import timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.verification import PolicyBuilder, Store

from proxy_ca.lib.cert_utils import generate_private_key
from proxy_ca.lib.certificate_builder import CertificateBuilder
from proxy_ca.lib.config import CAConfig, DistinguishedName
from proxy_ca.lib.exceptions import TrustStoreError
from proxy_ca.lib.issuer import LeafIssuer
from proxy_ca.lib.root_ca import RootCA
from proxy_ca.lib.trust_store import NullTrustStore

TEST_KEY_SIZE = 2048


class RecordingTrustStore:
    """Trust store double that records calls and can be told to fail."""

    def __init__(
        self,
        trusted: bool = False,
        fail_lookup: bool = False,
        fail_import: bool = False,
        fail_remove: bool = False,
    ) -> None:
        self.trusted = trusted
        self.fail_lookup = fail_lookup
        self.fail_import = fail_import
        self.fail_remove = fail_remove
        self.calls: list[tuple[str, object]] = []

    def is_trusted(self, certificate: x509.Certificate) -> bool:
        self.calls.append(("is_trusted", certificate))
        if self.fail_lookup:
            raise TrustStoreError("lookup failed")
        return self.trusted

    def import_ca(self, certificate: x509.Certificate) -> None:
        self.calls.append(("import_ca", certificate))
        if self.fail_import:
            raise TrustStoreError("import failed")

    def remove_ca(self, name: str) -> None:
        self.calls.append(("remove_ca", name))
        if self.fail_remove:
            raise TrustStoreError("remove failed")

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class CountingKeyGenerator:
    """Key source that counts how many keys were generated."""

    def __init__(self) -> None:
        self.count = 0
        self._lock = threading.Lock()

    def __call__(self, key_size: int) -> RSAPrivateKey:
        with self._lock:
            self.count += 1
        return generate_private_key(key_size)


@pytest.fixture
def recording_trust_store() -> type[RecordingTrustStore]:
    """Return the recording trust store class for per-test configuration."""
    return RecordingTrustStore


@pytest.fixture
def counting_key_generator() -> CountingKeyGenerator:
    """Return a key source that counts generated keys."""
    return CountingKeyGenerator()


@pytest.fixture
def ca_workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run each test from an empty working directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def ca_config(ca_workdir: Path) -> CAConfig:
    """Return test CA configuration with small keys and short validity."""
    return CAConfig(
        name="Test Proxy CA",
        root_validity_days=30,
        leaf_validity_days=7,
        key_size=TEST_KEY_SIZE,
        leaf_key_size=TEST_KEY_SIZE,
        cert_dir=ca_workdir / "certs",
    )


@pytest.fixture
def root_ca(ca_config: CAConfig) -> RootCA:
    """Open a freshly generated root CA with no trust store side effects."""
    return RootCA.from_config(ca_config, trust_store=NullTrustStore())


@pytest.fixture
def issuer(root_ca: RootCA) -> LeafIssuer:
    """Return a leaf issuer bound to the test root CA."""
    return LeafIssuer(root_ca)


@pytest.fixture
def root_key() -> RSAPrivateKey:
    """Generate RSA private key for a standalone root CA."""
    return generate_private_key(key_size=TEST_KEY_SIZE)


@pytest.fixture
def root_cert(root_key: RSAPrivateKey) -> x509.Certificate:
    """Build a standalone self-signed root CA certificate."""
    return CertificateBuilder.build_root_ca(
        subject_dn=DistinguishedName(common_name="Test Root CA", organization="Test Root CA"),
        private_key=root_key,
        validity=timedelta(days=30),
    )


@pytest.fixture
def leaf_key() -> RSAPrivateKey:
    """Generate RSA private key for a leaf certificate."""
    return generate_private_key(key_size=TEST_KEY_SIZE)


@pytest.fixture
def leaf_csr(leaf_key: RSAPrivateKey) -> x509.CertificateSigningRequest:
    """Build a leaf CSR for a wildcard name."""
    subject = DistinguishedName(
        common_name="*.example.com",
        organization="*.example.com",
        organizational_unit="Test Root CA",
        country="CN",
    )
    return (
        x509.CertificateSigningRequestBuilder()
        .subject_name(subject.to_x509_name())
        .sign(leaf_key, hashes.SHA256())
    )


@pytest.fixture
def proxy_ca_logs() -> Generator[None]:
    """Let caplog see records from the non-propagating package logger."""
    logger = logging.getLogger("proxy_ca")
    logger.propagate = True
    try:
        yield
    finally:
        logger.propagate = False


def verify_server_chain(
    leaf: x509.Certificate, root: x509.Certificate, hostname: str
) -> list[x509.Certificate]:
    """Run full TLS server path validation of leaf for hostname, trusting only root.

    Raises:
        cryptography.x509.verification.VerificationError: If the chain is rejected
    """
    verifier = PolicyBuilder().store(Store([root])).build_server_verifier(x509.DNSName(hostname))
    return verifier.verify(leaf, [])


@pytest.fixture
def server_chain_verifier() -> Callable[[x509.Certificate, x509.Certificate, str], list]:
    """Return the TLS server path validator."""
    return verify_server_chain
