"""Root CA store: creates or loads the CA that signs impersonated leaf certificates."""

import sys
import threading
from datetime import timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .cert_utils import (
    generate_private_key,
    get_certificate_fingerprint,
    load_pem_bundle,
    serialize_certificate,
    serialize_private_key,
    write_file_atomic,
)
from .certificate_builder import DEFAULT_CLOCK_SKEW, CertificateBuilder
from .config import CAConfig, DistinguishedName
from .exceptions import TrustStoreError
from .logging_config import LOGGER
from .trust_store import TrustStore, system_trust_store

FILE_MODE = 0o644
DIR_MODE = 0o755


def _program_dir() -> Path:
    """Directory holding the running program (or frozen executable)."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(sys.argv[0]).resolve().parent


class RootCA:
    """Root certificate authority backed by a key file and a certificate file.

    Instances are built through ``RootCA.open`` and are not modified
    afterwards. ``lock`` serializes leaf issuance against this CA.
    """

    def __init__(
        self,
        name: str,
        key_file: Path,
        cert_file: Path,
        key_size: int,
        cert_dir: Path,
        certificate: x509.Certificate,
        private_key: RSAPrivateKey,
    ) -> None:
        self.name = name
        self.key_file = key_file
        self.cert_file = cert_file
        self.key_size = key_size
        self.cert_dir = cert_dir
        self.certificate = certificate
        self.private_key = private_key
        self.der_bytes = certificate.public_bytes(serialization.Encoding.DER)
        self.lock = threading.Lock()

    def __repr__(self) -> str:
        return f"RootCA(name={self.name!r}, cert_file={str(self.cert_file)!r})"

    @classmethod
    def open(
        cls,
        name: str,
        validity: timedelta,
        key_size: int,
        cert_dir: Path | str,
        portable: bool = False,
        trust_store: TrustStore | None = None,
        clock_skew: timedelta = DEFAULT_CLOCK_SKEW,
    ) -> "RootCA":
        """Load the named root CA from disk, generating it on first run.

        Key and certificate live in ``<name>.key`` and ``<name>.crt``. When
        portable is set, those files and cert_dir are resolved against the
        directory of the running program instead of the working directory.

        If the trust store does not trust the CA, the CA is (re)imported and
        the leaf cache is emptied once the import succeeds. Trust store
        failures are logged and never abort opening the CA.

        Args:
            name: CA name, used for subject CN/O and the file names
            validity: How long a freshly generated CA stays valid
            key_size: RSA key size in bits for a freshly generated CA
            cert_dir: Directory caching issued leaf certificates
            portable: Anchor all paths beside the running program
            trust_store: Trust store bridge (default: the platform's)
            clock_skew: How far in the past certificate validity starts

        Returns:
            Ready-to-use RootCA

        Raises:
            PEMParseError: If existing CA files hold malformed or missing blocks
            KeyMismatchError: If the stored key does not match the certificate
            OSError: If CA files or the cache directory cannot be read or written
        """
        key_file = Path(f"{name}.key")
        cert_file = Path(f"{name}.crt")
        cert_dir = Path(cert_dir)

        if portable:
            root_dir = _program_dir()
            key_file = root_dir / key_file
            cert_file = root_dir / cert_file
            cert_dir = root_dir / cert_dir

        if not cert_file.exists():
            LOGGER.info("Generating root CA for %s", cert_file)
            private_key = generate_private_key(key_size)
            certificate = CertificateBuilder.build_root_ca(
                subject_dn=DistinguishedName(common_name=name, organization=name),
                private_key=private_key,
                validity=validity,
                clock_skew=clock_skew,
            )
            key_file.parent.mkdir(parents=True, exist_ok=True)
            cert_file.parent.mkdir(parents=True, exist_ok=True)
            write_file_atomic(key_file, serialize_private_key(private_key), FILE_MODE)
            write_file_atomic(cert_file, serialize_certificate(certificate), FILE_MODE)
        else:
            certificate, private_key = load_pem_bundle(
                key_file.read_bytes(), cert_file.read_bytes()
            )
            LOGGER.info("Loaded root CA from %s", cert_file)

        root_ca = cls(
            name=name,
            key_file=key_file,
            cert_file=cert_file,
            key_size=key_size,
            cert_dir=cert_dir,
            certificate=certificate,
            private_key=private_key,
        )

        root_ca._ensure_trusted(trust_store or system_trust_store())

        if not cert_dir.exists():
            cert_dir.mkdir(mode=DIR_MODE, parents=True)

        return root_ca

    @classmethod
    def from_config(cls, config: CAConfig, trust_store: TrustStore | None = None) -> "RootCA":
        """Open the root CA described by a CAConfig."""
        return cls.open(
            name=config.name,
            validity=config.root_validity,
            key_size=config.key_size,
            cert_dir=config.cert_dir,
            portable=config.portable,
            trust_store=trust_store,
            clock_skew=config.clock_skew,
        )

    @property
    def certificate_pem(self) -> bytes:
        return serialize_certificate(self.certificate)

    def fingerprint(self) -> str:
        return get_certificate_fingerprint(self.certificate)

    def purge_leaf_cache(self) -> int:
        """Delete every cached leaf certificate file.

        Individual failures are logged and skipped.

        Returns:
            Number of files removed
        """
        if not self.cert_dir.is_dir():
            return 0

        removed = 0
        for path in self.cert_dir.iterdir():
            if not path.is_file():
                continue
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                LOGGER.error("Remove(%r) error: %s", path.name, e)
        return removed

    def _ensure_trusted(self, trust_store: TrustStore) -> None:
        try:
            if trust_store.is_trusted(self.certificate):
                return
            reason = "not present in system trust store"
        except TrustStoreError as e:
            reason = str(e)

        LOGGER.warning(
            "Verify root CA %r error: %s, trying to import to system root", self.name, reason
        )

        try:
            trust_store.remove_ca(self.name)
        except TrustStoreError as e:
            LOGGER.error("Remove old root CA %r error: %s", self.name, e)

        try:
            trust_store.import_ca(self.certificate)
        except TrustStoreError as e:
            LOGGER.error("Import root CA %r error: %s", self.name, e)
            return

        LOGGER.info("Imported root CA %s into system trust store", self.cert_file)
        removed = self.purge_leaf_cache()
        if removed:
            LOGGER.info("Removed %d cached leaf certificates signed before import", removed)
