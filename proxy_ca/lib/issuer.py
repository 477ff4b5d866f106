"""Leaf certificate issuer backed by an on-disk cache keyed by common name."""

from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .cert_utils import (
    generate_private_key,
    get_certificate_serial_hex,
    load_key_pair,
    serialize_certificate,
    serialize_private_key,
    write_file_atomic,
)
from .certificate_builder import DEFAULT_CLOCK_SKEW, CertificateBuilder
from .common_name import get_common_name
from .config import CAConfig, DistinguishedName
from .logging_config import LOGGER
from .models import TLSCertificate
from .root_ca import FILE_MODE, RootCA

LEAF_SUFFIX = ".crt"
DEFAULT_COUNTRY = "CN"

KeyGenerator = Callable[[int], RSAPrivateKey]


class LeafIssuer:
    """Issues leaf certificates signed by a RootCA, caching them on disk.

    A cache file, once written, is served as-is for the rest of its life.
    Generation happens under the RootCA lock with the cache re-checked after
    the lock is taken, so concurrent first requests for one name produce a
    single key and a single file.
    """

    def __init__(
        self,
        root_ca: RootCA,
        key_generator: KeyGenerator = generate_private_key,
        country: str = DEFAULT_COUNTRY,
        clock_skew: timedelta = DEFAULT_CLOCK_SKEW,
    ) -> None:
        """Initialize issuer.

        Args:
            root_ca: CA that signs issued certificates and owns the cache directory
            key_generator: Callable returning a new RSA key for a bit size
            country: Country code placed in every leaf subject
            clock_skew: How far in the past leaf validity starts
        """
        self.root_ca = root_ca
        self.key_generator = key_generator
        self.country = country
        self.clock_skew = clock_skew

    @classmethod
    def from_config(cls, root_ca: RootCA, config: CAConfig) -> "LeafIssuer":
        return cls(root_ca, country=config.country, clock_skew=config.clock_skew)

    def cache_path(self, common_name: str, suffix: str = LEAF_SUFFIX) -> Path:
        """Return the cache file for common_name.

        The ``*`` of a wildcard name is dropped, so ``*.example.com`` and
        ``.example.com`` share ``.example.com.crt``.

        Raises:
            ValueError: If the name could escape the cache directory
        """
        if common_name.startswith("*."):
            common_name = common_name[1:]
        if not common_name or common_name in (".", "..") or "/" in common_name or "\\" in common_name:
            raise ValueError(f"invalid common name: {common_name!r}")
        return self.root_ca.cert_dir / f"{common_name}{suffix}"

    def issue(
        self, common_name: str, validity: timedelta, key_size: int | None = None
    ) -> TLSCertificate:
        """Return the certificate for common_name, generating it on first use.

        Args:
            common_name: Subject name, usually from get_common_name()
            validity: Validity of a newly generated certificate
            key_size: RSA bits for a newly generated key (default: the CA's)

        Returns:
            Certificate and key loaded from the cache file

        Raises:
            PEMParseError: If the cache file cannot be parsed
            OSError: If the cache file cannot be written or read
        """
        path = self.cache_path(common_name)

        if not path.exists():
            LOGGER.debug("Issue %s certificate for %r...", self.root_ca.name, common_name)
            with self.root_ca.lock:
                if not path.exists():
                    self._issue(common_name, validity, key_size or self.root_ca.key_size, path)

        return load_key_pair(path)

    def issue_for_host(
        self, hostname: str, validity: timedelta, key_size: int | None = None
    ) -> TLSCertificate:
        """Resolve hostname to its common name and issue for that name."""
        return self.issue(get_common_name(hostname), validity, key_size)

    def _issue(self, common_name: str, validity: timedelta, key_size: int, path: Path) -> None:
        private_key = self.key_generator(key_size)

        subject = DistinguishedName(
            common_name=common_name,
            organization=common_name,
            organizational_unit=self.root_ca.name,
            country=self.country,
        )
        csr = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(subject.to_x509_name())
            .sign(private_key, hashes.SHA256())
        )

        certificate = CertificateBuilder.build_leaf_certificate(
            csr=csr,
            issuer_cert=self.root_ca.certificate,
            issuer_key=self.root_ca.private_key,
            validity=validity,
            clock_skew=self.clock_skew,
        )

        write_file_atomic(
            path,
            serialize_certificate(certificate) + serialize_private_key(private_key),
            FILE_MODE,
        )
        LOGGER.info(
            "Issued %s certificate for %r (serial %s)",
            self.root_ca.name,
            common_name,
            get_certificate_serial_hex(certificate),
        )
