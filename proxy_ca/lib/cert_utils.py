"""Certificate utility functions for key generation, PEM handling and file writes."""

import base64
import binascii
import os
import re
import tempfile
import uuid
from collections.abc import Iterator
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .exceptions import KeyMismatchError, PEMParseError
from .models import TLSCertificate

_PEM_BLOCK = re.compile(
    rb"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\r?\n(?P<body>.*?)-----END (?P=label)-----",
    re.DOTALL,
)

CERTIFICATE_LABEL = "CERTIFICATE"
PRIVATE_KEY_LABELS = frozenset({"PRIVATE KEY", "RSA PRIVATE KEY"})


def generate_private_key(key_size: int = 2048) -> RSAPrivateKey:
    """Generate RSA private key with specified size."""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def serialize_private_key(key: RSAPrivateKey) -> bytes:
    """Serialize private key to PEM format (PKCS8, no encryption)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def serialize_certificate(cert: x509.Certificate) -> bytes:
    """Serialize certificate to PEM format."""
    return cert.public_bytes(serialization.Encoding.PEM)


def iter_pem_blocks(data: bytes) -> Iterator[tuple[str, bytes]]:
    """Yield (label, DER body) for every PEM block in data, in order.

    Header lines inside a block (``Proc-Type: ...``) are skipped. Text
    between blocks is ignored.

    Raises:
        PEMParseError: If a block body is not valid base64
    """
    for match in _PEM_BLOCK.finditer(data):
        label = match.group("label").decode("ascii")
        lines = [
            line.strip()
            for line in match.group("body").splitlines()
            if line.strip() and b":" not in line
        ]
        try:
            der = base64.b64decode(b"".join(lines), validate=True)
        except binascii.Error as e:
            raise PEMParseError(f"invalid base64 in {label} block") from e
        yield label, der


def parse_private_key(der: bytes) -> RSAPrivateKey:
    """Parse an RSA private key from PKCS#8 or PKCS#1 DER."""
    try:
        key = serialization.load_der_private_key(der, password=None)
    except ValueError as e:
        raise PEMParseError(f"malformed private key: {e}") from e
    if not isinstance(key, RSAPrivateKey):
        raise PEMParseError("expected RSA private key")
    return key


def load_pem_bundle(*sources: bytes) -> tuple[x509.Certificate, RSAPrivateKey]:
    """Find a certificate and its RSA private key across PEM sources.

    Every source is scanned for both block types, so the key and the
    certificate may sit in the same file or in separate ones. When a type
    appears more than once, the last occurrence wins.

    Raises:
        PEMParseError: If a block is malformed or either block type is missing
        KeyMismatchError: If the key does not match the certificate
    """
    cert: x509.Certificate | None = None
    key: RSAPrivateKey | None = None

    for data in sources:
        for label, der in iter_pem_blocks(data):
            if label == CERTIFICATE_LABEL:
                try:
                    cert = x509.load_der_x509_certificate(der)
                except ValueError as e:
                    raise PEMParseError(f"malformed certificate: {e}") from e
            elif label in PRIVATE_KEY_LABELS:
                key = parse_private_key(der)

    if cert is None:
        raise PEMParseError("no CERTIFICATE block found")
    if key is None:
        raise PEMParseError("no PRIVATE KEY block found")
    if not keys_match(cert, key):
        raise KeyMismatchError("private key does not match certificate public key")

    return cert, key


def load_key_pair(path: Path) -> TLSCertificate:
    """Load a certificate + private key PEM file into a TLSCertificate."""
    cert, key = load_pem_bundle(path.read_bytes())
    return TLSCertificate(certificate=cert, private_key=key, path=path)


def keys_match(cert: x509.Certificate, key: RSAPrivateKey) -> bool:
    """Return True if the certificate carries the public half of key."""
    public_key = cert.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        return False
    return public_key.public_numbers() == key.public_key().public_numbers()


def generate_serial_number() -> int:
    """Generate certificate serial number from UUID4.

    Random 128-bit values keep serials unique across restarts and
    machines, unlike timestamp-derived serials.

    Returns:
        Integer serial number for x509.CertificateBuilder.serial_number()
    """
    return uuid.uuid4().int


def get_certificate_serial_hex(cert: x509.Certificate) -> str:
    """Return certificate serial number as hex with colons (e.g., 3A:F2:B1:...)."""
    serial_hex = f"{cert.serial_number:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    return ":".join(serial_hex[i : i + 2] for i in range(0, len(serial_hex), 2))


def get_certificate_fingerprint(cert: x509.Certificate) -> str:
    """Return the SHA-256 fingerprint of a certificate as lowercase hex."""
    return cert.fingerprint(hashes.SHA256()).hex()


def validate_csr_signature(csr: x509.CertificateSigningRequest) -> bool:
    """Verify CSR self-signature to prove private key possession.

    Args:
        csr: Certificate signing request

    Returns:
        True if signature is valid, False otherwise
    """
    return csr.is_signature_valid


def write_file_atomic(path: Path, data: bytes, mode: int = 0o644) -> None:
    """Write data to path so readers see either nothing or the whole file.

    The bytes go to a temporary file in the same directory, which is then
    renamed over path. The temporary file is removed if anything fails.
    """
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
