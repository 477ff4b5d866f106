"""Operating system trust store integration for the root CA.

Each store wraps the platform's own tooling. Failures surface as
TrustStoreError so callers can decide whether they are fatal.
"""

import os
import ssl
import subprocess
import sys
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from .exceptions import TrustStoreError

# security(1) exit status when no keychain item matches
ITEM_NOT_FOUND = 44


class TrustStore(Protocol):
    """Lookup, import and removal of CA certificates in a trust store."""

    def is_trusted(self, certificate: x509.Certificate) -> bool: ...

    def import_ca(self, certificate: x509.Certificate) -> None: ...

    def remove_ca(self, name: str) -> None: ...


def _run(args: list[str]) -> str:
    """Run a trust store tool, returning stdout.

    Raises:
        TrustStoreError: If the tool is missing or exits non-zero
    """
    try:
        result = subprocess.run(args, capture_output=True, text=True)
    except OSError as e:
        raise TrustStoreError(f"{args[0]} could not be started: {e}") from e

    if result.returncode != 0:
        output = (result.stdout + result.stderr).strip()
        raise TrustStoreError(
            f"{args[0]} failed (rc={result.returncode}): {output}", result.returncode
        )
    return result.stdout


@contextmanager
def _certificate_file(certificate: x509.Certificate) -> Iterator[Path]:
    """Write certificate to a temporary PEM file for command line tools."""
    fd, name = tempfile.mkstemp(suffix=".crt")
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(certificate.public_bytes(serialization.Encoding.PEM))
        yield path
    finally:
        path.unlink(missing_ok=True)


class NullTrustStore:
    """Trust store for platforms without one: everything counts as trusted."""

    def is_trusted(self, certificate: x509.Certificate) -> bool:
        return True

    def import_ca(self, certificate: x509.Certificate) -> None:
        pass

    def remove_ca(self, name: str) -> None:
        pass


class WindowsTrustStore:
    """Current user's Root store, managed through certutil."""

    store_name = "Root"

    def is_trusted(self, certificate: x509.Certificate) -> bool:
        der = certificate.public_bytes(serialization.Encoding.DER)
        try:
            certificates = ssl.enum_certificates(self.store_name.upper())
        except OSError as e:
            raise TrustStoreError(f"cannot read {self.store_name} store: {e}") from e
        return any(cert == der for cert, encoding, _trust in certificates if encoding == "x509_asn")

    def import_ca(self, certificate: x509.Certificate) -> None:
        with _certificate_file(certificate) as path:
            _run(["certutil", "-addstore", "-user", self.store_name, str(path)])

    def remove_ca(self, name: str) -> None:
        _run(["certutil", "-delstore", "-user", self.store_name, name])


class MacOSTrustStore:
    """Login keychain, managed through the security tool."""

    def __init__(self, keychain: Path | None = None) -> None:
        """Initialize macOS trust store.

        Args:
            keychain: Keychain to import into (default: user's login keychain)
        """
        self.keychain = keychain or Path.home() / "Library" / "Keychains" / "login.keychain-db"

    def is_trusted(self, certificate: x509.Certificate) -> bool:
        """Look the CA up by common name and match its SHA-1 fingerprint."""
        names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if not names:
            return False
        try:
            output = _run(["security", "find-certificate", "-a", "-Z", "-c", str(names[0].value)])
        except TrustStoreError as e:
            if e.returncode == ITEM_NOT_FOUND:
                return False
            raise

        fingerprint = certificate.fingerprint(hashes.SHA1()).hex().upper()
        for line in output.splitlines():
            label, _, value = line.partition(":")
            if label.strip() == "SHA-1 hash" and value.strip().upper() == fingerprint:
                return True
        return False

    def import_ca(self, certificate: x509.Certificate) -> None:
        with _certificate_file(certificate) as path:
            _run(
                [
                    "security",
                    "add-trusted-cert",
                    "-r",
                    "trustRoot",
                    "-k",
                    str(self.keychain),
                    str(path),
                ]
            )

    def remove_ca(self, name: str) -> None:
        _run(["security", "delete-certificate", "-c", name, str(self.keychain)])


def system_trust_store(platform: str = sys.platform) -> TrustStore:
    """Return the trust store bridge for the given platform."""
    if platform == "win32":
        return WindowsTrustStore()
    if platform == "darwin":
        return MacOSTrustStore()
    return NullTrustStore()
