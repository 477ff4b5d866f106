"""Result models for proxy CA operations."""

import os
import ssl
import tempfile
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey


@dataclass(frozen=True)
class TLSCertificate:
    """Leaf certificate and private key loaded from a cache file.

    The pair is ready to be handed to a TLS server, either as objects or
    through ``ssl_context()``.
    """

    certificate: x509.Certificate
    private_key: RSAPrivateKey
    path: Path

    @property
    def certificate_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    @property
    def private_key_pem(self) -> bytes:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def ssl_context(self) -> ssl.SSLContext:
        """Return a server-side SSLContext serving this certificate.

        The context is loaded from the parsed pair re-encoded as PEM, so cache
        files whose key body OpenSSL would not read directly still work.
        """
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        fd, name = tempfile.mkstemp(suffix=".pem")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(self.certificate_pem + self.private_key_pem)
            context.load_cert_chain(certfile=name)
        finally:
            os.unlink(name)
        return context
