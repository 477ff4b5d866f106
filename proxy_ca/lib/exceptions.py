"""Exception types raised by the proxy CA."""


class ProxyCAError(Exception):
    """Base class for proxy CA errors."""


class PEMParseError(ProxyCAError, ValueError):
    """PEM data is malformed or lacks a required block."""


class KeyMismatchError(ProxyCAError, ValueError):
    """Private key does not belong to the certificate it was loaded with."""


class TrustStoreError(ProxyCAError):
    """Operating system trust store lookup, import or removal failed."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode
