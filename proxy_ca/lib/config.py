"""CA configuration dataclasses."""

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from cryptography import x509
from cryptography.x509 import oid


@dataclass
class CAConfig:
    """Settings for the root CA and the leaf certificates it issues."""

    name: str = "ProxyCA"
    country: str = "CN"
    root_validity_days: int = 3650
    leaf_validity_days: int = 730
    key_size: int = 2048
    leaf_key_size: int = 2048
    cert_dir: Path = field(default_factory=lambda: Path("certs"))
    portable: bool = False
    clock_skew_days: int = 30

    @property
    def root_validity(self) -> timedelta:
        return timedelta(days=self.root_validity_days)

    @property
    def leaf_validity(self) -> timedelta:
        return timedelta(days=self.leaf_validity_days)

    @property
    def clock_skew(self) -> timedelta:
        """How far in the past certificate validity starts."""
        return timedelta(days=self.clock_skew_days)


@dataclass
class DistinguishedName:
    """X.509 Subject Distinguished Name.

    Empty fields are left out of the rendered name.
    """

    common_name: str
    organization: str = ""
    organizational_unit: str = ""
    country: str = ""

    def to_x509_name(self) -> x509.Name:
        """Convert to cryptography x509.Name for certificate generation."""
        attributes = [
            (oid.NameOID.COUNTRY_NAME, self.country),
            (oid.NameOID.ORGANIZATION_NAME, self.organization),
            (oid.NameOID.ORGANIZATIONAL_UNIT_NAME, self.organizational_unit),
            (oid.NameOID.COMMON_NAME, self.common_name),
        ]
        return x509.Name(
            [x509.NameAttribute(name_oid, value) for name_oid, value in attributes if value]
        )
