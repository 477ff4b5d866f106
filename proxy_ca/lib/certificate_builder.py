"""Certificate builder for X.509 root CA and leaf certificate construction."""

from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID

from .cert_utils import generate_serial_number, validate_csr_signature
from .config import DistinguishedName

DEFAULT_CLOCK_SKEW = timedelta(days=30)

ROOT_KEY_USAGE = x509.KeyUsage(
    digital_signature=True,
    content_commitment=False,
    key_encipherment=True,
    data_encipherment=False,
    key_agreement=False,
    key_cert_sign=True,
    crl_sign=False,
    encipher_only=False,
    decipher_only=False,
)
# Leaves are end entities, so no keyCertSign
LEAF_KEY_USAGE = x509.KeyUsage(
    digital_signature=True,
    content_commitment=False,
    key_encipherment=True,
    data_encipherment=False,
    key_agreement=False,
    key_cert_sign=False,
    crl_sign=False,
    encipher_only=False,
    decipher_only=False,
)
# Shared by the root and every leaf it issues
EXTENDED_KEY_USAGE = x509.ExtendedKeyUsage(
    [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
)


def _subject_alternative_names(common_name: str) -> x509.SubjectAlternativeName:
    names = [x509.DNSName(common_name)]
    if common_name.startswith("*."):
        names.append(x509.DNSName(common_name[2:]))
    return x509.SubjectAlternativeName(names)


def _authority_key_identifier(issuer_cert: x509.Certificate) -> x509.AuthorityKeyIdentifier:
    try:
        ski = issuer_cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
    except x509.ExtensionNotFound:
        # Roots written by older tooling carry no SKI
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_cert.public_key())
    return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski.value)


class CertificateBuilder:
    """Builds the self-signed root CA and the leaf certificates it signs."""

    @staticmethod
    def build_root_ca(
        subject_dn: DistinguishedName,
        private_key: RSAPrivateKey,
        validity: timedelta,
        clock_skew: timedelta = DEFAULT_CLOCK_SKEW,
    ) -> x509.Certificate:
        """Build self-signed root CA certificate.

        Validity starts clock_skew in the past so clients with slow clocks
        still accept the certificate.

        Args:
            subject_dn: Distinguished name for certificate subject
            private_key: RSA private key for signing
            validity: How long from now the certificate stays valid
            clock_skew: How far before now validity begins

        Returns:
            Self-signed X.509 certificate with CA extensions
        """
        subject = subject_dn.to_x509_name()
        now = datetime.now(timezone.utc)

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(private_key.public_key())
            .serial_number(generate_serial_number())
            .not_valid_before(now - clock_skew)
            .not_valid_after(now + validity)
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=None),
                critical=True,
            )
            .add_extension(ROOT_KEY_USAGE, critical=True)
            .add_extension(EXTENDED_KEY_USAGE, critical=False)
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()),
                critical=False,
            )
        )

        return builder.sign(private_key, hashes.SHA256())

    @staticmethod
    def build_leaf_certificate(
        csr: x509.CertificateSigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        validity: timedelta,
        clock_skew: timedelta = DEFAULT_CLOCK_SKEW,
    ) -> x509.Certificate:
        """Build a leaf certificate from a CSR, signed by the root CA.

        Subject and public key come from the CSR. The CSR common name is
        also placed in the subjectAltName extension, together with the bare
        parent domain for wildcard names.

        Args:
            csr: Certificate signing request for the impersonated host
            issuer_cert: Root CA certificate (issuer)
            issuer_key: Root CA private key for signing
            validity: How long from now the certificate stays valid
            clock_skew: How far before now validity begins

        Returns:
            X.509 leaf certificate signed by the root CA

        Raises:
            ValueError: If CSR signature is invalid or the CSR has no common name
        """
        if not validate_csr_signature(csr):
            raise ValueError("CSR signature validation failed")

        common_names = csr.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)
        if not common_names:
            raise ValueError("CSR subject has no common name")
        common_name = str(common_names[0].value)

        now = datetime.now(timezone.utc)

        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(issuer_cert.subject)
            .public_key(csr.public_key())
            .serial_number(generate_serial_number())
            .not_valid_before(now - clock_skew)
            .not_valid_after(now + validity)
            .add_extension(LEAF_KEY_USAGE, critical=True)
            .add_extension(EXTENDED_KEY_USAGE, critical=False)
            .add_extension(_subject_alternative_names(common_name), critical=False)
            .add_extension(_authority_key_identifier(issuer_cert), critical=False)
        )

        return builder.sign(issuer_key, hashes.SHA256())
