#!/usr/bin/env python3
"""Bootstrap the proxy root CA: generate it on first run, load and re-trust it otherwise."""

import argparse
import sys
from pathlib import Path

from proxy_ca.lib.cert_utils import get_certificate_serial_hex
from proxy_ca.lib.config import CAConfig
from proxy_ca.lib.logging_config import LOGGER
from proxy_ca.lib.root_ca import RootCA
from proxy_ca.lib.trust_store import NullTrustStore


def add_ca_arguments(parser: argparse.ArgumentParser, defaults: CAConfig) -> None:
    """Add the options that locate and describe the root CA."""
    parser.add_argument(
        "--name",
        default=defaults.name,
        help=f"CA name, also the key/cert file stem (default: {defaults.name})",
    )
    parser.add_argument(
        "--cert-dir",
        type=Path,
        default=defaults.cert_dir,
        help=f"Leaf certificate cache directory (default: {defaults.cert_dir})",
    )
    parser.add_argument(
        "--portable",
        action="store_true",
        help="Keep CA files and cache beside the program instead of the working directory",
    )
    parser.add_argument(
        "--no-trust",
        action="store_true",
        help="Skip system trust store verification and import",
    )


def config_from_args(args: argparse.Namespace, defaults: CAConfig) -> CAConfig:
    """Build a CAConfig from parsed CA options."""
    return CAConfig(
        name=args.name,
        country=defaults.country,
        root_validity_days=getattr(args, "ca_validity_days", defaults.root_validity_days),
        leaf_validity_days=getattr(args, "validity_days", defaults.leaf_validity_days),
        key_size=getattr(args, "ca_key_size", defaults.key_size),
        leaf_key_size=getattr(args, "key_size", defaults.leaf_key_size),
        cert_dir=args.cert_dir,
        portable=args.portable,
        clock_skew_days=defaults.clock_skew_days,
    )


def main(argv: list[str] | None = None) -> int:
    """Create or load the root CA.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    defaults = CAConfig()
    parser = argparse.ArgumentParser(description="Create or load the proxy root CA")
    add_ca_arguments(parser, defaults)
    parser.add_argument(
        "--ca-validity-days",
        type=int,
        default=defaults.root_validity_days,
        help=f"Validity of a newly generated CA (default: {defaults.root_validity_days})",
    )
    parser.add_argument(
        "--ca-key-size",
        type=int,
        default=defaults.key_size,
        help=f"RSA key size of a newly generated CA (default: {defaults.key_size})",
    )
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args, defaults)
        trust_store = NullTrustStore() if args.no_trust else None

        root_ca = RootCA.from_config(config, trust_store=trust_store)

        LOGGER.info("Root CA ready:")
        LOGGER.info("  Key: %s", root_ca.key_file)
        LOGGER.info("  Cert: %s", root_ca.cert_file)
        LOGGER.info("  Serial: %s", get_certificate_serial_hex(root_ca.certificate))
        LOGGER.info("  SHA-256: %s", root_ca.fingerprint())
        LOGGER.info("  Leaf cache: %s", root_ca.cert_dir)
        return 0

    except Exception as e:
        LOGGER.error("Bootstrap failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
