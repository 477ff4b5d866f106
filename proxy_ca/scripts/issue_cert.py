#!/usr/bin/env python3
"""Issue (or fetch from cache) the impersonation certificate for a hostname."""

import argparse
import sys

from proxy_ca.lib.cert_utils import get_certificate_serial_hex
from proxy_ca.lib.common_name import get_common_name
from proxy_ca.lib.config import CAConfig
from proxy_ca.lib.issuer import LeafIssuer
from proxy_ca.lib.logging_config import LOGGER
from proxy_ca.lib.root_ca import RootCA
from proxy_ca.lib.trust_store import NullTrustStore
from proxy_ca.scripts.bootstrap_ca import add_ca_arguments, config_from_args


def main(argv: list[str] | None = None) -> int:
    """Issue a leaf certificate for --host.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    defaults = CAConfig()
    parser = argparse.ArgumentParser(description="Issue a leaf certificate for a hostname")
    parser.add_argument("--host", required=True, help="Hostname to impersonate")
    add_ca_arguments(parser, defaults)
    parser.add_argument(
        "--validity-days",
        type=int,
        default=defaults.leaf_validity_days,
        help=f"Validity of a newly issued certificate (default: {defaults.leaf_validity_days})",
    )
    parser.add_argument(
        "--key-size",
        type=int,
        default=defaults.leaf_key_size,
        help=f"RSA key size of a newly issued certificate (default: {defaults.leaf_key_size})",
    )
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args, defaults)
        trust_store = NullTrustStore() if args.no_trust else None

        root_ca = RootCA.from_config(config, trust_store=trust_store)
        issuer = LeafIssuer.from_config(root_ca, config)

        common_name = get_common_name(args.host)
        tls_cert = issuer.issue(common_name, config.leaf_validity, config.leaf_key_size)

        LOGGER.info("Certificate for %s:", args.host)
        LOGGER.info("  Common name: %s", common_name)
        LOGGER.info("  File: %s", tls_cert.path)
        LOGGER.info("  Serial: %s", get_certificate_serial_hex(tls_cert.certificate))
        return 0

    except Exception as e:
        LOGGER.error("Issue failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
