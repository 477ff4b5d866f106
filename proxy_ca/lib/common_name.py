"""Map a hostname to the common name its leaf certificate is issued for."""


def get_common_name(domain: str) -> str:
    """Collapse a hostname to the wildcard name that covers it.

    Hosts below a registrable domain share one wildcard certificate, so
    ``www.example.com`` and ``api.example.com`` both map to
    ``*.example.com``. Three-label names whose last two labels are both
    short (``a.co.uk`` style) are treated as registrable domains and
    returned unchanged. Names with four or more labels always collapse.

    Args:
        domain: Fully qualified hostname, without a trailing dot

    Returns:
        Common name to request from the issuer
    """
    labels = domain.split(".")

    if len(labels) <= 2:
        return domain

    if len(labels) == 3:
        if len(labels[-1]) >= 3 or len(labels[-2]) >= 4:
            return "*." + ".".join(labels[1:])
        return domain

    return "*." + ".".join(labels[1:])
