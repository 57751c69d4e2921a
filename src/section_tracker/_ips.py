"""Client address helpers used for trusted-IP checks."""

import ipaddress
import os
from collections.abc import Iterable, Mapping

from beartype import beartype

LOCALHOST = "127.0.0.1"

# Headers in order of priority
_IP_HEADERS = ("HTTP_CLIENT_IP", "HTTP_X_FORWARDED_FOR", "REMOTE_ADDR")


@beartype
def remote_addr(environ: Mapping[str, str] | None = None) -> str:
    """Client IP address from a CGI/WSGI style environment.

    The first non-empty header wins; for a comma separated list only the first
    entry is used. Defaults to 127.0.0.1 when no header is set.

    Raises:
        ValueError: the selected address is not a valid IPv4/IPv6 address
    """
    environ = os.environ if environ is None else environ

    address = ""
    for header in _IP_HEADERS:
        value = environ.get(header, "")
        if value:
            address = value.split(",")[0].strip()
            break

    if not address:
        return LOCALHOST

    try:
        ipaddress.ip_address(address)
    except ValueError as exc:
        raise ValueError(f"Invalid IP address provided: {address!r}") from exc
    return address


@beartype
def ip_in_list(ips: str | Iterable[str], allowed: Iterable[str]) -> bool:
    """True if any of ``ips`` is exactly one of ``allowed``."""
    candidates = [ips] if isinstance(ips, str) else list(ips)
    allowed_set = set(allowed)
    return any(ip in allowed_set for ip in candidates)
