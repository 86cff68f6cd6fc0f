"""
Outbound URL checks for anything the service fetches on a caller's behalf.

Only http(s) URLs to public hosts pass. IP literals are classified with
`ipaddress`, including the integer, octal, hex and shortened IPv4 forms the
system resolver accepts (`2852039166`, `0251.0376.0251.0376`, `127.1`).
Names are matched against a blocklist of loopback and cloud metadata hosts
here; the fetcher additionally resolves the name and refuses the request if
any address it resolves to is non-public. Redirects are never followed.
"""
import ipaddress
import logging
import socket
from typing import Optional, Union
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

ALLOWED_SCHEMES = {"http", "https"}

BLOCKED_HOSTNAMES = {
    "localhost",
    "metadata.google.internal",
    "metadata",
}

BLOCKED_SUFFIXES = (
    ".localhost",
    ".internal",
    ".local",
)


def _parse_ip(hostname: str) -> Optional[IPAddress]:
    """Read `hostname` as an IP address in any form the resolver would."""
    try:
        return ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        pass
    # inet_aton takes the legacy numeric forms; names never parse.
    try:
        packed = socket.inet_aton(hostname)
    except (OSError, ValueError):
        return None
    return ipaddress.IPv4Address(packed)


def _is_blocked_address(address: IPAddress) -> bool:
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
    )


def _hostname(url: str) -> str:
    try:
        parsed = urlparse(url)
    except ValueError:
        return ""
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return ""
    return (parsed.hostname or "").lower().rstrip(".")


def is_valid_external_url(url: str) -> bool:
    """Syntactic check; never touches the network."""
    hostname = _hostname(url)
    if not hostname:
        return False

    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(BLOCKED_SUFFIXES):
        return False

    address = _parse_ip(hostname)
    if address is not None:
        return not _is_blocked_address(address)
    return True


def resolves_to_public_address(url: str) -> bool:
    """
    Resolve the URL's host and require every address to be public.
    Unresolvable hosts fail.
    """
    hostname = _hostname(url)
    if not hostname:
        return False
    try:
        infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as e:
        logger.info("Could not resolve %s: %s", hostname, e)
        return False

    addresses = {info[4][0] for info in infos}
    if not addresses:
        return False
    for raw in addresses:
        # Scoped IPv6 results carry a "%iface" suffix.
        address = ipaddress.ip_address(raw.split("%", 1)[0])
        if _is_blocked_address(address):
            logger.warning("Refusing %s: resolves to %s", hostname, address)
            return False
    return True
