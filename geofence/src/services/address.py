"""
Peer address normalization and private-address classification.

The private-address check is a coarse textual prefix test (192., 172., 10.
and the IPv6 loopback), not a subnet evaluation.
"""

from typing import Tuple

from geofence.src.services.exceptions import MalformedAddressError


PRIVATE_PREFIXES: Tuple[str, ...] = ("192.", "172.", "10.", "::1", "[::1]")


def split_host_port(raw: str) -> Tuple[str, str]:
    """
    Split a ``host:port`` peer address.

    IPv6 hosts must be bracketed (``[::1]:443``).

    Args:
        raw: Peer address as reported by the server

    Returns:
        (host, port) tuple with brackets removed from the host

    Raises:
        MalformedAddressError: If the address has no host or no port
    """
    if raw.startswith("["):
        end = raw.find("]")
        if end < 0:
            raise MalformedAddressError(raw, "missing ']' in address")
        host = raw[1:end]
        rest = raw[end + 1:]
        if not rest.startswith(":"):
            raise MalformedAddressError(raw)
        port = rest[1:]
        if ":" in port:
            raise MalformedAddressError(raw, "too many colons in address")
    else:
        host, sep, port = raw.rpartition(":")
        if not sep:
            raise MalformedAddressError(raw)
        if ":" in host:
            raise MalformedAddressError(raw, "too many colons in address")

    if not host:
        raise MalformedAddressError(raw, "missing host in address")
    return host, port


def normalize_address(raw: str) -> str:
    """
    Strip the port from a peer address.

    Args:
        raw: Peer address, e.g. ``203.0.113.9:443`` or ``[::1]:8080``

    Returns:
        The host part, e.g. ``203.0.113.9`` or ``::1``

    Raises:
        MalformedAddressError: If the address has no parseable host part
    """
    host, _ = split_host_port(raw.strip())
    return host


def is_private_address(address: str) -> bool:
    """Check if an address is in known private space or is the IPv6 loopback."""
    return address.startswith(PRIVATE_PREFIXES)
