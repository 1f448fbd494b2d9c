"""
Client IP resolution from the peer address and a trusted proxy header.

Proxy headers are only honoured when the connecting address belongs to a
trusted reverse proxy. ``X-Forwarded-For`` and friends are never read: any
client can send them, which would let a visitor pick the IP used for rate
limiting and geolocation.
"""

from __future__ import annotations

import ipaddress
from functools import lru_cache
from typing import Iterable, NamedTuple, Optional, Sequence

LOOPBACK_IP = "127.0.0.1"


class ResolvedIP(NamedTuple):
    ip: str
    via_trusted_proxy: bool


def is_valid_ip(value: Optional[str]) -> bool:
    """Return True if *value* is a syntactically valid IPv4 or IPv6 address."""
    if not value:
        return False
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return True


def is_public_ip(value: Optional[str]) -> bool:
    """Return True for globally routable addresses.

    Private, loopback, link-local, reserved and documentation ranges all
    count as non-public; so does anything that does not parse.
    """
    if not is_valid_ip(value):
        return False
    return ipaddress.ip_address(value.strip()).is_global


@lru_cache(maxsize=64)
def _parse_networks(cidrs: tuple[str, ...]) -> tuple:
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            continue
    return tuple(networks)


def ip_in_ranges(ip: Optional[str], cidrs: Iterable[str]) -> bool:
    """Return True if *ip* falls inside any of the CIDR blocks in *cidrs*.

    IPv4 and IPv6 are both supported; an address is only compared with
    networks of its own family. Invalid input never matches.
    """
    if not is_valid_ip(ip):
        return False
    address = ipaddress.ip_address(ip.strip())
    for network in _parse_networks(tuple(cidrs)):
        if network.version == address.version and address in network:
            return True
    return False


def resolve_client_ip(
    remote_addr: Optional[str],
    connecting_ip: Optional[str],
    trusted_ranges: Sequence[str],
) -> ResolvedIP:
    """Work out the visitor IP from the socket address and the proxy header.

    Args:
        remote_addr: Address of the peer that opened the connection.
        connecting_ip: Value of the trusted proxy's client-IP header, if any.
        trusted_ranges: CIDR blocks of reverse proxies allowed to set it.

    Returns:
        The header IP when the peer is a trusted proxy and the header holds a
        valid address; otherwise the peer address; ``127.0.0.1`` as a last
        resort.
    """
    if connecting_ip and ip_in_ranges(remote_addr, trusted_ranges):
        candidate = connecting_ip.strip()
        if is_valid_ip(candidate):
            return ResolvedIP(candidate, True)

    if is_valid_ip(remote_addr):
        return ResolvedIP(remote_addr.strip(), False)

    return ResolvedIP(LOOPBACK_IP, False)
