"""Address to subnet normalization."""
from __future__ import annotations

import ipaddress

from peerstats.errors import MalformedAddress

IPV4_PREFIX = 24
IPV6_PREFIX = 56

LOOPBACK_ADDRESSES = ("127.0.0.1", "::1")


def ip_to_subnet(value: str) -> str:
    """Collapse an address or address:port to its /24 (v4) or /56 (v6) network.

    >>> ip_to_subnet("91.109.129.83:51820")
    '91.109.129.0/24'
    """
    ip = _parse_address(value.strip())
    if ip.version == 4:
        network = ipaddress.IPv4Network((int(ip), IPV4_PREFIX), strict=False)
    else:
        network = ipaddress.IPv6Network((int(ip), IPV6_PREFIX), strict=False)
    return network.with_prefixlen


def skip_subnets(public_address: str) -> set[str]:
    """Subnets treated as the relay itself: its public address and loopback."""
    subnets = {ip_to_subnet(public_address)}
    for addr in LOOPBACK_ADDRESSES:
        subnets.add(ip_to_subnet(addr))
    return subnets


def _parse_address(value: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        pass

    host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit() or int(port) > 65535:
        raise MalformedAddress(f"parse addr:port: {value!r}")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        # bare IPv6 with a port needs brackets
        raise MalformedAddress(f"parse addr:port: {value!r}")

    try:
        return ipaddress.ip_address(host)
    except ValueError as e:
        raise MalformedAddress(f"parse addr:port: {value!r}") from e
