"""
Host safety check for outbound preview fetches.

``check_url`` is a pure predicate: it parses the URL, resolves the host and
returns a :class:`Verdict`. Nothing is cached. The fetcher calls it again
for every redirect hop because DNS answers and redirect targets are both
attacker-controlled.
"""

import asyncio
import ipaddress
import socket
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .urls import parse_candidate

UNRESOLVABLE = "unresolvable"
DISALLOWED_SCHEME = "disallowed-scheme"
DISALLOWED_ADDRESS_RANGE = "disallowed-address-range"
INVALID_URL = "invalid-url"

ALLOWED_SCHEMES = {"http", "https"}
DEFAULT_PORTS = {"http": 80, "https": 443}

BLOCKED_NETS = [ipaddress.ip_network(n) for n in [
    # IPv4
    "0.0.0.0/8",          # "this" network / unspecified
    "10.0.0.0/8",
    "100.64.0.0/10",      # carrier-grade NAT
    "127.0.0.0/8",
    "169.254.0.0/16",
    "172.16.0.0/12",
    "192.0.0.0/24",
    "192.0.2.0/24",       # TEST-NET-1
    "192.88.99.0/24",     # 6to4 relay anycast
    "192.168.0.0/16",
    "198.18.0.0/15",      # benchmarking
    "198.51.100.0/24",    # TEST-NET-2
    "203.0.113.0/24",     # TEST-NET-3
    "224.0.0.0/4",        # multicast
    "240.0.0.0/4",        # reserved + broadcast
    # IPv6
    "::/128",
    "::1/128",
    "64:ff9b::/96",       # NAT64, embeds IPv4
    "64:ff9b:1::/48",
    "100::/64",           # discard-only
    "2001::/32",          # Teredo
    "2001:db8::/32",      # documentation
    "2002::/16",          # 6to4, embeds IPv4
    "fc00::/7",           # unique local
    "fe80::/10",
    "fec0::/10",          # deprecated site-local
    "ff00::/8",           # multicast
]]

Resolver = Callable[..., list]


@dataclass(frozen=True)
class Verdict:
    """Outcome of one safety check. ``reason`` is None when the target is allowed."""

    url: str
    host: str = ""
    addresses: Tuple[str, ...] = ()
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None


def is_public_address(addr: str) -> bool:
    """True only for globally routable unicast addresses."""
    try:
        ip = ipaddress.ip_address(addr.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    if any(ip in net for net in BLOCKED_NETS):
        return False
    if (ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_multicast
            or ip.is_reserved or ip.is_unspecified):
        return False
    return ip.is_global


def resolve_host(host: str, port: int, resolver: Optional[Resolver] = None) -> Tuple[str, ...]:
    """Every address *host* resolves to right now, de-duplicated in answer order."""
    resolver = resolver or socket.getaddrinfo
    infos = resolver(host, port, type=socket.SOCK_STREAM)
    seen = []
    for _, _, _, _, sockaddr in infos:
        ip = sockaddr[0]
        if ip not in seen:
            seen.append(ip)
    return tuple(seen)


def check_url(url: str, resolver: Optional[Resolver] = None) -> Verdict:
    """Decide whether connecting to *url* is allowed."""
    parts = parse_candidate(url)
    if parts is None:
        return Verdict(url=url, reason=INVALID_URL)
    host = parts.hostname
    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return Verdict(url=url, host=host, reason=DISALLOWED_SCHEME)

    port = parts.port or DEFAULT_PORTS[scheme]
    try:
        addresses = resolve_host(host, port, resolver)
    except (OSError, UnicodeError):
        return Verdict(url=url, host=host, reason=UNRESOLVABLE)
    if not addresses:
        return Verdict(url=url, host=host, reason=UNRESOLVABLE)

    # One bad answer taints the host: the connection may pick any of them.
    if not all(is_public_address(a) for a in addresses):
        return Verdict(url=url, host=host, addresses=addresses, reason=DISALLOWED_ADDRESS_RANGE)
    return Verdict(url=url, host=host, addresses=addresses)


async def check_url_async(url: str, resolver: Optional[Resolver] = None) -> Verdict:
    return await asyncio.to_thread(check_url, url, resolver)
