"""Consistent replacement of IP addresses with documentation-range addresses."""

from __future__ import annotations

import ipaddress
import threading
from itertools import islice

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

_PRIVATE_IPV4_NETWORKS = tuple(
    ipaddress.IPv4Network(block)
    for block in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "0.0.0.0/8",
    )
)
_DOCUMENTATION_IPV4_NETWORKS = tuple(
    ipaddress.IPv4Network(block)
    for block in ("192.0.2.0/24", "203.0.113.0/24", "198.51.100.0/24")
)
_DOCUMENTATION_IPV6_NETWORK = ipaddress.IPv6Network("2001:db8::/32")

_PRIVATE_PREFIX = (192, 0, 2)
_PUBLIC_PREFIX = (203, 0, 113)
_IPV4_ID_LIMIT = 254
_IPV6_SUFFIX_LIMIT = 0xFFFFFFFFFFFFFFFF


def _parse(ip: str | bytes | IPAddress) -> IPAddress:
    if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip
    if isinstance(ip, (bytes, bytearray)):
        return ipaddress.ip_address(bytes(ip))
    return ipaddress.ip_address(ip)


def _as_ipv4(ip: str | bytes | IPAddress) -> ipaddress.IPv4Address | None:
    address = _parse(ip)
    if isinstance(address, ipaddress.IPv4Address):
        return address
    return address.ipv4_mapped


def is_private_ipv4(ip: str | bytes | IPAddress) -> bool:
    """Return True for private, loopback, link-local and current-network IPv4 addresses."""
    address = _as_ipv4(ip)
    return address is not None and any(address in net for net in _PRIVATE_IPV4_NETWORKS)


def is_documentation_ipv4(ip: str | bytes | IPAddress) -> bool:
    """Return True for addresses in the IPv4 documentation ranges."""
    address = _as_ipv4(ip)
    return address is not None and any(
        address in net for net in _DOCUMENTATION_IPV4_NETWORKS
    )


def is_documentation_ipv6(ip: str | bytes | IPAddress) -> bool:
    """Return True for addresses in 2001:db8::/32."""
    address = _parse(ip)
    return (
        isinstance(address, ipaddress.IPv6Address)
        and address in _DOCUMENTATION_IPV6_NETWORK
    )


class IPMapper:
    """Maps real addresses to documentation addresses, the same way every time."""

    def __init__(self) -> None:
        self._private: dict[str, ipaddress.IPv4Address] = {}
        self._public: dict[str, ipaddress.IPv4Address] = {}
        self._ipv6: dict[str, ipaddress.IPv6Address] = {}
        self._next_private = 1
        self._next_public = 1
        self._next_ipv6_suffix = 1
        self._lock = threading.Lock()

    def anonymize_ipv4(self, ip: str | bytes | IPAddress) -> ipaddress.IPv4Address | None:
        """Return the replacement for an IPv4 address, or None if it is left as is.

        Documentation addresses are left unchanged. Private addresses map into
        192.0.2.0/24, all others into 203.0.113.0/24.
        """
        address = _as_ipv4(ip)
        if address is None:
            raise ValueError(f"not an IPv4 address: {ip!r}")
        if is_documentation_ipv4(address):
            return None
        key = str(address)
        with self._lock:
            if is_private_ipv4(address):
                mapped = self._private.get(key)
                if mapped is None:
                    if self._next_private >= _IPV4_ID_LIMIT:
                        self._next_private = 1
                    mapped = ipaddress.IPv4Address(bytes((*_PRIVATE_PREFIX, self._next_private)))
                    self._next_private += 1
                    self._private[key] = mapped
            else:
                mapped = self._public.get(key)
                if mapped is None:
                    if self._next_public >= _IPV4_ID_LIMIT:
                        self._next_public = 1
                    mapped = ipaddress.IPv4Address(bytes((*_PUBLIC_PREFIX, self._next_public)))
                    self._next_public += 1
                    self._public[key] = mapped
            return mapped

    def anonymize_ipv6(self, ip: str | bytes | IPAddress) -> ipaddress.IPv6Address | None:
        """Return the replacement for an IPv6 address, or None if it is left as is.

        Addresses already in 2001:db8::/32 are left unchanged; others map to
        2001:db8:: with a running 64-bit suffix.
        """
        address = _parse(ip)
        if not isinstance(address, ipaddress.IPv6Address):
            raise ValueError(f"not an IPv6 address: {ip!r}")
        if is_documentation_ipv6(address):
            return None
        key = str(address)
        with self._lock:
            mapped = self._ipv6.get(key)
            if mapped is None:
                if self._next_ipv6_suffix >= _IPV6_SUFFIX_LIMIT:
                    self._next_ipv6_suffix = 1
                mapped = _DOCUMENTATION_IPV6_NETWORK.network_address + self._next_ipv6_suffix
                self._next_ipv6_suffix += 1
                self._ipv6[key] = mapped
            return mapped

    def stats(self) -> tuple[int, int, int]:
        """Return the numbers of distinct private IPv4, public IPv4 and IPv6 addresses mapped."""
        with self._lock:
            return len(self._private), len(self._public), len(self._ipv6)

    def samples(
        self, count: int
    ) -> tuple[dict[str, str], dict[str, str], dict[str, str]]:
        """Return up to ``count`` original-to-replacement pairs for each address kind."""
        with self._lock:
            return tuple(  # type: ignore[return-value]
                {original: str(mapped) for original, mapped in islice(table.items(), max(count, 0))}
                for table in (self._private, self._public, self._ipv6)
            )