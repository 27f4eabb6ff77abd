"""Captured frames and the header fields the anonymizer rewrites."""

from __future__ import annotations

import enum
import ipaddress
import struct
from dataclasses import dataclass

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

PROTO_ICMP = 1
PROTO_TCP = 6
PROTO_UDP = 17
PROTO_ICMPV6 = 58

_ETHERTYPE_VERSIONS = {0x0800: 4, 0x86DD: 6}
_VLAN_ETHERTYPES = frozenset({0x8100, 0x88A8, 0x9100})
_PPPOE_SESSION = 0x8864
_PPP_VERSIONS = {0x0021: 4, 0x0057: 6}

_IPV6_HOP_BY_HOP = 0
_IPV6_ROUTING = 43
_IPV6_FRAGMENT = 44
_IPV6_AUTH = 51
_IPV6_DEST_OPTS = 60
_IPV6_EXTENSIONS = frozenset(
    {_IPV6_HOP_BY_HOP, _IPV6_ROUTING, _IPV6_FRAGMENT, _IPV6_AUTH, _IPV6_DEST_OPTS}
)

_CHECKSUM_FIELD = {PROTO_TCP: 16, PROTO_UDP: 6, PROTO_ICMP: 2, PROTO_ICMPV6: 2}


class LinkType(enum.IntEnum):
    """Link-layer header types used in capture files."""

    NULL = 0
    ETHERNET = 1
    PPP = 9
    FDDI = 10
    RAW = 101
    LOOP = 108
    LINUX_SLL = 113
    IPV4 = 228
    IPV6 = 229


def internet_checksum(data: bytes) -> int:
    """Return the 16-bit ones' complement checksum of ``data``."""
    data = bytes(data)
    if len(data) % 2:
        data += b"\x00"
    total = sum(struct.unpack(f"!{len(data) // 2}H", data))
    while total > 0xFFFF:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


@dataclass(frozen=True)
class _Layout:
    ip_offset: int
    ip_version: int
    transport_offset: int
    ip_end: int
    complete: bool
    protocol: int | None
    payload_offset: int | None


def _u16(data: bytearray, pos: int) -> int:
    return int.from_bytes(data[pos:pos + 2], "big")


def _by_version(data: bytearray, offset: int) -> tuple[int, int] | None:
    if len(data) <= offset:
        return None
    version = data[offset] >> 4
    return (offset, version) if version in (4, 6) else None


def _after_ppp(data: bytearray, pos: int) -> tuple[int, int] | None:
    if pos + 2 > len(data):
        return None
    version = _PPP_VERSIONS.get(_u16(data, pos))
    return (pos + 2, version) if version else None


def _after_ethertype(data: bytearray, pos: int) -> tuple[int, int] | None:
    while pos + 2 <= len(data):
        ethertype = _u16(data, pos)
        start = pos + 2
        if ethertype in _VLAN_ETHERTYPES:
            pos = start + 2
            continue
        if ethertype == _PPPOE_SESSION:
            return _after_ppp(data, start + 6)
        version = _ETHERTYPE_VERSIONS.get(ethertype)
        return (start, version) if version else None
    return None


def _locate_network(data: bytearray, link_type: int) -> tuple[int, int] | None:
    if link_type == LinkType.ETHERNET:
        return _after_ethertype(data, 12)
    if link_type == LinkType.LINUX_SLL:
        return _after_ethertype(data, 14)
    if link_type == LinkType.FDDI:
        if data[13:16] != b"\xaa\xaa\x03":
            return None
        return _after_ethertype(data, 19)
    if link_type == LinkType.PPP:
        return _after_ppp(data, 2 if data[:2] == b"\xff\x03" else 0)
    if link_type in (LinkType.NULL, LinkType.LOOP):
        return _by_version(data, 4)
    if link_type in (LinkType.RAW, LinkType.IPV4, LinkType.IPV6):
        return _by_version(data, 0)
    return None


def _with_transport(
    data: bytearray,
    offset: int,
    version: int,
    start: int,
    end: int,
    complete: bool,
    protocol: int | None,
) -> _Layout:
    payload = None
    found = False
    if protocol == PROTO_TCP and start + 20 <= end:
        header_len = (data[start + 12] >> 4) * 4
        if header_len >= 20 and start + header_len <= end:
            payload = start + header_len
            found = True
    elif protocol == PROTO_UDP and start + 8 <= end:
        payload = start + 8
        found = True
    elif (
        (protocol == PROTO_ICMP and version == 4)
        or (protocol == PROTO_ICMPV6 and version == 6)
    ) and start + 4 <= end:
        found = True
    return _Layout(
        ip_offset=offset,
        ip_version=version,
        transport_offset=start,
        ip_end=end,
        complete=complete,
        protocol=protocol if found else None,
        payload_offset=payload,
    )


def _parse_ipv4(data: bytearray, offset: int) -> _Layout | None:
    if len(data) < offset + 20 or data[offset] >> 4 != 4:
        return None
    header_len = (data[offset] & 0x0F) * 4
    total = _u16(data, offset + 2) or len(data) - offset
    if header_len < 20 or total < header_len or len(data) < offset + header_len:
        return None
    end = offset + total
    complete = end <= len(data)
    end = min(end, len(data))
    fragmented = _u16(data, offset + 6) & 0x1FFF
    protocol = None if fragmented else data[offset + 9]
    return _with_transport(data, offset, 4, offset + header_len, end, complete, protocol)


def _parse_ipv6(data: bytearray, offset: int) -> _Layout | None:
    if len(data) < offset + 40 or data[offset] >> 4 != 6:
        return None
    payload_len = _u16(data, offset + 4)
    end = offset + 40 + payload_len if payload_len else len(data)
    complete = end <= len(data)
    end = min(end, len(data))
    next_header: int | None = data[offset + 6]
    pos = offset + 40
    while next_header in _IPV6_EXTENSIONS:
        if pos + 8 > end:
            next_header = None
            break
        current = next_header
        next_header = data[pos]
        if current == _IPV6_FRAGMENT:
            if _u16(data, pos + 2) >> 3:
                next_header = None
            pos += 8
        elif current == _IPV6_AUTH:
            pos += (data[pos + 1] + 2) * 4
        else:
            pos += (data[pos + 1] + 1) * 8
    return _with_transport(data, offset, 6, pos, end, complete, next_header)


@dataclass
class Packet:
    """One captured frame: its bytes, link type and capture metadata."""

    data: bytearray
    link_type: int = LinkType.ETHERNET
    timestamp_ns: int = 0
    original_length: int | None = None

    def __post_init__(self) -> None:
        self.data = bytearray(self.data)
        try:
            self.link_type = LinkType(self.link_type)
        except ValueError:
            pass

    def _layout(self) -> _Layout | None:
        located = _locate_network(self.data, self.link_type)
        if located is None:
            return None
        offset, version = located
        if version == 4:
            return _parse_ipv4(self.data, offset)
        return _parse_ipv6(self.data, offset)

    @staticmethod
    def _address_slices(layout: _Layout) -> tuple[slice, slice]:
        off = layout.ip_offset
        if layout.ip_version == 4:
            return slice(off + 12, off + 16), slice(off + 16, off + 20)
        return slice(off + 8, off + 24), slice(off + 24, off + 40)

    def addresses(self) -> tuple[IPAddress, IPAddress] | None:
        """Return the source and destination IP addresses, or None without an IP layer."""
        layout = self._layout()
        if layout is None:
            return None
        src, dst = self._address_slices(layout)
        return (
            ipaddress.ip_address(bytes(self.data[src])),
            ipaddress.ip_address(bytes(self.data[dst])),
        )

    def replace_addresses(self, src: str | IPAddress, dst: str | IPAddress) -> None:
        """Write new source and destination addresses into the IP header."""
        layout = self._layout()
        if layout is None:
            raise ValueError("packet has no IP layer")
        new_src = ipaddress.ip_address(src)
        new_dst = ipaddress.ip_address(dst)
        if new_src.version != layout.ip_version or new_dst.version != layout.ip_version:
            raise ValueError(f"addresses must be IPv{layout.ip_version}")
        src_slice, dst_slice = self._address_slices(layout)
        self.data[src_slice] = new_src.packed
        self.data[dst_slice] = new_dst.packed

    def transport_payload(self) -> bytes | None:
        """Return the TCP or UDP payload, or None if the packet carries neither."""
        layout = self._layout()
        if layout is None or layout.payload_offset is None:
            return None
        return bytes(self.data[layout.payload_offset:layout.ip_end])

    def replace_payload(self, payload: bytes) -> None:
        """Replace the TCP or UDP payload, ending the frame after it and fixing lengths."""
        layout = self._layout()
        if layout is None or layout.payload_offset is None:
            raise ValueError("packet has no TCP or UDP payload")
        payload = bytes(payload)
        ip_length = layout.payload_offset - layout.ip_offset + len(payload)
        header_len = 20 if layout.ip_version == 4 else 40
        if ip_length - (header_len if layout.ip_version == 6 else 0) > 0xFFFF:
            raise ValueError("payload too large for an IP packet")
        self.data[layout.payload_offset:] = payload
        off = layout.ip_offset
        if layout.ip_version == 4:
            self.data[off + 2:off + 4] = ip_length.to_bytes(2, "big")
        else:
            self.data[off + 4:off + 6] = (ip_length - 40).to_bytes(2, "big")
        if layout.protocol == PROTO_UDP:
            udp_length = layout.payload_offset - layout.transport_offset + len(payload)
            start = layout.transport_offset
            self.data[start + 4:start + 6] = udp_length.to_bytes(2, "big")

    def _pseudo_header(self, layout: _Layout, length: int, protocol: int) -> bytes:
        src, dst = self._address_slices(layout)
        addresses = bytes(self.data[src]) + bytes(self.data[dst])
        if layout.ip_version == 4:
            return addresses + bytes((0, protocol)) + length.to_bytes(2, "big")
        return addresses + length.to_bytes(4, "big") + bytes((0, 0, 0, protocol))

    def update_checksums(self) -> None:
        """Recompute the transport, ICMP and IPv4 header checksums in place."""
        layout = self._layout()
        if layout is None:
            return
        if layout.protocol is not None and layout.complete:
            start = layout.transport_offset
            field = start + _CHECKSUM_FIELD[layout.protocol]
            self.data[field:field + 2] = b"\x00\x00"
            segment = bytes(self.data[start:layout.ip_end])
            pseudo = (
                b""
                if layout.protocol == PROTO_ICMP
                else self._pseudo_header(layout, len(segment), layout.protocol)
            )
            value = internet_checksum(pseudo + segment)
            if layout.protocol == PROTO_UDP and value == 0:
                value = 0xFFFF
            self.data[field:field + 2] = value.to_bytes(2, "big")
        if layout.ip_version == 4:
            off = layout.ip_offset
            self.data[off + 10:off + 12] = b"\x00\x00"
            header = bytes(self.data[off:layout.transport_offset])
            self.data[off + 10:off + 12] = internet_checksum(header).to_bytes(2, "big")