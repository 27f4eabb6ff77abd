"""Reading and writing pcap and pcapng capture files."""

from __future__ import annotations

import logging
import os
import struct
import zlib
from collections.abc import Iterable
from dataclasses import dataclass

from pcapanon.packet import LinkType, Packet

logger = logging.getLogger(__name__)

_PCAP_BYTE_ORDERS = {b"\xa1\xb2\xc3\xd4": ">", b"\xd4\xc3\xb2\xa1": "<"}
_PCAPNG_MAGIC = b"\x0a\x0d\x0d\x0a"
_GZIP_MAGIC = b"\x1f\x8b"
_WRITE_SNAPLEN = 65536

_BLOCK_INTERFACE = 1
_BLOCK_OBSOLETE_PACKET = 2
_BLOCK_SIMPLE_PACKET = 3
_BLOCK_ENHANCED_PACKET = 6

_OPTION_END = 0
_OPTION_TSRESOL = 9
_OPTION_TSOFFSET = 14

_WRITABLE_LINK_TYPES = frozenset(
    {LinkType.ETHERNET, LinkType.LINUX_SLL, LinkType.FDDI, LinkType.PPP}
)


class CaptureFormatError(ValueError):
    """The file is not a capture this package can read."""


def read_packets(filename: str | os.PathLike) -> list[Packet]:
    """Read all packets from a pcap or pcapng file, optionally gzip-compressed."""
    with open(filename, "rb") as stream:
        content = stream.read()
    if content[:2] == _GZIP_MAGIC:
        try:
            content = zlib.decompressobj(16 + zlib.MAX_WBITS).decompress(content)
        except zlib.error as exc:
            raise CaptureFormatError(f"gzip read error: {exc}") from exc
    magic = content[:4]
    if len(magic) < 4:
        raise CaptureFormatError("error reading magic number: file too short")
    if magic in _PCAP_BYTE_ORDERS:
        return _read_pcap(content, _PCAP_BYTE_ORDERS[magic])
    if magic == _PCAPNG_MAGIC:
        return _read_pcapng(content)
    raise CaptureFormatError(f"unsupported file format: unknown magic {magic.hex()}")


def _read_pcap(content: bytes, endian: str) -> list[Packet]:
    if len(content) < 24:
        raise CaptureFormatError("pcap read error: truncated file header")
    network = struct.unpack_from(endian + "I", content, 20)[0] & 0x0FFFFFFF
    packets = []
    pos = 24
    while pos + 16 <= len(content):
        seconds, micros, caplen, origlen = struct.unpack_from(endian + "IIII", content, pos)
        pos += 16
        if pos + caplen > len(content):
            break
        packets.append(
            Packet(
                content[pos:pos + caplen],
                network,
                seconds * 1_000_000_000 + micros * 1000,
                origlen,
            )
        )
        pos += caplen
    return packets


@dataclass
class _Interface:
    link_type: int
    snaplen: int
    tsresol: int = 6
    tsoffset: int = 0

    def timestamp_ns(self, ticks: int) -> int:
        exponent = self.tsresol & 0x7F
        if self.tsresol & 0x80:
            nanos = (ticks * 1_000_000_000) >> exponent
        elif exponent <= 9:
            nanos = ticks * 10 ** (9 - exponent)
        else:
            nanos = ticks // 10 ** (exponent - 9)
        return nanos + self.tsoffset * 1_000_000_000


def _options(body: bytes, start: int, endian: str):
    pos = start
    while pos + 4 <= len(body):
        code, length = struct.unpack_from(endian + "HH", body, pos)
        if code == _OPTION_END:
            return
        value = body[pos + 4:pos + 4 + length]
        yield code, value
        pos += 4 + length + (-length % 4)


def _parse_interface(body: bytes, endian: str) -> _Interface:
    if len(body) < 8:
        raise CaptureFormatError("pcapng read error: short interface block")
    link_type, _, snaplen = struct.unpack_from(endian + "HHI", body, 0)
    interface = _Interface(link_type, snaplen)
    for code, value in _options(body, 8, endian):
        if code == _OPTION_TSRESOL and value:
            interface.tsresol = value[0]
        elif code == _OPTION_TSOFFSET and len(value) >= 8:
            interface.tsoffset = struct.unpack_from(endian + "q", value)[0]
    return interface


def _interface(interfaces: list[_Interface], index: int) -> _Interface:
    if index >= len(interfaces):
        raise CaptureFormatError(f"pcapng read error: invalid interface id {index}")
    return interfaces[index]


def _read_pcapng(content: bytes) -> list[Packet]:
    packets: list[Packet] = []
    interfaces: list[_Interface] = []
    endian = "<"
    pos = 0
    while pos + 12 <= len(content):
        if content[pos:pos + 4] == _PCAPNG_MAGIC:
            byte_order = content[pos + 8:pos + 12]
            if byte_order == b"\x1a\x2b\x3c\x4d":
                endian = ">"
            elif byte_order == b"\x4d\x3c\x2b\x1a":
                endian = "<"
            else:
                raise CaptureFormatError("pcapng read error: bad byte-order magic")
            interfaces = []
        block_type, block_len = struct.unpack_from(endian + "II", content, pos)
        if block_len < 12 or block_len % 4 or pos + block_len > len(content):
            break
        body = content[pos + 8:pos + block_len - 4]
        pos += block_len

        if block_type == _BLOCK_INTERFACE:
            interfaces.append(_parse_interface(body, endian))
        elif block_type == _BLOCK_ENHANCED_PACKET and len(body) >= 20:
            index, high, low, caplen, origlen = struct.unpack_from(endian + "IIIII", body, 0)
            iface = _interface(interfaces, index)
            if 20 + caplen > len(body):
                break
            packets.append(
                Packet(body[20:20 + caplen], iface.link_type,
                       iface.timestamp_ns((high << 32) | low), origlen)
            )
        elif block_type == _BLOCK_OBSOLETE_PACKET and len(body) >= 20:
            index, _, high, low, caplen, origlen = struct.unpack_from(endian + "HHIIII", body, 0)
            iface = _interface(interfaces, index)
            if 20 + caplen > len(body):
                break
            packets.append(
                Packet(body[20:20 + caplen], iface.link_type,
                       iface.timestamp_ns((high << 32) | low), origlen)
            )
        elif block_type == _BLOCK_SIMPLE_PACKET and len(body) >= 4:
            iface = _interface(interfaces, 0)
            origlen = struct.unpack_from(endian + "I", body, 0)[0]
            caplen = min(origlen, len(body) - 4)
            if iface.snaplen:
                caplen = min(caplen, iface.snaplen)
            packets.append(Packet(body[4:4 + caplen], iface.link_type, 0, origlen))
    return packets


def link_type_for(packet: Packet) -> LinkType:
    """Return the link type to write for ``packet``, falling back to Ethernet."""
    if packet.link_type in _WRITABLE_LINK_TYPES:
        return LinkType(packet.link_type)
    return LinkType.ETHERNET


def write_packets(filename: str | os.PathLike, packets: Iterable[Packet]) -> int:
    """Write packets to a little-endian microsecond pcap file; return how many were written.

    Nothing is created when there are no packets. Packets without data are skipped.
    """
    packets = list(packets)
    if not packets:
        return 0
    link_type = link_type_for(packets[0])
    written = dropped = 0
    with open(filename, "wb") as out:
        out.write(struct.pack("<IHHiIII", 0xA1B2C3D4, 2, 4, 0, 0, _WRITE_SNAPLEN, link_type))
        for index, packet in enumerate(packets):
            data = bytes(packet.data)
            if not data:
                logger.debug("packet %d has no data, skipping", index)
                dropped += 1
                continue
            seconds, nanos = divmod(packet.timestamp_ns, 1_000_000_000)
            out.write(
                struct.pack("<IIII", seconds & 0xFFFFFFFF, nanos // 1000, len(data), len(data))
            )
            out.write(data)
            written += 1
    logger.debug("wrote %d of %d packets, dropped %d", written, len(packets), dropped)
    return written