import gzip
import struct

import pytest

from pcapanon.capture import CaptureFormatError, link_type_for, read_packets, write_packets
from pcapanon.packet import LinkType, Packet

FRAME_A = b"\x02\x00\x00\x00\x00\x01\x02\x00\x00\x00\x00\x02\x08\x00" + bytes(28)
FRAME_B = b"\x02\x00\x00\x00\x00\x03\x02\x00\x00\x00\x00\x04\x86\xdd" + bytes(44)


def block(block_type, body):
    body = body + b"\x00" * (-len(body) % 4)
    length = 12 + len(body)
    return struct.pack("<II", block_type, length) + body + struct.pack("<I", length)


def section_header():
    return block(0x0A0D0D0A, struct.pack("<IHHq", 0x1A2B3C4D, 1, 0, -1))


def interface_block(link_type=1, options=b""):
    return block(1, struct.pack("<HHI", link_type, 0, 0) + options)


def enhanced_block(frame, ticks, interface=0):
    header = struct.pack("<IIIII", interface, ticks >> 32, ticks & 0xFFFFFFFF, len(frame), len(frame))
    return block(6, header + frame)


def test_write_read_round_trip(tmp_path):
    path = tmp_path / "out.pcap"
    packets = [
        Packet(FRAME_A, LinkType.ETHERNET, 1_700_000_000_123_456_000),
        Packet(FRAME_B, LinkType.ETHERNET, 1_700_000_001_000_000_000),
    ]
    assert write_packets(path, packets) == 2
    result = read_packets(path)
    assert [bytes(p.data) for p in result] == [FRAME_A, FRAME_B]
    assert [p.timestamp_ns for p in result] == [p.timestamp_ns for p in packets]
    assert all(p.link_type == LinkType.ETHERNET for p in result)
    assert [p.original_length for p in result] == [len(FRAME_A), len(FRAME_B)]


def test_written_header_is_little_endian_pcap(tmp_path):
    path = tmp_path / "out.pcap"
    write_packets(path, [Packet(FRAME_A, LinkType.LINUX_SLL)])
    raw = path.read_bytes()
    assert raw[:4] == b"\xd4\xc3\xb2\xa1"
    assert struct.unpack("<I", raw[16:20])[0] == 65536
    assert struct.unpack("<I", raw[20:24])[0] == LinkType.LINUX_SLL


def test_timestamp_truncated_to_microseconds(tmp_path):
    path = tmp_path / "out.pcap"
    stamp = 1_500_000_000_987_654_321
    write_packets(path, [Packet(FRAME_A, timestamp_ns=stamp)])
    assert read_packets(path)[0].timestamp_ns == stamp - stamp % 1000


def test_writing_nothing_creates_no_file(tmp_path):
    path = tmp_path / "none.pcap"
    assert write_packets(path, []) == 0
    assert not path.exists()


def test_empty_packets_are_skipped(tmp_path):
    path = tmp_path / "out.pcap"
    assert write_packets(path, [Packet(b""), Packet(FRAME_A)]) == 1
    assert [bytes(p.data) for p in read_packets(path)] == [FRAME_A]


def test_raw_link_type_written_as_ethernet(tmp_path):
    path = tmp_path / "out.pcap"
    write_packets(path, [Packet(b"\x45" + bytes(19), LinkType.RAW)])
    assert read_packets(path)[0].link_type == LinkType.ETHERNET


def test_read_big_endian_pcap(tmp_path):
    path = tmp_path / "be.pcap"
    header = struct.pack(">IHHiIII", 0xA1B2C3D4, 2, 4, 0, 0, 65535, 101)
    record = struct.pack(">IIII", 10, 20, 4, 60) + b"\x45\x00\x00\x14"
    path.write_bytes(header + record)
    (packet,) = read_packets(path)
    assert bytes(packet.data) == b"\x45\x00\x00\x14"
    assert packet.link_type == LinkType.RAW
    assert packet.original_length == 60
    assert packet.timestamp_ns == 10 * 1_000_000_000 + 20 * 1000


def test_read_gzipped_pcap(tmp_path):
    plain = tmp_path / "plain.pcap"
    write_packets(plain, [Packet(FRAME_A, timestamp_ns=5_000_000_000)])
    packed = tmp_path / "packed.pcap.gz"
    packed.write_bytes(gzip.compress(plain.read_bytes()))
    assert read_packets(packed) == read_packets(plain)


def test_truncated_record_stops_reading(tmp_path):
    path = tmp_path / "out.pcap"
    write_packets(path, [Packet(FRAME_A), Packet(FRAME_B)])
    path.write_bytes(path.read_bytes()[:-3])
    assert [bytes(p.data) for p in read_packets(path)] == [FRAME_A]


def test_unknown_magic(tmp_path):
    path = tmp_path / "bad.pcap"
    path.write_bytes(b"\x00\x01\x02\x03" + bytes(40))
    with pytest.raises(CaptureFormatError):
        read_packets(path)


def test_too_short_for_magic(tmp_path):
    path = tmp_path / "short.pcap"
    path.write_bytes(b"\xd4\xc3")
    with pytest.raises(CaptureFormatError):
        read_packets(path)


def test_truncated_pcap_header(tmp_path):
    path = tmp_path / "short.pcap"
    path.write_bytes(b"\xd4\xc3\xb2\xa1" + bytes(10))
    with pytest.raises(CaptureFormatError):
        read_packets(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_packets(tmp_path / "missing.pcap")


def test_read_pcapng_default_resolution(tmp_path):
    path = tmp_path / "cap.pcapng"
    ticks = 1_600_000_000_250_000
    path.write_bytes(section_header() + interface_block() + enhanced_block(FRAME_A, ticks))
    (packet,) = read_packets(path)
    assert bytes(packet.data) == FRAME_A
    assert packet.link_type == LinkType.ETHERNET
    assert packet.timestamp_ns == ticks * 1000


def test_read_pcapng_nanosecond_resolution(tmp_path):
    path = tmp_path / "cap.pcapng"
    options = struct.pack("<HH", 9, 1) + b"\x09\x00\x00\x00" + struct.pack("<HH", 0, 0)
    ticks = 1_600_000_000_123_456_789
    path.write_bytes(
        section_header()
        + interface_block(113, options)
        + enhanced_block(FRAME_B, ticks)
    )
    (packet,) = read_packets(path)
    assert packet.timestamp_ns == ticks
    assert packet.link_type == LinkType.LINUX_SLL


def test_read_pcapng_bad_interface(tmp_path):
    path = tmp_path / "cap.pcapng"
    path.write_bytes(section_header() + interface_block() + enhanced_block(FRAME_A, 1, interface=3))
    with pytest.raises(CaptureFormatError):
        read_packets(path)


def test_pcapng_to_pcap_round_trip(tmp_path):
    source = tmp_path / "cap.pcapng"
    source.write_bytes(
        section_header()
        + interface_block()
        + enhanced_block(FRAME_A, 7_000_000)
        + enhanced_block(FRAME_B, 8_000_000)
    )
    target = tmp_path / "out.pcap"
    original = read_packets(source)
    write_packets(target, original)
    assert read_packets(target) == original


@pytest.mark.parametrize(
    "link_type, expected",
    [
        (LinkType.ETHERNET, LinkType.ETHERNET),
        (LinkType.LINUX_SLL, LinkType.LINUX_SLL),
        (LinkType.FDDI, LinkType.FDDI),
        (LinkType.PPP, LinkType.PPP),
        (LinkType.RAW, LinkType.ETHERNET),
        (4242, LinkType.ETHERNET),
    ],
)
def test_link_type_for(link_type, expected):
    assert link_type_for(Packet(FRAME_A, link_type)) == expected