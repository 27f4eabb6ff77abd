# pcapanon

Anonymize packet captures before sharing them. `pcapanon` reads a pcap or
pcapng file, which may be gzip-compressed. It replaces addresses and personal
data with consistent placeholders and fixes up lengths and checksums. The
result is written as a classic little-endian pcap file with microsecond
timestamps.

## What gets replaced

- **IPv4 addresses in IP headers.**
  - Private, loopback, link-local and `0.0.0.0/8` addresses map to `192.0.2.x`.
  - All other addresses map to `203.0.113.x`.
  - Addresses already in a documentation range (`192.0.2.0/24`,
    `198.51.100.0/24`, `203.0.113.0/24`) are left alone.
  - The last octet counts from 1 to 253 and then starts again at 1.
- **IPv6 addresses in IP headers** map to `2001:db8::` plus a running 64-bit
  suffix. Addresses already in `2001:db8::/32` are left alone.
- **SIP messages over UDP or TCP.** A payload counts as SIP when it starts
  with `SIP/2.0` or a SIP method name. Within such a message these are
  replaced:
  - phone numbers in `sip:` URIs and in numeric display names;
  - IPv4 and IPv6 addresses anywhere in the text, including `sip:user@[…]:port`
    request URIs;
  - in `X-` headers, bare phone numbers, addresses and user, account,
    subscriber, customer and `id` tokens.

  Replacement phone numbers start with `555` and keep the original length and
  any leading `+`. Identifiers become `user1`, `account2`, `subscriber3` and so
  on.

Within one run, the same original value always maps to the same placeholder.
An address that appears in headers and in SIP text gets the same replacement
in both places.

## Installation

```
pip install .
```

## Command line

```
pcap-anon <input.pcap> <output.pcap> [-v] [--no-sip] [--sip-only]
```

| Option       | Effect                                                         |
|--------------|----------------------------------------------------------------|
| `-v`         | log every packet, not only changed ones, and turn on debug logging |
| `--no-sip`   | anonymize IP headers only                                      |
| `--sip-only` | anonymize SIP content only                                     |

Log lines go to standard error. When the run finishes, the command prints two
things to standard output:

- packet, address and SIP statistics;
- up to five sample mappings for each kind of data.

The exit status is 1 in any of these cases:

- the arguments are missing;
- the input file does not exist;
- the input cannot be read;
- the output cannot be written.

## Library use

```python
from pcapanon.capture import read_packets, write_packets
from pcapanon.anonymizer import Anonymizer, Config

packets = read_packets("call.pcap")
anonymizer = Anonymizer()
config = Config()

for packet in packets:
    if anonymizer.process(packet, config):
        packet.update_checksums()

write_packets("call-anon.pcap", packets)
print(anonymizer.ip_stats())    # (private IPv4, public IPv4, IPv6) counts
print(anonymizer.sip_stats())   # SipStats(detected=..., modified=..., ...)
```

`read_packets` raises `pcapanon.capture.CaptureFormatError` for files it
cannot recognise.

`write_packets` returns the number of packets written. It creates no file
when given no packets.

Lower-level pieces can be used on their own:

- `pcapanon.ipmap.IPMapper` maps addresses. `is_private_ipv4`,
  `is_documentation_ipv4` and `is_documentation_ipv6` classify them.
- `pcapanon.siptext.SipTextAnonymizer` rewrites SIP message text.
  `is_sip_payload` tells whether a payload looks like SIP.
- `pcapanon.packet.Packet` reads and rewrites addresses and TCP/UDP payloads
  in a captured frame. `internet_checksum` computes the ones'-complement
  checksum.

## Limitations

- Output is always classic pcap. pcapng input is not written back as pcapng.
- All packets are written with the link type of the first packet. Only
  Ethernet, Linux cooked capture, FDDI and PPP are kept; any other link type
  is recorded as Ethernet.
- IP packets are recognised behind these link headers:
  - Ethernet, including VLAN tags and PPPoE sessions;
  - Linux cooked capture;
  - FDDI;
  - PPP;
  - BSD loopback;
  - raw IP.

  Frames with other link headers pass through unchanged.
- Non-first IP fragments and truncated packets keep their transport
  checksums. Their payloads are not inspected as SIP.
- MAC addresses, DNS names and other application protocols are not
  anonymized.
- The "Serialization errors" statistic is always 0.

## Development

```
pip install -e ".[test]"
pytest
```