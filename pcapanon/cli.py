"""Command-line entry point: anonymize a capture file."""

from __future__ import annotations

import logging
import os
import sys
import time
from datetime import datetime
from ipaddress import IPv4Address

from pcapanon.anonymizer import Anonymizer, Config
from pcapanon.capture import CaptureFormatError, read_packets, write_packets
from pcapanon.packet import Packet

USAGE = "Usage: pcap-anon <input.pcap> <output.pcap> [-v] [--no-sip] [--sip-only]"
_SAMPLE_COUNT = 5
_PROGRESS_EVERY = 100


def _log(message: str) -> None:
    stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
    print(f"{stamp} {message}", file=sys.stderr)


def _enable_debug_logging() -> None:
    package_logger = logging.getLogger("pcapanon")
    package_logger.setLevel(logging.DEBUG)
    if not any(getattr(h, "_pcapanon_cli", False) for h in package_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
        handler._pcapanon_cli = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)


def _packet_ips(packet: Packet) -> tuple[str, str]:
    addresses = packet.addresses()
    if addresses is None:
        return "", ""
    src, dst = addresses
    return str(src), str(dst)


def _print_mappings(title: str, mapping: dict[str, str]) -> None:
    print(f"\n{title}")
    for original, anonymized in mapping.items():
        print(f"  {original} -> {anonymized}")


def main(argv: list[str] | None = None) -> int:
    """Anonymize the input capture into the output file; return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        print(USAGE)
        return 1

    input_file, output_file = args[0], args[1]
    if not os.path.exists(input_file):
        print(f"Error: input file {input_file} does not exist", file=sys.stderr)
        return 1

    config = Config()
    verbose = False
    for flag in args[2:]:
        if flag == "-v":
            verbose = True
            config.verbose_logging = True
            _enable_debug_logging()
            _log("Verbose logging enabled")
        elif flag == "--no-sip":
            config.process_sip = False
            _log("SIP processing disabled")
        elif flag == "--sip-only":
            config.process_ip = False
            config.process_sip = True
            _log("Only SIP processing enabled")

    start = time.monotonic()

    _log(f"Reading packets from {input_file}...")
    try:
        packets = read_packets(input_file)
    except (CaptureFormatError, OSError) as exc:
        _log(f"Error reading packets: {exc}")
        return 1
    _log(f"Successfully read {len(packets)} packets")

    anonymizer = Anonymizer()
    total = modified_count = ipv4_modified = ipv6_modified = 0

    _log("Processing packets...")
    for index, packet in enumerate(packets):
        total += 1
        if index and index % _PROGRESS_EVERY == 0:
            print(f"\rProcessed {index}/{len(packets)} packets...", end="")

        before_src, before_dst = _packet_ips(packet)

        if anonymizer.process(packet, config):
            modified_count += 1
            addresses = packet.addresses()
            if addresses is not None:
                if isinstance(addresses[0], IPv4Address):
                    ipv4_modified += 1
                else:
                    ipv6_modified += 1
            packet.update_checksums()

        after_src, after_dst = _packet_ips(packet)
        if verbose or (before_src, before_dst) != (after_src, after_dst):
            _log(
                f"Packet {index}: {before_src} → {before_dst} => {after_src} → {after_dst}"
            )
    print()

    _log(f"Writing anonymized packets to {output_file}...")
    try:
        write_packets(output_file, packets)
    except OSError as exc:
        _log(f"Error writing output: {exc}")
        return 1

    private_count, public_count, ipv6_count = anonymizer.ip_stats()
    sip = anonymizer.sip_stats()
    private_map, public_map, ipv6_map = anonymizer.ip_mapper.samples(_SAMPLE_COUNT)
    phone_map = anonymizer.sip_text.phone_samples(_SAMPLE_COUNT)
    user_id_map = anonymizer.sip_text.user_id_samples(_SAMPLE_COUNT)

    duration = time.monotonic() - start
    print(
        f"""
\tProcessing results:
\t- Total packets:      {total}
\t- Modified packets:   {modified_count}
\t- IPv4 modified:      {ipv4_modified}
\t- IPv6 modified:      {ipv6_modified}
\t- Processing time:    {duration:.6f}s
\t
\tIP Anonymization:
\t- Private IPv4:       {private_count} unique addresses
\t- Public IPv4:        {public_count} unique addresses
\t- IPv6:               {ipv6_count} unique addresses
\t
\tSIP Anonymization:
\t- Detected:           {sip.detected} SIP packets
\t- Modified:           {sip.modified} SIP packets
\t- Phone numbers:      {sip.phones} found and anonymized
\t- IPv4 in content:    {sip.ipv4} found and anonymized
\t- IPv6 in content:    {sip.ipv6} found and anonymized
\t- User IDs:           {sip.user_ids} found and anonymized
\t- Serialization errors: {sip.errors}
\t""",
        end="",
    )

    _print_mappings("Example IPv4 Private mappings:", private_map)
    _print_mappings("Example IPv4 Public mappings:", public_map)
    _print_mappings("Example IPv6 mappings:", ipv6_map)
    _print_mappings("Example Phone Number mappings:", phone_map)
    _print_mappings("Example User ID mappings:", user_id_map)
    return 0


if __name__ == "__main__":
    sys.exit(main())