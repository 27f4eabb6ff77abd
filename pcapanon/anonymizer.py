"""Anonymization of whole packets: IP headers and SIP message content."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass

from pcapanon.ipmap import IPMapper
from pcapanon.packet import Packet
from pcapanon.siptext import SipTextAnonymizer, is_sip_payload

logger = logging.getLogger(__name__)

_PREVIEW_SIZE = 100


@dataclass
class Config:
    """Which parts of a packet to anonymize."""

    verbose_logging: bool = False
    process_ip: bool = True
    process_sip: bool = True


@dataclass(frozen=True)
class SipStats:
    """Totals gathered while processing SIP packets."""

    detected: int = 0
    modified: int = 0
    phones: int = 0
    ipv4: int = 0
    ipv6: int = 0
    errors: int = 0
    user_ids: int = 0


class Anonymizer:
    """Rewrites packets so that addresses, numbers and identifiers are replaced consistently."""

    def __init__(
        self,
        ip_mapper: IPMapper | None = None,
        sip_text: SipTextAnonymizer | None = None,
    ) -> None:
        self.ip_mapper = ip_mapper if ip_mapper is not None else IPMapper()
        self.sip_text = (
            sip_text if sip_text is not None else SipTextAnonymizer(self.ip_mapper)
        )
        self._sip_detected = 0
        self._sip_modified = 0
        self._phones_found = 0
        self._ipv4_found = 0
        self._ipv6_found = 0
        self._serialization_errors = 0

    def process(self, packet: Packet, config: Config | None = None) -> bool:
        """Anonymize the packet in place as ``config`` asks; return True if it changed."""
        config = config if config is not None else Config()
        modified = False
        if config.process_ip and self.process_network_layer(packet):
            modified = True
        if config.process_sip and self.process_sip_packet(packet):
            modified = True
        return modified

    def process_network_layer(self, packet: Packet) -> bool:
        """Replace the source and destination addresses of the IP header."""
        addresses = packet.addresses()
        if addresses is None:
            return False
        src, dst = addresses
        if isinstance(src, ipaddress.IPv4Address):
            new_src = self.ip_mapper.anonymize_ipv4(src)
            new_dst = self.ip_mapper.anonymize_ipv4(dst)
        else:
            new_src = self.ip_mapper.anonymize_ipv6(src)
            new_dst = self.ip_mapper.anonymize_ipv6(dst)
        if new_src is None and new_dst is None:
            return False
        packet.replace_addresses(
            new_src if new_src is not None else src,
            new_dst if new_dst is not None else dst,
        )
        return True

    def process_sip_packet(self, packet: Packet) -> bool:
        """Anonymize the SIP message carried over TCP or UDP; return True if it changed."""
        packet_id = packet.timestamp_ns
        payload = packet.transport_payload()
        if payload is None:
            logger.debug("packet %d has no TCP or UDP layer", packet_id)
            return False
        if not payload:
            logger.debug("packet %d has empty payload", packet_id)
            return False
        if not is_sip_payload(payload):
            logger.debug("packet %d is not a SIP packet", packet_id)
            return False

        self._sip_detected += 1
        logger.debug(
            "packet %d SIP preview: %s",
            packet_id,
            payload[:_PREVIEW_SIZE].decode("latin-1"),
        )

        new_payload, counts = self.sip_text.anonymize_content(payload)
        self._phones_found += counts.phones
        self._ipv4_found += counts.ipv4
        self._ipv6_found += counts.ipv6

        if new_payload == payload:
            logger.debug("packet %d content was not modified", packet_id)
            return False

        logger.debug(
            "packet %d content was modified (found: %d phones, %d IPv4, %d IPv6)",
            packet_id,
            counts.phones,
            counts.ipv4,
            counts.ipv6,
        )
        self._sip_modified += 1
        packet.replace_payload(new_payload)
        return True

    def ip_stats(self) -> tuple[int, int, int]:
        """Return the numbers of distinct private IPv4, public IPv4 and IPv6 addresses mapped."""
        return self.ip_mapper.stats()

    def sip_stats(self) -> SipStats:
        """Return the SIP processing totals so far."""
        return SipStats(
            detected=self._sip_detected,
            modified=self._sip_modified,
            phones=self._phones_found,
            ipv4=self._ipv4_found,
            ipv6=self._ipv6_found,
            errors=self._serialization_errors,
            user_ids=self.sip_text.user_id_count,
        )