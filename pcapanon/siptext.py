"""Anonymization of phone numbers, addresses and user identifiers in SIP text."""

from __future__ import annotations

import ipaddress
import logging
import re
import string
import threading
from dataclasses import dataclass
from itertools import islice

from pcapanon.ipmap import IPMapper

logger = logging.getLogger(__name__)

_SIP_PREFIXES = (
    b"SIP/2.0",
    b"INVITE",
    b"ACK",
    b"BYE",
    b"CANCEL",
    b"OPTIONS",
    b"REGISTER",
    b"REFER",
    b"NOTIFY",
    b"SUBSCRIBE",
    b"MESSAGE",
    b"INFO",
)

_FLAGS = re.IGNORECASE | re.ASCII
# Whitespace as the original patterns define it: no vertical tab.
_WS = r"[\t\n\f\r ]"

_SIP_PHONE = re.compile(r"(sip:)(\+?[0-9]{5,15})(@[^>\t\n\f\r ;]+)", _FLAGS)
_DISPLAY_NAME = re.compile(
    r'("?)(\+?[0-9]{5,15})("?' + _WS + r"*<sip:)(\+?[0-9]{5,15})(@)", _FLAGS
)
_OCTET = r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)"
_IPV4 = re.compile(r"(?:" + _OCTET + r"\.){3}" + _OCTET, _FLAGS)
_H = r"[0-9a-f]{1,4}"
_EMBEDDED_OCTET = r"(?:25[0-5]|(?:2[0-4]|1?[0-9])?[0-9])"
_EMBEDDED_V4 = r"(?:" + _EMBEDDED_OCTET + r"\.){3}" + _EMBEDDED_OCTET
_IPV6 = re.compile(
    r"\[?(?:"
    + r"(?:" + _H + r":){7}" + _H
    + r"|(?:" + _H + r":){1,7}:"
    + r"|(?:" + _H + r":){1,6}:" + _H
    + r"|(?:" + _H + r":){1,5}(?::" + _H + r"){1,2}"
    + r"|(?:" + _H + r":){1,4}(?::" + _H + r"){1,3}"
    + r"|(?:" + _H + r":){1,3}(?::" + _H + r"){1,4}"
    + r"|(?:" + _H + r":){1,2}(?::" + _H + r"){1,5}"
    + r"|" + _H + r":(?:(?::" + _H + r"){1,6})"
    + r"|:(?:(?::" + _H + r"){1,7}|:)"
    + r"|fe80:(?::[0-9a-f]{0,4}){0,4}%[0-9a-z]+"
    + r"|::(?:ffff(?::0{1,4})?:)?" + _EMBEDDED_V4
    + r"|(?:" + _H + r":){1,4}:" + _EMBEDDED_V4
    + r")\]?",
    _FLAGS,
)
_REQUEST_URI = re.compile(r"(sip:[^@]+@\[)([0-9a-f:]+)(\]:)", _FLAGS)
_X_HEADER = re.compile(r"(X-[A-Za-z0-9_-]+:)" + _WS + r"*([^\r\n]+)", _FLAGS)
_BARE_PHONE = re.compile(r"\+?[0-9]{7,15}")
_USER_ID_PATTERNS = tuple(
    re.compile(pattern, _FLAGS)
    for pattern in (
        r"user[_-]?([0-9a-f]{4,})",
        r"acc(oun)?t[_-]?([0-9a-f]{4,})",
        r"subscr(iber)?[_-]?([0-9a-f]{4,})",
        r"cust(omer)?[_-]?([0-9a-f]{4,})",
        r"id[_-]?([0-9a-f]{6,})",
    )
)
_WORD_CHARS = frozenset(string.ascii_letters + string.digits)


def is_sip_payload(payload: bytes) -> bool:
    """Return True if the payload starts like a SIP request or response."""
    data = bytes(payload)
    if len(data) < 4:
        return False
    return any(data[: len(prefix)].upper() == prefix for prefix in _SIP_PREFIXES)


@dataclass
class ContentCounts:
    """How many items of each kind were found in one SIP message."""

    phones: int = 0
    ipv4: int = 0
    ipv6: int = 0


def _pad_number(number: int, width: int) -> str:
    digits = str(number)
    if width < 0:
        return digits.ljust(-width)
    return digits.zfill(width)


def _parse_ipv6(text: str) -> ipaddress.IPv6Address | None:
    if "%" in text:
        return None
    try:
        return ipaddress.IPv6Address(text)
    except ValueError:
        return None


class SipTextAnonymizer:
    """Rewrites SIP message text, keeping every replacement consistent."""

    def __init__(self, ip_mapper: IPMapper | None = None) -> None:
        self.ip_mapper = ip_mapper if ip_mapper is not None else IPMapper()
        self._phones: dict[str, str] = {}
        self._user_ids: dict[str, str] = {}
        self._next_phone = 1
        self._next_user_id = 1
        self._lock = threading.Lock()

    @property
    def phone_count(self) -> int:
        """Number of distinct phone numbers mapped."""
        with self._lock:
            return len(self._phones)

    @property
    def user_id_count(self) -> int:
        """Number of distinct user identifiers mapped."""
        with self._lock:
            return len(self._user_ids)

    def anonymize_phone(self, number: str) -> str:
        """Return a 555-prefixed replacement of the same length, keeping a leading '+'."""
        with self._lock:
            cached = self._phones.get(number)
            if cached is not None:
                return cached
            prefix, digits = ("+", number[1:]) if number.startswith("+") else ("", number)
            replacement = f"{prefix}555{_pad_number(self._next_phone, len(digits) - 3)}"
            self._next_phone += 1
            # The table is keyed without the '+', so later lookups of the bare digits hit it.
            self._phones[digits] = replacement
            return replacement

    def anonymize_user_ids(self, text: str) -> str:
        """Replace user, account, subscriber, customer and id tokens in ``text``."""
        for pattern in _USER_ID_PATTERNS:
            text = pattern.sub(self._replace_user_id, text)
        return text

    def _replace_user_id(self, match: re.Match[str]) -> str:
        found = match.group(0)
        with self._lock:
            cached = self._user_ids.get(found)
            if cached is not None:
                return cached
            lowered = found.lower()
            if lowered.startswith("user"):
                prefix = "user"
            elif "acc" in lowered:
                prefix = "account"
            elif "subscr" in lowered:
                prefix = "subscriber"
            elif "cust" in lowered:
                prefix = "customer"
            elif "id" in lowered:
                prefix = "id"
            else:
                prefix = "anonymous"
            replacement = f"{prefix}{self._next_user_id}"
            self._next_user_id += 1
            self._user_ids[found] = replacement
        logger.debug("user id %s -> %s", found, replacement)
        return replacement

    def phone_samples(self, count: int) -> dict[str, str]:
        """Return up to ``count`` original-to-replacement phone number pairs."""
        with self._lock:
            return dict(islice(self._phones.items(), max(count, 0)))

    def user_id_samples(self, count: int) -> dict[str, str]:
        """Return up to ``count`` original-to-replacement user identifier pairs."""
        with self._lock:
            return dict(islice(self._user_ids.items(), max(count, 0)))

    def anonymize_content(self, payload: bytes) -> tuple[bytes, ContentCounts]:
        """Return the rewritten SIP message and the counts of what was found."""
        original = bytes(payload)
        content = original.decode("latin-1")
        counts = ContentCounts()

        def uri_phone(match: re.Match[str]) -> str:
            counts.phones += 1
            return match.group(1) + self.anonymize_phone(match.group(2)) + match.group(3)

        def display_name(match: re.Match[str]) -> str:
            counts.phones += 2
            return (
                match.group(1)
                + self.anonymize_phone(match.group(2))
                + match.group(3)
                + self.anonymize_phone(match.group(4))
                + match.group(5)
            )

        def x_header(match: re.Match[str]) -> str:
            value = self._header_phones(match.group(2), counts)
            value = _IPV4.sub(lambda m: self._replace_ipv4(m, counts), value)
            value = _IPV6.sub(lambda m: self._replace_ipv6(m, counts), value)
            value = self.anonymize_user_ids(value)
            return match.group(1) + " " + value

        content = _SIP_PHONE.sub(uri_phone, content)
        content = _DISPLAY_NAME.sub(display_name, content)
        content = _IPV4.sub(lambda m: self._replace_ipv4(m, counts), content)
        content = _IPV6.sub(lambda m: self._replace_ipv6(m, counts), content)
        content = _REQUEST_URI.sub(lambda m: self._replace_request_uri(m, counts), content)
        content = _X_HEADER.sub(x_header, content)

        result = content.encode("latin-1")
        if result != original:
            logger.debug("content changed: %d bytes -> %d bytes", len(original), len(result))
        return result, counts

    def _header_phones(self, text: str, counts: ContentCounts) -> str:
        def replace(match: re.Match[str]) -> str:
            found = match.group(0)
            # The neighbours are those of the first occurrence of the same digits.
            index = text.find(found)
            if index > 0 and text[index - 1] in _WORD_CHARS:
                return found
            after = index + len(found)
            if after < len(text) and text[after] in _WORD_CHARS:
                return found
            counts.phones += 1
            return self.anonymize_phone(found)

        return _BARE_PHONE.sub(replace, text)

    def _replace_ipv4(self, match: re.Match[str], counts: ContentCounts) -> str:
        found = match.group(0)
        try:
            address = ipaddress.IPv4Address(found)
        except ValueError:
            return found
        mapped = self.ip_mapper.anonymize_ipv4(address)
        if mapped is None:
            return found
        counts.ipv4 += 1
        return str(mapped)

    def _replace_ipv6(self, match: re.Match[str], counts: ContentCounts) -> str:
        found = match.group(0)
        bracketed = len(found) > 2 and found[0] == "[" and found[-1] == "]"
        candidate = found[1:-1] if bracketed else found
        address = _parse_ipv6(candidate)
        if address is None:
            return found
        mapped = self.ip_mapper.anonymize_ipv6(address)
        if mapped is None:
            return found
        counts.ipv6 += 1
        return f"[{mapped}]" if bracketed else str(mapped)

    def _replace_request_uri(self, match: re.Match[str], counts: ContentCounts) -> str:
        address = _parse_ipv6(match.group(2))
        if address is None:
            return match.group(0)
        mapped = self.ip_mapper.anonymize_ipv6(address)
        if mapped is None:
            return match.group(0)
        counts.ipv6 += 1
        return match.group(1) + str(mapped) + match.group(3)