"""Consistent anonymization of IP addresses and SIP content in packet captures."""

__version__ = "0.1.0"