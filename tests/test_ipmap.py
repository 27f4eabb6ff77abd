import ipaddress

import pytest

from pcapanon.ipmap import (
    IPMapper,
    is_documentation_ipv4,
    is_documentation_ipv6,
    is_private_ipv4,
)

PRIVATE_NET = ipaddress.ip_network("192.0.2.0/24")
PUBLIC_NET = ipaddress.ip_network("203.0.113.0/24")
IPV6_NET = ipaddress.ip_network("2001:db8::/32")


@pytest.mark.parametrize(
    "address",
    ["10.1.2.3", "172.16.0.1", "172.31.255.255", "192.168.1.1", "127.0.0.1",
     "169.254.10.10", "0.1.2.3"],
)
def test_private_ranges(address):
    assert is_private_ipv4(address) is True


@pytest.mark.parametrize("address", ["8.8.8.8", "172.32.0.1", "192.169.0.1", "1.1.1.1"])
def test_public_ranges(address):
    assert is_private_ipv4(address) is False


def test_private_check_on_ipv6_is_false():
    assert is_private_ipv4("fe80::1") is False


@pytest.mark.parametrize("address", ["192.0.2.5", "203.0.113.200", "198.51.100.1"])
def test_documentation_ipv4(address):
    assert is_documentation_ipv4(address) is True


def test_non_documentation_ipv4():
    assert is_documentation_ipv4("10.0.0.1") is False


def test_documentation_ipv6():
    assert is_documentation_ipv6("2001:db8::42") is True
    assert is_documentation_ipv6("2001:db9::1") is False
    assert is_documentation_ipv6("192.0.2.1") is False


def test_first_private_mapping():
    mapper = IPMapper()
    assert mapper.anonymize_ipv4("10.0.0.1") == ipaddress.IPv4Address("192.0.2.1")


def test_first_public_mapping():
    mapper = IPMapper()
    assert mapper.anonymize_ipv4("8.8.8.8") == ipaddress.IPv4Address("203.0.113.1")


def test_first_ipv6_mapping():
    mapper = IPMapper()
    assert mapper.anonymize_ipv6("fe80::1") == ipaddress.IPv6Address("2001:db8::1")


def test_mapping_is_consistent():
    mapper = IPMapper()
    first = mapper.anonymize_ipv4("192.168.5.5")
    second = mapper.anonymize_ipv4(ipaddress.IPv4Address("192.168.5.5"))
    assert first == second
    assert mapper.stats() == (1, 0, 0)


def test_bytes_input_accepted():
    mapper = IPMapper()
    assert mapper.anonymize_ipv4(bytes([10, 0, 0, 9])) == mapper.anonymize_ipv4("10.0.0.9")


def test_distinct_inputs_get_distinct_outputs():
    mapper = IPMapper()
    results = [mapper.anonymize_ipv4(f"10.0.0.{n}") for n in range(1, 21)]
    assert len(set(results)) == 20
    assert all(r in PRIVATE_NET for r in results)


def test_public_and_private_use_separate_ranges():
    mapper = IPMapper()
    private = mapper.anonymize_ipv4("172.20.1.1")
    public = mapper.anonymize_ipv4("93.184.216.34")
    assert private in PRIVATE_NET
    assert public in PUBLIC_NET
    assert mapper.stats() == (1, 1, 0)


def test_documentation_addresses_left_alone():
    mapper = IPMapper()
    assert mapper.anonymize_ipv4("198.51.100.7") is None
    assert mapper.anonymize_ipv6("2001:db8::99") is None
    assert mapper.stats() == (0, 0, 0)


def test_private_counter_wraps():
    mapper = IPMapper()
    first = mapper.anonymize_ipv4("10.0.0.0")
    outputs = [mapper.anonymize_ipv4(f"10.0.{n // 256}.{n % 256}") for n in range(1, 253)]
    assert len(set(outputs) | {first}) == 253
    wrapped = mapper.anonymize_ipv4("10.9.9.9")
    assert wrapped == first


def test_ipv6_consistent_and_distinct():
    mapper = IPMapper()
    a = mapper.anonymize_ipv6("2a00:1450::1")
    b = mapper.anonymize_ipv6("2a00:1450::2")
    assert a in IPV6_NET and b in IPV6_NET
    assert a != b
    assert mapper.anonymize_ipv6(ipaddress.IPv6Address("2a00:1450::1")) == a
    assert mapper.stats() == (0, 0, 2)


def test_wrong_family_raises():
    mapper = IPMapper()
    with pytest.raises(ValueError):
        mapper.anonymize_ipv4("fe80::1")
    with pytest.raises(ValueError):
        mapper.anonymize_ipv6("10.0.0.1")


def test_unparsable_raises():
    mapper = IPMapper()
    with pytest.raises(ValueError):
        mapper.anonymize_ipv4("not-an-ip")


def test_samples_limited_and_match_mappings():
    mapper = IPMapper()
    expected = {f"10.0.0.{n}": str(mapper.anonymize_ipv4(f"10.0.0.{n}")) for n in range(1, 8)}
    public = str(mapper.anonymize_ipv4("8.8.4.4"))
    v6 = str(mapper.anonymize_ipv6("2a00::5"))
    private_map, public_map, ipv6_map = mapper.samples(5)
    assert len(private_map) == 5
    assert all(expected[key] == value for key, value in private_map.items())
    assert public_map == {"8.8.4.4": public}
    assert ipv6_map == {"2a00::5": v6}


def test_samples_zero_count():
    mapper = IPMapper()
    mapper.anonymize_ipv4("10.0.0.1")
    assert mapper.samples(0) == ({}, {}, {})