import ipaddress
import logging

import pytest

from geolookup.classifier import RangeClassifier, parse_local_ipv6_ranges
from geolookup.errors import ConfigError
from geolookup.models import Location

LAN = Location("Internal Network", "LAN")
TAILSCALE = Location("Internal Network", "Tailscale")
LOCALHOST = Location("Internal Network", "localhost")


@pytest.mark.parametrize(
    "address",
    ["10.0.0.1", "10.255.255.255", "172.16.0.1", "172.31.255.254", "192.168.0.1", "192.168.1.100"],
)
def test_private_lan_ranges(address):
    assert RangeClassifier().classify(address) == LAN


@pytest.mark.parametrize("address", ["100.64.0.1", "100.100.100.100", "100.127.255.254"])
def test_cgnat_range_is_tailscale(address):
    assert RangeClassifier().classify(address) == TAILSCALE


@pytest.mark.parametrize("address", ["127.0.0.1", "127.255.0.3", "::1"])
def test_loopback(address):
    assert RangeClassifier().classify(address) == LOCALHOST


@pytest.mark.parametrize(
    "address",
    ["8.8.8.8", "172.32.0.1", "100.128.0.1", "192.169.0.1", "2001:4860:4860::8888", "fd00::1"],
)
def test_public_addresses_do_not_match(address):
    assert RangeClassifier().classify(address) is None


@pytest.mark.parametrize("address", ["", "not-an-ip", "10.0.0", "999.1.1.1", "10.0.0.0/8"])
def test_unparseable_input_does_not_match(address):
    assert RangeClassifier().classify(address) is None


def test_ipv4_mapped_ipv6_uses_embedded_address():
    classifier = RangeClassifier()
    assert classifier.classify("::ffff:10.1.2.3") == LAN
    assert classifier.classify("::ffff:127.0.0.1") == LOCALHOST
    assert classifier.classify("::ffff:8.8.8.8") is None


def test_configured_ipv6_range_is_lan():
    classifier = RangeClassifier([ipaddress.IPv6Network("fd00::/8")])
    assert classifier.classify("fd00::1") == LAN
    assert classifier.classify("fdff:1234::5") == LAN
    assert classifier.classify("fe80::1") is None


def test_configured_ipv6_range_takes_precedence_over_loopback():
    classifier = RangeClassifier([ipaddress.IPv6Network("::/0")])
    assert classifier.classify("::1") == LAN
    # IPv4 addresses never match IPv6 ranges
    assert classifier.classify("127.0.0.1") == LOCALHOST


def test_parse_local_ipv6_ranges_trims_and_skips_empty_entries():
    ranges = parse_local_ipv6_ranges(" fd00::/8 ,, 2001:db8::/32 ,")
    assert ranges == [
        ipaddress.IPv6Network("fd00::/8"),
        ipaddress.IPv6Network("2001:db8::/32"),
    ]


def test_parse_local_ipv6_ranges_masks_host_bits():
    assert parse_local_ipv6_ranges("fd00::1/8") == [ipaddress.IPv6Network("fd00::/8")]


def test_parse_local_ipv6_ranges_empty_setting():
    assert parse_local_ipv6_ranges("") == []
    assert parse_local_ipv6_ranges(" , ") == []


@pytest.mark.parametrize("setting", ["fd00::/8,garbage", "fd00::/200", "10.0.0.0/8"])
def test_parse_local_ipv6_ranges_rejects_bad_entries(setting):
    with pytest.raises(ConfigError):
        parse_local_ipv6_ranges(setting)


def test_from_setting_degrades_to_empty_range_set(caplog):
    with caplog.at_level(logging.WARNING, logger="geolookup.classifier"):
        classifier = RangeClassifier.from_setting("fd00::/8, 192.168.0.0/16")

    assert classifier.local_ipv6_ranges == ()
    assert "Failed to initialize IPv6 local ranges" in caplog.text
    # Built-in ranges still apply
    assert classifier.classify("192.168.0.10") == LAN
    assert classifier.classify("fd00::1") is None


def test_from_setting_with_valid_ranges(caplog):
    with caplog.at_level(logging.INFO, logger="geolookup.classifier"):
        classifier = RangeClassifier.from_setting("fd00::/8")

    assert classifier.local_ipv6_ranges == (ipaddress.IPv6Network("fd00::/8"),)
    assert "count=1" in caplog.text
