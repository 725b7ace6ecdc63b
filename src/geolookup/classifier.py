"""Classification of internal addresses without touching the database."""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, Optional, Sequence

from .constants import (
    INTERNAL_NETWORK,
    LAN,
    LOCALHOST,
    LOCALHOST_NETWORKS,
    PRIVATE_LAN_NETWORKS,
    TAILSCALE,
    TAILSCALE_NETWORKS,
)
from .errors import ConfigError
from .models import Location

logger = logging.getLogger(__name__)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def _networks(cidrs: Iterable[str]) -> tuple[IPNetwork, ...]:
    return tuple(ipaddress.ip_network(cidr) for cidr in cidrs)


_TAILSCALE = _networks(TAILSCALE_NETWORKS)
_PRIVATE_LAN = _networks(PRIVATE_LAN_NETWORKS)
_LOCALHOST = _networks(LOCALHOST_NETWORKS)


def parse_local_ipv6_ranges(value: str) -> list[ipaddress.IPv6Network]:
    """Parse a comma-separated list of IPv6 CIDR blocks.

    Entries are trimmed and empty entries are skipped. Host bits are allowed
    and masked off, so ``fd00::1/8`` means ``fd00::/8``.

    Raises:
        ConfigError: an entry is not a CIDR block, or is an IPv4 block.
    """
    ranges: list[ipaddress.IPv6Network] = []
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            network = ipaddress.ip_network(entry, strict=False)
        except ValueError as exc:
            raise ConfigError(f"invalid IPv6 range '{entry}': {exc}") from exc
        if not isinstance(network, ipaddress.IPv6Network):
            raise ConfigError(f"range '{entry}' is not a valid IPv6 range")
        ranges.append(network)
    return ranges


def _parse_address(value: str) -> Optional[IPAddress]:
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return None
    # Treat IPv4-mapped IPv6 addresses as the IPv4 address they carry
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def _contains(networks: Iterable[IPNetwork], address: IPAddress) -> bool:
    return any(address in network for network in networks)


class RangeClassifier:
    """Maps loopback, private, CGNAT and configured IPv6 ranges to labels."""

    def __init__(self, local_ipv6_ranges: Sequence[ipaddress.IPv6Network] = ()) -> None:
        self.local_ipv6_ranges: tuple[ipaddress.IPv6Network, ...] = tuple(local_ipv6_ranges)

    @classmethod
    def from_setting(cls, value: str) -> "RangeClassifier":
        """Build a classifier from the ``LOCAL_IPV6_RANGES`` setting.

        A malformed setting is logged and replaced by an empty range set so the
        service still starts; the built-in ranges keep working.
        """
        try:
            ranges = parse_local_ipv6_ranges(value)
        except ConfigError as exc:
            logger.warning(f"Failed to initialize IPv6 local ranges: {exc}")
            return cls()

        if ranges:
            logger.info(f"Initialized IPv6 local ranges (count={len(ranges)})")
        return cls(ranges)

    def is_local_ipv6(self, address: IPAddress) -> bool:
        if not isinstance(address, ipaddress.IPv6Address):
            return False
        return any(address in network for network in self.local_ipv6_ranges)

    def classify(self, ip: str) -> Optional[Location]:
        """Return the internal-network label for ``ip``, or ``None``.

        ``None`` means the caller should consult the database. Unparseable and
        empty strings are not an error here, they simply do not match.
        """
        address = _parse_address(ip)
        if address is None:
            return None

        if self.is_local_ipv6(address):
            return Location(INTERNAL_NETWORK, LAN)
        if _contains(_TAILSCALE, address):
            return Location(INTERNAL_NETWORK, TAILSCALE)
        if _contains(_PRIVATE_LAN, address):
            return Location(INTERNAL_NETWORK, LAN)
        if _contains(_LOCALHOST, address):
            return Location(INTERNAL_NETWORK, LOCALHOST)
        return None
