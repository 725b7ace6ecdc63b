"""Database decoding capability shared by lookups and update validation."""

from __future__ import annotations

import ipaddress
from pathlib import Path
from typing import Optional, Protocol

import geoip2.database
from geoip2.errors import AddressNotFoundError
from maxminddb import InvalidDatabaseError

from .models import GeoRecord

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

# Exceptions that mean "this file could not be opened or decoded"
DECODE_ERRORS = (OSError, ValueError, InvalidDatabaseError)

# Substring of ``database_type`` shared by GeoLite2-City and GeoIP2-City
CITY_EDITION_MARKER = "City"


class DatabaseHandle(Protocol):
    def lookup(self, address: IPAddress) -> Optional[GeoRecord]:
        """Return the record for ``address``, or ``None`` when it is not in the database."""

    def close(self) -> None: ...


class DatabaseDecoder(Protocol):
    def open(self, path: Path) -> DatabaseHandle:
        """Open ``path``, raising one of ``DECODE_ERRORS`` when it is not a valid database."""


def _english_name(names: Optional[dict]) -> str:
    if not names:
        return ""
    return names.get("en", "")


class MaxMindHandle:
    """An open GeoLite2 City reader."""

    def __init__(self, reader: geoip2.database.Reader) -> None:
        self.reader = reader

    def lookup(self, address: IPAddress) -> Optional[GeoRecord]:
        try:
            response = self.reader.city(address)
        except AddressNotFoundError:
            return None
        except TypeError as exc:
            # geoip2 raises TypeError when the file is not a City database
            raise InvalidDatabaseError(str(exc)) from exc
        return GeoRecord(
            country=_english_name(response.country.names),
            city=_english_name(response.city.names),
        )

    def close(self) -> None:
        self.reader.close()


class MaxMindDecoder:
    """Opens MaxMind DB files with ``geoip2``."""

    def open(self, path: Path) -> MaxMindHandle:
        reader = geoip2.database.Reader(str(path))
        database_type = reader.metadata().database_type
        if CITY_EDITION_MARKER not in database_type:
            reader.close()
            raise InvalidDatabaseError(f"unexpected database type {database_type!r}")
        return MaxMindHandle(reader)
