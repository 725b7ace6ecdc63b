from dataclasses import dataclass
from typing import NamedTuple, Optional


class Location(NamedTuple):
    """Country and city names for an address; empty strings when unknown."""

    country: str = ""
    city: str = ""


EMPTY_LOCATION = Location()


@dataclass(frozen=True, slots=True)
class GeoRecord:
    """The fields decoded from one database record."""

    country: str = ""
    city: str = ""

    def to_location(self) -> Location:
        return Location(self.country, self.city)


@dataclass(slots=True)
class DatabaseStatus:
    """Snapshot of the installed database file, for operators."""

    path: str
    exists: bool
    size_bytes: Optional[int] = None
    age_seconds: Optional[float] = None
    up_to_date: bool = False
    updater_disabled: bool = False

    @property
    def age_days(self) -> Optional[float]:
        if self.age_seconds is None:
            return None
        return self.age_seconds / 86400
