import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TypeVar

from .constants import (
    DEFAULT_DB_PATH,
    DEFAULT_DB_URL,
    DOWNLOAD_TIMEOUT,
    MAX_AGE_DAYS,
    MAX_ARCHIVE_ENTRIES,
    MAX_DATABASE_SIZE,
)
from .errors import ConfigError

T = TypeVar("T")


def _env(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_number(name: str, default: float, convert: Callable[[str], T]) -> T:
    raw = _env(name, str(default))
    try:
        return convert(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class GeoSettings:
    """Centralized configuration for lookups and database updates"""

    # MaxMind credentials and source
    license_key: str = field(default_factory=lambda: _env("MAXMIND_LICENSE_KEY", ""))
    db_url: str = field(default_factory=lambda: _env("GEOLITE_DB_URL", DEFAULT_DB_URL))
    db_path: Path = field(
        default_factory=lambda: Path(_env("GEOLITE_DB_PATH", DEFAULT_DB_PATH))
    )

    # Comma-separated IPv6 CIDRs treated as LAN
    local_ipv6_ranges: str = field(default_factory=lambda: _env("LOCAL_IPV6_RANGES", ""))

    # Update pipeline knobs
    max_age_days: int = field(
        default_factory=lambda: _env_number("GEOLITE_MAX_AGE_DAYS", MAX_AGE_DAYS, int)
    )
    download_timeout: float = field(
        default_factory=lambda: _env_number("GEOLITE_DOWNLOAD_TIMEOUT", DOWNLOAD_TIMEOUT, float)
    )
    max_database_size: int = field(
        default_factory=lambda: _env_number("GEOLITE_MAX_DATABASE_SIZE", MAX_DATABASE_SIZE, int)
    )
    max_archive_entries: int = field(
        default_factory=lambda: _env_number("GEOLITE_MAX_ARCHIVE_ENTRIES", MAX_ARCHIVE_ENTRIES, int)
    )

    # Logging
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))
    mask_sensitive_data: bool = True

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path)

    @property
    def download_url(self) -> str:
        """The archive URL with the license key filled in.

        The template takes the key as ``{key}`` or as a single ``%s``.
        """
        if "{" not in self.db_url and "%s" in self.db_url:
            return self.db_url.replace("%s", self.license_key, 1)
        try:
            return self.db_url.format(key=self.license_key)
        except (AttributeError, KeyError, IndexError, ValueError) as exc:
            raise ConfigError(f"invalid GEOLITE_DB_URL template {self.db_url!r}: {exc}") from exc

    @property
    def max_age_seconds(self) -> float:
        return self.max_age_days * 24 * 3600

    @property
    def uses_default_url(self) -> bool:
        return self.db_url == DEFAULT_DB_URL
