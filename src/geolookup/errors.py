"""Exception hierarchy for lookups and database updates."""

from __future__ import annotations

from typing import Optional


class GeoLookupError(Exception):
    """Base exception for the geolocation service."""

    exit_code = 1

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(message)


class ConfigError(GeoLookupError):
    """Invalid configuration value."""

    exit_code = 3


class InvalidAddressError(GeoLookupError):
    """The string given to a lookup is not an IP address."""

    exit_code = 4


class LookupFailedError(GeoLookupError):
    """The database file could not be opened or decoded."""

    exit_code = 2


class UpdateError(GeoLookupError):
    """Base class for every failure of the update pipeline."""

    exit_code = 5


class DownloadFailedError(UpdateError):
    """Transport error, timeout or non-200 response."""


class ArchiveInvalidError(UpdateError):
    """Malformed gzip/tar stream, or the database file is missing from it."""


class SizeLimitExceededError(UpdateError):
    """The archive expands past the configured ceiling."""


class StageFailedError(UpdateError):
    """Writing the staging file failed."""


class ValidationFailedError(UpdateError):
    """The staged file does not open as a database."""


class InstallFailedError(UpdateError):
    """Renaming the staging file onto the database path failed."""
