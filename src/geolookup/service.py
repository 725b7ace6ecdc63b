"""GeoLite2 City lookups and background database refresh."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import threading
from functools import partial
from pathlib import Path
from typing import Optional

import httpx

from .classifier import RangeClassifier
from .config import GeoSettings
from .decoder import DECODE_ERRORS, DatabaseDecoder, MaxMindDecoder
from .errors import DownloadFailedError, InvalidAddressError, LookupFailedError, UpdateError
from .file_ops import remove_quietly, run_blocking
from .http_client import ClientFactory, get_client
from .models import EMPTY_LOCATION, DatabaseStatus, GeoRecord, Location
from .rwlock import ReadWriteLock
from .streams import AsyncByteStreamReader
from .updater import (
    database_age,
    is_database_fresh,
    stage_from_archive,
    validate_and_install,
)

logger = logging.getLogger(__name__)


class GeoLookupService:
    """Serve country/city lookups from a locally stored GeoLite2 City database.

    The database file is opened fresh for every lookup, under the shared side
    of ``lock``. ``update_database`` replaces it by downloading, staging and
    validating a new copy first, then renaming it into place under the
    exclusive side, so readers wait for one rename at most.
    """

    def __init__(
        self,
        settings: Optional[GeoSettings] = None,
        *,
        decoder: Optional[DatabaseDecoder] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.settings = settings or GeoSettings()
        self.decoder: DatabaseDecoder = decoder or MaxMindDecoder()
        self.client_factory: ClientFactory = client_factory or get_client
        self.lock = ReadWriteLock()
        self.classifier = RangeClassifier.from_setting(self.settings.local_ipv6_ranges)

        self._updater_disabled = False
        if not self.settings.license_key and self.settings.uses_default_url:
            logger.warning(
                "MAXMIND_LICENSE_KEY environment variable is empty: "
                "the GeoLite2 City database won't be updated"
            )
            self._updater_disabled = True

    @property
    def db_path(self) -> Path:
        return self.settings.db_path

    @property
    def updater_disabled(self) -> bool:
        """True when periodic updates should not be scheduled."""
        return self._updater_disabled

    # Lookups

    def lookup(self, ip_address: str) -> Location:
        """Return the country and city of ``ip_address``.

        Internal addresses get a synthetic label without touching the database.
        An empty string, or an address the database does not know, gives an
        empty ``Location``.

        Raises:
            InvalidAddressError: ``ip_address`` is not an IP address.
            LookupFailedError: the database file is missing or unreadable.
        """
        if not ip_address:
            return EMPTY_LOCATION

        label = self.classifier.classify(ip_address)
        if label is not None:
            return label

        try:
            address = ipaddress.ip_address(ip_address)
        except ValueError as exc:
            raise InvalidAddressError(f"failed to parse IP address: {ip_address!r}") from exc

        with self.lock.read_locked():
            record = self._read_record(address)

        if record is None:
            return EMPTY_LOCATION
        return record.to_location()

    async def lookup_async(self, ip_address: str) -> Location:
        """``lookup`` on the file I/O pool, for use from the event loop."""
        return await run_blocking(self.lookup, ip_address)

    def _read_record(self, address) -> Optional[GeoRecord]:
        try:
            handle = self.decoder.open(self.db_path)
        except DECODE_ERRORS as exc:
            raise LookupFailedError(f"failed to open GeoLite2 City database: {exc}") from exc
        try:
            return handle.lookup(address)
        except DECODE_ERRORS as exc:
            raise LookupFailedError(f"failed to decode GeoLite2 City record: {exc}") from exc
        finally:
            handle.close()

    # Updates

    def is_database_up_to_date(self) -> bool:
        return is_database_fresh(self.db_path, self.settings.max_age_seconds)

    def status(self) -> DatabaseStatus:
        age = database_age(self.db_path)
        size = None
        if age is not None:
            try:
                size = self.db_path.stat().st_size
            except OSError:
                size = None
        return DatabaseStatus(
            path=str(self.db_path),
            exists=age is not None,
            size_bytes=size,
            age_seconds=age,
            up_to_date=age is not None and age < self.settings.max_age_seconds,
            updater_disabled=self.updater_disabled,
        )

    async def update_database(self) -> bool:
        """Refresh the database when it is missing or older than the maximum age.

        Returns:
            True if a new database was installed, False if the current one is
            still fresh and nothing was downloaded.

        Raises:
            UpdateError: any pipeline step failed. The installed database is
                left as it was.
            asyncio.CancelledError: the calling task was cancelled before the
                new database was renamed into place.
        """
        if self.is_database_up_to_date():
            logger.info("GeoLite2 City database is up-to-date")
            return False

        logger.info("Updating GeoLite2 City database")
        timeout = self.settings.download_timeout
        try:
            try:
                staging_path = await asyncio.wait_for(self._download_and_stage(), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise DownloadFailedError(f"download timed out after {timeout:g}s") from exc
            await self._validate_and_install(staging_path)
        except UpdateError as exc:
            logger.error(f"GeoLite2 City database update failed: {exc}")
            raise

        logger.info("GeoLite2 City database successfully updated.")
        return True

    async def _download_and_stage(self) -> Path:
        url = self.settings.download_url
        logger.debug(f"Downloading GeoLite2 City database from {url}")
        try:
            async with self.client_factory() as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != httpx.codes.OK:
                        raise DownloadFailedError(
                            "failed to download database, "
                            f"received HTTP {response.status_code}"
                        )
                    return await self._stage_from_response(response)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DownloadFailedError(f"failed to download database: {exc}") from exc

    async def _stage_from_response(self, response: httpx.Response) -> Path:
        loop = asyncio.get_running_loop()
        reader = AsyncByteStreamReader(response.aiter_bytes(), loop)
        work = asyncio.ensure_future(
            run_blocking(
                partial(
                    stage_from_archive,
                    reader,
                    self.db_path,
                    max_total_size=self.settings.max_database_size,
                    max_entries=self.settings.max_archive_entries,
                )
            )
        )
        try:
            return await asyncio.shield(work)
        except asyncio.CancelledError:
            # Let the worker fail and remove its staging file before unwinding
            reader.abort()
            await asyncio.gather(work, return_exceptions=True)
            if not work.cancelled() and work.exception() is None:
                remove_quietly(work.result())
            raise

    async def _validate_and_install(self, staging_path: Path) -> None:
        cancelled = threading.Event()
        work = asyncio.ensure_future(
            run_blocking(
                partial(
                    validate_and_install,
                    staging_path,
                    self.db_path,
                    self.decoder,
                    self.lock,
                    cancelled,
                )
            )
        )
        try:
            await asyncio.shield(work)
        except asyncio.CancelledError:
            # The rename is checked against the flag under the write lock, so
            # the worker either installs the file or leaves the old one alone
            cancelled.set()
            await asyncio.gather(work, return_exceptions=True)
            if not work.cancelled() and work.exception() is None:
                logger.warning("Update cancelled after the new database was installed")
                return
            raise
