"""
Database update pipeline steps

The archive is read as a stream: ``tarfile`` walks the gzip-compressed tar
entry by entry, and only the entry named ``GeoLite2-City.mmdb`` is copied,
into a staging file beside the target. The staging file is opened with the
same decoder lookups use, then renamed onto the target under the exclusive
lock. Every failure removes the staging file and leaves the installed
database as it was.
"""

from __future__ import annotations

import logging
import tarfile
import tempfile
import threading
import time
import zlib
from pathlib import Path, PurePosixPath
from typing import IO, Optional

from .constants import (
    COPY_CHUNK_SIZE,
    DATABASE_FILENAME,
    MAX_ARCHIVE_ENTRIES,
    MAX_DATABASE_SIZE,
    STAGING_PREFIX,
    STAGING_SUFFIX,
)
from .decoder import DECODE_ERRORS, DatabaseDecoder
from .errors import (
    ArchiveInvalidError,
    InstallFailedError,
    SizeLimitExceededError,
    StageFailedError,
    ValidationFailedError,
)
from .file_ops import ensure_directory, remove_quietly
from .rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

# Errors raised by tarfile/gzip for a malformed stream
ARCHIVE_ERRORS = (tarfile.TarError, EOFError, zlib.error)


def database_age(path: Path, now: Optional[float] = None) -> Optional[float]:
    """Seconds since ``path`` was last modified, or ``None`` if it cannot be read."""
    try:
        mtime = path.stat().st_mtime
    except OSError:
        return None
    if now is None:
        now = time.time()
    return now - mtime


def is_database_fresh(path: Path, max_age_seconds: float, now: Optional[float] = None) -> bool:
    """True when ``path`` exists and is younger than ``max_age_seconds``.

    A missing file is always stale. The check is advisory and runs without the
    database lock; racing an install costs at most one redundant download.
    """
    age = database_age(path, now)
    return age is not None and age < max_age_seconds


def _is_database_member(member: tarfile.TarInfo, filename: str) -> bool:
    return member.isreg() and PurePosixPath(member.name).name == filename


def _copy_member(source: IO[bytes], target: IO[bytes], max_total_size: int) -> int:
    """Copy ``source`` into ``target``, enforcing the running byte ceiling."""
    copied = 0
    while True:
        try:
            chunk = source.read(COPY_CHUNK_SIZE)
        except ARCHIVE_ERRORS as exc:
            raise ArchiveInvalidError(f"failed to read tar archive: {exc}") from exc
        if not chunk:
            return copied
        copied += len(chunk)
        if copied > max_total_size:
            raise SizeLimitExceededError(
                "total decompressed size exceeds maximum allowed limit "
                f"({max_total_size} bytes)"
            )
        try:
            target.write(chunk)
        except OSError as exc:
            raise StageFailedError(f"failed to write database file: {exc}") from exc


def stage_from_archive(
    fileobj: IO[bytes],
    target_path: Path,
    *,
    filename: str = DATABASE_FILENAME,
    max_total_size: int = MAX_DATABASE_SIZE,
    max_entries: int = MAX_ARCHIVE_ENTRIES,
) -> Path:
    """Extract ``filename`` from a tar.gz stream into a staging file.

    The staging file is created in the directory of ``target_path`` so the
    later rename never crosses a filesystem. Only the first regular file whose
    base name matches is extracted; every other entry is skipped.

    Returns:
        Path of the staging file. The caller owns it from here on.

    Raises:
        ArchiveInvalidError: malformed stream, too many entries, or no
            matching entry.
        SizeLimitExceededError: the matching entry exceeds ``max_total_size``.
        StageFailedError: the staging file could not be created or written.
    """
    total_size = 0
    entries = 0

    try:
        archive = tarfile.open(fileobj=fileobj, mode="r|gz")
    except ARCHIVE_ERRORS as exc:
        raise ArchiveInvalidError(f"failed to create gzip reader: {exc}") from exc

    with archive:
        while True:
            try:
                member = archive.next()
            except ARCHIVE_ERRORS as exc:
                raise ArchiveInvalidError(f"failed to read tar archive: {exc}") from exc
            if member is None:
                break

            entries += 1
            if entries > max_entries:
                raise ArchiveInvalidError(f"archive has more than {max_entries} entries")

            if not _is_database_member(member, filename):
                logger.debug(f"Skipping archive entry {member.name}")
                continue

            total_size += member.size
            if total_size > max_total_size:
                raise SizeLimitExceededError(
                    "total decompressed size exceeds maximum allowed limit "
                    f"({max_total_size} bytes)"
                )

            return _stage_member(archive, member, target_path, max_total_size)

    raise ArchiveInvalidError(f"{filename} not found in archive")


def _stage_member(
    archive: tarfile.TarFile, member: tarfile.TarInfo, target_path: Path, max_total_size: int
) -> Path:
    source = archive.extractfile(member)
    if source is None:
        raise ArchiveInvalidError(f"cannot read archive entry {member.name}")

    try:
        base_dir = ensure_directory(target_path.parent)
        handle = tempfile.NamedTemporaryFile(
            mode="wb",
            prefix=STAGING_PREFIX,
            suffix=STAGING_SUFFIX,
            dir=base_dir,
            delete=False,
        )
    except OSError as exc:
        raise StageFailedError(f"failed to create temporary database file: {exc}") from exc

    staging_path = Path(handle.name)
    try:
        with handle:
            _copy_member(source, handle, max_total_size)
    except BaseException:
        remove_quietly(staging_path)
        raise

    logger.debug(f"Staged {member.name} at {staging_path}")
    return staging_path


def validate_staged(staging_path: Path, decoder: DatabaseDecoder) -> None:
    """Open the staged file with ``decoder``; delete it if that fails."""
    try:
        handle = decoder.open(staging_path)
    except DECODE_ERRORS as exc:
        remove_quietly(staging_path)
        raise ValidationFailedError(f"failed to open downloaded database file: {exc}") from exc
    handle.close()


def install_staged(
    staging_path: Path,
    target_path: Path,
    lock: ReadWriteLock,
    cancelled: Optional[threading.Event] = None,
) -> None:
    """Rename the staged file onto ``target_path`` under the exclusive lock.

    ``cancelled`` is checked once the lock is held; when it is set the staged
    file is discarded and the installed database is not touched.
    """
    try:
        with lock.write_locked():
            if cancelled is not None and cancelled.is_set():
                remove_quietly(staging_path)
                raise InstallFailedError("database install was cancelled")
            staging_path.replace(target_path)
    except OSError as exc:
        remove_quietly(staging_path)
        raise InstallFailedError(f"failed to replace database file: {exc}") from exc


def validate_and_install(
    staging_path: Path,
    target_path: Path,
    decoder: DatabaseDecoder,
    lock: ReadWriteLock,
    cancelled: Optional[threading.Event] = None,
) -> None:
    """Validate a staged database and rename it onto ``target_path``.

    The staging file is removed on every failure, including cancellation
    before the rename.
    """
    try:
        if cancelled is not None and cancelled.is_set():
            raise InstallFailedError("database install was cancelled")
        validate_staged(staging_path, decoder)
    except BaseException:
        remove_quietly(staging_path)
        raise
    install_staged(staging_path, target_path, lock, cancelled)
