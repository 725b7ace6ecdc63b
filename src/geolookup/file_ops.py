"""
Blocking file work for the geolocation service

Lookups open the database file and updates copy hundreds of megabytes out of
an archive. Both are synchronous, so asyncio callers hand them to a dedicated
thread pool instead of running them on the event loop.
"""

import asyncio
import atexit
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

FILE_IO_POOL = ThreadPoolExecutor(max_workers=10, thread_name_prefix="geolookup-file-io")


def ensure_directory(path: Path | str) -> Path:
    """Ensure ``path`` exists on disk and return it as a ``Path``."""

    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def remove_quietly(path: Path | str) -> None:
    """Delete ``path`` if it still exists.

    Used on failure paths, where the original error is the one worth raising.
    """
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning(f"Failed to remove {path}: {exc}")


async def run_blocking(func: Callable[..., T], *args: Any) -> T:
    """Run ``func(*args)`` on the file I/O pool and await its result."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(FILE_IO_POOL, func, *args)


def start_file_pool() -> None:
    """
    Re-initialize the file I/O thread pool.

    Test sessions may shut the pool down between runs; this creates a fresh
    one when the current pool is closed.
    """
    global FILE_IO_POOL

    if FILE_IO_POOL is None or FILE_IO_POOL._shutdown:
        logger.debug("Creating new FILE_IO_POOL (previous was shut down)")
        FILE_IO_POOL = ThreadPoolExecutor(max_workers=10, thread_name_prefix="geolookup-file-io")


def shutdown_file_pool() -> None:
    """Shut down the file I/O thread pool, waiting for running work."""
    if FILE_IO_POOL and not FILE_IO_POOL._shutdown:
        FILE_IO_POOL.shutdown(wait=True)
        logger.debug("File I/O thread pool shut down gracefully")


# Pytest manages the pool lifecycle itself via fixtures
if "pytest" not in sys.modules:
    atexit.register(shutdown_file_pool)
