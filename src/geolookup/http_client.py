"""Shared HTTP client utilities for geolookup."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable

import httpx

from . import __version__

try:  # pragma: no cover - optional dependency used only when available
    import h2  # noqa: F401
except ModuleNotFoundError:  # pragma: no cover
    HTTP2_AVAILABLE = False
else:  # pragma: no cover
    HTTP2_AVAILABLE = True

# Database archives are large; the read timeout bounds a stalled transfer,
# the overall bound is applied by the caller.
DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)
POOL_LIMITS = httpx.Limits(max_keepalive_connections=4, max_connections=8)

ClientFactory = Callable[[], AsyncContextManager[httpx.AsyncClient]]


@asynccontextmanager
async def get_client() -> AsyncIterator[httpx.AsyncClient]:
    """Yield a configured AsyncClient with sane defaults.

    The client follows redirects (MaxMind answers with one to its CDN) and
    sends a fixed user agent.
    """
    async with httpx.AsyncClient(
        http2=HTTP2_AVAILABLE,
        timeout=DEFAULT_TIMEOUT,
        limits=POOL_LIMITS,
        headers={
            "accept": "*/*",
            "user-agent": f"geolookup/{__version__}",
        },
        follow_redirects=True,
    ) as client:
        yield client
