"""Blocking file view over an async byte stream."""

from __future__ import annotations

import asyncio
import concurrent.futures
import io
import threading
from typing import AsyncIterator, Optional


class StreamAborted(Exception):
    """The stream was aborted while a reader thread was consuming it."""


class AsyncByteStreamReader(io.RawIOBase):
    """Read-only file object over an async iterator of byte chunks.

    Meant for a worker thread: every refill schedules the next ``__anext__``
    on ``loop`` and blocks until it completes, so ``tarfile`` and ``gzip`` can
    stream an HTTP body chunk by chunk without the whole body in memory. The
    event loop must stay free while the worker runs.
    """

    def __init__(self, chunks: AsyncIterator[bytes], loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self._chunks = chunks
        self._loop = loop
        self._buffer = b""
        self._eof = False
        self._aborted = False
        self._pending: Optional[concurrent.futures.Future[Optional[bytes]]] = None
        self._guard = threading.Lock()
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # type: ignore[override]
        while not self._buffer and not self._eof:
            self._buffer = self._next_chunk()
        size = min(len(buffer), len(self._buffer))
        buffer[:size] = self._buffer[:size]
        self._buffer = self._buffer[size:]
        self.bytes_read += size
        return size

    async def _anext(self) -> Optional[bytes]:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return None

    def _next_chunk(self) -> bytes:
        with self._guard:
            if self._aborted:
                raise StreamAborted("stream aborted")
            future = asyncio.run_coroutine_threadsafe(self._anext(), self._loop)
            self._pending = future
        try:
            chunk = future.result()
        except concurrent.futures.CancelledError as exc:
            raise StreamAborted("stream aborted") from exc
        finally:
            with self._guard:
                self._pending = None
        if chunk is None:
            self._eof = True
            return b""
        return chunk

    def abort(self) -> None:
        """Make the reading thread fail on its current or next refill."""
        with self._guard:
            self._aborted = True
            if self._pending is not None:
                self._pending.cancel()
