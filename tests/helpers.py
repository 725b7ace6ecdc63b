"""Test doubles and archive builders shared by the test suite."""

import io
import json
import os
import tarfile
import threading
import time
from pathlib import Path
from typing import Any, Iterable

import httpx
from maxminddb import InvalidDatabaseError

from geolookup.constants import DATABASE_FILENAME
from geolookup.models import GeoRecord

FAKE_DATABASE_TYPE = "GeoLite2-City"


class FakeHandle:
    def __init__(self, records: dict) -> None:
        self.records = records
        self.closed = False

    def lookup(self, address):
        data = self.records.get(str(address))
        if data is None:
            return None
        return GeoRecord(country=data.get("country", ""), city=data.get("city", ""))

    def close(self) -> None:
        self.closed = True


class FakeDecoder:
    """JSON-backed stand-in for the MaxMind decoder.

    A valid database is a JSON object with ``database_type`` set and a
    ``records`` mapping of address to country/city.
    """

    def __init__(self) -> None:
        self.opened: list[Path] = []

    def open(self, path: Path) -> FakeHandle:
        self.opened.append(Path(path))
        raw = Path(path).read_bytes()
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise InvalidDatabaseError(f"error opening database: {exc}") from exc
        if not isinstance(payload, dict) or payload.get("database_type") != FAKE_DATABASE_TYPE:
            raise InvalidDatabaseError("unexpected database type")
        return FakeHandle(payload.get("records", {}))


def database_bytes(records: dict, padding: int = 0) -> bytes:
    """Serialize a fake database; ``padding`` adds incompressible filler."""
    payload = {"database_type": FAKE_DATABASE_TYPE, "records": records}
    if padding:
        payload["padding"] = os.urandom(padding // 2).hex()
    return json.dumps(payload).encode()


def build_archive(
    members: Iterable[tuple[str, bytes]],
    *,
    symlinks: Iterable[str] = (),
    directories: Iterable[str] = (),
) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name in directories:
            info = tarfile.TarInfo(name=name)
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        for name in symlinks:
            info = tarfile.TarInfo(name=name)
            info.type = tarfile.SYMTYPE
            info.linkname = "elsewhere.mmdb"
            tar.addfile(info)
        for name, content in members:
            info = tarfile.TarInfo(name=name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def database_archive(records: dict, padding: int = 0) -> bytes:
    """The usual MaxMind layout: a dated directory holding the database."""
    return build_archive(
        [
            ("GeoLite2-City_20240101/COPYRIGHT.txt", b"Copyright MaxMind"),
            ("GeoLite2-City_20240101/LICENSE.txt", b"License"),
            (f"GeoLite2-City_20240101/{DATABASE_FILENAME}", database_bytes(records, padding)),
        ],
        directories=["GeoLite2-City_20240101"],
    )


class ArchiveServer:
    """httpx MockTransport handler that counts requests."""

    def __init__(self, payload: Any = b"", status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # A callable payload builds a fresh (possibly async) body per request
        content = self.payload() if callable(self.payload) else self.payload
        return httpx.Response(self.status_code, content=content)

    def client_factory(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def age_file(path: Path, days: float) -> None:
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))


def staging_files(directory: Path) -> list[Path]:
    return sorted(directory.glob("*.tmp"))


class SlowDecoder(FakeDecoder):
    """Fake decoder that stalls when opening a staged ``*.tmp`` file.

    With ``gated`` set, the open blocks until ``release`` is set instead of
    sleeping for ``delay`` seconds; ``entered`` marks that it has started.
    """

    def __init__(self, delay: float = 1.0, gated: bool = False) -> None:
        super().__init__()
        self.delay = delay
        self.gated = gated
        self.entered = threading.Event()
        self.release = threading.Event()

    def open(self, path: Path) -> FakeHandle:
        if Path(path).suffix == ".tmp":
            self.entered.set()
            if self.gated:
                self.release.wait(10)
            else:
                time.sleep(self.delay)
        return super().open(path)
