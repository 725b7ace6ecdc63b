import sys
from pathlib import Path

import pytest

from aiohttp import web

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

import geolookup.file_ops
from geolookup.config import GeoSettings
from geolookup.constants import DATABASE_FILENAME
from geolookup.service import GeoLookupService

from helpers import ArchiveServer, FakeDecoder, age_file, database_bytes


@pytest.fixture(scope="session", autouse=True)
def file_pool_management():
    """Session-scoped fixture to manage thread pool lifecycle."""
    geolookup.file_ops.start_file_pool()
    yield


@pytest.fixture
def fake_decoder() -> FakeDecoder:
    return FakeDecoder()


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "data" / DATABASE_FILENAME


@pytest.fixture
def write_database(db_path):
    """Install a fake database directly, aged ``age_days`` days."""

    def write(records: dict, age_days: float = 0, padding: int = 0) -> Path:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        db_path.write_bytes(database_bytes(records, padding))
        if age_days:
            age_file(db_path, age_days)
        return db_path

    return write


@pytest.fixture
def settings(db_path) -> GeoSettings:
    return GeoSettings(
        license_key="test_key",
        db_url="https://download.example.com/geolite?license_key={key}&suffix=tar.gz",
        db_path=db_path,
        local_ipv6_ranges="",
        max_age_days=14,
        download_timeout=30,
        max_database_size=10 * 1024 * 1024,
        max_archive_entries=100,
    )


@pytest.fixture
def archive_server() -> ArchiveServer:
    return ArchiveServer()


@pytest.fixture
def service(settings, fake_decoder, archive_server) -> GeoLookupService:
    return GeoLookupService(
        settings,
        decoder=fake_decoder,
        client_factory=archive_server.client_factory,
    )


@pytest.fixture
async def http_server_factory():
    """Factory for creating aiohttp servers."""
    runners = []

    async def create_server(app):
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()

        # Get the actual port from the running server's site info
        site = list(runner.sites)[0]
        port = site._server.sockets[0].getsockname()[1]
        server_url = f"http://127.0.0.1:{port}"
        runners.append(runner)
        return server_url

    yield create_server

    for runner in runners:
        await runner.cleanup()
