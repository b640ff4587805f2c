"""Test configuration and shared fixtures."""

import hashlib
from typing import AsyncIterator, Iterable, List

import pytest
from fastapi.testclient import TestClient
from pynostr.key import PrivateKey

from blossomd.app import create_app
from blossomd.auth import build_auth_header
from blossomd.config import AuthMode, Settings
from blossomd.db import Database, sqlite_url
from blossomd.ledger import OwnershipLedger
from blossomd.server import BlossomServer
from blossomd.store import ContentStore

SERVER_URL = "http://blossom.test"

# 45 bytes, the size used in the upload/fetch/delete walkthrough
SAMPLE_TEXT = b"The quick brown fox jumps over the lazy dog!!"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


async def chunked(data: bytes, size: int = 7) -> AsyncIterator[bytes]:
    for i in range(0, len(data), size):
        yield data[i:i + size]


def blob_files(settings: Settings) -> List[str]:
    """Names of everything in the blob directory, temp files included."""
    return sorted(p.name for p in settings.blobs_dir.iterdir())


@pytest.fixture
def owner_key() -> PrivateKey:
    return PrivateKey()


@pytest.fixture
def second_key() -> PrivateKey:
    return PrivateKey()


@pytest.fixture
def stranger_key() -> PrivateKey:
    """A key that is never put on the allow-list."""
    return PrivateKey()


@pytest.fixture
def settings(tmp_path, owner_key, second_key) -> Settings:
    return Settings(
        working_dir=str(tmp_path / "data"),
        server_url=SERVER_URL,
        auth_mode=AuthMode.ALLOWLIST,
        allowed_pubkeys=",".join([owner_key.public_key.hex(), second_key.public_key.bech32()]),
        max_upload_size=1024,
    )


@pytest.fixture
def client(settings) -> Iterable[TestClient]:
    app = create_app(settings, server=BlossomServer(settings))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_for():
    """Factory for signed Authorization headers."""

    def _make(key: PrivateKey, data: bytes = None, **kwargs) -> dict:
        if data is not None:
            kwargs.setdefault("x_hashes", [sha256_hex(data)])
        return {"Authorization": build_auth_header(key, **kwargs)}

    return _make


@pytest.fixture
async def database(tmp_path) -> AsyncIterator[Database]:
    db = Database(sqlite_url(str(tmp_path)))
    await db.init()
    yield db
    await db.dispose()


@pytest.fixture
def store(tmp_path) -> ContentStore:
    return ContentStore(tmp_path / "blobs")


@pytest.fixture
def ledger(database, store) -> OwnershipLedger:
    return OwnershipLedger(database, store)
