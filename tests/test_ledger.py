"""Tests for ownership records and reference counted deletion."""

import itertools
import threading
from types import SimpleNamespace

import pytest

from blossomd import ledger as ledger_module

from .conftest import SAMPLE_TEXT, chunked

ALICE = "a1" * 32
BOB = "b2" * 32


async def _stored(store, data: bytes = SAMPLE_TEXT) -> str:
    pending = await store.receive(chunked(data), size_limit=1 << 20)
    store.commit(pending)
    return pending.sha256


@pytest.mark.asyncio
async def test_record_and_list(ledger, store):
    sha256 = await _stored(store)
    row = await ledger.record_upload(sha256, ALICE, len(SAMPLE_TEXT), "text/plain")
    assert row.to_descriptor("http://host/")["url"] == f"http://host/{sha256}"

    rows = await ledger.list_by_owner(ALICE)
    assert [(r.sha256, r.size, r.type) for r in rows] == [(sha256, len(SAMPLE_TEXT), "text/plain")]
    assert await ledger.list_by_owner(BOB) == []


@pytest.mark.asyncio
async def test_reupload_by_same_owner_replaces_metadata(ledger, store, monkeypatch):
    clock = itertools.count(1000)
    monkeypatch.setattr(ledger_module, "time", SimpleNamespace(time=lambda: next(clock)))
    sha256 = await _stored(store)
    await ledger.record_upload(sha256, ALICE, len(SAMPLE_TEXT), None)
    await ledger.record_upload(sha256, ALICE, len(SAMPLE_TEXT), "text/plain")

    rows = await ledger.list_by_owner(ALICE)
    assert len(rows) == 1
    assert rows[0].type == "text/plain"
    assert rows[0].uploaded == 1001
    assert await ledger.count_owners(sha256) == 1


@pytest.mark.asyncio
async def test_list_is_newest_first(ledger, store, monkeypatch):
    clock = itertools.count(1000)
    monkeypatch.setattr(ledger_module, "time", SimpleNamespace(time=lambda: next(clock)))
    digests = [await _stored(store, data) for data in (b"one", b"two", b"three")]
    for digest in digests:
        await ledger.record_upload(digest, ALICE, 3, None)

    rows = await ledger.list_by_owner(ALICE)
    assert [r.sha256 for r in rows] == list(reversed(digests))


@pytest.mark.asyncio
async def test_descriptor_omits_missing_type(ledger, store):
    sha256 = await _stored(store)
    row = await ledger.record_upload(sha256, ALICE, len(SAMPLE_TEXT), None)
    assert row.to_descriptor("http://host") == {
        "sha256": sha256,
        "size": len(SAMPLE_TEXT),
        "uploaded": row.uploaded,
        "url": f"http://host/{sha256}",
    }


@pytest.mark.asyncio
async def test_shared_blob_survives_until_last_owner_removes_it(ledger, store):
    sha256 = await _stored(store)
    await ledger.record_upload(sha256, ALICE, len(SAMPLE_TEXT), None)
    await ledger.record_upload(sha256, BOB, len(SAMPLE_TEXT), None)
    assert await ledger.count_owners(sha256) == 2

    assert await ledger.remove_ownership(sha256, ALICE) is True
    assert store.exists(sha256)
    assert await ledger.list_by_owner(ALICE) == []
    assert [r.sha256 for r in await ledger.list_by_owner(BOB)] == [sha256]

    assert await ledger.remove_ownership(sha256, BOB) is True
    assert not store.exists(sha256)
    assert await ledger.count_owners(sha256) == 0


@pytest.mark.asyncio
async def test_remove_ownership_of_unowned_blob(ledger, store):
    sha256 = await _stored(store)
    await ledger.record_upload(sha256, ALICE, len(SAMPLE_TEXT), None)

    assert await ledger.remove_ownership(sha256, BOB) is False
    assert store.exists(sha256)
    assert await ledger.count_owners(sha256) == 1


@pytest.mark.asyncio
async def test_media_type_lookup(ledger, store):
    sha256 = await _stored(store)
    assert await ledger.media_type(sha256) is None
    await ledger.record_upload(sha256, ALICE, len(SAMPLE_TEXT), None)
    assert await ledger.media_type(sha256) is None
    await ledger.record_upload(sha256, BOB, len(SAMPLE_TEXT), "text/plain")
    assert await ledger.media_type(sha256) == "text/plain"


@pytest.mark.asyncio
async def test_last_owner_removal_unlinks_off_the_event_loop(ledger, store, monkeypatch):
    sha256 = await _stored(store)
    await ledger.record_upload(sha256, ALICE, len(SAMPLE_TEXT), None)
    threads = []
    delete = store.delete

    def recording_delete(digest):
        threads.append(threading.get_ident())
        return delete(digest)

    monkeypatch.setattr(store, "delete", recording_delete)
    assert await ledger.remove_ownership(sha256, ALICE) is True
    assert not store.exists(sha256)
    assert threads and threads[0] != threading.get_ident()
