"""
Unit tests for the result cache backends.

Both backends must behave the same behind ResultCache: JSON document
(villager_voice/persist/document_store.py) and SQLite
(villager_voice/persist/sqlite_store.py).
"""
import json

import pytest

from villager_voice.errors import StoreError
from villager_voice.persist.artifact_store import LocalArtifactStore
from villager_voice.persist.backend import CacheEntry
from villager_voice.persist.document_store import JsonDocumentBackend
from villager_voice.persist.result_cache import ResultCache
from villager_voice.persist.sqlite_store import SqliteBackend


@pytest.fixture(params=["json", "sqlite"])
def any_backend(request, tmp_path):
    if request.param == "json":
        b = JsonDocumentBackend(tmp_path / "cache.json")
    else:
        b = SqliteBackend(tmp_path / "cache.db")
    yield b
    b.close()


def test_write_read_delete_roundtrip(any_backend):
    entry = CacheEntry(timestamp=1_700_000_000_000, data={"filename": "ab.wav"}, files=["ab.wav"])
    
    any_backend.write("ingest:ab", entry)
    
    got = any_backend.read("ingest:ab")
    assert got == entry
    
    any_backend.delete("ingest:ab")
    assert any_backend.read("ingest:ab") is None


def test_read_missing_returns_none(any_backend):
    assert any_backend.read("convert:nothing") is None


def test_overwrite_replaces_entry(any_backend):
    any_backend.write("k", CacheEntry(1, {"v": 1}))
    any_backend.write("k", CacheEntry(2, {"v": 2}, ["b.wav"]))
    
    got = any_backend.read("k")
    assert got.data == {"v": 2}
    assert got.files == ["b.wav"]
    assert any_backend.keys() == ["k"]


def test_keys_and_purge(any_backend):
    for key in ("b", "a", "c"):
        any_backend.write(key, CacheEntry(1, key))
    
    assert any_backend.keys() == ["a", "b", "c"]
    assert any_backend.purge() == 3
    assert any_backend.keys() == []


def test_stats(any_backend):
    any_backend.write("a", CacheEntry(1_000_000, {"x": 1}))
    any_backend.write("b", CacheEntry(5_000_000, {"x": 2}))
    
    stats = any_backend.stats()
    
    assert stats["count"] == 2
    assert stats["total_bytes"] > 0
    assert stats["oldest_ts"] == 1000
    assert stats["newest_ts"] == 5000


def test_stats_empty(any_backend):
    stats = any_backend.stats()
    assert stats["count"] == 0
    assert stats["oldest_ts"] == 0
    assert stats["newest_ts"] == 0


def test_persistence_after_reopen(tmp_path):
    """Entries survive closing and reopening either backend."""
    for make in (lambda: JsonDocumentBackend(tmp_path / "c.json"), lambda: SqliteBackend(tmp_path / "c.db")):
        with make() as b:
            b.write("separate:x.wav", CacheEntry(1, {"vocals": "v.wav"}, ["v.wav"]))
        with make() as b:
            assert b.read("separate:x.wav").files == ["v.wav"]


def test_json_document_format(tmp_path):
    """The document is a flat object keyed by fingerprint."""
    path = tmp_path / "cache.json"
    b = JsonDocumentBackend(path)
    b.write("ingest:ab", CacheEntry(123, {"filename": "ab.wav"}, ["ab.wav"]))
    
    doc = json.loads(path.read_text())
    assert doc == {"ingest:ab": {"timestamp": 123, "data": {"filename": "ab.wav"}, "files": ["ab.wav"]}}


def test_json_corrupt_document_reads_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json")
    b = JsonDocumentBackend(path)
    
    assert b.read("anything") is None
    assert b.keys() == []
    
    # Next write replaces the corrupt document
    b.write("k", CacheEntry(1, "v"))
    assert json.loads(path.read_text())["k"]["data"] == "v"


def test_json_entry_without_files(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({"old": {"timestamp": 5, "data": {"a": 1}}}))
    
    entry = JsonDocumentBackend(path).read("old")
    assert entry.files == []
    assert entry.data == {"a": 1}


def test_json_unserializable_payload_raises(tmp_path):
    b = JsonDocumentBackend(tmp_path / "cache.json")
    with pytest.raises(StoreError):
        b.write("k", CacheEntry(1, {"bad": object()}))


def test_sqlite_wal_mode(sqlite_backend):
    cursor = sqlite_backend._conn.execute("PRAGMA journal_mode")
    assert cursor.fetchone()[0].lower() == "wal"


def test_sqlite_vacuum(sqlite_backend):
    for i in range(50):
        sqlite_backend.write(f"k{i}", CacheEntry(i, "x" * 200))
    sqlite_backend.purge()
    sqlite_backend.vacuum()
    assert sqlite_backend.stats()["count"] == 0


@pytest.mark.parametrize("raw", [b"{not json", b"\xff\xfe", b"[1, 2]"])
def test_sqlite_corrupt_row_reads_as_miss(sqlite_backend, raw):
    sqlite_backend._conn.execute(
        "INSERT INTO results (key, value, ts) VALUES (?, ?, ?)", ("k", raw, 1)
    )
    sqlite_backend._conn.commit()
    
    assert sqlite_backend.read("k") is None
    
    # A fresh write repairs the row
    entry = CacheEntry(2, {"filename": "ok.wav"}, ["ok.wav"])
    sqlite_backend.write("k", entry)
    assert sqlite_backend.read("k") == entry


def test_result_cache_over_corrupt_sqlite_row_is_miss(sqlite_backend, tmp_path):
    store = LocalArtifactStore(tmp_path / "temp")
    cache = ResultCache(sqlite_backend, store)
    sqlite_backend._conn.execute(
        "INSERT INTO results (key, value, ts) VALUES (?, ?, ?)", ("ingest:ab", b"{oops", 1)
    )
    sqlite_backend._conn.commit()
    
    assert cache.lookup("ingest:ab") is None
