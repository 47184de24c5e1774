import time

import pytest

from siftstore.generic import StoreError, StoreGeneric, StorePool, dispatch_erase


class _Store(StoreGeneric):
    def __init__(self, key):
        super().__init__()
        self.key = key


def _counting_builder():
    calls = []

    def build(key):
        calls.append(key)
        return _Store(key)

    return build, calls


def test_get_or_open_caches_store():
    build, calls = _counting_builder()
    pool = StorePool("kv", build, 60)
    first = pool.get_or_open("k1", "c:test:1")
    second = pool.get_or_open("k1", "c:test:1")
    assert first is second
    assert calls == ["k1"]
    assert len(pool) == 1


def test_get_returns_none_when_absent():
    build, _ = _counting_builder()
    pool = StorePool("kv", build, 60)
    assert pool.get("missing") is None
    assert pool.keys() == []


def test_builder_failure_raises_store_error():
    def build(key):
        raise RuntimeError("boom")

    pool = StorePool("fst", build, 60)
    with pytest.raises(StoreError):
        pool.get_or_open("k", "c:test")
    assert len(pool) == 0


def test_builder_failure_is_catchable_as_os_error():
    def build(key):
        raise RuntimeError("boom")

    pool = StorePool("fst", build, 60)
    with pytest.raises(OSError):
        pool.get_or_open("k", "c:test")
    assert pool.get("k") is None
    assert pool.keys() == []


def test_cached_acquire_touches_store():
    build, _ = _counting_builder()
    pool = StorePool("kv", build, 60)
    store = pool.get_or_open("k", "c")
    store.last_used -= 100
    pool.get_or_open("k", "c")
    assert store.idle_seconds() < 50


def test_touch_resets_idle_time():
    build, _ = _counting_builder()
    pool = StorePool("kv", build, 60)
    store = pool.get_or_open("k", "c")
    store.last_used = time.monotonic() - 100
    assert store.idle_seconds() >= 100
    store.touch()
    assert store.idle_seconds() < 100


def test_janitor_evicts_idle_stores():
    build, _ = _counting_builder()
    pool = StorePool("kv", build, 10)
    idle = pool.get_or_open("idle", "c1")
    pool.get_or_open("fresh", "c2")
    idle.last_used -= 20
    assert pool.janitor() == 1
    assert pool.keys() == ["fresh"]


def test_janitor_keeps_fresh_stores():
    build, _ = _counting_builder()
    pool = StorePool("kv", build, 10)
    pool.get_or_open("fresh", "c")
    assert pool.janitor() == 0
    assert len(pool) == 1


def test_remove_returns_store():
    build, _ = _counting_builder()
    pool = StorePool("kv", build, 10)
    store = pool.get_or_open("k", "c")
    assert pool.remove("k") is store
    assert pool.remove("k") is None
    assert len(pool) == 0


def test_dispatch_erase_routes_to_bucket():
    seen = []

    def erase_collection(collection):
        seen.append(("collection", collection))
        return 0

    def erase_bucket(collection, bucket):
        seen.append(("bucket", collection, bucket))
        return 1

    assert dispatch_erase("kv", erase_collection, erase_bucket, "c", "b") == 1
    assert seen == [("bucket", "c", "b")]


def test_dispatch_erase_routes_to_collection():
    seen = []

    def erase_collection(collection):
        seen.append(collection)
        return 1

    def erase_bucket(collection, bucket):
        raise AssertionError("bucket erase should not run")

    assert dispatch_erase("fst", erase_collection, erase_bucket, "c") == 1
    assert seen == ["c"]