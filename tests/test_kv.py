import pytest

from siftstore import keyer
from siftstore.generic import StoreError
from siftstore.identifiers import StoreMetaKey, StoreMetaValue
from siftstore.item import StoreItemPart
from siftstore.kv import AcquireMode, KVAction, KVPool
from siftstore.kv_store import KVConfig


@pytest.fixture
def pool(tmp_path):
    return KVPool(KVConfig(path=tmp_path / "kv"))


def test_acquires_database(pool):
    store = pool.acquire(AcquireMode.ANY, "c:test:1")
    assert store is not None
    assert pool.count() == 1
    assert pool.acquire(AcquireMode.ANY, "c:test:1") is store


def test_path_uses_hex_hash(pool, tmp_path):
    collection_hash = keyer.to_compact("c:test:1")
    assert pool.path(collection_hash) == tmp_path / "kv" / f"{collection_hash:x}"


def test_open_only_missing_returns_none(pool):
    assert pool.acquire(AcquireMode.OPEN_ONLY, "c:missing") is None
    assert pool.count() == 0


def test_open_only_existing_opens(pool, tmp_path):
    pool.acquire(AcquireMode.ANY, "c:exists")
    assert pool.path(keyer.to_compact("c:exists")).exists()

    other_pool = KVPool(KVConfig(path=tmp_path / "kv"))
    assert other_pool.count() == 0
    other_pool.acquire(AcquireMode.OPEN_ONLY, "c:exists")
    assert other_pool.count() == 1
    assert other_pool.acquire(AcquireMode.OPEN_ONLY, "c:never") is None
    assert other_pool.count() == 1


def test_janitor_keeps_recent(pool):
    pool.acquire(AcquireMode.ANY, "c:test:1")
    assert pool.janitor() == 0
    assert pool.count() == 1


def test_janitor_evicts_idle(tmp_path):
    idle_pool = KVPool(KVConfig(path=tmp_path / "kv", inactive_after=0))
    idle_pool.acquire(AcquireMode.ANY, "c:test:1")
    assert idle_pool.janitor() == 1
    assert idle_pool.count() == 0


def test_proceeds_primitives(pool):
    store = pool.acquire(AcquireMode.ANY, "c:test:2")
    assert store.get(b"\x00") is None
    store.put(b"\x00", bytes([1, 0, 0, 0]))
    assert store.get(b"\x00") == bytes([1, 0, 0, 0])
    store.delete(b"\x00")
    assert store.get(b"\x00") is None


def test_proceeds_actions(pool):
    store = pool.acquire(AcquireMode.ANY, "c:test:3")
    action = KVAction(StoreItemPart("b:test:3"), store)

    assert action.get_meta_to_value(StoreMetaKey.IID_INCR) is None
    action.set_meta_to_value(StoreMetaKey.IID_INCR, StoreMetaValue(StoreMetaKey.IID_INCR, 1))
    assert action.get_meta_to_value(StoreMetaKey.IID_INCR) == StoreMetaValue(
        StoreMetaKey.IID_INCR, 1
    )

    assert action.get_term_to_iids(1) is None
    action.set_term_to_iids(1, [0, 1, 2])
    assert action.get_term_to_iids(1) == [0, 1, 2]
    action.delete_term_to_iids(1)
    assert action.get_term_to_iids(1) is None

    assert action.get_oid_to_iid("s") is None
    action.set_oid_to_iid("s", 4)
    assert action.get_oid_to_iid("s") == 4
    action.delete_oid_to_iid("s")
    assert action.get_oid_to_iid("s") is None

    assert action.get_iid_to_oid(4) is None
    action.set_iid_to_oid(4, "s")
    assert action.get_iid_to_oid(4) == "s"
    action.delete_iid_to_oid(4)
    assert action.get_iid_to_oid(4) is None

    assert action.get_iid_to_terms(4) is None
    action.set_iid_to_terms(4, [45402])
    assert action.get_iid_to_terms(4) == [45402]
    action.delete_iid_to_terms(4)
    assert action.get_iid_to_terms(4) is None


def test_meta_value_stored_as_decimal_text(pool):
    store = pool.acquire(AcquireMode.ANY, "c:meta")
    action = KVAction("b:meta", store)
    action.set_meta_to_value(StoreMetaKey.IID_INCR, StoreMetaValue(StoreMetaKey.IID_INCR, 42))
    raw = store.get(keyer.meta_to_value("b:meta", StoreMetaKey.IID_INCR).raw)
    assert raw == b"42"


def test_meta_value_unparsable_is_none(pool):
    store = pool.acquire(AcquireMode.ANY, "c:meta")
    store.put(keyer.meta_to_value("b:meta", StoreMetaKey.IID_INCR).raw, b"abc")
    assert KVAction("b:meta", store).get_meta_to_value(StoreMetaKey.IID_INCR) is None


def test_empty_iid_terms_is_none(pool):
    store = pool.acquire(AcquireMode.ANY, "c:x")
    action = KVAction("b:x", store)
    action.set_iid_to_terms(7, [])
    assert action.get_iid_to_terms(7) is None


def test_corrupt_term_list_raises(pool):
    store = pool.acquire(AcquireMode.ANY, "c:x")
    store.put(keyer.term_to_iids("b:x", 9).raw, b"\x01\x02\x03")
    with pytest.raises(StoreError):
        KVAction("b:x", store).get_term_to_iids(9)


def test_action_without_store():
    action = KVAction("b:none", None)
    assert action.get_term_to_iids(1) is None
    assert action.get_iid_to_oid(1) is None
    with pytest.raises(StoreError):
        action.set_oid_to_iid("s", 1)
    with pytest.raises(StoreError):
        action.batch_erase_bucket()


def test_batch_flush_bucket(pool):
    store = pool.acquire(AcquireMode.ANY, "c:flush")
    action = KVAction("b:flush", store)
    action.set_oid_to_iid("o1", 1)
    action.set_iid_to_oid(1, "o1")
    action.set_iid_to_terms(1, [10, 20])
    action.set_term_to_iids(10, [1, 2])
    action.set_term_to_iids(20, [1])

    assert action.batch_flush_bucket(1, "o1", [10, 20]) == 2
    assert action.get_oid_to_iid("o1") is None
    assert action.get_iid_to_oid(1) is None
    assert action.get_iid_to_terms(1) is None
    assert action.get_term_to_iids(10) == [2]
    assert action.get_term_to_iids(20) is None


def test_batch_truncate_object(pool):
    store = pool.acquire(AcquireMode.ANY, "c:trunc")
    action = KVAction("b:trunc", store)
    action.set_iid_to_terms(1, [10])
    action.set_iid_to_oid(1, "o1")
    action.set_oid_to_iid("o1", 1)
    action.set_iid_to_terms(2, [10, 30])

    assert action.batch_truncate_object(10, [1, 2, 3]) == 2
    assert action.get_iid_to_terms(1) is None
    assert action.get_iid_to_oid(1) is None
    assert action.get_oid_to_iid("o1") is None
    assert action.get_iid_to_terms(2) == [30]


def test_batch_erase_bucket(pool):
    store = pool.acquire(AcquireMode.ANY, "c:erase")
    first = KVAction("b:one", store)
    second = KVAction("b:two", store)
    for action in (first, second):
        action.set_term_to_iids(5, [1])
        action.set_iid_to_oid(0xFFFFFFFF, "last")
        action.set_oid_to_iid("o", 1)

    assert first.batch_erase_bucket() == 1
    assert first.get_term_to_iids(5) is None
    assert first.get_iid_to_oid(0xFFFFFFFF) is None
    assert first.get_oid_to_iid("o") is None
    assert second.get_term_to_iids(5) == [1]
    assert second.get_iid_to_oid(0xFFFFFFFF) == "last"


def test_flush(pool):
    pool.acquire(AcquireMode.ANY, "c:a")
    pool.acquire(AcquireMode.ANY, "c:b")
    assert pool.flush(False) == 0
    assert pool.flush(True) == 2


def test_erase_collection(pool):
    store = pool.acquire(AcquireMode.ANY, "c:gone")
    store.put(b"k", b"v")
    assert pool.erase("c:gone") == 1
    assert pool.count() == 0
    assert not pool.path(keyer.to_compact("c:gone")).exists()
    assert pool.erase("c:gone") == 0


def test_erase_bucket_unsupported(pool):
    with pytest.raises(StoreError):
        pool.erase("c:any", "b:any")


def test_backup_and_restore_round_trip(pool, tmp_path):
    store = pool.acquire(AcquireMode.ANY, "c:backup")
    KVAction("b:backup", store).set_iid_to_oid(3, "object")
    backup_dir = tmp_path / "backup"

    pool.backup(backup_dir)
    assert (backup_dir / f"{keyer.to_compact('c:backup'):x}").is_dir()

    pool.erase("c:backup")
    pool.restore(backup_dir)

    restored = pool.acquire(AcquireMode.OPEN_ONLY, "c:backup")
    assert restored is not None
    assert KVAction("b:backup", restored).get_iid_to_oid(3) == "object"