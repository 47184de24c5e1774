import pytest

from siftstore.identifiers import (
    StoreMetaKey,
    StoreMetaValue,
    term_hash,
    xxh32,
)


def test_converts_meta_key_to_u32():
    assert StoreMetaKey.IID_INCR.as_u32() == 0


def test_hashes_term():
    assert term_hash("hash:1") == 3637660813
    assert term_hash("hash:2") == 3577985381


def test_xxh32_empty_input():
    assert xxh32(b"", 0) == 0x02CC5D05


def test_term_hash_matches_raw_hash():
    assert term_hash("hash:1") == xxh32(b"hash:1", 0)


def test_xxh32_seed_changes_result():
    assert xxh32(b"hash:1", 1) != xxh32(b"hash:1", 0)


def test_xxh32_fits_in_32_bits():
    value = xxh32(b"some rather long input that spans several stripes", 0)
    assert 0 <= value <= 0xFFFFFFFF


def test_meta_value_holds_value():
    meta = StoreMetaValue(StoreMetaKey.IID_INCR, 1)
    assert meta.value == 1
    assert meta.key is StoreMetaKey.IID_INCR


def test_meta_value_rejects_negative():
    with pytest.raises(ValueError):
        StoreMetaValue(StoreMetaKey.IID_INCR, -1)


def test_meta_value_rejects_overflow():
    with pytest.raises(ValueError):
        StoreMetaValue(StoreMetaKey.IID_INCR, 2**32)