"""Binary keys addressing entries in the key-value store."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

from .identifiers import StoreMetaKey, xxh32

_KEY_FORMAT = struct.Struct("<BII")
_U32_MAX = 0xFFFFFFFF


class KeyIndex(enum.IntEnum):
    """Kind of mapping a key belongs to (its first byte)."""

    META_TO_VALUE = 0
    TERM_TO_IIDS = 1
    OID_TO_IID = 2
    IID_TO_OID = 3
    IID_TO_TERMS = 4


@dataclass(frozen=True)
class StoreKey:
    """A 9-byte key: index (1 byte), bucket hash (4 bytes), route (4 bytes)."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != _KEY_FORMAT.size:
            raise ValueError(f"store key must be {_KEY_FORMAT.size} bytes")

    def prefix(self) -> bytes:
        """The index and bucket part of the key."""
        return self.raw[:5]

    def __str__(self) -> str:
        index, bucket, route = _KEY_FORMAT.unpack(self.raw)
        return f"'{index}:{bucket:x}:{route:x}' {list(self.raw)}"


def to_compact(part: str) -> int:
    """Hash a name to a 32-bit atom."""
    return xxh32(part.encode("utf-8"), 0)


def _make(index: KeyIndex, bucket: str, route: int) -> StoreKey:
    if not 0 <= route <= _U32_MAX:
        raise ValueError(f"key route out of 32-bit range: {route}")
    return StoreKey(_KEY_FORMAT.pack(int(index), to_compact(bucket), route))


def meta_to_value(bucket: str, meta: StoreMetaKey) -> StoreKey:
    return _make(KeyIndex.META_TO_VALUE, bucket, meta.as_u32())


def term_to_iids(bucket: str, term_hash: int) -> StoreKey:
    return _make(KeyIndex.TERM_TO_IIDS, bucket, term_hash)


def oid_to_iid(bucket: str, oid: str) -> StoreKey:
    return _make(KeyIndex.OID_TO_IID, bucket, to_compact(oid))


def iid_to_oid(bucket: str, iid: int) -> StoreKey:
    return _make(KeyIndex.IID_TO_OID, bucket, iid)


def iid_to_terms(bucket: str, iid: int) -> StoreKey:
    return _make(KeyIndex.IID_TO_TERMS, bucket, iid)