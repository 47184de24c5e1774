"""Identifier types and term hashing for the key-value store."""

from __future__ import annotations

import enum
from dataclasses import dataclass

_PRIME1 = 2654435761
_PRIME2 = 2246822519
_PRIME3 = 3266489917
_PRIME4 = 668265263
_PRIME5 = 374761393
_MASK = 0xFFFFFFFF
_U32_MAX = _MASK


def _rotl(value: int, count: int) -> int:
    return ((value << count) | (value >> (32 - count))) & _MASK


def _round(acc: int, lane: int) -> int:
    acc = (acc + lane * _PRIME2) & _MASK
    acc = _rotl(acc, 13)
    return (acc * _PRIME1) & _MASK


def xxh32(data: bytes, seed: int = 0) -> int:
    """Return the 32-bit xxHash of ``data`` with the given seed."""
    view = memoryview(bytes(data))
    length = len(view)
    seed &= _MASK
    offset = 0

    if length >= 16:
        v1 = (seed + _PRIME1 + _PRIME2) & _MASK
        v2 = (seed + _PRIME2) & _MASK
        v3 = seed
        v4 = (seed - _PRIME1) & _MASK
        limit = length - 16
        while offset <= limit:
            v1 = _round(v1, int.from_bytes(view[offset:offset + 4], "little"))
            v2 = _round(v2, int.from_bytes(view[offset + 4:offset + 8], "little"))
            v3 = _round(v3, int.from_bytes(view[offset + 8:offset + 12], "little"))
            v4 = _round(v4, int.from_bytes(view[offset + 12:offset + 16], "little"))
            offset += 16
        acc = (_rotl(v1, 1) + _rotl(v2, 7) + _rotl(v3, 12) + _rotl(v4, 18)) & _MASK
    else:
        acc = (seed + _PRIME5) & _MASK

    acc = (acc + length) & _MASK

    while offset + 4 <= length:
        lane = int.from_bytes(view[offset:offset + 4], "little")
        acc = (acc + lane * _PRIME3) & _MASK
        acc = (_rotl(acc, 17) * _PRIME4) & _MASK
        offset += 4

    for byte in view[offset:]:
        acc = (acc + byte * _PRIME5) & _MASK
        acc = (_rotl(acc, 11) * _PRIME1) & _MASK

    acc ^= acc >> 15
    acc = (acc * _PRIME2) & _MASK
    acc ^= acc >> 13
    acc = (acc * _PRIME3) & _MASK
    acc ^= acc >> 16
    return acc


def term_hash(term: str) -> int:
    """Hash a term to its 32-bit stored form."""
    return xxh32(term.encode("utf-8"), 0)


class StoreMetaKey(enum.Enum):
    """Keys of per-bucket metadata entries."""

    IID_INCR = 0

    def as_u32(self) -> int:
        return self.value


@dataclass(frozen=True)
class StoreMetaValue:
    """A metadata value attached to its key."""

    key: StoreMetaKey
    value: int

    def __post_init__(self) -> None:
        if not 0 <= self.value <= _U32_MAX:
            raise ValueError(f"meta value out of 32-bit range: {self.value}")