"""Validated collection / bucket / object names."""

from __future__ import annotations

from dataclasses import dataclass

_PART_LEN_MIN = 0
_PART_LEN_MAX = 128


class StoreItemError(ValueError):
    """A store item name failed validation."""


class InvalidCollectionError(StoreItemError):
    """The collection name is invalid."""


class InvalidBucketError(StoreItemError):
    """The bucket name is invalid."""


class InvalidObjectError(StoreItemError):
    """The object name is invalid."""


@dataclass(frozen=True)
class StoreItemPart:
    """One non-empty ASCII name of at most 128 characters."""

    value: str

    def __post_init__(self) -> None:
        length = len(self.value)
        if not (_PART_LEN_MIN < length <= _PART_LEN_MAX and self.value.isascii()):
            raise ValueError(f"invalid store item part: {self.value!r}")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class StoreItem:
    """A collection, optionally narrowed to a bucket and an object."""

    collection: StoreItemPart
    bucket: StoreItemPart | None = None
    obj: StoreItemPart | None = None


def _part(value: str, error: type[StoreItemError]) -> StoreItemPart:
    try:
        return StoreItemPart(value)
    except ValueError as err:
        raise error(value) from err


def from_depth_1(collection: str) -> StoreItem:
    """Build an item naming a collection."""
    return StoreItem(_part(collection, InvalidCollectionError))


def from_depth_2(collection: str, bucket: str) -> StoreItem:
    """Build an item naming a collection and a bucket."""
    return StoreItem(
        _part(collection, InvalidCollectionError),
        _part(bucket, InvalidBucketError),
    )


def from_depth_3(collection: str, bucket: str, obj: str) -> StoreItem:
    """Build an item naming a collection, a bucket and an object."""
    return StoreItem(
        _part(collection, InvalidCollectionError),
        _part(bucket, InvalidBucketError),
        _part(obj, InvalidObjectError),
    )