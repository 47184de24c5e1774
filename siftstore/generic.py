"""Shared machinery for pools of open stores."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)


class StoreError(OSError):
    """A store operation failed."""


class StoreGeneric:
    """Base for stores kept in a pool, tracking when they were last used."""

    def __init__(self) -> None:
        self.last_used = time.monotonic()

    def touch(self) -> None:
        """Mark the store as used now."""
        self.last_used = time.monotonic()

    def idle_seconds(self) -> float:
        """Seconds elapsed since the store was last used."""
        return time.monotonic() - self.last_used


K = TypeVar("K", bound=Hashable)
S = TypeVar("S", bound=StoreGeneric)


class StorePool(Generic[K, S]):
    """A thread-safe cache of open stores, evicting idle ones."""

    def __init__(self, kind: str, builder: Callable[[K], S], inactive_after: float) -> None:
        self.kind = kind
        self.inactive_after = inactive_after
        self._builder = builder
        self._stores: dict[K, S] = {}
        self._lock = threading.RLock()
        self.acquire_lock = threading.Lock()
        self.access_lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._stores)

    def get(self, key: K) -> S | None:
        """Return the pooled store for ``key``, if open."""
        with self._lock:
            return self._stores.get(key)

    def keys(self) -> list[K]:
        with self._lock:
            return list(self._stores)

    def get_or_open(self, key: K, collection: str) -> S:
        """Return the pooled store for ``key``, opening and caching it if needed."""
        with self.acquire_lock:
            store = self.get(key)
            if store is not None:
                logger.debug(
                    "%s store acquired from pool for collection: %s (pool key: %s)",
                    self.kind, collection, key,
                )
                store.touch()
                return store

            try:
                store = self._builder(key)
            except Exception as err:
                logger.error(
                    "failed opening %s store for collection: %s (pool key: %s)",
                    self.kind, collection, key,
                )
                raise StoreError(
                    f"failed opening {self.kind} store for collection: {collection}"
                ) from err

            with self._lock:
                self._stores[key] = store
            logger.debug(
                "opened and cached %s store in pool for collection: %s (pool key: %s)",
                self.kind, collection, key,
            )
            return store

    def remove(self, key: K) -> S | None:
        """Drop ``key`` from the pool, returning the store that was held."""
        with self._lock:
            return self._stores.pop(key, None)

    def janitor(self) -> int:
        """Evict stores idle for at least ``inactive_after`` seconds; return how many."""
        logger.debug("scanning for %s store pool items to janitor", self.kind)
        with self.access_lock, self._lock:
            expired = [
                key
                for key, store in self._stores.items()
                if store.idle_seconds() >= self.inactive_after
            ]
            for key in expired:
                del self._stores[key]
            remaining = len(self._stores)
        logger.info(
            "done scanning for %s store pool items to janitor, expired %d items, now has %d items",
            self.kind, len(expired), remaining,
        )
        return len(expired)


def dispatch_erase(
    kind: str,
    erase_collection: Callable[[str], int],
    erase_bucket: Callable[[str, str], int],
    collection: str,
    bucket: str | None = None,
) -> int:
    """Erase a whole collection, or one bucket of it when ``bucket`` is given."""
    logger.info("%s erase requested on collection: %s", kind, collection)
    if bucket is not None:
        return erase_bucket(collection, bucket)
    return erase_collection(collection)