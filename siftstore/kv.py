"""Pool of per-collection key-value stores and the bucket-level mappings on them."""

from __future__ import annotations

import enum
import logging
import re
import shutil
from pathlib import Path
from typing import Callable, Iterable

from . import keyer
from .generic import StoreError, StorePool, dispatch_erase
from .identifiers import StoreMetaKey, StoreMetaValue
from .item import StoreItemPart
from .kv_store import (
    KVConfig,
    StoreKV,
    decode_u32,
    decode_u32_list,
    encode_u32,
    encode_u32_list,
    restore_from,
)

logger = logging.getLogger(__name__)

_HEX_NAME = re.compile(r"[0-9a-fA-F]+")
_UNSIGNED = re.compile(r"\+?[0-9]+")
_U32_MAX = 0xFFFFFFFF


class AcquireMode(enum.Enum):
    """Whether acquiring may create a database that does not exist yet."""

    ANY = "any"
    OPEN_ONLY = "open_only"


def _parse_atom(name: str) -> int | None:
    """Parse a base-16 directory name back into a 32-bit hash."""
    if not _HEX_NAME.fullmatch(name):
        return None
    return int(name, 16) & _U32_MAX


def _fmt_key(collection_hash: int) -> str:
    return f"<{collection_hash:x}>"


class KVPool:
    """Opens, caches, flushes, backs up and erases per-collection stores."""

    def __init__(self, config: KVConfig | None = None) -> None:
        self.config = config or KVConfig()
        self._pool: StorePool[int, StoreKV] = StorePool(
            "kv", self._build, self.config.inactive_after
        )

    def _build(self, collection_hash: int) -> StoreKV:
        logger.debug("opening key-value database for collection: %s", _fmt_key(collection_hash))
        return StoreKV(self.path(collection_hash), self.config)

    def count(self) -> int:
        """Number of stores currently open in the pool."""
        return len(self._pool)

    def path(self, collection_hash: int) -> Path:
        """Directory holding the database of a collection."""
        return Path(self.config.path) / f"{collection_hash:x}"

    def acquire(self, mode: AcquireMode, collection: str) -> StoreKV | None:
        """Return the store of ``collection``; None if ``OPEN_ONLY`` and it does not exist."""
        collection_hash = keyer.to_compact(collection)
        existing = self._pool.get(collection_hash)
        if existing is None:
            logger.info(
                "kv store not in pool for collection: %s %s, opening it",
                collection, _fmt_key(collection_hash),
            )
            if mode is AcquireMode.OPEN_ONLY and not self.path(collection_hash).exists():
                return None
        return self._pool.get_or_open(collection_hash, collection)

    def janitor(self) -> int:
        """Evict idle stores; return how many were evicted."""
        return self._pool.janitor()

    def flush(self, force: bool = False) -> int:
        """Flush stores not flushed for long enough (all if ``force``); return how many."""
        logger.debug("scanning for kv store pool items to flush to disk")
        with self._pool.access_lock:
            due = []
            for key in self._pool.keys():
                store = self._pool.get(key)
                if store is None:
                    continue
                idle = store.idle_flush_seconds() if hasattr(store, "idle_flush_seconds") else None
                not_flushed_for = idle if idle is not None else _since(store.last_flushed)
                if force or not_flushed_for >= self.config.flush_after:
                    logger.info(
                        "kv key: %s not flushed for: %d seconds, may flush",
                        _fmt_key(key), not_flushed_for,
                    )
                    due.append(key)

        if not due:
            logger.info("no kv store pool items need to be flushed at the moment")
            return 0

        flushed = 0
        for key in due:
            with self._pool.access_lock:
                store = self._pool.get(key)
                if store is None:
                    continue
                try:
                    store.flush()
                except StoreError as err:
                    logger.error("kv key: %s flush failed: %s", _fmt_key(key), err)
                else:
                    flushed += 1
        logger.info("done scanning for kv store pool items to flush to disk (flushed: %d)", flushed)
        return flushed

    def backup(self, path: Path | str) -> None:
        """Back up every collection database into directory ``path``."""
        backup_root = Path(path)
        logger.debug("backing up all kv stores to path: %s", backup_root)
        backup_root.mkdir(parents=True, exist_ok=True)
        self._dump_action("backup", Path(self.config.path), backup_root, self._backup_item)

    def restore(self, path: Path | str) -> None:
        """Restore every collection database backed up in directory ``path``."""
        backup_root = Path(path)
        logger.debug("restoring all kv stores from path: %s", backup_root)
        self._dump_action("restore", backup_root, Path(self.config.path), self._restore_item)

    @staticmethod
    def _dump_action(
        action: str,
        read_path: Path,
        write_path: Path,
        item: Callable[[Path, Path, str], None],
    ) -> None:
        for collection in sorted(read_path.iterdir()):
            if collection.is_dir():
                logger.debug("kv collection ongoing %s: %s", action, collection.name)
                item(write_path, collection, collection.name)

    def _backup_item(self, backup_path: Path, _origin_path: Path, collection_name: str) -> None:
        with self._pool.access_lock:
            target = backup_path / collection_name
            if target.exists():
                shutil.rmtree(target)
            target.mkdir(parents=True, exist_ok=True)

            collection_hash = _parse_atom(collection_name)
            if collection_hash is None:
                return
            pooled = self._pool.get(collection_hash)
            if pooled is not None:
                pooled.backup_to(target)
            else:
                with StoreKV(self.path(collection_hash), self.config) as origin:
                    origin.backup_to(target)
            logger.info("kv collection: %s backed up to path: %s", collection_name, target)

    def _restore_item(self, _backup_path: Path, origin_path: Path, collection_name: str) -> None:
        with self._pool.access_lock:
            collection_hash = _parse_atom(collection_name)
            if collection_hash is None:
                return
            self._close(collection_hash)
            kv_path = self.path(collection_hash)
            if kv_path.exists():
                shutil.rmtree(kv_path)
            kv_path.mkdir(parents=True, exist_ok=True)
            restore_from(origin_path, kv_path)
            logger.info(
                "kv collection: %s restored to path: %s from backup: %s",
                collection_name, kv_path, origin_path,
            )

    def _close(self, collection_hash: int) -> None:
        logger.debug("closing key-value database for collection: %s", _fmt_key(collection_hash))
        store = self._pool.remove(collection_hash)
        if store is not None:
            store.close()

    def erase(self, collection: str, bucket: str | None = None) -> int:
        """Erase a collection; return 1 if data was removed, 0 if none existed."""
        return dispatch_erase(
            "kv", self._erase_collection, self._erase_bucket, collection, bucket
        )

    def _erase_collection(self, collection: str) -> int:
        collection_hash = keyer.to_compact(collection)
        collection_path = self.path(collection_hash)
        self._close(collection_hash)
        if not collection_path.exists():
            logger.debug(
                "kv collection store does not exist, consider already erased: %s/* at path: %s",
                collection, collection_path,
            )
            return 0
        try:
            shutil.rmtree(collection_path)
        except OSError as err:
            raise StoreError(f"failed erasing kv collection: {collection}") from err
        logger.debug("done with kv collection erasure")
        return 1

    @staticmethod
    def _erase_bucket(collection: str, bucket: str) -> int:
        # Erasing one bucket would need the collection store acquired here, which deadlocks.
        raise StoreError(f"kv bucket erase is not supported: {collection}/{bucket}")


def _since(moment: float) -> float:
    import time

    return time.monotonic() - moment


class KVAction:
    """Bucket-scoped mappings stored in a collection's key-value store."""

    def __init__(self, bucket: StoreItemPart | str, store: StoreKV | None) -> None:
        self.bucket = str(bucket)
        self.store = store

    def _require(self) -> StoreKV:
        if self.store is None:
            raise StoreError(f"no kv store for bucket: {self.bucket}")
        return self.store

    def _get(self, key: keyer.StoreKey) -> bytes | None:
        if self.store is None:
            return None
        logger.debug("store get: %s", key)
        return self.store.get(key.raw)

    # [IDX=0] meta -> value

    def get_meta_to_value(self, meta: StoreMetaKey) -> StoreMetaValue | None:
        raw = self._get(keyer.meta_to_value(self.bucket, meta))
        if raw is None:
            return None
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
        if not _UNSIGNED.fullmatch(text):
            return None
        number = int(text)
        if number > _U32_MAX:
            return None
        return StoreMetaValue(meta, number)

    def set_meta_to_value(self, meta: StoreMetaKey, value: StoreMetaValue) -> None:
        store = self._require()
        store.put(keyer.meta_to_value(self.bucket, meta).raw, str(value.value).encode("ascii"))

    # [IDX=1] term -> [iid]

    def get_term_to_iids(self, term_hashed: int) -> list[int] | None:
        raw = self._get(keyer.term_to_iids(self.bucket, term_hashed))
        if raw is None:
            return None
        try:
            return decode_u32_list(raw)
        except ValueError as err:
            raise StoreError(f"corrupt term-to-iids value: {err}") from err

    def set_term_to_iids(self, term_hashed: int, iids: Iterable[int]) -> None:
        store = self._require()
        store.put(keyer.term_to_iids(self.bucket, term_hashed).raw, encode_u32_list(iids))

    def delete_term_to_iids(self, term_hashed: int) -> None:
        self._require().delete(keyer.term_to_iids(self.bucket, term_hashed).raw)

    # [IDX=2] oid -> iid

    def get_oid_to_iid(self, oid: str) -> int | None:
        raw = self._get(keyer.oid_to_iid(self.bucket, oid))
        if raw is None:
            return None
        try:
            return decode_u32(raw)
        except ValueError as err:
            raise StoreError(f"corrupt oid-to-iid value: {err}") from err

    def set_oid_to_iid(self, oid: str, iid: int) -> None:
        self._require().put(keyer.oid_to_iid(self.bucket, oid).raw, encode_u32(iid))

    def delete_oid_to_iid(self, oid: str) -> None:
        self._require().delete(keyer.oid_to_iid(self.bucket, oid).raw)

    # [IDX=3] iid -> oid

    def get_iid_to_oid(self, iid: int) -> str | None:
        raw = self._get(keyer.iid_to_oid(self.bucket, iid))
        if raw is None:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return None

    def set_iid_to_oid(self, iid: int, oid: str) -> None:
        self._require().put(keyer.iid_to_oid(self.bucket, iid).raw, oid.encode("utf-8"))

    def delete_iid_to_oid(self, iid: int) -> None:
        self._require().delete(keyer.iid_to_oid(self.bucket, iid).raw)

    # [IDX=4] iid -> [term]

    def get_iid_to_terms(self, iid: int) -> list[int] | None:
        raw = self._get(keyer.iid_to_terms(self.bucket, iid))
        if raw is None:
            return None
        try:
            terms = decode_u32_list(raw)
        except ValueError as err:
            raise StoreError(f"corrupt iid-to-terms value: {err}") from err
        return terms or None

    def set_iid_to_terms(self, iid: int, terms_hashed: Iterable[int]) -> None:
        store = self._require()
        store.put(keyer.iid_to_terms(self.bucket, iid).raw, encode_u32_list(terms_hashed))

    def delete_iid_to_terms(self, iid: int) -> None:
        self._require().delete(keyer.iid_to_terms(self.bucket, iid).raw)

    # Batch operations

    def batch_flush_bucket(self, iid: int, oid: str, iid_terms_hashed: Iterable[int]) -> int:
        """Remove an object and its IID from its terms; return how many terms referenced it."""
        logger.debug("store batch flush bucket: %d", iid)
        errors = []
        for delete in (
            lambda: self.delete_oid_to_iid(oid),
            lambda: self.delete_iid_to_oid(iid),
            lambda: self.delete_iid_to_terms(iid),
        ):
            try:
                delete()
            except StoreError as err:
                errors.append(err)
        if errors:
            raise errors[0]

        count = 0
        for term in iid_terms_hashed:
            try:
                iids = self.get_term_to_iids(term)
            except StoreError:
                continue
            if iids is None:
                continue
            if iid in iids:
                count += 1
                iids = [current for current in iids if current != iid]
            if iids:
                self.set_term_to_iids(term, iids)
            else:
                self.delete_term_to_iids(term)
        return count

    def batch_truncate_object(self, term_hashed: int, term_iids: Iterable[int]) -> int:
        """Unlink a term from each given object; flush objects left with no terms."""
        count = 0
        for iid in term_iids:
            logger.debug("store batch truncate object iid: %d", iid)
            try:
                terms = self.get_iid_to_terms(iid)
            except StoreError:
                continue
            if terms is None:
                continue
            count += 1
            terms = [term for term in terms if term != term_hashed]
            if not terms:
                try:
                    oid = self.get_iid_to_oid(iid)
                except StoreError:
                    oid = None
                if oid is None:
                    logger.error("failed getting store batch truncate object iid-to-oid")
                    continue
                try:
                    self.batch_flush_bucket(iid, oid, [])
                except StoreError:
                    logger.error("failed executing store batch truncate object batch-flush-bucket")
            else:
                try:
                    self.set_iid_to_terms(iid, terms)
                except StoreError:
                    logger.error("failed setting store batch truncate object iid-to-terms")
        return count

    def batch_erase_bucket(self) -> int:
        """Delete every key of this bucket; return 1."""
        store = self._require()
        prefixes = (
            keyer.meta_to_value(self.bucket, StoreMetaKey.IID_INCR).prefix(),
            keyer.term_to_iids(self.bucket, 0).prefix(),
            keyer.oid_to_iid(self.bucket, "").prefix(),
            keyer.iid_to_oid(self.bucket, 0).prefix(),
            keyer.iid_to_terms(self.bucket, 0).prefix(),
        )
        for prefix in prefixes:
            start = prefix + b"\x00\x00\x00\x00"
            end = prefix + b"\xff\xff\xff\xff"
            try:
                store.delete_range(start, end)
            except StoreError as err:
                logger.error(
                    "failed in store batch erase bucket: %s with error: %s", self.bucket, err
                )
                continue
            # The range end is exclusive, so remove the last possible key explicitly.
            try:
                store.delete(end)
            except StoreError:
                pass
        logger.info("done processing store batch erase bucket: %s", self.bucket)
        return 1