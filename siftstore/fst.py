"""Pool of per-bucket word graphs, with deferred consolidation to disk."""

from __future__ import annotations

import enum
import logging
import os
import re
import shutil
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

from . import keyer
from .fst_graph import FSTConfig, GraphWriter, WordGraph, check_over_limits, load_graph, typo_factor
from .generic import StoreError, StoreGeneric, StorePool, dispatch_erase

logger = logging.getLogger(__name__)

_HEX_NAME = re.compile(r"[0-9a-fA-F]+")
_U32_MAX = 0xFFFFFFFF


class PathMode(enum.Enum):
    """Kind of graph file, told apart by its extension."""

    PERMANENT = ".fst"
    TEMPORARY = ".fst.tmp"
    BACKUP = ".fst.bck"

    @property
    def extension(self) -> str:
        return self.value


@dataclass(frozen=True)
class FSTKey:
    """Identifies one graph: a collection hash and a bucket hash."""

    collection_hash: int
    bucket_hash: int

    @classmethod
    def from_str(cls, collection: str, bucket: str) -> FSTKey:
        return cls(keyer.to_compact(collection), keyer.to_compact(bucket))

    def __str__(self) -> str:
        return f"<{self.collection_hash:x}>/<{self.bucket_hash:x}>"


class StoreFST(StoreGeneric):
    """An open word graph plus the words pushed or popped since it was loaded."""

    def __init__(self, key: FSTKey, graph: WordGraph) -> None:
        super().__init__()
        self.key = key
        self.graph = graph
        self.pending_push: set[bytes] = set()
        self.pending_pop: set[bytes] = set()
        self.last_consolidated = time.monotonic()
        self.lock = threading.RLock()

    def __len__(self) -> int:
        return len(self.graph)

    def lookup_begins(self, word: str) -> Iterator[bytes]:
        """Yield graph words that begin with ``word``."""
        logger.debug("looking-up word in fst via 'begins': %s", word)
        return self.graph.starting_with(word)

    def lookup_typos(self, word: str, max_factor: int | None = None) -> Iterator[bytes]:
        """Yield graph words within the typo allowance of ``word``."""
        factor = typo_factor(word, max_factor)
        logger.debug("looking-up word in fst via 'typos': %s with typo factor: %d", word, factor)
        return self.graph.within_distance(word, factor)


def _parse_atom(name: str) -> int | None:
    if not _HEX_NAME.fullmatch(name):
        return None
    return int(name, 16) & _U32_MAX


def _backup_lines(data: bytes) -> list[bytes]:
    lines = data.split(b"\n")
    if lines and lines[-1] == b"":
        lines.pop()
    return [line[:-1] if line.endswith(b"\r") else line for line in lines]


class FSTPool:
    """Opens, caches, consolidates, backs up and erases word graphs."""

    def __init__(self, config: FSTConfig | None = None) -> None:
        self.config = config or FSTConfig()
        self._pool: StorePool[FSTKey, StoreFST] = StorePool(
            "fst", self._build, self.config.inactive_after
        )
        self._consolidate: set[FSTKey] = set()
        self._consolidate_lock = threading.Lock()
        self._rebuild_lock = threading.Lock()

    @property
    def access_lock(self) -> threading.RLock:
        """Held while graph files may be replaced; readers may hold it too."""
        return self._pool.access_lock

    def _build(self, key: FSTKey) -> StoreFST:
        logger.debug("opening finite-state transducer graph for: %s", key)
        graph = load_graph(self.path(PathMode.PERMANENT, key.collection_hash, key.bucket_hash))
        return StoreFST(key, graph)

    def count(self) -> tuple[int, int]:
        """Open graphs, and graphs awaiting consolidation."""
        with self._consolidate_lock:
            pending = len(self._consolidate)
        return len(self._pool), pending

    def path(self, mode: PathMode, collection_hash: int, bucket_hash: int | None = None) -> Path:
        """Directory of a collection, or graph file of one of its buckets."""
        final = Path(self.config.path) / f"{collection_hash:x}"
        if bucket_hash is not None:
            final = final / f"{bucket_hash:x}{mode.extension}"
        return final

    def acquire(self, collection: str, bucket: str) -> StoreFST:
        """Return the graph of a bucket, opening it if needed."""
        key = FSTKey.from_str(collection, bucket)
        if self._pool.get(key) is None:
            logger.info(
                "fst store not in pool for collection: %s / bucket: %s (%s), opening it",
                collection, bucket, key,
            )
        return self._pool.get_or_open(key, collection)

    def janitor(self) -> int:
        """Evict idle graphs; return how many were evicted."""
        return self._pool.janitor()

    def schedule_consolidate(self, store: StoreFST) -> None:
        """Register a graph for the next consolidation, unless already registered."""
        with self._consolidate_lock:
            if store.key in self._consolidate:
                logger.debug("graph consolidation already scheduled on pool key: %s", store.key)
                return
            self._consolidate.add(store.key)
        store.last_consolidated = time.monotonic()
        logger.info("graph consolidation scheduled on pool key: %s", store.key)

    def consolidate(self, force: bool = False) -> tuple[int, int, int]:
        """Write pending changes of due graphs to disk; return (moved, pushed, popped)."""
        logger.debug("scanning for fst store pool items to consolidate")
        with self._rebuild_lock:
            with self._consolidate_lock:
                if not self._consolidate:
                    logger.info("no fst store pool items to consolidate in register")
                    return 0, 0, 0
                registered = list(self._consolidate)

            due: list[FSTKey] = []
            with self.access_lock:
                for key in registered:
                    store = self._pool.get(key)
                    if store is None:
                        continue
                    waited = time.monotonic() - store.last_consolidated
                    if force or waited >= self.config.consolidate_after:
                        logger.info(
                            "fst key: %s not consolidated for: %d seconds, may consolidate",
                            key, waited,
                        )
                        due.append(key)

            if not due:
                logger.info("no fst store pool items need to consolidate at the moment")
                return 0, 0, 0

            with self.access_lock, self._consolidate_lock:
                self._consolidate.difference_update(due)

            moved = pushed = popped = 0
            for key in due:
                with self.access_lock:
                    store = self._pool.get(key)
                    if store is None:
                        continue
                    should_close, item_moved, item_pushed, item_popped = (
                        self._consolidate_item(store)
                    )
                    moved += item_moved
                    pushed += item_pushed
                    popped += item_popped
                    if should_close:
                        self._pool.remove(key)
                time.sleep(0)

        logger.info(
            "done scanning for fst store pool items to consolidate (move: %d, push: %d, pop: %d)",
            moved, pushed, popped,
        )
        return moved, pushed, popped

    def _over_limits(self, writer: GraphWriter, words: int) -> bool:
        return check_over_limits(self.config, writer.bytes_written(), words)

    @staticmethod
    def _insert(writer: GraphWriter, word: bytes, what: str) -> bool:
        try:
            writer.insert(word)
        except (ValueError, StoreError) as err:
            logger.error("failed inserting %s in fst: %s", what, err)
            return False
        return True

    def _consolidate_item(self, store: StoreFST) -> tuple[bool, int, int, int]:
        should_close = False
        moved = pushed = popped = 0
        with store.lock:
            if not store.pending_push and not store.pending_pop:
                return should_close, moved, pushed, popped
            key = store.key
            try:
                old_graph = load_graph(
                    self.path(PathMode.PERMANENT, key.collection_hash, key.bucket_hash)
                )
            except StoreError as err:
                logger.error("error opening old fst: %s", err)
                old_graph = None

            if old_graph is not None:
                tmp_path = self.path(PathMode.TEMPORARY, key.collection_hash, key.bucket_hash)
                writer: GraphWriter | None = None
                try:
                    tmp_path.parent.mkdir(parents=True, exist_ok=True)
                    tmp_path.unlink(missing_ok=True)
                    writer = GraphWriter(tmp_path)
                except (OSError, StoreError) as err:
                    logger.error("error initializing temporary fst at path: %s (%s)", tmp_path, err)

                if writer is not None:
                    ordered_push = deque(sorted(store.pending_push))
                    limit_hit = False
                    for old_word in old_graph:
                        while ordered_push and ordered_push[0] <= old_word:
                            word = ordered_push.popleft()
                            if self._over_limits(writer, pushed + moved):
                                logger.warning("limit reached on new from old in fst")
                                limit_hit = True
                                break
                            if self._insert(writer, word, "new from old"):
                                pushed += 1
                        if limit_hit:
                            break
                        if old_word in store.pending_pop:
                            popped += 1
                            continue
                        if self._over_limits(writer, pushed + moved):
                            logger.warning("limit reached on old word in fst")
                            break
                        if self._insert(writer, old_word, "old word"):
                            moved += 1

                    while ordered_push:
                        word = ordered_push.popleft()
                        if self._over_limits(writer, pushed + moved):
                            logger.warning("limit reached on new word from complete in fst")
                            break
                        if self._insert(writer, word, "new word from complete"):
                            pushed += 1

                    try:
                        writer.finish()
                    except StoreError as err:
                        logger.error(
                            "error finishing building temporary fst at path: %s (%s)",
                            tmp_path, err,
                        )
                    else:
                        should_close = True
                        final_path = self.path(
                            PathMode.PERMANENT, key.collection_hash, key.bucket_hash
                        )
                        try:
                            os.replace(tmp_path, final_path)
                        except OSError as err:
                            logger.error(
                                "error consolidating fst at path: %s (%s)", final_path, err
                            )
                        else:
                            logger.info("done consolidate fst at path: %s", final_path)

            store.pending_push = set()
            store.pending_pop = set()
        return should_close, moved, pushed, popped

    def backup(self, path: Path | str) -> None:
        """Back up every graph, as word lists, into directory ``path``."""
        backup_root = Path(path)
        logger.debug("backing up all fst stores to path: %s", backup_root)
        backup_root.mkdir(parents=True, exist_ok=True)
        self._dump_action(
            "backup", PathMode.PERMANENT, Path(self.config.path), backup_root, self._backup_item
        )

    def restore(self, path: Path | str) -> None:
        """Rebuild every graph from the word lists backed up in directory ``path``."""
        backup_root = Path(path)
        logger.debug("restoring all fst stores from path: %s", backup_root)
        self._dump_action(
            "restore", PathMode.BACKUP, backup_root, Path(self.config.path), self._restore_item
        )

    @staticmethod
    def _dump_action(
        action: str,
        mode: PathMode,
        read_path: Path,
        write_path: Path,
        item: Callable[[Path, Path, str, str], None],
    ) -> None:
        extension = mode.extension
        for collection in sorted(read_path.iterdir()):
            if not collection.is_dir():
                continue
            logger.debug("fst collection ongoing %s: %s", action, collection.name)
            (write_path / collection.name).mkdir(parents=True, exist_ok=True)
            for bucket in sorted(collection.iterdir()):
                name = bucket.name
                if bucket.is_file() and len(name) > len(extension) and name.endswith(extension):
                    bucket_name = name[: -len(extension)]
                    logger.debug(
                        "fst bucket ongoing %s: %s/%s", action, collection.name, bucket_name
                    )
                    item(write_path, bucket, collection.name, bucket_name)

    def _backup_item(
        self, backup_path: Path, _origin_path: Path, collection_name: str, bucket_name: str
    ) -> None:
        with self.access_lock:
            target = backup_path / collection_name / f"{bucket_name}{PathMode.BACKUP.extension}"
            target.unlink(missing_ok=True)
            with open(target, "wb") as handle:
                collection_hash = _parse_atom(collection_name)
                bucket_hash = _parse_atom(bucket_name)
                if collection_hash is None or bucket_hash is None:
                    return
                try:
                    graph = load_graph(
                        self.path(PathMode.PERMANENT, collection_hash, bucket_hash)
                    )
                except StoreError as err:
                    raise StoreError("graph open failure") from err
                count = 0
                for word in graph:
                    handle.write(word)
                    handle.write(b"\n")
                    count += 1
            logger.info(
                "fst bucket: %s/%s backed up to path: %s (%d words)",
                collection_name, bucket_name, target, count,
            )

    def _restore_item(
        self, _backup_path: Path, origin_path: Path, collection_name: str, bucket_name: str
    ) -> None:
        with self.access_lock:
            collection_hash = _parse_atom(collection_name)
            bucket_hash = _parse_atom(bucket_name)
            if collection_hash is None or bucket_hash is None:
                return
            self._close(collection_hash, bucket_hash)
            fst_path = self.path(PathMode.PERMANENT, collection_hash, bucket_hash)
            if fst_path.exists():
                fst_path.unlink()
            fst_path.parent.mkdir(parents=True, exist_ok=True)

            words = _backup_lines(origin_path.read_bytes())
            writer = GraphWriter(fst_path)
            try:
                for word in words:
                    try:
                        word.decode("utf-8")
                        writer.insert(word)
                    except (UnicodeDecodeError, ValueError) as err:
                        raise StoreError("graph restore word insert failure") from err
                writer.finish()
            finally:
                writer.close()
            logger.info(
                "fst bucket: %s/%s restored to path: %s from backup: %s",
                collection_name, bucket_name, fst_path, origin_path,
            )

    def _close(self, collection_hash: int, bucket_hash: int) -> None:
        key = FSTKey(collection_hash, bucket_hash)
        logger.debug("closing finite-state transducer graph for: %s", key)
        self._pool.remove(key)
        with self._consolidate_lock:
            self._consolidate.discard(key)

    def erase(self, collection: str, bucket: str | None = None) -> int:
        """Erase a collection or one bucket; return 1 if data was removed, else 0."""
        return dispatch_erase(
            "fst", self._erase_collection, self._erase_bucket, collection, bucket
        )

    def _erase_collection(self, collection: str) -> int:
        collection_hash = keyer.to_compact(collection)
        collection_path = self.path(PathMode.PERMANENT, collection_hash)
        for key in self._pool.keys():
            if key.collection_hash == collection_hash:
                logger.debug("fst bucket graph force close for bucket: %s/%s", collection, key)
                self._close(key.collection_hash, key.bucket_hash)
        if not collection_path.exists():
            logger.debug(
                "fst collection store does not exist, consider already erased: %s/* at path: %s",
                collection, collection_path,
            )
            return 0
        try:
            shutil.rmtree(collection_path)
        except OSError as err:
            raise StoreError(f"failed erasing fst collection: {collection}") from err
        logger.debug("done with fst collection erasure")
        return 1

    def _erase_bucket(self, collection: str, bucket: str) -> int:
        collection_hash = keyer.to_compact(collection)
        bucket_hash = keyer.to_compact(bucket)
        bucket_path = self.path(PathMode.PERMANENT, collection_hash, bucket_hash)
        self._close(collection_hash, bucket_hash)
        if not bucket_path.exists():
            logger.debug(
                "fst bucket graph does not exist, consider already erased: %s/%s at path: %s",
                collection, bucket, bucket_path,
            )
            return 0
        try:
            bucket_path.unlink()
        except OSError as err:
            raise StoreError(f"failed erasing fst bucket: {collection}/{bucket}") from err
        logger.debug("done with fst bucket erasure")
        return 1

    def count_collection_buckets(self, collection: str) -> int:
        """Number of bucket graphs stored on disk for a collection."""
        mode = PathMode.PERMANENT
        collection_path = self.path(mode, keyer.to_compact(collection))
        if not collection_path.exists():
            return 0
        try:
            names = [entry.name for entry in collection_path.iterdir()]
        except OSError as err:
            logger.error("failed reading directory for count: %s", collection_path)
            raise StoreError(f"failed reading directory: {collection_path}") from err
        extension = mode.extension
        return sum(
            1 for name in names if len(name) > len(extension) and name.endswith(extension)
        )