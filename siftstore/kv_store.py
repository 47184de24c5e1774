"""Persistent key-value database backing one collection, and value codecs."""

from __future__ import annotations

import logging
import sqlite3
import struct
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .generic import StoreError, StoreGeneric

logger = logging.getLogger(__name__)

_DB_FILE = "store.sqlite3"
_U32 = struct.Struct("<I")


@dataclass(frozen=True)
class KVConfig:
    """Settings of the key-value stores."""

    path: Path = Path("./data/store/kv")
    inactive_after: float = 1800.0
    flush_after: float = 900.0
    write_ahead_log: bool = True


def _connect(db_path: Path) -> sqlite3.Connection:
    connection = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
    connection.execute(
        "CREATE TABLE IF NOT EXISTS kv (key BLOB PRIMARY KEY, value BLOB NOT NULL) WITHOUT ROWID"
    )
    return connection


class StoreKV(StoreGeneric):
    """An ordered binary key-value database stored in one directory."""

    def __init__(self, path: Path | str, config: KVConfig | None = None) -> None:
        super().__init__()
        self.path = Path(path)
        self.config = config or KVConfig()
        self.last_flushed = time.monotonic()
        # Held by callers that need exclusive use of the store across several operations.
        self.lock = threading.RLock()
        self._db_lock = threading.RLock()
        logger.debug("opening key-value database at path: %s", self.path)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            self._db: sqlite3.Connection | None = _connect(self.path / _DB_FILE)
            if self.config.write_ahead_log:
                self._db.execute("PRAGMA journal_mode=WAL")
                self._db.execute("PRAGMA synchronous=NORMAL")
            else:
                self._db.execute("PRAGMA journal_mode=MEMORY")
                self._db.execute("PRAGMA synchronous=OFF")
        except (OSError, sqlite3.Error) as err:
            raise StoreError(f"failed opening kv database at {self.path}: {err}") from err

    def _conn(self) -> sqlite3.Connection:
        if self._db is None:
            raise StoreError(f"kv database is closed: {self.path}")
        return self._db

    def _execute(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self._db_lock:
            try:
                return self._conn().execute(sql, params).fetchall()
            except sqlite3.Error as err:
                raise StoreError(f"kv database error: {err}") from err

    def get(self, key: bytes) -> bytes | None:
        """Return the value stored under ``key``, or None."""
        rows = self._execute("SELECT value FROM kv WHERE key = ?", (bytes(key),))
        return bytes(rows[0][0]) if rows else None

    def put(self, key: bytes, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any previous value."""
        self._execute(
            "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (bytes(key), bytes(data))
        )

    def delete(self, key: bytes) -> None:
        """Remove ``key`` if present."""
        self._execute("DELETE FROM kv WHERE key = ?", (bytes(key),))

    def delete_range(self, start: bytes, end: bytes) -> None:
        """Remove every key in ``[start, end)``."""
        self._execute("DELETE FROM kv WHERE key >= ? AND key < ?", (bytes(start), bytes(end)))

    def flush(self) -> None:
        """Persist pending writes to disk, blocking until done."""
        try:
            with self._db_lock:
                try:
                    self._conn().execute("PRAGMA wal_checkpoint(TRUNCATE)")
                except sqlite3.Error as err:
                    raise StoreError(f"kv flush failed: {err}") from err
        finally:
            self.last_flushed = time.monotonic()

    def backup_to(self, path: Path | str) -> None:
        """Write a full copy of the database into directory ``path``."""
        target_dir = Path(path)
        with self._db_lock:
            try:
                target_dir.mkdir(parents=True, exist_ok=True)
                target = sqlite3.connect(str(target_dir / _DB_FILE))
                try:
                    self._conn().backup(target)
                finally:
                    target.close()
            except (OSError, sqlite3.Error) as err:
                raise StoreError(f"kv backup failed to {target_dir}: {err}") from err

    def close(self) -> None:
        """Close the database; further operations raise StoreError."""
        with self._db_lock:
            if self._db is not None:
                self._db.close()
                self._db = None

    def __enter__(self) -> StoreKV:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def restore_from(backup_path: Path | str, target_path: Path | str) -> None:
    """Restore the database backed up in ``backup_path`` into ``target_path``."""
    source_file = Path(backup_path) / _DB_FILE
    if not source_file.is_file():
        raise StoreError(f"no kv backup found at {backup_path}")
    target_dir = Path(target_path)
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        source = sqlite3.connect(str(source_file))
        try:
            target = sqlite3.connect(str(target_dir / _DB_FILE))
            try:
                source.backup(target)
            finally:
                target.close()
        finally:
            source.close()
    except (OSError, sqlite3.Error) as err:
        raise StoreError(f"kv restore failed from {backup_path}: {err}") from err


def encode_u32(value: int) -> bytes:
    """Encode an unsigned 32-bit integer as 4 little-endian bytes."""
    try:
        return _U32.pack(value)
    except struct.error as err:
        raise ValueError(f"value out of 32-bit range: {value}") from err


def decode_u32(data: bytes) -> int:
    """Decode the first 4 little-endian bytes of ``data``."""
    if len(data) < _U32.size:
        raise ValueError(f"need 4 bytes to decode, got {len(data)}")
    return _U32.unpack_from(data)[0]


def encode_u32_list(values: Iterable[int]) -> bytes:
    """Encode a sequence of unsigned 32-bit integers."""
    return b"".join(encode_u32(value) for value in values)


def decode_u32_list(data: bytes) -> list[int]:
    """Decode a packed list of unsigned 32-bit integers."""
    if len(data) % _U32.size:
        raise ValueError(f"encoded list length is not a multiple of 4: {len(data)}")
    return [value for (value,) in _U32.iter_unpack(data)]