"""Ordered word sets stored on disk, with prefix and typo-tolerant lookups."""

from __future__ import annotations

import bisect
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator

from .generic import StoreError

logger = logging.getLogger(__name__)

_MAGIC = b"SFSTG\x01"
_LENGTH = struct.Struct("<I")
_FOOTER = struct.Struct("<IQ")
_FOOTER_MARK = 0xFFFFFFFF


@dataclass(frozen=True)
class FSTConfig:
    """Settings of the word graph stores."""

    path: Path = Path("./data/store/fst")
    inactive_after: float = 300.0
    consolidate_after: float = 180.0
    max_size: int = 2048
    max_words: int = 250000


def _as_bytes(word: str | bytes) -> bytes:
    return word.encode("utf-8") if isinstance(word, str) else bytes(word)


def _entry_size(word: bytes) -> int:
    return _LENGTH.size + len(word)


def _within_distance(source: str, target: str, distance: int) -> bool:
    """Tell whether two strings are at most ``distance`` character edits apart."""
    if abs(len(source) - len(target)) > distance:
        return False
    previous = list(range(len(target) + 1))
    for row, source_char in enumerate(source, start=1):
        current = [row]
        for column, target_char in enumerate(target, start=1):
            current.append(
                min(
                    previous[column] + 1,
                    current[column - 1] + 1,
                    previous[column - 1] + (source_char != target_char),
                )
            )
        if min(current) > distance:
            return False
        previous = current
    return previous[-1] <= distance


class WordGraph:
    """An immutable, lexicographically ordered set of byte-string words."""

    def __init__(self, words: Iterable[str | bytes] = ()) -> None:
        self._words: tuple[bytes, ...] = tuple(sorted({_as_bytes(word) for word in words}))
        self._size = (
            len(_MAGIC) + sum(_entry_size(word) for word in self._words) + _FOOTER.size
        )

    def __len__(self) -> int:
        return len(self._words)

    def __contains__(self, word: object) -> bool:
        if not isinstance(word, (str, bytes, bytearray)):
            return False
        needle = _as_bytes(word)
        index = bisect.bisect_left(self._words, needle)
        return index < len(self._words) and self._words[index] == needle

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._words)

    def size(self) -> int:
        """Size in bytes of the graph's stored form."""
        return self._size

    def starting_with(self, prefix: str | bytes) -> Iterator[bytes]:
        """Yield, in order, every word beginning with ``prefix`` (itself included)."""
        needle = _as_bytes(prefix)
        for word in self._words[bisect.bisect_left(self._words, needle):]:
            if not word.startswith(needle):
                break
            yield word

    def within_distance(self, word: str, distance: int) -> Iterator[bytes]:
        """Yield, in order, every word at most ``distance`` character edits from ``word``."""
        if distance < 0:
            raise ValueError(f"distance must not be negative: {distance}")
        for candidate in self._words:
            try:
                text = candidate.decode("utf-8")
            except UnicodeDecodeError:
                continue
            if _within_distance(word, text, distance):
                yield candidate


class GraphWriter:
    """Writes words, in strictly increasing order, to a graph file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        try:
            self._file: BinaryIO | None = open(self.path, "wb")
            self._file.write(_MAGIC)
        except OSError as err:
            raise StoreError(f"failed creating graph file at {self.path}: {err}") from err
        self._written = len(_MAGIC)
        self._count = 0
        self._last: bytes | None = None

    def _open_file(self) -> BinaryIO:
        if self._file is None:
            raise StoreError(f"graph writer is already finished: {self.path}")
        return self._file

    def insert(self, word: str | bytes) -> None:
        """Append ``word``; it must sort strictly after the previous word."""
        handle = self._open_file()
        data = _as_bytes(word)
        if self._last is not None and data <= self._last:
            raise ValueError(f"word out of order in graph: {data!r} after {self._last!r}")
        try:
            handle.write(_LENGTH.pack(len(data)))
            handle.write(data)
        except OSError as err:
            raise StoreError(f"failed writing graph file at {self.path}: {err}") from err
        self._written += _entry_size(data)
        self._count += 1
        self._last = data

    def bytes_written(self) -> int:
        """Number of bytes written so far."""
        return self._written

    def finish(self) -> None:
        """Complete the graph file and close it."""
        handle = self._open_file()
        try:
            handle.write(_FOOTER.pack(_FOOTER_MARK, self._count))
            self._written += _FOOTER.size
            handle.close()
        except OSError as err:
            raise StoreError(f"failed finishing graph file at {self.path}: {err}") from err
        finally:
            self._file = None

    def close(self) -> None:
        """Close the file without completing it."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> GraphWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None and self._file is not None:
            self.finish()
        else:
            self.close()


def load_graph(path: Path | str) -> WordGraph:
    """Load the graph stored at ``path``; an empty graph if there is no file."""
    graph_path = Path(path)
    if not graph_path.exists():
        return WordGraph()
    try:
        data = graph_path.read_bytes()
    except OSError as err:
        raise StoreError(f"failed reading graph file at {graph_path}: {err}") from err
    if not data.startswith(_MAGIC):
        raise StoreError(f"not a graph file: {graph_path}")

    words: list[bytes] = []
    offset = len(_MAGIC)
    while True:
        if offset + _LENGTH.size > len(data):
            raise StoreError(f"unfinished graph file: {graph_path}")
        (length,) = _LENGTH.unpack_from(data, offset)
        if length == _FOOTER_MARK:
            if offset + _FOOTER.size != len(data):
                raise StoreError(f"corrupt graph footer: {graph_path}")
            _, count = _FOOTER.unpack_from(data, offset)
            if count != len(words):
                raise StoreError(f"graph word count mismatch: {graph_path}")
            break
        start = offset + _LENGTH.size
        end = start + length
        if end > len(data):
            raise StoreError(f"truncated graph entry: {graph_path}")
        word = data[start:end]
        if words and word <= words[-1]:
            raise StoreError(f"graph words out of order: {graph_path}")
        words.append(word)
        offset = end
    return WordGraph(words)


def typo_factor(word: str, max_factor: int | None = None) -> int:
    """Allowed typos for a word, growing with its byte length, capped at ``max_factor``."""
    length = len(word.encode("utf-8"))
    if 1 <= length <= 3:
        factor = 0
    elif 4 <= length <= 6:
        factor = 1
    elif 7 <= length <= 9:
        factor = 2
    else:
        factor = 3
    if max_factor is not None and factor > max_factor:
        factor = max_factor
    return factor


def check_over_limits(config: FSTConfig, bytes_count: int, words_count: int) -> bool:
    """Tell whether a graph has reached its size or word-count limit."""
    max_size = config.max_size * 1024
    if bytes_count >= max_size:
        logger.info(
            "fst has exceeded maximum allowed bytes: %d over limit: %d", bytes_count, max_size
        )
        return True
    if words_count >= config.max_words:
        logger.info(
            "fst has exceeded maximum allowed words: %d over limit: %d",
            words_count, config.max_words,
        )
        return True
    return False