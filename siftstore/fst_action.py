"""Word-level operations on one bucket's word graph."""

from __future__ import annotations

import logging
from typing import Iterable

from .fst import FSTPool, StoreFST
from .fst_graph import check_over_limits

logger = logging.getLogger(__name__)

WORD_LIMIT_LENGTH = 40


def word_over_limit(word: str) -> bool:
    """Tell whether a word is too long, in UTF-8 bytes, to go into a graph."""
    if len(word.encode("utf-8")) > WORD_LIMIT_LENGTH:
        logger.debug("got over-limit fst word: %s", word)
        return True
    return False


def _collect(stream: Iterable[bytes], found: list[str], limit: int) -> None:
    for raw in stream:
        try:
            word = raw.decode("utf-8")
        except UnicodeDecodeError:
            continue
        if word not in found:
            found.append(word)
            if len(found) >= limit:
                break


class FSTAction:
    """Pushes, pops and suggests words on an open graph of a pool."""

    def __init__(self, pool: FSTPool, store: StoreFST) -> None:
        self.pool = pool
        self.store = store

    def push_word(self, word: str) -> bool:
        """Queue a word for addition; True if it was queued."""
        if word_over_limit(word):
            return False
        data = word.encode("utf-8")
        store = self.store
        graph = store.graph
        with store.lock:
            store.pending_pop.discard(data)
            if (
                data in graph
                or data in store.pending_push
                or len(store.pending_push) >= self.pool.config.max_words
                or check_over_limits(self.pool.config, graph.size(), len(graph))
            ):
                return False
            store.pending_push.add(data)
        self.pool.schedule_consolidate(store)
        return True

    def pop_word(self, word: str) -> bool:
        """Queue a word for removal; True if it was queued."""
        if word_over_limit(word):
            return False
        data = word.encode("utf-8")
        store = self.store
        with store.lock:
            store.pending_push.discard(data)
            if data not in store.graph or data in store.pending_pop:
                return False
            store.pending_pop.add(data)
        self.pool.schedule_consolidate(store)
        return True

    def suggest_words(
        self, from_word: str, limit: int, max_typo_factor: int | None = None
    ) -> list[str] | None:
        """Complete a word, then correct its typos, up to ``limit`` words; None if none."""
        if word_over_limit(from_word):
            return None
        found: list[str] = []
        logger.debug("looking up for word: %s in 'begins' fst stream", from_word)
        _collect(self.store.lookup_begins(from_word), found, limit)
        if len(found) < limit:
            try:
                stream = self.store.lookup_typos(from_word, max_typo_factor)
            except ValueError as err:
                logger.debug("could not look up typos for word: %s (%s)", from_word, err)
            else:
                logger.debug("looking up for word: %s in 'typos' fst stream", from_word)
                _collect(stream, found, limit)
        return found or None

    def count_words(self) -> int:
        """Number of words in the graph as loaded."""
        return len(self.store)