"""Periodic maintenance of the stores, and waiting for shutdown signals."""

from __future__ import annotations

import logging
import queue
import signal
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .fst import FSTPool
from .kv import KVPool

logger = logging.getLogger(__name__)

TICK_INTERVAL = 10.0


@dataclass(frozen=True)
class TickReport:
    """What one maintenance tick did."""

    kv_evicted: int
    fst_evicted: int
    kv_flushed: int
    fst_consolidated: tuple[int, int, int]


class Tasker:
    """Runs janitors, flushes and consolidations at a fixed interval."""

    def __init__(self, kv_pool: KVPool, fst_pool: FSTPool, interval: float = TICK_INTERVAL) -> None:
        self.kv_pool = kv_pool
        self.fst_pool = fst_pool
        self.interval = interval

    def tick(self) -> TickReport:
        """Run every maintenance action once."""
        kv_evicted = self.kv_pool.janitor()
        fst_evicted = self.fst_pool.janitor()
        kv_flushed = self.kv_pool.flush(False)
        consolidated = self.fst_pool.consolidate(False)
        return TickReport(kv_evicted, fst_evicted, kv_flushed, consolidated)

    def run(self, stop_event: threading.Event | None = None) -> None:
        """Tick every interval until ``stop_event`` is set (forever if none is given)."""
        stop = stop_event or threading.Event()
        logger.info("tasker is now active")
        while not stop.wait(self.interval):
            logger.debug("running a tasker tick...")
            started = time.monotonic()
            self.tick()
            took = time.monotonic() - started
            logger.info("ran tasker tick (took %ds + %dms)", int(took), int(took * 1000) % 1000)


def _shutdown_signals() -> list[signal.Signals]:
    names = ("SIGINT", "SIGQUIT", "SIGTERM")
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


class ShutdownSignal:
    """Catches interrupt, quit and terminate signals so they can be waited for."""

    def __init__(self) -> None:
        self._received: queue.Queue[int] = queue.Queue()
        self._previous: dict[signal.Signals, object] = {}
        for signum in _shutdown_signals():
            self._previous[signum] = signal.signal(signum, self._handle)

    def _handle(self, signum: int, _frame: object) -> None:
        self._received.put(int(signum))

    def at_exit(self, handler: Callable[[int], None]) -> None:
        """Block until a shutdown signal arrives, then call ``handler`` with its number."""
        while True:
            try:
                signum = self._received.get(timeout=0.2)
            except queue.Empty:
                continue
            break
        handler(signum)

    def close(self) -> None:
        """Put back the signal handlers that were in place before."""
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()

    def __enter__(self) -> ShutdownSignal:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()