"""A shared, flow-controlled pool of transmit buffers."""

from __future__ import annotations

import queue
import threading
from contextlib import contextmanager
from typing import Iterator


class Pool:
    """A fixed number of buffers of a fixed capacity, shared among clients."""

    def __init__(self, size: int, count: int) -> None:
        self.size = size
        self.count = count
        self.lock = threading.Lock()
        self._free: "queue.Queue[bytearray]" = queue.Queue(maxsize=count)
        for _ in range(count):
            self._free.put(bytearray())

    @property
    def available(self) -> int:
        """Number of buffers currently in the pool."""
        return self._free.qsize()


class PoolClient:
    """A user of a Pool that tracks the buffers it has taken."""

    def __init__(self, pool: Pool) -> None:
        self.pool = pool
        self._sent: "queue.Queue[bytearray]" = queue.Queue(maxsize=pool.count)

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the pool's lock for the duration of the block."""
        with self.pool.lock:
            yield

    def get(self) -> bytearray:
        """Take an empty buffer from the pool, waiting until one is free."""
        buf = self.pool._free.get()
        buf.clear()
        self._sent.put(buf)
        return buf

    def put(self) -> None:
        """Return the oldest taken buffer to the pool, if any."""
        try:
            buf = self._sent.get_nowait()
        except queue.Empty:
            return
        self.pool._free.put(buf)

    def put_all(self) -> None:
        """Return every taken buffer to the pool."""
        while True:
            try:
                buf = self._sent.get_nowait()
            except queue.Empty:
                return
            self.pool._free.put(buf)