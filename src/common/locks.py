"""
Thread Synchronization Helpers

Read-write lock used to guard shared probe state.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager


class ReadWriteLock:
    """
    Read-write lock for shared resources.

    Many readers may hold the lock together; a writer holds it alone.
    Waiting writers block new readers so a busy dashboard cannot starve
    the write-on-miss path.

    Example:
        lock = ReadWriteLock()

        with lock.read():
            entry = cache.get(name)

        with lock.write():
            cache[name] = entry
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self):
        """Context manager for acquiring the read side."""
        self.acquire_read()
        try:
            yield self
        finally:
            self.release_read()

    @contextmanager
    def write(self):
        """Context manager for acquiring the write side."""
        self.acquire_write()
        try:
            yield self
        finally:
            self.release_write()

    def acquire_read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @property
    def readers(self) -> int:
        """Number of threads currently holding the read side."""
        with self._cond:
            return self._readers
