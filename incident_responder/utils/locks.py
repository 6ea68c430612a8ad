"""
Incident Responder - Reader/Writer Lock
=======================================

Shared-read / exclusive-write lock guarding the workload state, the fix
cache and the incident store.

Critical sections are short and never span an ``await``, so the same lock
serves the event loop and any worker threads (API handlers, executors).
Writers are preferred: once a writer is waiting, new readers queue behind it.

Usage:
    lock = RWLock()

    with lock.read():
        value = shared[key]

    with lock.write():
        shared[key] = value
"""

from contextlib import contextmanager
from threading import Condition, Lock
from typing import Iterator


class RWLock:
    """Writer-preferring reader/writer lock."""

    def __init__(self):
        self._cond = Condition(Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the lock in shared mode for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the lock exclusively for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def readers(self) -> int:
        """Number of readers currently holding the lock."""
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer
