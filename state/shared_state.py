from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from app.schemas import Measurement


class StateAccessError(RuntimeError):
    """Raised when the shared state lock cannot be acquired in time."""


class ReadWriteLock:
    """Many concurrent readers or one writer, never both.

    A waiting writer blocks new readers so a steady stream of HTTP requests
    cannot starve the poll loop.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            if not self._cond.wait_for(self._can_read, timeout):
                return False
            self._readers += 1
            return True

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a held read lock.")
            self._readers -= 1
            if not self._readers:
                self._cond.notify_all()

    def acquire_write(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            self._writers_waiting += 1
            try:
                if not self._cond.wait_for(self._can_write, timeout):
                    return False
                self._writer = True
                return True
            finally:
                self._writers_waiting -= 1
                self._cond.notify_all()

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write() called without a held write lock.")
            self._writer = False
            self._cond.notify_all()

    def _can_read(self) -> bool:
        return not self._writer and not self._writers_waiting

    def _can_write(self) -> bool:
        return not self._writer and not self._readers


@dataclass(frozen=True)
class StateSnapshot:
    latest: Optional[Measurement]
    error_count: int
    fatal_error_count: int


class SharedState:
    """Latest sensor reading plus error counters, shared by reader and HTTP layer."""

    def __init__(self, lock_timeout: Optional[float] = 1.0) -> None:
        self.lock_timeout = lock_timeout
        self._lock = ReadWriteLock()
        self._latest: Optional[Measurement] = None
        # Never held together with ``_lock``.
        self._counter_lock = threading.Lock()
        self._error_count = 0
        self._fatal_error_count = 0

    def publish(self, measurement: Measurement) -> None:
        """Replace the latest reading."""
        with self._write_locked():
            self._latest = measurement

    def latest(self) -> Optional[Measurement]:
        with self._read_locked():
            return self._latest

    def record_error(self) -> int:
        with self._counter_lock:
            self._error_count += 1
            return self._error_count

    def record_fatal_error(self) -> int:
        with self._counter_lock:
            self._fatal_error_count += 1
            return self._fatal_error_count

    @property
    def error_count(self) -> int:
        with self._counter_lock:
            return self._error_count

    @property
    def fatal_error_count(self) -> int:
        with self._counter_lock:
            return self._fatal_error_count

    def snapshot(self) -> StateSnapshot:
        latest = self.latest()
        with self._counter_lock:
            return StateSnapshot(
                latest=latest,
                error_count=self._error_count,
                fatal_error_count=self._fatal_error_count,
            )

    @contextmanager
    def _read_locked(self) -> Iterator[None]:
        if not self._lock.acquire_read(self.lock_timeout):
            raise StateAccessError(
                f"Timed out after {self.lock_timeout}s waiting for shared read access."
            )
        try:
            yield
        finally:
            self._lock.release_read()

    @contextmanager
    def _write_locked(self) -> Iterator[None]:
        if not self._lock.acquire_write(self.lock_timeout):
            raise StateAccessError(
                f"Timed out after {self.lock_timeout}s waiting for exclusive write access."
            )
        try:
            yield
        finally:
            self._lock.release_write()
