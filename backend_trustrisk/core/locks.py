"""
Per-key mutual exclusion for read-modify-write of per-user state.

One threading.Lock per key, created on first use and dropped when the last
holder or waiter leaves. Different keys never block each other; the same key
is fully serialized.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLock:
    """Registry of locks keyed by user id (or any hashable)."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}
        self._refs: dict[Hashable, int] = {}

    def _acquire_ref(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._refs[key] = self._refs.get(key, 0) + 1
            return lock

    def _release_ref(self, key: Hashable) -> None:
        with self._guard:
            remaining = self._refs[key] - 1
            if remaining:
                self._refs[key] = remaining
            else:
                del self._refs[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._acquire_ref(key)
        try:
            with lock:
                yield
        finally:
            self._release_ref(key)

    def __len__(self) -> int:
        """Number of keys currently held or awaited."""
        with self._guard:
            return len(self._locks)
