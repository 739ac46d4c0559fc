"""
receiver/stores/locks.py
Per-key mutual exclusion. The conversation store holds the lock for
a thread id around get-or-create and every status mutation, so two
messages arriving on the same thread cannot interleave those steps.
Different thread ids never wait on each other.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterable, Iterator, List


class KeyedLock:
    """Reference-counted lock per key; entries are dropped when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._users: Dict[Hashable, int] = {}

    def _acquire_entry(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)

    @contextmanager
    def hold_many(self, keys: Iterable[Hashable]) -> Iterator[None]:
        # Sorted acquisition order so two multi-key holders cannot deadlock
        ordered: List[Hashable] = sorted(set(keys))
        held: List[tuple] = []
        try:
            for key in ordered:
                lock = self._acquire_entry(key)
                held.append((key, lock))
                lock.acquire()
            yield
        finally:
            for key, lock in reversed(held):
                lock.release()
                self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
