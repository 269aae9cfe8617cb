"""Per-id mutual exclusion for catalog records and blobs."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class KeyedLock:
    """
    Registry of locks addressed by key.

    Operations on the same key are serialized; operations on different keys
    never contend except for the brief registry bookkeeping. Entries are
    reference counted and removed once no thread holds or waits on them.
    """

    def __init__(self):
        self._registry_lock = threading.Lock()
        self._locks: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Acquire the lock for key for the duration of the with-block.

        Args:
            key: Object id to lock
        """
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1

        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._registry_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def active_keys(self) -> int:
        """Number of keys currently held or awaited."""
        with self._registry_lock:
            return len(self._locks)
