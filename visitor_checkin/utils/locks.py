# =======================================================================================
# visitor_checkin/utils/locks.py - Per-key serialization
# =======================================================================================
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, List, Optional
from .exceptions import LockTimeoutError


class KeyedLock:
    """
    One mutex per key, created on demand and dropped once nobody holds or
    waits for it, so the registry only grows with concurrent keys.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders + waiters]
        self._entries: Dict[Hashable, List] = {}

    def _release_entry(self, key: Hashable, entry: List) -> None:
        with self._guard:
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None):
        """Hold the key's lock; waits at most `timeout` seconds when one is given."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1

        if not entry[0].acquire(timeout=-1 if timeout is None else timeout):
            self._release_entry(key, entry)
            raise LockTimeoutError(f"Lock for {key!r} not acquired within {timeout}s")
        try:
            yield
        finally:
            entry[0].release()
            self._release_entry(key, entry)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
