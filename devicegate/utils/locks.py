# devicegate/utils/locks.py
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLock:
    """Ein Mutex pro Schlüssel (z. B. User-ID).

    Verschiedene Schlüssel blockieren sich nie gegenseitig. Einträge werden
    entfernt, sobald niemand mehr wartet.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock, waiters = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, waiters + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                lock, waiters = self._locks[key]
                if waiters <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, waiters - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
