# devicegate/services/attempt_limiter.py
"""Login-Drosselung pro Netzwerk-Identität (Client-IP).

Zähler mit Decay-Fenster: der erste Treffer startet das Fenster, weitere
Treffer zählen hoch, nach Ablauf fällt der Zähler auf 0 zurück. Der Speicher
wird injiziert (``increment`` / ``peek`` / ``reset``), damit mehrere Prozesse
sich später einen gemeinsamen TTL-Store teilen können.
"""
from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

from devicegate.utils.clock import Clock, system_clock


@dataclass
class _Counter:
    hits: int
    expires_at: float


class CounterStore(Protocol):
    def increment(self, key: str, ttl_seconds: int) -> tuple[int, float]: ...

    def peek(self, key: str) -> Optional[tuple[int, float]]: ...

    def reset(self, key: str) -> None: ...


class MemoryCounterStore:
    """Thread-sicherer In-Memory-Store mit TTL pro Schlüssel."""

    MAX_KEYS = 10_000

    def __init__(self, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._counters: dict[str, _Counter] = {}
        self._lock = threading.Lock()

    def increment(self, key: str, ttl_seconds: int) -> tuple[int, float]:
        """Zählt atomar hoch; startet das Fenster nur, wenn keins läuft."""
        with self._lock:
            now = self._clock.monotonic()
            counter = self._counters.get(key)
            if counter is None or counter.expires_at <= now:
                counter = _Counter(hits=0, expires_at=now + ttl_seconds)
                self._counters[key] = counter
            counter.hits += 1
            if len(self._counters) > self.MAX_KEYS:
                self._prune(now)
            return counter.hits, counter.expires_at

    def peek(self, key: str) -> Optional[tuple[int, float]]:
        with self._lock:
            counter = self._counters.get(key)
            if counter is None:
                return None
            if counter.expires_at <= self._clock.monotonic():
                del self._counters[key]
                return None
            return counter.hits, counter.expires_at

    def reset(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def _prune(self, now: float) -> None:
        for k in [k for k, c in self._counters.items() if c.expires_at <= now]:
            del self._counters[k]


def login_key(client_ip: str) -> str:
    return f"login.{client_ip}"


class AttemptLimiter:
    def __init__(self, store: CounterStore, clock: Clock = system_clock) -> None:
        self._store = store
        self._clock = clock

    def too_many_attempts(self, key: str, threshold: int) -> bool:
        state = self._store.peek(key)
        return state is not None and state[0] >= threshold

    def hit(self, key: str, decay_seconds: int) -> int:
        hits, _ = self._store.increment(key, decay_seconds)
        return hits

    def attempts(self, key: str) -> int:
        state = self._store.peek(key)
        return state[0] if state else 0

    def available_in(self, key: str) -> int:
        """Sekunden bis der Zähler zurückfällt (aufgerundet, 0 wenn kein Fenster läuft)."""
        state = self._store.peek(key)
        if state is None:
            return 0
        return max(0, math.ceil(state[1] - self._clock.monotonic()))

    def clear(self, key: str) -> None:
        self._store.reset(key)
