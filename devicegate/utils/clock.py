# devicegate/utils/clock.py
from __future__ import annotations

import time
from datetime import datetime, timezone


class Clock:
    """Zeitquelle für alles, was mit Fenstern und Sperrzeiten rechnet.

    DB-Zeitstempel werden naiv in UTC gespeichert.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def monotonic(self) -> float:
        return time.monotonic()


system_clock = Clock()
