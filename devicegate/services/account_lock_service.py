# devicegate/services/account_lock_service.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from devicegate.core.config import settings
from devicegate.repositories import failed_attempt_repo
from devicegate.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockConfig:
    threshold: int = settings.ACCOUNT_LOCK_THRESHOLD
    lock_duration_seconds: int = settings.ACCOUNT_LOCK_MINUTES * 60


def account_key_for(identity: str, user=None) -> str:
    """Sperr-Schlüssel: bekannte Accounts über die ID, egal ob per E-Mail oder Username angemeldet."""
    if user is not None:
        return f"user:{user.id}"
    return (identity or "").strip().lower()[:255]


class AccountLockGuard:
    """
    Zählt aufeinanderfolgende Fehlversuche pro Account-Kennung.
    Ab ``threshold`` Fehlversuchen ist der Account ``lock_duration_seconds``
    lang gesperrt, gerechnet ab dem Fehlversuch, der die Schwelle überschritten hat.
    Ein erfolgreicher Login setzt alles zurück.

    Schreibt sofort (commit), auch wenn der Login danach abgelehnt wird.
    """

    def __init__(self, db: Session, config: Optional[LockConfig] = None, clock: Clock = system_clock) -> None:
        self.db = db
        self.config = config or LockConfig()
        self.clock = clock

    def _lock_until(self, locked_at):
        return locked_at + timedelta(seconds=self.config.lock_duration_seconds)

    def is_locked(self, account_key: str) -> bool:
        return self.locked_for(account_key) > 0

    def locked_for(self, account_key: str) -> int:
        """Restliche Sperrzeit in Sekunden (0 = nicht gesperrt)."""
        rec = failed_attempt_repo.get_record(self.db, account_key)
        if rec is None or rec.locked_at is None or rec.failure_count < self.config.threshold:
            return 0
        remaining = (self._lock_until(rec.locked_at) - self.clock.now()).total_seconds()
        return max(0, math.ceil(remaining))

    def record_failure(self, account_key: str, reason: str) -> int:
        now = self.clock.now()
        expired_before = now - timedelta(seconds=self.config.lock_duration_seconds)
        for attempt in range(2):
            try:
                failed_attempt_repo.reset_expired_lock(self.db, account_key, expired_before=expired_before)
                count = failed_attempt_repo.increment_failure(self.db, account_key, reason=reason, now=now)
                locked = failed_attempt_repo.stamp_lock(
                    self.db, account_key, threshold=self.config.threshold, now=now
                )
                self.db.commit()
                break
            except IntegrityError:
                # Zeile wurde parallel angelegt
                self.db.rollback()
                if attempt:
                    raise
            except Exception:
                self.db.rollback()
                raise

        if locked:
            logger.warning(
                "Account %s gesperrt für %ds nach %d Fehlversuchen",
                account_key,
                self.config.lock_duration_seconds,
                count,
            )
        return count

    def record_success(self, account_key: str) -> None:
        try:
            failed_attempt_repo.clear(self.db, account_key)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
