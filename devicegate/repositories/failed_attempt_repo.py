# devicegate/repositories/failed_attempt_repo.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from devicegate.models.failed_login_attempt import FailedLoginAttempt


def get_record(db: Session, account_key: str) -> Optional[FailedLoginAttempt]:
    return db.scalar(
        select(FailedLoginAttempt)
        .where(FailedLoginAttempt.account_key == account_key)
        .execution_options(populate_existing=True)
    )


def reset_expired_lock(db: Session, account_key: str, *, expired_before: datetime) -> None:
    """Abgelaufene Sperre: Zähler fängt wieder bei 0 an."""
    db.execute(
        update(FailedLoginAttempt)
        .where(
            FailedLoginAttempt.account_key == account_key,
            FailedLoginAttempt.locked_at.is_not(None),
            FailedLoginAttempt.locked_at <= expired_before,
        )
        .values(failure_count=0, locked_at=None)
    )


def increment_failure(db: Session, account_key: str, *, reason: str, now: datetime) -> int:
    """
    UPDATE ... SET failure_count = failure_count + 1
    Atomar auf DB-Ebene; existiert noch keine Zeile, wird sie angelegt.
    Gibt den neuen Zählerstand zurück.
    """
    res = db.execute(
        update(FailedLoginAttempt)
        .where(FailedLoginAttempt.account_key == account_key)
        .values(
            failure_count=FailedLoginAttempt.failure_count + 1,
            last_reason=reason[:32],
            last_failed_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        # IntegrityError bei parallelem INSERT -> Aufrufer wiederholt
        db.add(
            FailedLoginAttempt(
                account_key=account_key,
                failure_count=1,
                last_reason=reason[:32],
                last_failed_at=now,
            )
        )
        db.flush()
    return db.scalar(
        select(FailedLoginAttempt.failure_count)
        .where(FailedLoginAttempt.account_key == account_key)
        .execution_options(populate_existing=True)
    ) or 0


def stamp_lock(db: Session, account_key: str, *, threshold: int, now: datetime) -> bool:
    """Setzt locked_at nur beim ersten Überschreiten der Schwelle."""
    res = db.execute(
        update(FailedLoginAttempt)
        .where(
            FailedLoginAttempt.account_key == account_key,
            FailedLoginAttempt.failure_count >= threshold,
            FailedLoginAttempt.locked_at.is_(None),
        )
        .values(locked_at=now)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount > 0


def clear(db: Session, account_key: str) -> None:
    db.execute(delete(FailedLoginAttempt).where(FailedLoginAttempt.account_key == account_key))
