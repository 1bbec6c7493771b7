# devicegate/repositories/session_repo.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from devicegate.models.user_session import UserSession


def get_by_id(db: Session, session_id: str) -> Optional[UserSession]:
    return db.scalar(
        select(UserSession)
        .where(UserSession.session_id == session_id)
        .execution_options(populate_existing=True)
    )


def create_session(
    db: Session,
    *,
    session_id: str,
    user_id: int,
    now: datetime,
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> UserSession:
    row = UserSession(
        session_id=session_id,
        user_id=user_id,
        ip_address=(ip_address or None),
        user_agent=(user_agent[:255] if user_agent else None),
        created_at=now,
        last_seen_at=now,
    )
    db.add(row)
    db.flush()
    return row


def revoke(db: Session, session_id: str, *, now: datetime) -> bool:
    res = db.execute(
        update(UserSession)
        .where(UserSession.session_id == session_id, UserSession.revoked_at.is_(None))
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount > 0


def list_open_for_user(db: Session, user_id: int) -> list[UserSession]:
    stmt = select(UserSession).where(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
    return list(db.scalars(stmt))


def list_idle_since(db: Session, cutoff: datetime, *, limit: int = 500) -> list[str]:
    stmt = (
        select(UserSession.session_id)
        .where(UserSession.revoked_at.is_(None), UserSession.last_seen_at < cutoff)
        .limit(limit)
    )
    return list(db.scalars(stmt))
