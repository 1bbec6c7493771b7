# devicegate/repositories/user_repo.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from devicegate.models.user import User


# ------------------------------------------------------------
# READ
# ------------------------------------------------------------
def get_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)


def get_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(func.lower(User.email) == (email or "").strip().lower()))


def get_by_username(db: Session, username: str) -> Optional[User]:
    return db.scalar(select(User).where(User.username == username))


def get_by_identifier(db: Session, identifier: str) -> Optional[User]:
    ident = (identifier or "").strip()
    if not ident:
        return None
    u = db.scalar(select(User).where(User.username == ident))
    if u:
        return u
    return get_by_email(db, ident)


def lock_for_update(db: Session, user_id: int) -> Optional[User]:
    """
    SELECT ... FROM users WHERE id = :user_id FOR UPDATE
    Serialisiert parallele Logins desselben Users über Prozessgrenzen hinweg.
    SQLite kennt kein FOR UPDATE, dort greift nur die Sperre im Prozess.
    """
    return db.scalar(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def count_single_device_enabled(db: Session) -> int:
    return db.scalar(
        select(func.count()).select_from(User).where(User.single_device_login_enabled.is_(True))
    ) or 0


# ------------------------------------------------------------
# CREATE
# ------------------------------------------------------------
def create_user(
    db: Session,
    *,
    username: str,
    email: str,
    password_hash: str,
    role_id: int = 1,
    is_active: bool = True,
    single_device_login_enabled: bool = False,
) -> User:
    user = User(
        username=username,
        email=email,
        password_hash=password_hash,
        role_id=role_id,
        is_active=is_active,
        single_device_login_enabled=single_device_login_enabled,
    )
    db.add(user)
    try:
        db.flush()
        db.commit()
    except IntegrityError:
        db.rollback()
        raise
    db.refresh(user)
    return user


# ------------------------------------------------------------
# UPDATE
# ------------------------------------------------------------
def set_single_device_login(db: Session, user: User, enabled: bool, reason: Optional[str] = None) -> None:
    user.single_device_login_enabled = enabled
    user.device_reset_reason = reason
    db.add(user)
    db.commit()


def mark_devices_reset(db: Session, user: User, *, at: datetime, reason: Optional[str]) -> None:
    user.device_reset_at = at
    user.device_reset_reason = reason
    db.add(user)


def update_login_stats(db: Session, user: User, *, at: datetime, ip: Optional[str]) -> None:
    """
    UPDATE users SET login_count = login_count + 1, ... WHERE id = :id
    Atomar in der DB, auch bei parallelen Logins ohne Geräte-Sperre.
    """
    db.execute(
        update(User)
        .where(User.id == user.id)
        .values(
            login_count=func.coalesce(User.login_count, 0) + 1,
            last_login_at=at,
            last_login_ip=(ip or None),
        )
        .execution_options(synchronize_session=False)
    )
    db.expire(user, ["login_count", "last_login_at", "last_login_ip"])


def set_active(db: Session, user_id: int, active: bool) -> None:
    user = db.get(User, user_id)
    if not user:
        return
    user.is_active = active
    db.commit()
