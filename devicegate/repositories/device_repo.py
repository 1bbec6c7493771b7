# devicegate/repositories/device_repo.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import MultipleResultsFound
from sqlalchemy.orm import Session

from devicegate.core.errors import DeviceInvariantError
from devicegate.models.user_device import UserDevice


# ------------------------------------------------------------
# READ
# ------------------------------------------------------------
def get_by_user_and_fingerprint(db: Session, user_id: int, fingerprint: str) -> Optional[UserDevice]:
    stmt = (
        select(UserDevice)
        .where(UserDevice.user_id == user_id, UserDevice.fingerprint == fingerprint)
        .execution_options(populate_existing=True)
    )
    try:
        return db.scalars(stmt).one_or_none()
    except MultipleResultsFound as exc:
        raise DeviceInvariantError(
            f"user {user_id}: mehrere Geräte mit demselben Fingerprint"
        ) from exc


def get_active_for_user(db: Session, user_id: int) -> Optional[UserDevice]:
    stmt = (
        select(UserDevice)
        .where(UserDevice.user_id == user_id, UserDevice.is_active.is_(True))
        .execution_options(populate_existing=True)
    )
    try:
        return db.scalars(stmt).one_or_none()
    except MultipleResultsFound as exc:
        raise DeviceInvariantError(f"user {user_id}: mehr als ein aktives Gerät") from exc


def get_active_by_session(db: Session, session_id: str) -> Optional[UserDevice]:
    stmt = (
        select(UserDevice)
        .where(UserDevice.session_id == session_id, UserDevice.is_active.is_(True))
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return db.scalars(stmt).first()


def list_for_user(db: Session, user_id: int) -> list[UserDevice]:
    stmt = (
        select(UserDevice)
        .where(UserDevice.user_id == user_id)
        .order_by(UserDevice.is_active.desc(), UserDevice.last_activity_at.desc(), UserDevice.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(db.scalars(stmt))


def count_all(db: Session) -> int:
    return db.scalar(select(func.count()).select_from(UserDevice)) or 0


def count_active(db: Session, *, seen_since: Optional[datetime] = None) -> int:
    stmt = select(func.count()).select_from(UserDevice).where(UserDevice.is_active.is_(True))
    if seen_since is not None:
        stmt = stmt.where(UserDevice.last_activity_at > seen_since)
    return db.scalar(stmt) or 0


# ------------------------------------------------------------
# UPDATE
# ------------------------------------------------------------
def touch_active(
    db: Session,
    *,
    user_id: int,
    fingerprint: str,
    now: datetime,
    session_id: Optional[str] = None,
) -> bool:
    values: dict = {"last_activity_at": now, "updated_at": now}
    if session_id:
        values["session_id"] = session_id
    res = db.execute(
        update(UserDevice)
        .where(
            UserDevice.user_id == user_id,
            UserDevice.fingerprint == fingerprint,
            UserDevice.is_active.is_(True),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount > 0


def deactivate(db: Session, device: UserDevice, *, now: datetime) -> None:
    device.is_active = False
    device.active_owner_id = None
    device.session_id = None
    device.updated_at = now
    db.add(device)


# ------------------------------------------------------------
# DELETE
# ------------------------------------------------------------
def delete_inactive_before(db: Session, cutoff: datetime) -> int:
    res = db.execute(
        delete(UserDevice)
        .where(UserDevice.is_active.is_(False), UserDevice.updated_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0
