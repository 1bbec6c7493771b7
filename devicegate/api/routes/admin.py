# devicegate/api/routes/admin.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from devicegate.api.deps import (
    CurrentUser,
    get_registry,
    get_session_binder,
    get_user_or_404,
    require_admin,
)
from devicegate.api.routes.devices import _device_list
from devicegate.core.config import settings
from devicegate.core.errors import bad_request
from devicegate.db.database import get_db
from devicegate.models.user import User
from devicegate.repositories import auth_event_repo, user_repo
from devicegate.schemas.auth import UserOut
from devicegate.schemas.device import (
    AuthEventOut,
    DeviceListOut,
    DeviceResetIn,
    DeviceResetOut,
    DeviceStatsOut,
    PurgeOut,
    SingleDeviceToggleIn,
)
from devicegate.services import audit_log_service as events
from devicegate.services.device_registry import DeviceRegistry
from devicegate.services.session_service import SessionBinder

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/devices/stats", response_model=DeviceStatsOut)
def device_stats(
    admin: CurrentUser = Depends(require_admin),
    registry: DeviceRegistry = Depends(get_registry),
):
    return registry.statistics(online_minutes=settings.DEVICE_ONLINE_MINUTES)


@router.get("/users/{user_id}/devices", response_model=DeviceListOut)
def user_devices(
    admin: CurrentUser = Depends(require_admin),
    user: User = Depends(get_user_or_404),
    registry: DeviceRegistry = Depends(get_registry),
):
    return _device_list(
        registry.list_devices_for_user(user),
        current_id=None,
        single_device_enabled=user.single_device_login_enabled,
    )


@router.post("/users/{user_id}/devices/reset", response_model=DeviceResetOut)
def reset_devices(
    body: Optional[DeviceResetIn] = None,
    admin: CurrentUser = Depends(require_admin),
    user: User = Depends(get_user_or_404),
    registry: DeviceRegistry = Depends(get_registry),
    sessions: SessionBinder = Depends(get_session_binder),
):
    """Gibt alle Geräte frei und beendet alle offenen Sessions des Users."""
    reason = body.reason if body and body.reason else f"reset by admin {admin.id}"
    released = registry.reset_user_devices(user, reason=reason)
    revoked = sessions.invalidate_all_for_user(user)
    return DeviceResetOut(released_devices=len(released), revoked_sessions=revoked)


@router.post("/users/{user_id}/single-device", response_model=UserOut)
def toggle_single_device(
    body: SingleDeviceToggleIn,
    admin: CurrentUser = Depends(require_admin),
    user: User = Depends(get_user_or_404),
    registry: DeviceRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
):
    if not body.enabled:
        # Ohne Durchsetzung gibt es kein "aktives Gerät" mehr
        registry.reset_user_devices(user, reason=body.reason or "single device login disabled")
    user_repo.set_single_device_login(db, user, body.enabled, body.reason)
    return UserOut.model_validate(user)


@router.post("/devices/purge", response_model=PurgeOut)
def purge_devices(
    admin: CurrentUser = Depends(require_admin),
    registry: DeviceRegistry = Depends(get_registry),
    sessions: SessionBinder = Depends(get_session_binder),
):
    expired = sessions.expire_idle()
    purged = registry.purge_inactive(settings.DEVICE_RETENTION_DAYS * 24 * 60 * 60)
    return PurgeOut(purged_devices=purged, expired_sessions=expired)


@router.get("/auth-events", response_model=list[AuthEventOut])
def auth_events(
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
    user_id: Optional[int] = Query(default=None),
    event_type: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
):
    if event_type is not None and event_type not in events.EVENT_TYPES:
        bad_request("UNKNOWN_EVENT_TYPE", f"Unknown event type: {event_type}")
    return auth_event_repo.list_events(db, actor_user_id=user_id, event_type=event_type, limit=limit)
