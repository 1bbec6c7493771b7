# devicegate/api/routes/devices.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from devicegate.api.deps import CurrentUser, get_current_user
from devicegate.db.database import get_db
from devicegate.repositories import device_repo
from devicegate.schemas.device import DeviceListOut, DeviceOut

router = APIRouter(prefix="/devices", tags=["devices"])


def _device_list(devices, *, current_id, single_device_enabled: bool) -> DeviceListOut:
    items = []
    for d in devices:
        item = DeviceOut.model_validate(d)
        item.is_current = d.id == current_id
        items.append(item)
    return DeviceListOut(
        devices=items,
        count=len(items),
        active=sum(1 for d in items if d.is_active),
        single_device_enabled=single_device_enabled,
    )


@router.get("", response_model=DeviceListOut)
def my_devices(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Eigene Geräte, aktives zuerst."""
    devices = device_repo.list_for_user(db, user.id)
    return _device_list(
        devices,
        current_id=user.device_id,
        single_device_enabled=user.single_device_login_enabled,
    )


@router.post("/heartbeat", status_code=204)
def heartbeat(user: CurrentUser = Depends(get_current_user)):
    # Aktivität wird bereits in get_current_user aktualisiert
    return Response(status_code=204)
