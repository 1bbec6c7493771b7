# devicegate/schemas/device.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class DeviceOut(BaseModel):
    id: int
    device_name: Optional[str] = None
    browser_name: Optional[str] = None
    browser_version: Optional[str] = None
    platform: Optional[str] = None
    device_type: str
    ip_address: Optional[str] = None
    is_active: bool
    last_activity_at: Optional[datetime] = None
    created_at: datetime
    is_current: bool = False

    model_config = {"from_attributes": True}


class DeviceListOut(BaseModel):
    devices: list[DeviceOut]
    count: int
    active: int
    single_device_enabled: bool


class DeviceStatsOut(BaseModel):
    total_devices: int
    active_devices: int
    online_devices: int
    inactive_devices: int
    users_with_single_device_enabled: int


class SingleDeviceToggleIn(BaseModel):
    enabled: bool
    reason: Optional[str] = Field(default=None, max_length=255)


class DeviceResetIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class DeviceResetOut(BaseModel):
    released_devices: int
    revoked_sessions: int


class PurgeOut(BaseModel):
    purged_devices: int
    expired_sessions: int


class AuthEventOut(BaseModel):
    id: int
    occurred_at: datetime
    actor_user_id: Optional[int] = None
    event_type: str
    outcome: str
    ip_address: Optional[str] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="event_metadata")

    model_config = {"from_attributes": True}
