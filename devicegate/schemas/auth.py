# devicegate/schemas/auth.py
from __future__ import annotations
from typing import Optional, Annotated
from pydantic import BaseModel, Field
from pydantic import StringConstraints

from devicegate.schemas.device import DeviceOut

# ---------- Gemeinsame Typen ----------
PasswordStr = Annotated[
    str,
    StringConstraints(
        min_length=1,
        max_length=256,
    )
]

# ---------- Login ----------
class LoginIn(BaseModel):
    identifier: str = Field(..., min_length=1, max_length=255, description="E-Mail oder Benutzername")
    password: PasswordStr
    # true: Cookie überlebt den Browser-Neustart (max_age), sonst Session-Cookie
    remember: bool = False
    # Optionale Client-Signale (Zeitzone, Bildschirm ...), nur als Metadaten gespeichert
    device_signals: Optional[dict[str, str]] = None

# ---------- User-DTOs ----------
class UserOut(BaseModel):
    id: int
    username: str
    email: str
    display_name: Optional[str] = None
    role_id: int
    single_device_login_enabled: bool = False

    model_config = {"from_attributes": True}  # ORM-kompatibel

# ---------- Tokens ----------
class LoginOut(BaseModel):
    token: str
    user: UserOut
    device: Optional[DeviceOut] = None

class MeOut(BaseModel):
    user: UserOut
    session_expires_in_minutes: int
    device: Optional[DeviceOut] = None

# ---------- Ablehnung ----------
class BlockingDeviceOut(BaseModel):
    device_name: Optional[str] = None
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    platform: Optional[str] = None
    device_type: Optional[str] = None
    last_activity_at: Optional[str] = None

class LoginDeniedOut(BaseModel):
    code: str
    message: str
    retry_after: Optional[int] = None
    blocking_device: Optional[BlockingDeviceOut] = None
