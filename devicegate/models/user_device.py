from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from devicegate.db.database import Base


class UserDevice(Base):
    __tablename__ = "user_devices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # SHA-256 über User-Agent, Accept-Language, Accept-Encoding und IP
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)

    # Gleich user_id solange das Gerät aktiv ist, sonst NULL.
    # Der UNIQUE-Index erlaubt damit höchstens ein aktives Gerät pro User.
    active_owner_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    device_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    browser_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    browser_version: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    platform: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    device_type: Mapped[str] = mapped_column(String(16), nullable=False, default="desktop")

    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    session_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Zusätzliche Client-Signale (Bildschirm, Zeitzone, GUID ...), nur informativ
    device_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "fingerprint", name="ux_user_devices_user_fingerprint"),
        UniqueConstraint("active_owner_id", name="ux_user_devices_active_owner"),
        Index("ix_user_devices_user_active", "user_id", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserDevice id={self.id} user_id={self.user_id} "
            f"name={self.device_name!r} active={self.is_active}>"
        )
