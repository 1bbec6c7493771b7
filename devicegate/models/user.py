# devicegate/models/user.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, SmallInteger, String, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from devicegate.db.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)

    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    # Deaktivierte Accounts dürfen sich nicht anmelden
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # ------------------------------------------------------------
    # Single-Device-Login
    # ------------------------------------------------------------
    single_device_login_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    device_reset_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    device_reset_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ------------------------------------------------------------
    # Login-Statistik
    # ------------------------------------------------------------
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_login_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    login_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<User id={self.id} "
            f"username={self.username!r} "
            f"email={self.email!r} "
            f"active={self.is_active} "
            f"single_device={self.single_device_login_enabled}>"
        )
