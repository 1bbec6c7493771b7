from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from devicegate.db.database import Base


class FailedLoginAttempt(Base):
    """Aufeinanderfolgende Fehlversuche pro Account (``user:<id>``) oder unbekannter Kennung."""

    __tablename__ = "failed_login_attempts"

    account_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reason: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    last_failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Zeitpunkt, an dem die Schwelle überschritten wurde
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
