# devicegate/services/session_service.py
from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from devicegate.core.config import settings
from devicegate.core.security import jwt_service
from devicegate.models.user import User
from devicegate.models.user_device import UserDevice
from devicegate.models.user_session import UserSession
from devicegate.repositories import session_repo
from devicegate.services.device_registry import DeviceRegistry
from devicegate.utils.clock import Clock, system_clock
from devicegate.utils.request_context import RequestContext

logger = logging.getLogger(__name__)


class SessionBinder:
    """
    Sessions anlegen, an ein Gerät binden und wieder freigeben.

    Logout und Session-Ablauf deaktivieren das gebundene Gerät, damit ein
    anderes Gerät sich anmelden kann.
    """

    def __init__(
        self,
        db: Session,
        registry: DeviceRegistry,
        *,
        clock: Clock = system_clock,
        idle_minutes: int = settings.ACCESS_TOKEN_EXPIRE_MINUTES,
    ) -> None:
        self.db = db
        self.registry = registry
        self.clock = clock
        self.idle_minutes = idle_minutes

    # --------------------------------------------------------
    # Anlegen / Binden
    # --------------------------------------------------------
    def establish(self, user: User, ctx: RequestContext) -> str:
        """Neue Session (nur flush, Commit macht der Aufrufer)."""
        session_id = secrets.token_urlsafe(32)
        session_repo.create_session(
            self.db,
            session_id=session_id,
            user_id=user.id,
            now=self.clock.now(),
            ip_address=ctx.client_ip,
            user_agent=ctx.user_agent,
        )
        return session_id

    def bind(self, session_id: str, device: UserDevice) -> None:
        row = session_repo.get_by_id(self.db, session_id)
        if row is None:
            raise LookupError(f"unknown session {session_id[:8]}...")
        row.device_id = device.id
        self.db.add(row)
        self.db.flush()

    def issue_token(self, user: User, session_id: str) -> str:
        return jwt_service.create_token(
            subject=str(user.id),
            expires_delta=timedelta(minutes=self.idle_minutes),
            claims={
                "sid": session_id,
                "username": user.username,
                "email": user.email,
                "role_id": user.role_id,
            },
        )

    # --------------------------------------------------------
    # Prüfen
    # --------------------------------------------------------
    def get_valid(self, session_id: str) -> Optional[UserSession]:
        """Session, wenn weder widerrufen noch zu lange inaktiv."""
        row = session_repo.get_by_id(self.db, session_id)
        if row is None or row.is_revoked:
            return None
        if row.last_seen_at < self.clock.now() - timedelta(minutes=self.idle_minutes):
            return None
        return row

    def touch(self, row: UserSession) -> None:
        row.last_seen_at = self.clock.now()
        self.db.add(row)
        self.db.commit()

    # --------------------------------------------------------
    # Freigeben
    # --------------------------------------------------------
    def release(self, session_id: str, *, reason: str = "logout") -> Optional[UserDevice]:
        """Gerät der Session deaktivieren, dann Session widerrufen."""
        device = self.registry.deactivate_by_session(session_id, reason=reason)
        self.invalidate(session_id)
        return device

    def invalidate(self, session_id: str) -> bool:
        revoked = session_repo.revoke(self.db, session_id, now=self.clock.now())
        self.db.commit()
        return revoked

    def invalidate_all_for_user(self, user: User) -> int:
        now = self.clock.now()
        count = 0
        for row in session_repo.list_open_for_user(self.db, user.id):
            count += int(session_repo.revoke(self.db, row.session_id, now=now))
        self.db.commit()
        return count

    def expire_idle(self) -> int:
        """Abgelaufene Sessions widerrufen und ihre Geräte freigeben."""
        cutoff = self.clock.now() - timedelta(minutes=self.idle_minutes)
        expired = 0
        for session_id in session_repo.list_idle_since(self.db, cutoff):
            self.release(session_id, reason="session_expired")
            expired += 1
        if expired:
            logger.info("%d abgelaufene Session(s) beendet", expired)
        return expired
