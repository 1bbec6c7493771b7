# devicegate/services/device_registry.py
"""Geräte-Registry: Lebenszyklus der Geräte und "ein aktives Gerät pro User".

Zustände pro (User, Fingerprint): unbekannt -> aktiv -> inaktiv -> aktiv ...
-> irgendwann gelöscht (purge_inactive).

Die Prüfung ``can_login_from_device`` und das anschließende ``register``
gehören zusammen und laufen innerhalb von ``admission(user)``: ein Mutex pro
User im Prozess plus ``SELECT ... FOR UPDATE`` auf die User-Zeile. Der
UNIQUE-Index auf ``active_owner_id`` ist das letzte Netz; schlägt er zu, ist
das ein Invarianten-Bruch und wird nicht still korrigiert.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from devicegate.core.errors import DeviceInvariantError, DeviceOwnershipConflict
from devicegate.models.user import User
from devicegate.models.user_device import UserDevice
from devicegate.repositories import device_repo, user_repo
from devicegate.services.audit_log_service import DEVICE_DEACTIVATED, SUCCESS, AuditLog
from devicegate.services.fingerprint_service import DeviceInfo
from devicegate.utils.clock import Clock, system_clock
from devicegate.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

ALLOWED = "allowed"
DEVICE_BLOCKED = "device_blocked"

# Prozessweite Sperren pro User; mehrere Registry-Instanzen (eine pro Request)
# müssen sich dieselbe teilen.
user_admission_locks = KeyedLock()


@dataclass(frozen=True)
class DeviceDecision:
    allowed: bool
    reason: str
    blocking_device: Optional[UserDevice] = None


def describe_device(device: UserDevice) -> dict[str, Any]:
    """Nicht-sensible Beschreibung eines Geräts (keine Session-ID, kein Fingerprint)."""
    return {
        "device_name": device.device_name,
        "browser": device.browser_name,
        "browser_version": device.browser_version,
        "platform": device.platform,
        "device_type": device.device_type,
        "last_activity_at": device.last_activity_at.isoformat() if device.last_activity_at else None,
    }


class DeviceRegistry:
    def __init__(
        self,
        db: Session,
        *,
        audit: Optional[AuditLog] = None,
        clock: Clock = system_clock,
        locks: KeyedLock = user_admission_locks,
    ) -> None:
        self.db = db
        self.audit = audit
        self.clock = clock
        self.locks = locks

    # --------------------------------------------------------
    # Admission (Prüfen + Registrieren als Einheit)
    # --------------------------------------------------------
    @contextmanager
    def admission(self, user: User) -> Iterator[None]:
        with self.locks.hold(user.id):
            try:
                user_repo.lock_for_update(self.db, user.id)
                yield
            except BaseException:
                self.db.rollback()
                raise
            finally:
                # Transaktion (und damit FOR UPDATE) nie über den Mutex hinaus halten
                if self.db.in_transaction():
                    self.db.rollback()

    def can_login_from_device(self, user: User, fingerprint: str) -> DeviceDecision:
        if not user.single_device_login_enabled:
            return DeviceDecision(True, ALLOWED)

        active = device_repo.get_active_for_user(self.db, user.id)
        if active is None:
            # Erster Login oder alles abgemeldet/zurückgesetzt
            return DeviceDecision(True, ALLOWED)
        if active.fingerprint == fingerprint:
            return DeviceDecision(True, ALLOWED)
        return DeviceDecision(False, DEVICE_BLOCKED, blocking_device=active)

    def register(self, user: User, fingerprint: str, info: DeviceInfo, session_id: str) -> UserDevice:
        """Upsert für (user, fingerprint), setzt das Gerät aktiv. Commit macht der Aufrufer."""
        now = self.clock.now()
        device = device_repo.get_by_user_and_fingerprint(self.db, user.id, fingerprint)
        if device is not None and device.user_id != user.id:
            raise DeviceOwnershipConflict(f"device {device.id} gehört nicht zu user {user.id}")

        active = device_repo.get_active_for_user(self.db, user.id)
        if active is not None and (device is None or active.id != device.id):
            logger.error(
                "register ohne Admission: user=%s hat bereits aktives Gerät %s", user.id, active.id
            )
            raise DeviceInvariantError(f"user {user.id}: anderes Gerät ({active.id}) ist noch aktiv")

        if device is None:
            device = UserDevice(user_id=user.id, fingerprint=fingerprint, created_at=now)

        device.is_active = True
        device.active_owner_id = user.id
        device.session_id = session_id
        device.last_activity_at = now
        device.updated_at = now
        device.ip_address = info.ip_address or None
        device.user_agent = info.user_agent or None
        device.device_name = info.device_name
        device.browser_name = info.browser_name
        device.browser_version = info.browser_version or None
        device.platform = info.platform
        device.device_type = info.device_type
        device.device_metadata = info.metadata() or None
        self.db.add(device)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise DeviceInvariantError(f"user {user.id}: Gerät konnte nicht aktiviert werden") from exc
        return device

    # --------------------------------------------------------
    # Deaktivieren / Aktivität
    # --------------------------------------------------------
    def deactivate_by_session(self, session_id: str, *, reason: str = "logout") -> Optional[UserDevice]:
        if not session_id:
            return None
        device = device_repo.get_active_by_session(self.db, session_id)
        if device is None:
            return None
        device_repo.deactivate(self.db, device, now=self.clock.now())
        self.db.commit()
        self._announce_deactivated(device, reason)
        return device

    def touch_activity(self, user: User, fingerprint: str, session_id: Optional[str] = None) -> bool:
        """Aktualisiert nur aktive Geräte; ein deaktiviertes Gerät bleibt inaktiv."""
        touched = device_repo.touch_active(
            self.db, user_id=user.id, fingerprint=fingerprint, now=self.clock.now(), session_id=session_id
        )
        self.db.commit()
        return touched

    def reset_user_devices(self, user: User, *, reason: Optional[str] = None) -> list[UserDevice]:
        """Admin: alle aktiven Geräte des Users freigeben."""
        now = self.clock.now()
        released: list[UserDevice] = []
        for device in device_repo.list_for_user(self.db, user.id):
            if device.is_active:
                released.append(device)
                device_repo.deactivate(self.db, device, now=now)
        user_repo.mark_devices_reset(self.db, user, at=now, reason=reason)
        self.db.commit()
        for device in released:
            self._announce_deactivated(device, "admin_reset")
        return released

    def purge_inactive(self, max_age_seconds: int) -> int:
        cutoff = self.clock.now() - timedelta(seconds=max_age_seconds)
        count = device_repo.delete_inactive_before(self.db, cutoff)
        self.db.commit()
        if count:
            logger.info("%d inaktive Gerät(e) gelöscht (älter als %s)", count, cutoff.isoformat())
        return count

    # --------------------------------------------------------
    # Lesen / Reporting
    # --------------------------------------------------------
    def active_device_for(self, user: User) -> Optional[UserDevice]:
        return device_repo.get_active_for_user(self.db, user.id)

    def device_for(self, user: User, fingerprint: str) -> Optional[UserDevice]:
        return device_repo.get_by_user_and_fingerprint(self.db, user.id, fingerprint)

    def list_devices_for_user(self, user: User) -> list[UserDevice]:
        return device_repo.list_for_user(self.db, user.id)

    def list_active_devices(self) -> int:
        return device_repo.count_active(self.db)

    def statistics(self, *, online_minutes: int) -> dict[str, int]:
        total = device_repo.count_all(self.db)
        active = device_repo.count_active(self.db)
        online = device_repo.count_active(
            self.db, seen_since=self.clock.now() - timedelta(minutes=online_minutes)
        )
        return {
            "total_devices": total,
            "active_devices": active,
            "online_devices": online,
            "inactive_devices": total - active,
            "users_with_single_device_enabled": user_repo.count_single_device_enabled(self.db),
        }

    def _announce_deactivated(self, device: UserDevice, reason: str) -> None:
        if self.audit is None:
            return
        self.audit.record(
            DEVICE_DEACTIVATED,
            outcome=SUCCESS,
            actor_user_id=device.user_id,
            metadata={"device_id": device.id, "reason": reason},
        )
