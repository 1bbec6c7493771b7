# devicegate/services/device_maintenance_service.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from devicegate.core.config import settings
from devicegate.db.database import SessionLocal
from devicegate.services.audit_log_service import AuditLog
from devicegate.services.device_registry import DeviceRegistry
from devicegate.services.session_service import SessionBinder
from devicegate.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)

DEVICE_RETENTION_SECONDS = settings.DEVICE_RETENTION_DAYS * 24 * 60 * 60
CLEANUP_INTERVAL_SECONDS = settings.DEVICE_CLEANUP_INTERVAL_SECONDS


def run_maintenance_once(session_factory=SessionLocal, clock: Clock = system_clock) -> tuple[int, int]:
    """Abgelaufene Sessions beenden, danach alte inaktive Geräte löschen.

    Rückgabe: (beendete Sessions, gelöschte Geräte)
    """
    db = session_factory()
    try:
        registry = DeviceRegistry(db, audit=AuditLog(session_factory, clock=clock), clock=clock)
        expired = SessionBinder(db, registry, clock=clock).expire_idle()
        purged = registry.purge_inactive(DEVICE_RETENTION_SECONDS)
        return expired, purged
    finally:
        db.close()


async def _cleanup_loop() -> None:
    # Einmal direkt beim Start aufräumen
    try:
        expired, purged = await asyncio.to_thread(run_maintenance_once)
        if expired or purged:
            logger.info("Startlauf: %d Session(s) beendet, %d Gerät(e) gelöscht", expired, purged)
    except Exception:
        logger.exception("Fehler im Startlauf der Geräte-Wartung")

    # Danach regelmäßig
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        try:
            expired, purged = await asyncio.to_thread(run_maintenance_once)
            if expired or purged:
                logger.info("Wartung: %d Session(s) beendet, %d Gerät(e) gelöscht", expired, purged)
        except Exception:
            logger.exception("Fehler in der Geräte-Wartung")


def start_device_cleanup_task() -> Optional[asyncio.Task]:
    return asyncio.create_task(_cleanup_loop())
