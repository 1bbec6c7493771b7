# devicegate/services/audit_log_service.py
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from devicegate.db.database import SessionLocal
from devicegate.repositories.auth_event_repo import create_auth_event
from devicegate.utils.clock import Clock, system_clock
from devicegate.utils.request_context import RequestContext


logger = logging.getLogger(__name__)

RATE_LIMITED = "rate_limited"
ACCOUNT_LOCKED = "account_locked"
INVALID_CREDENTIALS = "invalid_credentials"
INACTIVE_ACCOUNT = "inactive_account"
DEVICE_BLOCKED = "device_blocked"
LOGIN_SUCCESS = "login_success"
LOGOUT = "logout"
DEVICE_REGISTERED = "device_registered"
DEVICE_DEACTIVATED = "device_deactivated"

EVENT_TYPES = frozenset(
    {
        RATE_LIMITED,
        ACCOUNT_LOCKED,
        INVALID_CREDENTIALS,
        INACTIVE_ACCOUNT,
        DEVICE_BLOCKED,
        LOGIN_SUCCESS,
        LOGOUT,
        DEVICE_REGISTERED,
        DEVICE_DEACTIVATED,
    }
)

SUCCESS = "success"
FAILURE = "failure"


class AuditLog:
    """Append-only Writer für AuthEvents.

    Schreibt in einer eigenen DB-Session, damit ein Rollback des Aufrufers
    das Event nicht mitnimmt. Schreibfehler werden geloggt und nie
    weitergereicht: das Audit-Log darf keine Login-Entscheidung beeinflussen.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Clock = system_clock,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def record(
        self,
        event_type: str,
        *,
        outcome: str,
        actor_user_id: Optional[int] = None,
        ctx: Optional[RequestContext] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown auth event type: {event_type!r}")
        try:
            db = self._session_factory()
            try:
                create_auth_event(
                    db,
                    actor_user_id=actor_user_id,
                    event_type=event_type,
                    outcome=outcome,
                    occurred_at=self._clock.now(),
                    ip_address=(ctx.client_ip if ctx else None),
                    user_agent=(ctx.user_agent if ctx else None),
                    metadata=metadata,
                )
            finally:
                db.close()
            return True
        except Exception as ex:
            logger.exception("Audit-Log fehlgeschlagen (%s): %r", event_type, ex)
            return False
