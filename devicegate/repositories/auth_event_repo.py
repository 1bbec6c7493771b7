from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from devicegate.models.auth_event import AuthEvent


def create_auth_event(
    db: Session,
    *,
    actor_user_id: int | None,
    event_type: str,
    outcome: str,
    occurred_at: datetime,
    ip_address: str | None = None,
    user_agent: str | None = None,
    metadata: Optional[dict[str, Any]] = None,
) -> AuthEvent:
    row = AuthEvent(
        actor_user_id=actor_user_id,
        event_type=event_type,
        outcome=outcome,
        occurred_at=occurred_at,
        ip_address=(ip_address or None),
        user_agent=(user_agent[:255] if user_agent else None),
        event_metadata=(metadata or None),
    )
    db.add(row)
    db.commit()
    return row


def list_events(
    db: Session,
    *,
    actor_user_id: Optional[int] = None,
    event_type: Optional[str] = None,
    limit: int = 100,
) -> list[AuthEvent]:
    """Nur für Reporting/Forensik; Entscheidungen lesen das Audit-Log nie."""
    stmt = select(AuthEvent).order_by(AuthEvent.id.desc()).limit(limit)
    if actor_user_id is not None:
        stmt = stmt.where(AuthEvent.actor_user_id == actor_user_id)
    if event_type:
        stmt = stmt.where(AuthEvent.event_type == event_type)
    return list(db.scalars(stmt))
