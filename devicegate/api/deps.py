# devicegate/api/deps.py
from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from jwt import ExpiredSignatureError, InvalidTokenError

from devicegate.core.config import settings
from devicegate.core.errors import forbidden, not_found, unauthorized
from devicegate.core.security import jwt_service
from devicegate.db.database import SessionLocal, get_db
from devicegate.repositories import device_repo
from devicegate.repositories.user_repo import get_by_id
from devicegate.services import audit_log_service as events
from devicegate.services.account_lock_service import AccountLockGuard
from devicegate.services.attempt_limiter import AttemptLimiter, MemoryCounterStore
from devicegate.services.audit_log_service import AuditLog
from devicegate.services.auth_service import AuthenticationGate
from devicegate.services.device_registry import DeviceRegistry
from devicegate.services.session_service import SessionBinder
from devicegate.utils.request_context import RequestContext, context_from_request

# ----------------------------------------------------------
# Security
# ----------------------------------------------------------
security = HTTPBearer(auto_error=False)

COOKIE_NAME = "access_token"


@dataclass
class CurrentUser:
    id: int
    username: str
    email: str
    role_id: int
    session_id: str
    display_name: Optional[str] = None
    single_device_login_enabled: bool = False
    device_id: Optional[int] = None


# ----------------------------------------------------------
# Services (pro Request, Zählerspeicher prozessweit)
# ----------------------------------------------------------
@lru_cache(maxsize=1)
def get_counter_store() -> MemoryCounterStore:
    return MemoryCounterStore()


def get_attempt_limiter(store: MemoryCounterStore = Depends(get_counter_store)) -> AttemptLimiter:
    return AttemptLimiter(store)


def get_audit_log() -> AuditLog:
    return AuditLog(SessionLocal)


def get_request_context(request: Request) -> RequestContext:
    return context_from_request(request)


def get_registry(
    db: Session = Depends(get_db),
    audit: AuditLog = Depends(get_audit_log),
) -> DeviceRegistry:
    return DeviceRegistry(db, audit=audit)


def get_session_binder(
    db: Session = Depends(get_db),
    registry: DeviceRegistry = Depends(get_registry),
) -> SessionBinder:
    return SessionBinder(db, registry)


def get_gate(
    db: Session = Depends(get_db),
    limiter: AttemptLimiter = Depends(get_attempt_limiter),
    registry: DeviceRegistry = Depends(get_registry),
    sessions: SessionBinder = Depends(get_session_binder),
    audit: AuditLog = Depends(get_audit_log),
) -> AuthenticationGate:
    return AuthenticationGate(
        db=db,
        limiter=limiter,
        lock_guard=AccountLockGuard(db),
        registry=registry,
        sessions=sessions,
        audit=audit,
    )


# ----------------------------------------------------------
# Helper
# ----------------------------------------------------------
def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    unauthorized("Not authenticated")


def _decode_or_401(token: str) -> dict:
    try:
        return jwt_service.decode_token(token)
    except ExpiredSignatureError:
        unauthorized("Token expired", "TOKEN_EXPIRED")
    except InvalidTokenError:
        unauthorized("Invalid token", "INVALID_TOKEN")


# ----------------------------------------------------------
# Aktueller User: Token + Session + Gerät
# ----------------------------------------------------------
def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
    sessions: SessionBinder = Depends(get_session_binder),
    ctx: RequestContext = Depends(get_request_context),
) -> CurrentUser:
    """
    Akzeptiert Bearer-Header oder HttpOnly-Cookie.

    Das Token allein reicht nicht: die Session (``sid``) muss offen und nicht
    abgelaufen sein. Bei Usern mit Single-Device-Login muss das an die Session
    gebundene Gerät noch aktiv sein, sonst wird die Session beendet.
    """
    payload = _decode_or_401(_extract_token(request, credentials))
    session_id = payload.get("sid")
    if not session_id:
        unauthorized("Invalid token", "INVALID_TOKEN")

    row = sessions.get_valid(session_id)
    if row is None:
        unauthorized("Session expired", "SESSION_EXPIRED")

    user = get_by_id(db, int(payload.get("sub", 0) or 0))
    if not user or user.id != row.user_id:
        unauthorized("User not found")
    if not user.is_active:
        sessions.release(session_id, reason="account_inactive")
        unauthorized("This account has been deactivated.", events.INACTIVE_ACCOUNT)

    device_id = row.device_id
    if user.single_device_login_enabled:
        device = device_repo.get_active_for_user(db, user.id)
        if device is None or device.id != row.device_id:
            sessions.invalidate(session_id)
            unauthorized(
                "This session is no longer bound to the active device of this account.",
                events.DEVICE_BLOCKED,
            )
        sessions.registry.touch_activity(user, device.fingerprint)

    sessions.touch(row)
    return CurrentUser(
        id=user.id,
        username=user.username,
        email=user.email,
        role_id=user.role_id,
        session_id=session_id,
        display_name=user.display_name,
        single_device_login_enabled=user.single_device_login_enabled,
        device_id=device_id,
    )


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role_id < settings.ADMIN_ROLE_ID:
        forbidden("FORBIDDEN", "Administrator role required")
    return user


def get_user_or_404(user_id: int, db: Session = Depends(get_db)):
    user = get_by_id(db, user_id)
    if not user:
        not_found("USER_NOT_FOUND", "User not found")
    return user
