# devicegate/services/auth_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from sqlalchemy.orm import Session

from devicegate.core.config import settings
from devicegate.core.security import dummy_verify, hash_password, verify_password
from devicegate.models.user import User
from devicegate.models.user_device import UserDevice
from devicegate.repositories import session_repo, user_repo
from devicegate.repositories.user_repo import create_user, get_by_email, get_by_username
from devicegate.services import audit_log_service as events
from devicegate.services.account_lock_service import AccountLockGuard, account_key_for
from devicegate.services.attempt_limiter import AttemptLimiter, login_key
from devicegate.services.audit_log_service import AuditLog
from devicegate.services.device_registry import DeviceRegistry, describe_device
from devicegate.services.fingerprint_service import compute_fingerprint, extract_device_info
from devicegate.services.session_service import SessionBinder
from devicegate.utils.clock import Clock, system_clock
from devicegate.utils.request_context import RequestContext

logger = logging.getLogger(__name__)

# Benutzer-Meldungen (stabil, ohne interne Details)
MSG_RATE_LIMITED = "Too many login attempts. Please try again in {seconds} seconds."
MSG_ACCOUNT_LOCKED = "This account has been temporarily locked due to multiple failed login attempts."
MSG_INVALID_CREDENTIALS = "The provided credentials are incorrect."
MSG_INACTIVE_ACCOUNT = "This account has been deactivated. Please contact your administrator."
MSG_DEVICE_BLOCKED = (
    "Login blocked: this account is locked to another device. "
    "Log out on that device or ask an administrator to reset your devices."
)


# ------------------------------------------------------------
# Ergebnis-Typen
# ------------------------------------------------------------
@dataclass(frozen=True)
class LoginSuccess:
    account: User
    session_id: str
    token: str
    device: Optional[UserDevice] = None

    allowed = True


@dataclass(frozen=True)
class LoginDenied:
    reason: str
    message: str
    retry_after_seconds: Optional[int] = None
    blocking_device: Optional[dict[str, Any]] = None

    allowed = False


LoginOutcome = Union[LoginSuccess, LoginDenied]


@dataclass(frozen=True)
class GatePolicy:
    rate_limit_attempts: int = settings.LOGIN_RATE_LIMIT_ATTEMPTS
    rate_limit_decay_seconds: int = settings.LOGIN_RATE_LIMIT_DECAY_SECONDS


@dataclass
class AuthenticationGate:
    """
    Login-Entscheidung als lineare Pipeline, bricht beim ersten Fehler ab:

    1. Rate-Limit pro IP            -> rate_limited
    2. Account auflösen, Sperre     -> account_locked (Schlüssel pro Account)
    3. unbekannter Account          zählt als falsches Passwort
    4. Passwort prüfen              -> invalid_credentials (+ Limiter, + Sperrzähler)
    5. Account aktiv?               -> inactive_account (ohne Zähler)
    6. Gerät (nur Single-Device)    -> device_blocked
    7. Commit: Limiter leeren, Session, Gerät registrieren, Sperrzähler zurücksetzen

    Jede Ablehnung schreibt genau ein AuthEvent.
    """

    db: Session
    limiter: AttemptLimiter
    lock_guard: AccountLockGuard
    registry: DeviceRegistry
    sessions: SessionBinder
    audit: AuditLog
    policy: GatePolicy = field(default_factory=GatePolicy)
    clock: Clock = system_clock

    # --------------------------------------------------------
    # Login
    # --------------------------------------------------------
    def attempt_login(self, identity: str, secret: str, ctx: RequestContext) -> LoginOutcome:
        typed_identity = account_key_for(identity)
        rate_key = login_key(ctx.client_ip)

        # 1. Rate-Limit
        if self.limiter.too_many_attempts(rate_key, self.policy.rate_limit_attempts):
            seconds = self.limiter.available_in(rate_key)
            return self._deny(
                events.RATE_LIMITED,
                MSG_RATE_LIMITED.format(seconds=seconds),
                ctx,
                metadata={"identity": typed_identity, "retry_after": seconds},
                retry_after_seconds=seconds,
            )

        # 2. Account-Sperre (ein Schlüssel pro Account, egal ob E-Mail oder Username)
        user = user_repo.get_by_identifier(self.db, identity)
        account_key = account_key_for(identity, user)
        locked_for = self.lock_guard.locked_for(account_key)
        if locked_for > 0:
            return self._deny(
                events.ACCOUNT_LOCKED,
                MSG_ACCOUNT_LOCKED,
                ctx,
                actor=user,
                metadata={"identity": typed_identity, "retry_after": locked_for},
                retry_after_seconds=locked_for,
            )

        # 3. + 4. Passwort prüfen (unbekannter Account zählt als falsches Passwort)
        if user is None:
            dummy_verify(secret or "")
            ok = False
        else:
            ok = verify_password(secret or "", user.password_hash)
        if not ok:
            self.limiter.hit(rate_key, self.policy.rate_limit_decay_seconds)
            self.lock_guard.record_failure(account_key, "invalid_password" if user else "unknown_identity")
            return self._deny(
                events.INVALID_CREDENTIALS,
                MSG_INVALID_CREDENTIALS,
                ctx,
                actor=user,
                metadata={"identity": typed_identity},
            )

        # 5. Account aktiv?
        if not user.is_active:
            return self._deny(events.INACTIVE_ACCOUNT, MSG_INACTIVE_ACCOUNT, ctx, actor=user)

        # 6. + 7. Gerät prüfen und Login festschreiben
        if user.single_device_login_enabled:
            return self._admit_single_device(user, account_key, rate_key, ctx)
        return self._commit_login(user, account_key, rate_key, ctx)

    def _admit_single_device(
        self, user: User, account_key: str, rate_key: str, ctx: RequestContext
    ) -> LoginOutcome:
        fingerprint = compute_fingerprint(ctx)
        info = extract_device_info(ctx)
        with self.registry.admission(user):
            decision = self.registry.can_login_from_device(user, fingerprint)
            if not decision.allowed:
                blocking = decision.blocking_device
                descriptor = describe_device(blocking) if blocking is not None else None
                blocking_id = blocking.id if blocking is not None else None
                self.db.rollback()
                return self._deny(
                    events.DEVICE_BLOCKED,
                    MSG_DEVICE_BLOCKED,
                    ctx,
                    actor=user,
                    metadata={"fingerprint": fingerprint[:12], "blocked_by_device": blocking_id},
                    blocking_device=descriptor,
                )

            existing = self.registry.device_for(user, fingerprint)
            newly_active = existing is None or not existing.is_active
            session_id = self.sessions.establish(user, ctx)
            device = self.registry.register(user, fingerprint, info, session_id)
            self.sessions.bind(session_id, device)
            user_repo.update_login_stats(self.db, user, at=self.clock.now(), ip=ctx.client_ip)
            self.db.commit()

        if newly_active:
            self.audit.record(
                events.DEVICE_REGISTERED,
                outcome=events.SUCCESS,
                actor_user_id=user.id,
                ctx=ctx,
                metadata={"device_id": device.id, "device_name": device.device_name},
            )
        return self._finish_success(user, account_key, rate_key, ctx, session_id, device)

    def _commit_login(self, user: User, account_key: str, rate_key: str, ctx: RequestContext) -> LoginOutcome:
        session_id = self.sessions.establish(user, ctx)
        user_repo.update_login_stats(self.db, user, at=self.clock.now(), ip=ctx.client_ip)
        self.db.commit()
        return self._finish_success(user, account_key, rate_key, ctx, session_id, None)

    def _finish_success(
        self,
        user: User,
        account_key: str,
        rate_key: str,
        ctx: RequestContext,
        session_id: str,
        device: Optional[UserDevice],
    ) -> LoginSuccess:
        self.limiter.clear(rate_key)
        self.lock_guard.record_success(account_key)
        token = self.sessions.issue_token(user, session_id)
        self.audit.record(
            events.LOGIN_SUCCESS,
            outcome=events.SUCCESS,
            actor_user_id=user.id,
            ctx=ctx,
            metadata={"device_id": device.id if device else None},
        )
        return LoginSuccess(account=user, session_id=session_id, token=token, device=device)

    def _deny(
        self,
        reason: str,
        message: str,
        ctx: RequestContext,
        *,
        actor: Optional[User] = None,
        metadata: Optional[dict[str, Any]] = None,
        retry_after_seconds: Optional[int] = None,
        blocking_device: Optional[dict[str, Any]] = None,
    ) -> LoginDenied:
        logger.warning("Login abgelehnt (%s) ip=%s user=%s", reason, ctx.client_ip, actor.id if actor else None)
        self.audit.record(
            reason,
            outcome=events.FAILURE,
            actor_user_id=actor.id if actor else None,
            ctx=ctx,
            metadata=metadata,
        )
        return LoginDenied(
            reason=reason,
            message=message,
            retry_after_seconds=retry_after_seconds,
            blocking_device=blocking_device,
        )

    # --------------------------------------------------------
    # Logout
    # --------------------------------------------------------
    def logout(self, session_id: str, ctx: Optional[RequestContext] = None) -> bool:
        """Gerät freigeben, Logout protokollieren, Session widerrufen."""
        row = session_repo.get_by_id(self.db, session_id)
        if row is None or row.is_revoked:
            return False
        device = self.registry.deactivate_by_session(session_id, reason="logout")
        self.audit.record(
            events.LOGOUT,
            outcome=events.SUCCESS,
            actor_user_id=row.user_id,
            ctx=ctx,
            metadata={"device_id": device.id if device else None},
        )
        self.sessions.invalidate(session_id)
        return True


# ------------------------------------------------------------
# Account anlegen (Seeding / Admin)
# ------------------------------------------------------------
def register_user(
    db: Session,
    *,
    username: str,
    email: str,
    password: str,
    role_id: int = 1,
    single_device_login_enabled: bool = False,
) -> User:
    if get_by_email(db, email):
        raise ValueError("EMAIL_EXISTS")
    if get_by_username(db, username):
        raise ValueError("USERNAME_EXISTS")
    return create_user(
        db,
        username=username,
        email=email.strip().lower(),
        password_hash=hash_password(password),
        role_id=role_id,
        single_device_login_enabled=single_device_login_enabled,
    )
