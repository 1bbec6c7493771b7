# devicegate/api/routes/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from devicegate.api.deps import (
    COOKIE_NAME,
    CurrentUser,
    get_current_user,
    get_gate,
    get_session_binder,
)
from devicegate.core.config import settings
from devicegate.core.errors import conflict, forbidden, too_many_requests, unauthorized
from devicegate.db.database import get_db
from devicegate.repositories import device_repo
from devicegate.repositories.user_repo import get_by_id
from devicegate.schemas.auth import LoginDeniedOut, LoginIn, LoginOut, MeOut, UserOut
from devicegate.schemas.device import DeviceOut
from devicegate.services import audit_log_service as events
from devicegate.services.auth_service import AuthenticationGate
from devicegate.services.session_service import SessionBinder
from devicegate.utils.request_context import context_from_request

router = APIRouter(tags=["Auth"])


def _raise_denied(outcome) -> None:
    """LoginDenied -> HTTP-Fehler (429 / 401 / 403 / 409)."""
    if outcome.reason in (events.RATE_LIMITED, events.ACCOUNT_LOCKED):
        too_many_requests(outcome.reason, outcome.message, outcome.retry_after_seconds)
    if outcome.reason == events.INACTIVE_ACCOUNT:
        forbidden(outcome.reason, outcome.message)
    if outcome.reason == events.DEVICE_BLOCKED:
        conflict(outcome.reason, outcome.message, blocking_device=outcome.blocking_device)
    unauthorized(outcome.message, outcome.reason)


# ============================================================
# API: JSON Endpunkte
# ============================================================

@router.post(
    "/login",
    response_model=LoginOut,
    responses={
        401: {"model": LoginDeniedOut},
        403: {"model": LoginDeniedOut},
        409: {"model": LoginDeniedOut},
        429: {"model": LoginDeniedOut},
    },
    openapi_extra={"security": []},
)
def api_login(
    body: LoginIn,
    request: Request,
    response: Response,
    gate: AuthenticationGate = Depends(get_gate),
):
    ctx = context_from_request(request, extra_signals=body.device_signals)
    outcome = gate.attempt_login(body.identifier, body.password, ctx)
    if not outcome.allowed:
        _raise_denied(outcome)

    response.set_cookie(
        key=COOKIE_NAME,
        value=outcome.token,
        httponly=True,
        samesite="lax",
        path="/",
        secure=settings.APP_ENV == "production",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60 if body.remember else None,
    )
    device = DeviceOut.model_validate(outcome.device) if outcome.device is not None else None
    if device is not None:
        device.is_current = True
    return LoginOut(token=outcome.token, user=UserOut.model_validate(outcome.account), device=device)


@router.post("/logout", status_code=204)
def api_logout(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    gate: AuthenticationGate = Depends(get_gate),
):
    gate.logout(user.session_id, context_from_request(request))
    resp = Response(status_code=204)
    resp.delete_cookie(
        key=COOKIE_NAME,
        path="/",
        samesite="lax",
        secure=settings.APP_ENV == "production",
        httponly=True,
    )
    return resp


@router.get("/me", response_model=MeOut)
def me(
    user: CurrentUser = Depends(get_current_user),
    sessions: SessionBinder = Depends(get_session_binder),
    db: Session = Depends(get_db),
):
    """
    Gibt den aktuell eingeloggten Benutzer zurück.
    Funktioniert sowohl mit:
      - JWT im HttpOnly Cookie (Browser-Login)
      - JWT im Authorization Header (Bearer Token)
    """
    account = get_by_id(db, user.id)
    device = None
    if user.single_device_login_enabled:
        active = device_repo.get_active_for_user(db, user.id)
        if active is not None:
            device = DeviceOut.model_validate(active)
            device.is_current = active.id == user.device_id
    return MeOut(
        user=UserOut.model_validate(account),
        session_expires_in_minutes=sessions.idle_minutes,
        device=device,
    )
