"""HTTP-Schicht: Statuscodes, Session- und Gerätebindung, Admin-Endpunkte."""

import pytest
from fastapi.testclient import TestClient

from devicegate.api.deps import get_counter_store
from devicegate.core.config import settings
from devicegate.db.database import Base, SessionLocal, engine, init_models
from devicegate.main import app
from devicegate.repositories.user_repo import set_active
from devicegate.services.auth_service import register_user

from conftest import PASSWORD, UA_CHROME_WIN, UA_SAFARI_IPHONE

HEADERS_A = {
    "User-Agent": UA_CHROME_WIN,
    "Accept-Language": "de-DE,de;q=0.9",
    "Accept-Encoding": "gzip",
    "X-Forwarded-For": "203.0.113.10",
}
HEADERS_B = {
    "User-Agent": UA_SAFARI_IPHONE,
    "Accept-Language": "en-US",
    "Accept-Encoding": "gzip",
    "X-Forwarded-For": "198.51.100.20",
}


@pytest.fixture
def client():
    init_models()
    get_counter_store.cache_clear()
    with TestClient(app) as c:
        yield c
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def create_user():
    def _create(username, *, single_device=True, role_id=1):
        with SessionLocal() as db:
            return register_user(
                db,
                username=username,
                email=f"{username}@example.com",
                password=PASSWORD,
                role_id=role_id,
                single_device_login_enabled=single_device,
            )

    return _create


def _login(client, identifier, headers, password=PASSWORD, **body):
    return client.post(
        "/auth/login",
        json={"identifier": identifier, "password": password, **body},
        headers=headers,
    )


def _auth(token, headers):
    return {**headers, "Authorization": f"Bearer {token}"}


def _admin_token(client, create_user):
    create_user("root", single_device=False, role_id=9)
    resp = _login(client, "root", {**HEADERS_A, "X-Forwarded-For": "10.9.9.9"})
    assert resp.status_code == 200
    return resp.json()["token"]


def test_login_returns_token_device_and_cookie(client, create_user):
    create_user("alice")
    resp = _login(client, "alice", HEADERS_A, device_signals={"timezone": "Europe/Berlin", "bogus": "x"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["token"]
    assert data["user"]["username"] == "alice"
    assert data["device"]["browser_name"] == "Chrome"
    assert data["device"]["is_current"] is True
    assert "access_token" in resp.cookies

    me = client.get("/auth/me", headers=_auth(data["token"], HEADERS_A))
    assert me.status_code == 200
    assert me.json()["user"]["id"] == data["user"]["id"]
    assert me.json()["device"]["is_current"] is True


def test_second_device_gets_conflict_with_descriptor(client, create_user):
    create_user("bob")
    assert _login(client, "bob", HEADERS_A).status_code == 200

    resp = _login(client, "bob", HEADERS_B)
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["code"] == "device_blocked"
    assert detail["blocking_device"]["browser"] == "Chrome"
    assert detail["blocking_device"]["platform"] == "Windows"


def test_logout_frees_device_and_kills_session(client, create_user):
    create_user("carol")
    token = _login(client, "carol", HEADERS_A).json()["token"]

    resp = client.post("/auth/logout", headers=_auth(token, HEADERS_A))
    assert resp.status_code == 204

    client.cookies.clear()
    again = client.get("/auth/me", headers=_auth(token, HEADERS_A))
    assert again.status_code == 401
    assert again.json()["detail"]["code"] == "SESSION_EXPIRED"

    assert _login(client, "carol", HEADERS_B).status_code == 200


def test_invalid_credentials_and_missing_auth(client, create_user):
    create_user("dave")
    wrong = _login(client, "dave", HEADERS_A, password="nope")
    unknown = _login(client, "nobody", {**HEADERS_A, "X-Forwarded-For": "203.0.113.11"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json()["detail"] == unknown.json()["detail"]

    client.cookies.clear()
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_rate_limit_sets_retry_after(client, create_user):
    headers = {**HEADERS_A, "X-Forwarded-For": "203.0.113.200"}
    for i in range(5):
        assert _login(client, f"ghost{i}", headers, password="x").status_code == 401

    resp = _login(client, "ghost", headers, password="x")
    assert resp.status_code == 429
    assert int(resp.headers["Retry-After"]) > 0
    assert resp.json()["detail"]["code"] == "rate_limited"


def test_rotating_forwarded_for_is_ignored_without_trusted_proxy(client, monkeypatch):
    monkeypatch.setattr(settings, "TRUSTED_PROXIES", [])
    codes = []
    for i in range(6):
        headers = {**HEADERS_A, "X-Forwarded-For": f"10.0.0.{i}"}
        codes.append(_login(client, f"ghost{i}@example.com", headers, password="x").status_code)
    assert codes == [401] * 5 + [429]


def test_account_lock_returns_429(client, create_user):
    create_user("erin")
    for i in range(5):
        _login(client, "erin@example.com", {**HEADERS_A, "X-Forwarded-For": f"192.0.2.{i + 1}"}, password="x")

    resp = _login(client, "erin", {**HEADERS_A, "X-Forwarded-For": "192.0.2.60"})
    assert resp.status_code == 429
    assert resp.json()["detail"]["code"] == "account_locked"


def test_inactive_account_is_forbidden(client, create_user):
    user = create_user("frank")
    with SessionLocal() as db:
        set_active(db, user.id, False)
    resp = _login(client, "frank", HEADERS_A)
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "inactive_account"


def test_own_devices_and_heartbeat(client, create_user):
    create_user("gina")
    token = _login(client, "gina", HEADERS_A).json()["token"]

    assert client.post("/devices/heartbeat", headers=_auth(token, HEADERS_A)).status_code == 204
    resp = client.get("/devices", headers=_auth(token, HEADERS_A))
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 1
    assert data["active"] == 1
    assert data["single_device_enabled"] is True
    assert data["devices"][0]["is_current"] is True


def test_admin_routes_require_admin_role(client, create_user):
    create_user("henry")
    token = _login(client, "henry", HEADERS_A).json()["token"]
    resp = client.get("/admin/devices/stats", headers=_auth(token, HEADERS_A))
    assert resp.status_code == 403


def test_admin_reset_releases_device_and_sessions(client, create_user):
    user = create_user("ivy")
    user_token = _login(client, "ivy", HEADERS_A).json()["token"]
    admin_token = _admin_token(client, create_user)
    admin_headers = _auth(admin_token, HEADERS_A)

    stats = client.get("/admin/devices/stats", headers=admin_headers).json()
    assert stats["active_devices"] == 1
    assert stats["users_with_single_device_enabled"] == 1

    listed = client.get(f"/admin/users/{user.id}/devices", headers=admin_headers).json()
    assert listed["count"] == 1

    resp = client.post(
        f"/admin/users/{user.id}/devices/reset",
        json={"reason": "lost laptop"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json() == {"released_devices": 1, "revoked_sessions": 1}

    client.cookies.clear()
    assert client.get("/auth/me", headers=_auth(user_token, HEADERS_A)).status_code == 401
    assert _login(client, "ivy", HEADERS_B).status_code == 200

    events = client.get(
        "/admin/auth-events",
        params={"user_id": user.id, "event_type": "device_deactivated"},
        headers=admin_headers,
    ).json()
    assert events[0]["metadata"]["reason"] == "admin_reset"


def test_admin_can_toggle_enforcement(client, create_user):
    user = create_user("jack", single_device=False)
    admin_headers = _auth(_admin_token(client, create_user), HEADERS_A)

    resp = client.post(
        f"/admin/users/{user.id}/single-device",
        json={"enabled": True},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["single_device_login_enabled"] is True

    assert _login(client, "jack", HEADERS_A).status_code == 200
    assert _login(client, "jack", HEADERS_B).status_code == 409

    client.post(f"/admin/users/{user.id}/single-device", json={"enabled": False}, headers=admin_headers)
    assert _login(client, "jack", HEADERS_B).status_code == 200


def test_admin_purge(client, create_user):
    admin_headers = _auth(_admin_token(client, create_user), HEADERS_A)
    resp = client.post("/admin/devices/purge", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"purged_devices": 0, "expired_sessions": 0}


def test_unknown_user_is_404(client, create_user):
    admin_headers = _auth(_admin_token(client, create_user), HEADERS_A)
    resp = client.get("/admin/users/9999/devices", headers=admin_headers)
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "USER_NOT_FOUND"


def test_unknown_event_type_filter_is_rejected(client, create_user):
    admin_headers = _auth(_admin_token(client, create_user), HEADERS_A)
    resp = client.get("/admin/auth-events", params={"event_type": "password_reset"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "UNKNOWN_EVENT_TYPE"
