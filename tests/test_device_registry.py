"""Lebenszyklus der Geräte und "höchstens ein aktives Gerät pro User"."""

import pytest
from sqlalchemy.exc import IntegrityError

from devicegate.core.errors import DeviceInvariantError
from devicegate.models.user_device import UserDevice
from devicegate.repositories import auth_event_repo
from devicegate.services.device_registry import DEVICE_BLOCKED, DeviceRegistry
from devicegate.services.fingerprint_service import compute_fingerprint, extract_device_info

from conftest import UA_CHROME_WIN, UA_SAFARI_IPHONE, make_ctx

CTX_A = make_ctx(UA_CHROME_WIN, ip="203.0.113.10", timezone="Europe/Berlin")
CTX_B = make_ctx(UA_SAFARI_IPHONE, ip="198.51.100.20")
FP_A = compute_fingerprint(CTX_A)
FP_B = compute_fingerprint(CTX_B)


@pytest.fixture
def registry(db, audit, clock, admission_locks):
    return DeviceRegistry(db, audit=audit, clock=clock, locks=admission_locks)


def _register(registry, db, user, ctx, session_id):
    device = registry.register(user, compute_fingerprint(ctx), extract_device_info(ctx), session_id)
    db.commit()
    return device


def test_first_device_is_allowed_and_registered(registry, db, make_user, clock):
    user = make_user()
    assert registry.can_login_from_device(user, FP_A).allowed

    device = _register(registry, db, user, CTX_A, "sess-a")
    assert device.is_active
    assert device.active_owner_id == user.id
    assert device.session_id == "sess-a"
    assert device.fingerprint == FP_A
    assert device.browser_name == "Chrome"
    assert device.device_metadata == {"timezone": "Europe/Berlin"}
    assert device.last_activity_at == clock.now()
    assert registry.active_device_for(user).id == device.id


def test_other_device_is_blocked_while_one_is_active(registry, db, make_user):
    user = make_user()
    device = _register(registry, db, user, CTX_A, "sess-a")

    decision = registry.can_login_from_device(user, FP_B)
    assert not decision.allowed
    assert decision.reason == DEVICE_BLOCKED
    assert decision.blocking_device.id == device.id

    # Dasselbe Gerät darf sich erneut anmelden
    assert registry.can_login_from_device(user, FP_A).allowed


def test_relogin_from_same_device_reuses_row(registry, db, make_user, clock):
    user = make_user()
    first = _register(registry, db, user, CTX_A, "sess-1")
    clock.advance(30)
    second = _register(registry, db, user, CTX_A, "sess-2")

    assert second.id == first.id
    assert second.session_id == "sess-2"
    assert len(registry.list_devices_for_user(user)) == 1


def test_register_refuses_second_active_device(registry, db, make_user):
    user = make_user()
    _register(registry, db, user, CTX_A, "sess-a")
    with pytest.raises(DeviceInvariantError):
        registry.register(user, FP_B, extract_device_info(CTX_B), "sess-b")
    db.rollback()
    assert registry.active_device_for(user).fingerprint == FP_A


def test_logout_frees_slot_for_another_device(registry, db, make_user):
    user = make_user()
    a = _register(registry, db, user, CTX_A, "sess-a")

    released = registry.deactivate_by_session("sess-a")
    assert released.id == a.id
    assert not released.is_active
    assert released.active_owner_id is None
    assert released.session_id is None
    assert registry.active_device_for(user) is None

    assert registry.can_login_from_device(user, FP_B).allowed
    b = _register(registry, db, user, CTX_B, "sess-b")
    assert registry.active_device_for(user).id == b.id

    # A bleibt inaktiv und wird nicht gelöscht
    devices = {d.id: d for d in registry.list_devices_for_user(user)}
    assert set(devices) == {a.id, b.id}
    assert not devices[a.id].is_active


def test_deactivate_by_unknown_session_is_noop(registry, db, make_user):
    user = make_user()
    _register(registry, db, user, CTX_A, "sess-a")
    assert registry.deactivate_by_session("does-not-exist") is None
    assert registry.deactivate_by_session("") is None
    assert registry.active_device_for(user) is not None


def test_inactive_device_is_reactivated_in_place(registry, db, make_user):
    user = make_user()
    a = _register(registry, db, user, CTX_A, "sess-a")
    registry.deactivate_by_session("sess-a")

    again = _register(registry, db, user, CTX_A, "sess-a2")
    assert again.id == a.id
    assert again.is_active
    assert again.active_owner_id == user.id


def test_touch_activity_only_updates_active_devices(registry, db, make_user, clock):
    user = make_user()
    device = _register(registry, db, user, CTX_A, "sess-a")
    clock.advance(120)

    assert registry.touch_activity(user, FP_A)
    assert registry.active_device_for(user).last_activity_at == clock.now()

    registry.deactivate_by_session("sess-a")
    clock.advance(120)
    assert not registry.touch_activity(user, FP_A)
    refreshed = registry.device_for(user, FP_A)
    assert refreshed.id == device.id
    assert not refreshed.is_active

    # Unbekanntes Gerät: kein neuer Eintrag
    assert not registry.touch_activity(user, FP_B)
    assert registry.device_for(user, FP_B) is None


def test_purge_only_removes_old_inactive_devices(registry, db, make_user, clock):
    old_user, active_user = make_user(), make_user()
    _register(registry, db, old_user, CTX_A, "sess-old")
    registry.deactivate_by_session("sess-old")
    _register(registry, db, active_user, CTX_B, "sess-active")

    clock.advance(31 * 24 * 3600)
    assert registry.purge_inactive(30 * 24 * 3600) == 1
    assert registry.device_for(old_user, FP_A) is None
    assert registry.active_device_for(active_user) is not None


def test_purge_keeps_recently_deactivated_devices(registry, db, make_user, clock):
    user = make_user()
    _register(registry, db, user, CTX_A, "sess-a")
    clock.advance(29 * 24 * 3600)
    registry.deactivate_by_session("sess-a")
    clock.advance(2 * 24 * 3600)
    assert registry.purge_inactive(30 * 24 * 3600) == 0


def test_enforcement_disabled_always_allows(registry, db, make_user):
    user = make_user(single_device=False)
    assert registry.can_login_from_device(user, FP_A).allowed
    assert registry.can_login_from_device(user, FP_B).allowed


def test_reset_releases_devices_and_records_reason(registry, db, make_user, session_factory):
    user = make_user()
    _register(registry, db, user, CTX_A, "sess-a")

    released = registry.reset_user_devices(user, reason="lost phone")
    assert len(released) == 1
    assert registry.active_device_for(user) is None
    assert user.device_reset_reason == "lost phone"
    assert user.device_reset_at is not None

    with session_factory() as s:
        events = auth_event_repo.list_events(s, actor_user_id=user.id, event_type="device_deactivated")
    assert events[0].event_metadata["reason"] == "admin_reset"


def test_statistics(registry, db, make_user, clock):
    u1, u2, u3 = make_user(), make_user(), make_user(single_device=False)
    _register(registry, db, u1, CTX_A, "s1")
    _register(registry, db, u2, CTX_B, "s2")
    clock.advance(10 * 60)
    registry.touch_activity(u2, FP_B)
    registry.deactivate_by_session("s1")

    stats = registry.statistics(online_minutes=5)
    assert stats == {
        "total_devices": 2,
        "active_devices": 1,
        "online_devices": 1,
        "inactive_devices": 1,
        "users_with_single_device_enabled": 2,
    }
    assert registry.list_active_devices() == 1


def test_database_rejects_two_active_devices(db, make_user):
    user = make_user()
    for fp in ("a" * 64, "b" * 64):
        db.add(UserDevice(user_id=user.id, fingerprint=fp, is_active=True, active_owner_id=user.id))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_inconsistent_rows_raise_instead_of_picking_one(registry, db, make_user):
    user = make_user()
    # Zustand, den nur ein Bug erzeugen kann: zwei aktive Geräte ohne Owner-Spalte
    for fp in ("a" * 64, "b" * 64):
        db.add(UserDevice(user_id=user.id, fingerprint=fp, is_active=True, active_owner_id=None))
    db.commit()

    with pytest.raises(DeviceInvariantError):
        registry.can_login_from_device(user, "c" * 64)
