"""Shared test fixtures."""

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Settings werden beim Import gelesen, daher vor allen devicegate-Imports setzen
_TMP_DIR = Path(tempfile.mkdtemp(prefix="devicegate-tests-"))
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef")
os.environ.setdefault("DB_URL", f"sqlite:///{_TMP_DIR / 'app.db'}")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("TRUSTED_PROXIES", '["testclient"]')

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from devicegate.db.database import init_models  # noqa: E402
from devicegate.services.account_lock_service import AccountLockGuard, LockConfig  # noqa: E402
from devicegate.services.attempt_limiter import AttemptLimiter, MemoryCounterStore  # noqa: E402
from devicegate.services.audit_log_service import AuditLog  # noqa: E402
from devicegate.services.auth_service import AuthenticationGate, GatePolicy, register_user  # noqa: E402
from devicegate.services.device_registry import DeviceRegistry  # noqa: E402
from devicegate.services.session_service import SessionBinder  # noqa: E402
from devicegate.utils.clock import Clock  # noqa: E402
from devicegate.utils.locks import KeyedLock  # noqa: E402
from devicegate.utils.request_context import RequestContext  # noqa: E402

PASSWORD = "correct horse battery staple"

UA_CHROME_WIN = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.109 Safari/537.36"
)
UA_SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)
UA_FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"


class FakeClock(Clock):
    """Steuerbare Zeit für Fenster, Sperren und Idle-Timeouts."""

    def __init__(self, start: datetime = datetime(2026, 1, 5, 9, 0, 0)):
        self._now = start
        self._mono = 1_000.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._mono += seconds


def make_ctx(user_agent=UA_CHROME_WIN, ip="203.0.113.10", **signals) -> RequestContext:
    return RequestContext(
        user_agent=user_agent,
        accept_language="de-DE,de;q=0.9,en;q=0.8",
        accept_encoding="gzip, deflate, br",
        client_ip=ip,
        signals=signals,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_models(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def audit(session_factory, clock):
    return AuditLog(session_factory, clock=clock)


@pytest.fixture
def counter_store(clock):
    return MemoryCounterStore(clock)


@pytest.fixture
def admission_locks():
    return KeyedLock()


@pytest.fixture
def lock_config():
    return LockConfig(threshold=5, lock_duration_seconds=15 * 60)


@pytest.fixture
def make_gate(session_factory, audit, counter_store, clock, admission_locks, lock_config):
    """Baut ein AuthenticationGate; jede Instanz mit eigener DB-Session."""
    opened = []

    def _make(db=None, *, audit_log=None):
        if db is None:
            db = session_factory()
            opened.append(db)
        registry = DeviceRegistry(db, audit=audit_log or audit, clock=clock, locks=admission_locks)
        return AuthenticationGate(
            db=db,
            limiter=AttemptLimiter(counter_store, clock),
            lock_guard=AccountLockGuard(db, lock_config, clock),
            registry=registry,
            sessions=SessionBinder(db, registry, clock=clock, idle_minutes=60),
            audit=audit_log or audit,
            policy=GatePolicy(rate_limit_attempts=5, rate_limit_decay_seconds=60),
            clock=clock,
        )

    yield _make
    for s in opened:
        s.close()


@pytest.fixture
def gate(make_gate, db):
    return make_gate(db)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(*, single_device=True, is_active=True, role_id=1, password=PASSWORD, username=None):
        counter["n"] += 1
        name = username or f"user{counter['n']}"
        user = register_user(
            db,
            username=name,
            email=f"{name}@example.com",
            password=password,
            role_id=role_id,
            single_device_login_enabled=single_device,
        )
        if not is_active:
            user.is_active = False
            db.commit()
        return user

    return _make
