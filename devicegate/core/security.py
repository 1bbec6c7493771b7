# devicegate/core/security.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import jwt

# Passwörter: bevorzugt Argon2, Alt-Hashes (bcrypt_sha256) bleiben gültig
from passlib.hash import bcrypt_sha256, argon2

from devicegate.core.config import settings

# =============================
# 🔐 Passwort-Hashing
# =============================

# bcrypt hat ein 72-Byte-Limit; wir kappen auf 64 Zeichen für bcrypt.
MAX_PWD_LEN_BCRYPT_SAFE = 64

PASSWORD_SCHEME = settings.PASSWORD_SCHEME


def _scheme_of(hash_str: str) -> str:
    if not hash_str:
        return "unknown"
    h = hash_str.lower()
    if h.startswith("$argon2"):                  # z. B. $argon2id$...
        return "argon2"
    if h.startswith("$bcrypt-sha256$"):         # passlib's bcrypt_sha256
        return "bcrypt"
    if h.startswith("$2a$") or h.startswith("$2b$") or h.startswith("$2y$"):
        return "bcrypt"
    return "unknown"


def hash_password(password: str) -> str:
    """
    Erzeugt einen Passwort-Hash.
    - Standard: Argon2id
    - Alternativ: bcrypt_sha256 (PASSWORD_SCHEME="bcrypt")
    """
    if PASSWORD_SCHEME == "argon2":
        return argon2.using(
            type="ID",
            time_cost=2,
            memory_cost=102_400,  # ~100 MiB
            parallelism=8,
        ).hash(password)
    return bcrypt_sha256.hash(password[:MAX_PWD_LEN_BCRYPT_SAFE])


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verifiziert ein Passwort gegen einen gespeicherten Hash.
    Fehler beim Verifizieren zählen als "falsch" und werden nicht weitergereicht.
    """
    if not password_hash:
        return False
    scheme = _scheme_of(password_hash)
    try:
        if scheme == "argon2":
            return argon2.verify(password, password_hash)
        if scheme == "bcrypt":
            return bcrypt_sha256.verify(password[:MAX_PWD_LEN_BCRYPT_SAFE], password_hash)
        return False
    except (ValueError, TypeError):
        return False


# Wird für unbekannte Identitäten verifiziert, damit die Antwortzeit nicht
# verrät, ob ein Account existiert.
_DUMMY_HASH: Optional[str] = None


def dummy_verify(password: str) -> None:
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_password("devicegate-dummy-password")
    verify_password(password, _DUMMY_HASH)


# =============================
# 🪙 JWT Service (Auth Tokens)
# =============================

ALGORITHM = "HS256"


class JWTService:
    def __init__(self, secret: str, algorithm: str = ALGORITHM):
        self.secret = secret
        self.algorithm = algorithm

    def create_token(
        self,
        subject: str | int,
        expires_delta: timedelta,
        claims: Optional[dict[str, Any]] = None,
    ) -> str:
        """JWT erstellen (mit Ablaufzeit, Subject und optionalen Claims)."""
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": str(subject),
            "iat": int(now.timestamp()),
            "exp": int((now + expires_delta).timestamp()),
        }
        if claims:
            payload.update(claims)
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode_token(self, token: str) -> dict[str, Any]:
        """JWT entschlüsseln und validieren."""
        return jwt.decode(token, self.secret, algorithms=[self.algorithm])


# Globale Instanz für die gesamte App
jwt_service = JWTService(settings.SECRET_KEY)
