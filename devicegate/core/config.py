# devicegate/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,  # .env keys dürfen groß/klein geschrieben sein
        extra="forbid",        # nur bekannte Variablen erlaubt
    )

    # ------------------------------------------------------------
    # 🧭 Allgemeine App-Einstellungen
    # ------------------------------------------------------------
    APP_NAME: str = "DeviceGate"
    APP_ENV: str = "development"
    SECRET_KEY: str = Field(..., min_length=16)
    LOG_LEVEL: str = "INFO"

    # Token-/Session-Laufzeit (gleichzeitig Idle-Timeout der Sessions)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # "argon2" | "bcrypt"
    PASSWORD_SCHEME: str = "argon2"

    # ------------------------------------------------------------
    # 🗄️ Datenbank
    # ------------------------------------------------------------
    DB_URL: str

    # ------------------------------------------------------------
    # 🚦 Login-Schutz
    # ------------------------------------------------------------
    # Versuche pro Client-IP innerhalb des Decay-Fensters
    LOGIN_RATE_LIMIT_ATTEMPTS: int = 5
    LOGIN_RATE_LIMIT_DECAY_SECONDS: int = 60

    # Aufeinanderfolgende Fehlversuche pro Account bis zur Sperre
    ACCOUNT_LOCK_THRESHOLD: int = 5
    ACCOUNT_LOCK_MINUTES: int = 15

    # X-Forwarded-For wird nur ausgewertet, wenn der direkte Peer hier steht.
    # Leer = Header ignorieren, Peer-Adresse zählt.
    TRUSTED_PROXIES: list[str] = []

    # ------------------------------------------------------------
    # 📱 Geräte
    # ------------------------------------------------------------
    DEVICE_RETENTION_DAYS: int = 30
    DEVICE_ONLINE_MINUTES: int = 5
    DEVICE_CLEANUP_INTERVAL_SECONDS: int = 24 * 60 * 60

    # ------------------------------------------------------------
    # 🔐 Rollen
    # ------------------------------------------------------------
    ADMIN_ROLE_ID: int = 9

    @field_validator("PASSWORD_SCHEME")
    @classmethod
    def _validate_password_scheme(cls, v: str) -> str:
        v = (v or "").lower().strip()
        if v not in {"argon2", "bcrypt"}:
            raise ValueError("PASSWORD_SCHEME must be 'argon2' or 'bcrypt'")
        return v

    @field_validator(
        "LOGIN_RATE_LIMIT_ATTEMPTS",
        "LOGIN_RATE_LIMIT_DECAY_SECONDS",
        "ACCOUNT_LOCK_THRESHOLD",
        "ACCOUNT_LOCK_MINUTES",
    )
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


# ------------------------------------------------------------
# Globale Settings-Instanz
# ------------------------------------------------------------
settings = Settings()
