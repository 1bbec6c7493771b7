# devicegate/main.py
from __future__ import annotations

# --- Framework / Utils ---
import asyncio
import logging

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

# --- Config / DB Bootstrap ---
from devicegate.core.config import settings
from devicegate.db.database import init_models
from devicegate.services.device_maintenance_service import start_device_cleanup_task

# --- API-Router (JSON) ---
from devicegate.api.routes import (
    admin as admin_routes,
    auth as auth_routes,
    devices as devices_routes,
)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("devicegate")


# =============================================================================
# App-Instanz
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url=None,
    openapi_url="/openapi.json",
)

_background: set[asyncio.Task] = set()


# =============================================================================
# Startup: Models registrieren, Wartung starten
# =============================================================================
@app.on_event("startup")
async def on_startup() -> None:
    init_models()
    if settings.APP_ENV != "test":
        task = start_device_cleanup_task()
        _background.add(task)
        task.add_done_callback(_background.discard)
    logger.info("%s gestartet (env=%s)", settings.APP_NAME, settings.APP_ENV)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    for task in list(_background):
        task.cancel()


# =============================================================================
# Router registrieren
# =============================================================================
app.include_router(auth_routes.router, prefix="/auth")
app.include_router(devices_routes.router)             # /devices/...
app.include_router(admin_routes.router)               # /admin/...


@app.get("/health", include_in_schema=False)
def health() -> dict:
    return {"status": "ok"}


# =============================================================================
# OpenAPI: Bearer-Auth global aktivieren
# =============================================================================
def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Single-Device-Login und Geräteverwaltung",
        routes=app.routes,
    )

    openapi_schema.setdefault("components", {}).setdefault("securitySchemes", {})
    openapi_schema["components"]["securitySchemes"]["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }

    # Global Security
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi
