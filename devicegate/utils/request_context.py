# devicegate/utils/request_context.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from starlette.requests import Request

from devicegate.core.config import settings

# Zusätzliche Client-Signale, die als Metadaten mitgespeichert werden.
# Alles andere wird verworfen.
ADVISORY_HEADERS: dict[str, str] = {
    "screen-resolution": "screen_resolution",
    "timezone": "timezone",
    "x-device-guid": "device_guid",
    "x-device-uuid": "device_uuid",
    "x-device-model": "device_model",
}

# Obergrenze für gespeicherte Header-Werte
MAX_HEADER_LEN = 512


@dataclass(frozen=True)
class RequestContext:
    """Read-only Sicht auf die Request-Metadaten, die der Login braucht."""

    user_agent: str = ""
    accept_language: str = ""
    accept_encoding: str = ""
    client_ip: str = ""
    signals: Mapping[str, str] = field(default_factory=dict)


def _clip(value: str | None) -> str:
    return (value or "").strip()[:MAX_HEADER_LEN]


def get_client_ip(request: Request) -> str:
    """
    Peer-Adresse, oder der letzte nicht vertrauenswürdige Hop aus
    X-Forwarded-For, falls der Peer in ``TRUSTED_PROXIES`` steht.
    """
    peer = str(request.client.host) if request.client and request.client.host else "unknown"
    trusted = settings.TRUSTED_PROXIES
    if peer not in trusted:
        return peer

    hops = [h.strip() for h in request.headers.get("x-forwarded-for", "").split(",") if h.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return hops[0] if hops else peer


def context_from_request(request: Request, extra_signals: Mapping[str, str] | None = None) -> RequestContext:
    signals: dict[str, str] = {}
    for header, key in ADVISORY_HEADERS.items():
        value = _clip(request.headers.get(header))
        if value:
            signals[key] = value
    for key, value in (extra_signals or {}).items():
        if key in ADVISORY_HEADERS.values() and value:
            signals[key] = _clip(str(value))

    # Fingerprint-Header unverändert, gekürzt wird erst beim Speichern
    return RequestContext(
        user_agent=request.headers.get("user-agent", ""),
        accept_language=request.headers.get("accept-language", ""),
        accept_encoding=request.headers.get("accept-encoding", ""),
        client_ip=get_client_ip(request),
        signals=signals,
    )
