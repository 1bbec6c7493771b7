# devicegate/services/fingerprint_service.py
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Mapping

from devicegate.utils.request_context import MAX_HEADER_LEN, RequestContext
from devicegate.utils.user_agent import device_display_name, parse_user_agent

FINGERPRINT_LENGTH = 64


def compute_fingerprint(ctx: RequestContext) -> str:
    """Stabile Geräte-Kennung aus User-Agent, Accept-Language, Accept-Encoding und IP.

    Deterministisch: gleiche Eingaben liefern immer denselben Hash. Fehlende
    Header zählen als Leerstring. Die Teile werden längenpräfixiert verkettet,
    damit ("a|b", "c") und ("a", "b|c") nicht kollidieren; die IP steht am Ende.
    """
    parts = (ctx.user_agent or "", ctx.accept_language or "", ctx.accept_encoding or "", ctx.client_ip or "")
    canonical = "".join(f"{len(p)}:{p};" for p in parts)
    return hashlib.sha256(canonical.encode("utf-8", errors="surrogatepass")).hexdigest()


@dataclass(frozen=True)
class DeviceInfo:
    """Geschlossener Satz an Geräte-Feldern, die gespeichert werden."""

    device_name: str
    browser_name: str
    browser_version: str
    platform: str
    device_type: str
    ip_address: str
    user_agent: str
    signals: Mapping[str, str] = field(default_factory=dict)

    def metadata(self) -> dict[str, Any]:
        return dict(self.signals)


def extract_device_info(ctx: RequestContext) -> DeviceInfo:
    user_agent = (ctx.user_agent or "").strip()[:MAX_HEADER_LEN]
    parsed = parse_user_agent(user_agent)
    return DeviceInfo(
        device_name=device_display_name(parsed),
        browser_name=parsed.browser,
        browser_version=parsed.browser_version,
        platform=parsed.platform,
        device_type=parsed.device_type,
        ip_address=ctx.client_ip,
        user_agent=user_agent,
        signals=dict(ctx.signals),
    )
