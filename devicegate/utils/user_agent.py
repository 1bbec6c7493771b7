# devicegate/utils/user_agent.py
from __future__ import annotations

import re
from dataclasses import dataclass

# Reihenfolge ist wichtig: Edge/Opera/Samsung melden sich zusätzlich als Chrome,
# Chrome zusätzlich als Safari.
_BROWSERS: list[tuple[str, re.Pattern[str]]] = [
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/([\d.]+)")),
    ("Opera", re.compile(r"(?:OPR|Opera)/([\d.]+)")),
    ("Samsung Internet", re.compile(r"SamsungBrowser/([\d.]+)")),
    ("Firefox", re.compile(r"(?:Firefox|FxiOS)/([\d.]+)")),
    ("Chrome", re.compile(r"(?:Chrome|CriOS)/([\d.]+)")),
    ("Safari", re.compile(r"Version/([\d.]+).*Safari/")),
    ("IE", re.compile(r"(?:MSIE |Trident/.*rv:)([\d.]+)")),
]

_PLATFORMS: list[tuple[str, re.Pattern[str]]] = [
    ("Windows", re.compile(r"Windows NT")),
    ("iOS", re.compile(r"iPhone|iPad|iPod")),
    ("Android", re.compile(r"Android")),
    ("ChromeOS", re.compile(r"CrOS")),
    ("OS X", re.compile(r"Macintosh|Mac OS X")),
    ("Linux", re.compile(r"Linux")),
]

_TABLET = re.compile(r"iPad|Tablet|PlayBook|Silk|Kindle|(Android(?!.*Mobile))")
_MOBILE = re.compile(r"Mobile|iPhone|iPod|Android.*Mobile|Windows Phone|BlackBerry|Opera Mini")


@dataclass(frozen=True)
class ParsedUserAgent:
    browser: str
    browser_version: str
    platform: str
    device_type: str  # desktop | mobile | tablet


def parse_user_agent(user_agent: str) -> ParsedUserAgent:
    ua = user_agent or ""

    browser, version = "Unknown", ""
    for name, pattern in _BROWSERS:
        m = pattern.search(ua)
        if m:
            browser, version = name, m.group(1)
            break

    platform = "Unknown"
    for name, pattern in _PLATFORMS:
        if pattern.search(ua):
            platform = name
            break

    if _TABLET.search(ua):
        device_type = "tablet"
    elif _MOBILE.search(ua):
        device_type = "mobile"
    else:
        device_type = "desktop"

    return ParsedUserAgent(browser=browser, browser_version=version[:32], platform=platform, device_type=device_type)


def device_display_name(parsed: ParsedUserAgent) -> str:
    if parsed.device_type == "mobile":
        return f"{parsed.browser} on {parsed.platform} Mobile"
    if parsed.device_type == "tablet":
        return f"{parsed.browser} on {parsed.platform} Tablet"
    return f"{parsed.browser} on {parsed.platform}"
