import pytest

from devicegate.utils.user_agent import device_display_name, parse_user_agent

from conftest import UA_CHROME_WIN, UA_FIREFOX_LINUX, UA_SAFARI_IPHONE


@pytest.mark.parametrize(
    "ua, browser, platform, device_type",
    [
        (UA_CHROME_WIN, "Chrome", "Windows", "desktop"),
        (UA_SAFARI_IPHONE, "Safari", "iOS", "mobile"),
        (UA_FIREFOX_LINUX, "Firefox", "Linux", "desktop"),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36 Edg/120.0.2210.91",
            "Edge",
            "Windows",
            "desktop",
        ),
        (
            "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/119.0.0.0 Safari/537.36",
            "Chrome",
            "Android",
            "tablet",
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/17.2 Safari/605.1.15",
            "Safari",
            "OS X",
            "desktop",
        ),
    ],
)
def test_parse_user_agent(ua, browser, platform, device_type):
    parsed = parse_user_agent(ua)
    assert parsed.browser == browser
    assert parsed.platform == platform
    assert parsed.device_type == device_type


def test_unknown_user_agent():
    parsed = parse_user_agent("")
    assert parsed.browser == "Unknown"
    assert parsed.platform == "Unknown"
    assert parsed.device_type == "desktop"
    assert device_display_name(parsed) == "Unknown on Unknown"


def test_mobile_display_name():
    assert device_display_name(parse_user_agent(UA_SAFARI_IPHONE)) == "Safari on iOS Mobile"
