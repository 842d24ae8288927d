"""User-Agent parsing for the browser/device/OS routing conditions."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import woothee

# woothee reports unidentified fields with this marker
UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class UserAgent:
    browser: Optional[str] = None
    browser_vendor: Optional[str] = None
    browser_version: Optional[str] = None
    device_type: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None


def _known(value: Optional[str]) -> Optional[str]:
    if not value or value == UNKNOWN:
        return None
    return value


@lru_cache(maxsize=1024)
def parse_user_agent(value: Optional[str]) -> UserAgent:
    """Parse a User-Agent string; fields woothee cannot identify are None."""
    if not value:
        return UserAgent()

    parsed = woothee.parse(value)
    return UserAgent(
        browser=_known(parsed.get("name")),
        browser_vendor=_known(parsed.get("vendor")),
        browser_version=_known(parsed.get("version")),
        device_type=_known(parsed.get("category")),
        os=_known(parsed.get("os")),
        os_version=_known(parsed.get("os_version")),
    )
