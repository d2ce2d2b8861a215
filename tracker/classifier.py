from __future__ import annotations

import enum
import re
from typing import Optional

MIN_USER_AGENT_LENGTH = 10
MAX_USER_AGENT_LENGTH = 500


class Verdict(enum.Enum):
    HUMAN = "human"
    BOT = "bot"


# Case-insensitive user-agent patterns, grouped by kind of client
BOT_PATTERNS: dict[str, list[str]] = {
    "search_engine": [
        r"googlebot", r"bingbot", r"slurp", r"duckduckbot", r"baiduspider",
        r"yandexbot", r"facebookexternalhit", r"twitterbot", r"linkedinbot",
    ],
    "seo_monitoring": [
        r"ahrefsbot", r"semrushbot", r"mj12bot", r"dotbot", r"screaming frog",
        r"sitebulb", r"seositemarkup", r"spyfu",
    ],
    "automation": [
        r"bot", r"crawler", r"spider", r"scraper", r"curl", r"wget",
        r"python-requests", r"node-fetch", r"axios", r"postman",
    ],
    "uptime": [
        r"pingdom", r"uptimerobot", r"newrelic", r"monitis", r"site24x7",
    ],
    "security_scanner": [
        r"nessus", r"nmap", r"masscan", r"zap", r"nikto",
    ],
    "headless": [
        r"headlesschrome", r"phantomjs", r"selenium", r"webdriver",
    ],
    "generic": [
        r"preview", r"validator", r"scanner", r"monitor",
    ],
}

# Address prefixes of major cloud / search-engine providers
CLOUD_ADDRESS_PREFIXES: dict[str, list[str]] = {
    "google": [r"64\.233\.", r"66\.249\."],
    "microsoft": [r"207\.46\.", r"40\.77\."],
    "aws": [r"54\.", r"3\.", r"18\."],
    "google_cloud": [r"104\.154\.", r"35\."],
    "azure": [r"13\.", r"20\.", r"52\."],
}

_UA_RE = [
    re.compile(p, re.IGNORECASE) for group in BOT_PATTERNS.values() for p in group
]
_ADDRESS_RE = [
    re.compile(p) for group in CLOUD_ADDRESS_PREFIXES.values() for p in group
]


def matches_bot_pattern(user_agent: str) -> bool:
    return any(r.search(user_agent) for r in _UA_RE)


def is_cloud_address(address: str) -> bool:
    return any(r.match(address) for r in _ADDRESS_RE)


def classify(user_agent: Optional[str], address: str) -> Verdict:
    """Decide whether a request comes from a human or an automated client.

    Rules, first match wins:
      1. missing or empty user agent
      2. user agent matches a cataloged bot pattern
      3. user agent shorter than 10 or longer than 500 characters
      4. address inside a known cloud / crawler prefix
    Anything else is treated as human.
    """
    if not user_agent:
        return Verdict.BOT
    if matches_bot_pattern(user_agent):
        return Verdict.BOT
    if len(user_agent) < MIN_USER_AGENT_LENGTH or len(user_agent) > MAX_USER_AGENT_LENGTH:
        return Verdict.BOT
    if is_cloud_address(address):
        return Verdict.BOT
    return Verdict.HUMAN


def is_bot(user_agent: Optional[str], address: str) -> bool:
    return classify(user_agent, address) is Verdict.BOT
