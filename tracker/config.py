from __future__ import annotations

import os


def _flag(name: str, default: str = "1") -> bool:
    return os.getenv(name, default).strip().lower() not in ("0", "false", "no", "off", "")


APP_VERSION = "1.0.0"

IPDATA_BASE_URL = os.getenv("IPDATA_BASE_URL", "https://api.ipdata.co").rstrip("/")
IPDATA_API_KEY = os.getenv("IPDATA_API_KEY", "")

VISITOR_STORE_FILE = os.getenv("VISITOR_STORE_FILE", "/data/visitors.jsonl")
TRACK_LOG_FILE = os.getenv("TRACK_LOG_FILE", "/data/track_log.jsonl")

# Optional pipeline stages
BOT_FILTER_ENABLED = _flag("BOT_FILTER_ENABLED")
RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED")

MIN_VISIT_INTERVAL_MS = 5000  # cooldown between two counted visits

# Loopback callers (local testing) are tracked as this public address
LOCAL_FALLBACK_ADDRESS = "8.8.8.8"

SERVER_HOST = "0.0.0.0"
SERVER_PORT = int(os.getenv("PORT", "8080"))

ADMIN_USER = os.getenv("ADMIN_USER", "")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")
