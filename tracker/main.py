from __future__ import annotations

import logging
import secrets
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from tracker import track_log
from tracker.config import (
    ADMIN_PASSWORD,
    ADMIN_USER,
    APP_VERSION,
    BOT_FILTER_ENABLED,
    IPDATA_API_KEY,
    RATE_LIMIT_ENABLED,
    TRACK_LOG_FILE,
    VISITOR_STORE_FILE,
)
from tracker.fetchers import ipdata
from tracker.store import VisitorStore
from tracker.tracking import Outcome, VisitorTracker, normalize_address

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# httpx logs full request URLs at INFO, and the ipdata key travels in the query string
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

_start_time: float = 0.0
_http_client: httpx.AsyncClient | None = None  # set during lifespan


async def _ipdata_lookup(address: str, api_key: str) -> dict:
    if _http_client is None:
        raise ipdata.UpstreamError("HTTP client not ready")
    return await ipdata.lookup(_http_client, address, api_key)


store = VisitorStore(VISITOR_STORE_FILE or None)
visitor_tracker = VisitorTracker(
    store,
    _ipdata_lookup,
    api_key=IPDATA_API_KEY,
    bot_filter_enabled=BOT_FILTER_ENABLED,
    rate_limit_enabled=RATE_LIMIT_ENABLED,
)

# Outcome -> (HTTP status, response message)
_RESPONSES: dict[Outcome, tuple[int, str]] = {
    Outcome.TRACKED: (200, "Visitor tracked successfully."),
    Outcome.BOT_FILTERED: (200, "Visitor tracked successfully."),
    Outcome.RATE_LIMITED: (429, "Rate limit exceeded"),
    Outcome.CONFIG_ERROR: (500, "API configuration error."),
    Outcome.UPSTREAM_ERROR: (500, "An error occurred during tracking."),
    Outcome.FAILED: (500, "An error occurred during tracking."),
}

# Admin auth
_http_basic = HTTPBasic(auto_error=True)


def _require_admin(credentials: HTTPBasicCredentials = Depends(_http_basic)):
    if not ADMIN_USER or not ADMIN_PASSWORD:
        raise HTTPException(status_code=503, detail="Admin not configured: set ADMIN_USER and ADMIN_PASSWORD")
    ok = secrets.compare_digest(credentials.username.encode(), ADMIN_USER.encode()) and \
         secrets.compare_digest(credentials.password.encode(), ADMIN_PASSWORD.encode())
    if not ok:
        raise HTTPException(
            status_code=401,
            headers={"WWW-Authenticate": "Basic"},
        )


def client_address(request: Request) -> str:
    """Caller address from the proxy-forwarded headers, falling back to the peer."""
    # CF-Connecting-IP is the real client IP when behind Cloudflare
    cf_ip = request.headers.get("cf-connecting-ip", "").strip()
    xff = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    return cf_ip or xff or (request.client.host if request.client else "unknown")


def _uptime_str() -> str:
    elapsed = time.monotonic() - _start_time
    days = int(elapsed // 86400)
    hours = int((elapsed % 86400) // 3600)
    if days > 0:
        return f"{days}d {hours}h"
    minutes = int((elapsed % 3600) // 60)
    return f"{hours}h {minutes}m"


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _start_time, _http_client

    _start_time = time.monotonic()

    if not VISITOR_STORE_FILE:
        logger.error("VISITOR_STORE_FILE is not set; visitors are kept in memory only")
    else:
        try:
            store.load()
        except Exception:
            logger.exception("Failed to load visitor log from %s", VISITOR_STORE_FILE)
    if not IPDATA_API_KEY:
        logger.error("IPDATA_API_KEY is not set; new visitors cannot be tracked")

    async with httpx.AsyncClient() as client:
        _http_client = client
        try:
            yield
        finally:
            _http_client = None


app = FastAPI(title="Visitor Tracker", version=APP_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return JSONResponse(
        content={
            "success": True,
            "message": "API is working! 🎉",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": "Server is running smoothly",
        }
    )


@app.get("/track")
async def track(request: Request):
    t0 = time.monotonic()
    req_time = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    address = client_address(request)

    outcome = await visitor_tracker.handle(address, request.headers.get("user-agent", ""))
    status, message = _RESPONSES[outcome]

    country = ""
    if outcome is Outcome.TRACKED:
        record = store.find_by_address(normalize_address(address))
        if record is not None:
            country = record.geo.country_code or ""
    track_log.record(TRACK_LOG_FILE, track_log.TrackEvent(
        time=req_time,
        outcome=outcome.value,
        status=status,
        duration_ms=int((time.monotonic() - t0) * 1000),
        country=country,
    ))

    return JSONResponse(
        status_code=status,
        content={"success": outcome.acknowledged, "message": message},
    )


@app.api_route("/api/v1/status", methods=["GET", "HEAD"])
async def get_status():
    summary = store.summary()
    return JSONResponse(
        content={
            "uptime": _uptime_str(),
            "version": APP_VERSION,
            "visitors": summary["visitors"],
            "visits": summary["visits"],
            "by_country": summary["by_country"],
            "stages": {
                "bot_filter": visitor_tracker.bot_filter_enabled,
                "rate_limit": visitor_tracker.rate_limit_enabled,
            },
            "enrichment_configured": bool(visitor_tracker.api_key),
        }
    )


@app.get("/admin/track-log", dependencies=[Depends(_require_admin)])
async def admin_track_log(
    page: int = Query(1, ge=1),
    outcome: str = Query(""),
):
    events, total = track_log.load_page(TRACK_LOG_FILE, page=page, outcome=outcome)
    return JSONResponse(
        content={
            "page": page,
            "page_size": track_log.PAGE_SIZE,
            "total": total,
            "events": [asdict(e) for e in events],
        }
    )
