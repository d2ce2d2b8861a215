from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from tracker import main
from tracker.fetchers.ipdata import UpstreamError
from tracker.main import app, store, visitor_tracker

UA = {"User-Agent": "Mozilla/5.0 (Macintosh)"}


@pytest.fixture(autouse=True)
def _reset(monkeypatch, tmp_path, ipdata_payload):
    """Fresh in-memory store, temp track log and a stubbed enrichment lookup."""
    store._visitors.clear()
    monkeypatch.setattr(store, "_path", None)
    monkeypatch.setattr(main, "TRACK_LOG_FILE", str(tmp_path / "track_log.jsonl"))
    monkeypatch.setattr(visitor_tracker, "api_key", "test-key")
    monkeypatch.setattr(visitor_tracker, "lookup", AsyncMock(return_value=ipdata_payload))
    monkeypatch.setattr(visitor_tracker, "bot_filter_enabled", True)
    monkeypatch.setattr(visitor_tracker, "rate_limit_enabled", True)
    yield
    store._visitors.clear()


# Use TestClient without lifespan (we don't want real HTTP lookups in tests)
client = TestClient(app, raise_server_exceptions=True)


def _track(address="8.8.8.8", headers=None):
    h = {"X-Forwarded-For": address, **UA}
    h.update(headers or {})
    return client.get("/track", headers=h)


def test_root():
    resp = client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["message"] == "API is working! 🎉"
    assert "timestamp" in data
    assert data["status"] == "Server is running smoothly"


def test_track_new_visitor():
    resp = _track()
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Visitor tracked successfully."}
    record = store.find_by_address("8.8.8.8")
    assert record.visit_count == 1
    assert record.geo.country_name == "United States"


def test_track_repeat_within_cooldown_is_rate_limited():
    _track()
    resp = _track()
    assert resp.status_code == 429
    assert resp.json() == {"success": False, "message": "Rate limit exceeded"}
    assert store.find_by_address("8.8.8.8").visit_count == 1


def test_bot_gets_success_shaped_response():
    resp = _track(headers={"User-Agent": "Googlebot/2.1"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Visitor tracked successfully."}
    assert store.count == 0


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(visitor_tracker, "api_key", "")
    resp = _track()
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "API configuration error."}


def test_upstream_failure(monkeypatch):
    monkeypatch.setattr(visitor_tracker, "lookup", AsyncMock(side_effect=UpstreamError("timeout")))
    resp = _track()
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "An error occurred during tracking."}
    assert store.count == 0


def test_unexpected_failure_hides_detail(monkeypatch):
    monkeypatch.setattr(visitor_tracker, "lookup", AsyncMock(side_effect=RuntimeError("db password wrong")))
    resp = _track()
    assert resp.status_code == 500
    assert "password" not in resp.text


def test_forwarded_header_chain():
    resp = client.get("/track", headers={"X-Forwarded-For": "81.2.69.160, 10.0.0.1", **UA})
    assert resp.status_code == 200
    assert store.find_by_address("81.2.69.160") is not None

    resp = client.get(
        "/track",
        headers={"CF-Connecting-IP": "1.1.1.1", "X-Forwarded-For": "81.2.69.161", **UA},
    )
    assert resp.status_code == 200
    assert store.find_by_address("1.1.1.1") is not None
    assert store.find_by_address("81.2.69.161") is None


def test_loopback_caller_tracked_as_fallback():
    resp = _track(address="127.0.0.1")
    assert resp.status_code == 200
    assert store.find_by_address("8.8.8.8") is not None


def test_status_endpoint():
    _track("8.8.8.8")
    _track("1.1.1.1")
    resp = client.get("/api/v1/status")
    assert resp.status_code == 200
    data = resp.json()
    assert "uptime" in data
    assert data["visitors"] == 2
    assert data["visits"] == 2
    assert data["by_country"] == {"US": 2}
    assert data["stages"] == {"bot_filter": True, "rate_limit": True}
    assert data["enrichment_configured"] is True


def test_track_log_records_outcomes():
    _track()
    _track()
    _track(headers={"User-Agent": "curl/8.4.0"})

    events, total = main.track_log.load_page(main.TRACK_LOG_FILE)
    assert total == 3
    assert [e.outcome for e in events] == ["bot_filtered", "rate_limited", "tracked"]
    assert events[2].country == "US"
    assert events[1].status == 429


def test_admin_not_configured(monkeypatch):
    monkeypatch.setattr(main, "ADMIN_USER", "")
    monkeypatch.setattr(main, "ADMIN_PASSWORD", "")
    resp = client.get("/admin/track-log", auth=("admin", "secret"))
    assert resp.status_code == 503


def test_admin_track_log(monkeypatch):
    monkeypatch.setattr(main, "ADMIN_USER", "admin")
    monkeypatch.setattr(main, "ADMIN_PASSWORD", "secret")
    _track()

    assert client.get("/admin/track-log", auth=("admin", "wrong")).status_code == 401

    resp = client.get("/admin/track-log?outcome=tracked", auth=("admin", "secret"))
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert data["events"][0]["outcome"] == "tracked"


def test_missing_user_agent_stored_as_empty_string(monkeypatch):
    monkeypatch.setattr(visitor_tracker, "bot_filter_enabled", False)
    bare = TestClient(app)
    del bare.headers["user-agent"]

    resp = bare.get("/track", headers={"X-Forwarded-For": "8.8.8.8"})
    assert resp.status_code == 200
    assert store.find_by_address("8.8.8.8").user_agent == ""
