import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import build_xmltv, hourly_programmes
from epghub.main import app
from epghub.routers import get_provider_service
from epghub.services.fetch_types import HttpConfig
from epghub.services.provider_service import ProviderService


FEED = build_xmltv(
    channels=[("BBC1.uk", ["BBC One"])],
    programmes=hourly_programmes("BBC1.uk", 4, "Show"),
)
FEED_URL = "http://feeds.test/guide.xml"


@pytest.fixture
def client(memory_store, tmp_path):
    def handler(request):
        if str(request.url) == FEED_URL:
            return httpx.Response(200, text=FEED)
        return httpx.Response(404)

    service = ProviderService(
        memory_store,
        http=HttpConfig(),
        merge_options={
            "report_dir": tmp_path,
            "parse_timeout_seconds": 0,
            "transport": httpx.MockTransport(handler),
        },
    )
    app.dependency_overrides[get_provider_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _refresh(client):
    response = client.post("/providers/p1/refresh", json={"urls": [FEED_URL]})
    assert response.status_code == 200
    return response.json()


def test_root_and_health(client):
    assert client.get("/").json()["service"] == "EPG Hub"
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["scheduler_running"] is False


def test_discover(client):
    response = client.post("/discover", json={"playlist": '#EXTM3U x-tvg-url="http://a/1.xml,http://b/2.xml"'})
    assert response.json() == {"urls": ["http://a/1.xml", "http://b/2.xml"]}


def test_refresh_returns_summary_and_report(client):
    body = _refresh(client)

    assert body["source"] == "urls"
    assert body["programs"] == 4
    assert body["channels"] == 1
    assert body["summary"]["ok"] == 1
    assert body["report"] == [f"OK {FEED_URL} programs=4 channels=1"]


def test_snapshot_info(client):
    assert client.get("/providers/p1/snapshot").status_code == 404

    _refresh(client)
    info = client.get("/providers/p1/snapshot").json()

    assert info["provider_id"] == "p1"
    assert info["programs"] == 4


def test_now_next(client):
    _refresh(client)
    response = client.post(
        "/providers/p1/now-next",
        json={
            "channel": {"name": "BBC One HD", "tvg_id": "BBC1.uk"},
            "at": "2024-03-01T01:30:00Z",
            "timezone": "Europe/London",
        },
    )

    body = response.json()
    assert response.status_code == 200
    assert body["now"]["title"] == "Show 1"
    assert body["now"]["start_time"] == "2024-03-01T01:00:00+00:00"
    assert body["next"]["title"] == "Show 2"


def test_now_next_for_unknown_channel(client):
    _refresh(client)
    response = client.post(
        "/providers/p1/now-next",
        json={"channel": {"name": "ITV2"}, "at": "2024-03-01T01:30:00Z"},
    )
    assert response.json() == {"timezone": "UTC", "now": None, "next": None}


def test_timeline(client):
    _refresh(client)
    response = client.post(
        "/providers/p1/timeline",
        json={
            "channel": {"name": "BBC One"},
            "at": "2024-03-01T01:30:00Z",
            "past_minutes": 30,
            "future_minutes": 60,
        },
    )

    body = response.json()
    assert body["total_programs"] == 2
    assert [item["program"]["title"] for item in body["items"]] == ["Show 1", "Show 2"]
    assert body["items"][0]["progress"] == 50


def test_invalid_timezone_is_rejected(client):
    response = client.post(
        "/providers/p1/now-next",
        json={"channel": {"name": "BBC One"}, "timezone": "Mars/Olympus"},
    )
    assert response.status_code == 422


def test_missing_file_maps_to_download_error(client, tmp_path):
    response = client.post("/providers/p1/refresh", json={"file_path": str(tmp_path / "missing.xml")})

    assert response.status_code == 502
    body = response.json()
    assert body["status"] == "error"
    assert body["error"]["code"] == "DOWNLOAD_FAILED"
    assert body["error"]["context"]["kind"] == "not_found"


def test_non_xmltv_file_maps_to_422(client, tmp_path):
    path = tmp_path / "page.html"
    path.write_text("<html></html>", encoding="utf-8")

    response = client.post("/providers/p1/refresh", json={"file_path": str(path)})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "NOT_XMLTV"


def test_delete_and_notifications(client):
    _refresh(client)
    assert client.delete("/providers/p1").json() == {"status": "deleted", "provider_id": "p1"}
    assert client.get("/providers/p1/snapshot").status_code == 404

    notifications = client.get("/notifications", params={"limit": 50}).json()
    kinds = [n["kind"] for n in notifications]
    assert kinds[0] == "merge_summary"
    assert kinds[-1] == "message"
    assert notifications[-1]["message"] == "Provider guide data deleted"


def test_report_of_last_merge(client):
    assert client.get("/providers/p1/report").json() == {"provider_id": "p1", "lines": []}

    _refresh(client)

    assert client.get("/providers/p1/report").json()["lines"] == [f"OK {FEED_URL} programs=4 channels=1"]


def test_timeline_with_very_wide_window(client):
    _refresh(client)
    request = {
        "channel": {"name": "BBC One"},
        "at": "2024-03-01T01:30:00Z",
        "past_minutes": 1_000_000_000,
        "future_minutes": 1_000_000_000,
    }

    response = client.post("/providers/p1/timeline", json=request)
    assert response.status_code == 200
    assert response.json()["total_programs"] == 4

    request["future_minutes"] = 1_000_000_001
    assert client.post("/providers/p1/timeline", json=request).status_code == 422


def test_refresh_exposes_source_details(client):
    details = _refresh(client)["source_details"]

    assert len(details) == 1
    assert details[0]["source_index"] == 1
    assert details[0]["sanitized_url"] == FEED_URL
    assert details[0]["status"] == "OK"
    assert details[0]["programs_parsed"] == 4
    assert details[0]["duration_seconds"] >= 0
