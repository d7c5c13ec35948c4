#!/usr/bin/env python3
"""
Test the dashboard HTTP API
"""
import json

import pytest
from fastapi.testclient import TestClient

from wpsd_dash.config import Config
from wpsd_dash.hotspot_client import HotspotError, TgifTracker
from wpsd_dash.server import create_app, parse_limit, parse_talkgroup, parse_timeslot
from wpsd_dash.state import TrafficService

HEADER = "M: 2024-01-01 12:00:{:02d}.000 DMR Slot 2, received RF voice header from K6JM to TG 91"


class FakeHotspot:
    def __init__(self):
        self.links = []
        self.unlinks = []
        self.actions = []
        self.fail = False

    async def is_reachable(self):
        return True

    async def last_heard(self, limit=50):
        if self.fail:
            raise HotspotError("HTTP 500")
        return [{"callsign": "K6JM", "ber": 0.1}][:limit]

    async def system_action(self, action):
        self.actions.append(action)
        return {"ok": True}

    async def tgif_link(self, slot, talkgroup):
        if self.fail:
            raise HotspotError("Hotspot returned 401")
        self.links.append((slot, talkgroup))

    async def tgif_unlink(self, slot):
        self.unlinks.append(slot)

    async def tgif_slots(self):
        return "720", None


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.delenv("MMDVM_LOG_DIR", raising=False)
    monkeypatch.delenv("WPSD_DASH_CONFIG", raising=False)
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "paths": {"logDir": str(log_dir), "mmdvmIni": str(tmp_path / "mmdvmhost")},
    }))
    return Config(str(path))


@pytest.fixture
def traffic(config):
    return TrafficService(config.get_log_dir)


@pytest.fixture
def hotspot():
    return FakeHotspot()


@pytest.fixture
def client(config, traffic, hotspot):
    return TestClient(create_app(config, traffic, hotspot, TgifTracker()))


def test_parse_limit():
    assert parse_limit(None) == 50
    assert parse_limit("abc") == 50
    assert parse_limit("0") == 50
    assert parse_limit("1000") == 100
    assert parse_limit("-3") == 1
    assert parse_limit("7") == 7


def test_parse_timeslot_and_talkgroup():
    assert parse_timeslot(1) == 1
    assert parse_timeslot("2") == 2
    assert parse_timeslot("x") == 2
    assert parse_timeslot(5) == 2
    assert parse_talkgroup("91") == "91"
    assert parse_talkgroup(None) == "777"
    assert parse_talkgroup(0) == "777"
    assert parse_talkgroup(100000000) == "777"


def test_live_traffic_empty(client):
    response = client.get("/api/live-traffic")
    assert response.status_code == 200
    assert response.json() == []


def test_live_traffic_newest_first(client, traffic):
    traffic.ingest_lines([HEADER.format(i) for i in range(3)])

    events = client.get("/api/live-traffic").json()
    assert [e["timestamp"] for e in events] == [
        "2024-01-01T12:00:02.000Z", "2024-01-01T12:00:01.000Z", "2024-01-01T12:00:00.000Z",
    ]
    assert events[0]["mode"] == "DMR"
    assert events[0]["callsign"] == "K6JM"
    assert events[0]["timeslot"] == 2

    assert len(client.get("/api/live-traffic?limit=2").json()) == 2
    assert len(client.get("/api/live-traffic?limit=bogus").json()) == 3


def test_live_traffic_limit_cap(client, traffic):
    traffic.ingest_lines([HEADER.format(i % 60) for i in range(150)])
    assert len(client.get("/api/live-traffic?limit=500").json()) == 100
    assert len(client.get("/api/live-traffic").json()) == 50


def test_service_status(client, traffic):
    assert client.get("/api/system/service").json() == {"mmdvmHost": "unknown"}

    traffic.ingest_line(HEADER.format(0))
    data = client.get("/api/system/service").json()
    assert data["mmdvmHost"] == "running"
    assert "lastActivity" in data


def test_service_status_missing_log_dir(tmp_path, monkeypatch, config, hotspot):
    missing = tmp_path / "gone"
    monkeypatch.setenv("MMDVM_LOG_DIR", str(missing))
    client = TestClient(create_app(config, TrafficService(config.get_log_dir), hotspot))

    assert client.get("/api/system/service").json() == {
        "mmdvmHost": "unknown",
        "errorMessage": f"Log dir not found: {missing}",
    }


def test_health(client):
    data = client.get("/api/health").json()
    assert data["ok"] is True
    assert data["timestamp"].endswith("Z")


def test_mmdvm_config_roundtrip(client, config):
    config.get_mmdvm_ini().write_text("[General]\nCallsign=K6JM\nId=3106849\n")

    assert client.get("/api/mmdvm-config").json() == {
        "General": {"Callsign": "K6JM", "Id": 3106849},
    }

    response = client.put("/api/mmdvm-config", json={"General": {"Callsign": "W1AW"}})
    assert response.json() == {"ok": True}
    assert client.get("/api/mmdvm-config").json()["General"] == {"Callsign": "W1AW", "Id": 3106849}


def test_mmdvm_config_missing_file(client):
    response = client.get("/api/mmdvm-config")
    assert response.status_code == 500
    assert "Cannot read" in response.json()["error"]


def test_mmdvm_config_bad_body(client):
    response = client.put("/api/mmdvm-config", content="not json",
                          headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}

    response = client.put("/api/mmdvm-config", json=[1, 2])
    assert response.status_code == 400


def test_tgif_info(client):
    data = client.get("/api/tgif/info").json()
    assert data["dmrId"] == "3221205"
    assert data["wpsdProxyUrl"] == "http://192.168.5.82/mmdvmhost/tgif_manager.php"
    assert data["statusUrl"] == "http://192.168.5.82/mmdvmhost/tgif_links.php"


def test_tgif_link_and_status(client, hotspot):
    response = client.post("/api/tgif/link", json={"tg": "91", "timeslot": 1})
    assert response.json() == {"ok": True, "tg": "91", "slot": 1}
    assert hotspot.links == [(1, "91")]

    status = client.get("/api/tgif/status").json()
    assert status["slot1"] == "720"
    assert status["slot2"] is None
    assert status["lastLinkedSlot1"] == "91"
    assert status["lastLinkedSlot2"] is None

    response = client.post("/api/tgif/unlink", json={"timeslot": 1})
    assert response.json() == {"ok": True, "slot": 1}
    assert client.get("/api/tgif/status").json()["lastLinkedSlot1"] is None


def test_tgif_link_defaults(client, hotspot):
    response = client.post("/api/tgif/link", json={})
    assert response.json() == {"ok": True, "tg": "777", "slot": 2}


def test_tgif_link_hotspot_error(client, hotspot):
    hotspot.fail = True
    response = client.post("/api/tgif/link", json={"tg": 91})
    assert response.status_code == 500
    assert response.json() == {"error": "Hotspot returned 401"}


def test_wpsd_last_heard(client, hotspot):
    assert client.get("/api/wpsd/last-heard").json() == [{"callsign": "K6JM", "ber": 0.1}]
    hotspot.fail = True
    assert client.get("/api/wpsd/last-heard").status_code == 500


def test_wpsd_action(client, hotspot):
    assert client.post("/api/wpsd/action", json={"action": "get_ip"}).json() == {"ok": True}
    assert hotspot.actions == ["get_ip"]

    response = client.post("/api/wpsd/action", json={"action": "format_disk"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid action"}
    assert hotspot.actions == ["get_ip"]


def test_dashboard_config(client, config):
    assert client.get("/api/config").json() == {"wpsdHost": "http://192.168.5.82", "reachable": True}

    response = client.put("/api/config", json={"wpsdHost": " http://10.0.0.5/ "})
    assert response.json() == {"ok": True, "wpsdHost": "http://10.0.0.5"}
    assert json.loads(config.config_path.read_text())["wpsd"]["host"] == "http://10.0.0.5"


def test_dashboard_config_validation(client):
    response = client.put("/api/config", json={})
    assert response.json() == {"error": "wpsdHost required"}

    response = client.put("/api/config", json={"wpsdHost": "10.0.0.5"})
    assert response.status_code == 400
    assert response.json() == {"error": "wpsdHost must start with http:// or https://"}

    response = client.put("/api/config", json={"wpsdHost": "http://" + "a" * 2048})
    assert response.status_code == 400


def test_unknown_route(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not found"}
