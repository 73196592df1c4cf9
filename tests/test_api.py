"""Tests for the local HTTP API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from kef_local.api.main_api import SpeakerAPI
from kef_local.config_loader import DEFAULTS
from kef_local.discovery.models import DiscoveredDevice, DiscoveryResult
from kef_local.live_sync.state import SpeakerStateTracker
from kef_local.speaker.errors import NetworkError, NoSubnetFoundError
from kef_local.speaker.models import PlaybackState, SongInfo, Source, SpeakerEvent


def make_speaker():
    speaker = MagicMock()
    speaker.host = "192.168.1.100"
    speaker.port = 80
    for name in (
        "get_volume", "set_volume", "set_source", "power_on", "shutdown",
        "toggle_play_pause", "next_track", "previous_track",
    ):
        setattr(speaker, name, AsyncMock())
    speaker.get_volume.return_value = 30
    return speaker


class APIHarness:
    def __init__(self, speaker=None, syncing=False):
        self.speaker = speaker
        self.syncing = syncing
        self.discovery = MagicMock()
        self.discovery.discover_with_result = AsyncMock()
        self.state_tracker = SpeakerStateTracker()
        self.api = SpeakerAPI(
            DEFAULTS,
            self.discovery,
            self.state_tracker,
            get_speaker=lambda: self.speaker,
            is_syncing=lambda: self.syncing,
        )
        self.client = TestClient(self.api.app)


@pytest.fixture
def harness():
    return APIHarness(speaker=make_speaker(), syncing=True)


class TestSpeakerRoutes:

    def test_speaker_info(self, harness):
        response = harness.client.get("/api/speaker")
        assert response.status_code == 200
        assert response.json() == {"host": "192.168.1.100", "port": 80}

    def test_no_speaker(self):
        harness = APIHarness(speaker=None)
        assert harness.client.get("/api/speaker").status_code == 503
        assert harness.client.post("/api/speaker/control/next").status_code == 503

    def test_get_volume(self, harness):
        response = harness.client.get("/api/speaker/volume")
        assert response.json() == {"host": "192.168.1.100", "volume": 30}

    def test_set_volume(self, harness):
        response = harness.client.post("/api/speaker/volume", json={"volume": 45})

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        harness.speaker.set_volume.assert_awaited_once_with(45)

    def test_set_volume_out_of_range(self, harness):
        assert harness.client.post("/api/speaker/volume", json={"volume": 150}).status_code == 422
        harness.speaker.set_volume.assert_not_awaited()

    def test_set_source(self, harness):
        response = harness.client.post("/api/speaker/source", json={"source": "optical"})

        assert response.status_code == 200
        harness.speaker.set_source.assert_awaited_once_with(Source.OPTICAL)

    def test_set_invalid_source(self, harness):
        response = harness.client.post("/api/speaker/source", json={"source": "laserdisc"})
        assert response.status_code == 400

    @pytest.mark.parametrize("on,method", [(True, "power_on"), (False, "shutdown")])
    def test_power(self, harness, on, method):
        assert harness.client.post("/api/speaker/power", json={"on": on}).status_code == 200
        getattr(harness.speaker, method).assert_awaited_once()

    @pytest.mark.parametrize("command,method", [
        ("play_pause", "toggle_play_pause"),
        ("next", "next_track"),
        ("previous", "previous_track"),
    ])
    def test_track_control(self, harness, command, method):
        response = harness.client.post(f"/api/speaker/control/{command}")

        assert response.status_code == 200
        assert response.json() == {"host": "192.168.1.100", "command": command, "status": "success"}
        getattr(harness.speaker, method).assert_awaited_once()

    def test_unknown_control(self, harness):
        assert harness.client.post("/api/speaker/control/rewind").status_code == 400

    def test_speaker_error_is_bad_gateway(self, harness):
        harness.speaker.next_track.side_effect = NetworkError("timed out")

        response = harness.client.post("/api/speaker/control/next")

        assert response.status_code == 502
        assert "timed out" in response.json()["detail"]

    def test_state(self, harness):
        harness.state_tracker.apply(SpeakerEvent(
            volume=25,
            source=Source.WIFI,
            playback_state=PlaybackState.PAUSED,
            song_info=SongInfo(title="Unfinished Sympathy"),
        ))

        body = harness.client.get("/api/speaker/state").json()

        assert body["volume"] == 25
        assert body["source"] == "wifi"
        assert body["playback_state"] == "paused"
        assert body["song_info"]["title"] == "Unfinished Sympathy"
        assert body["is_muted"] is None
        assert body["event_count"] == 1
        assert body["last_update"] is not None

    def test_state_before_any_event(self, harness):
        body = harness.client.get("/api/speaker/state").json()
        assert body["event_count"] == 0
        assert body["song_info"] is None


class TestSystemRoutes:

    def test_discovery(self, harness):
        harness.discovery.discover_with_result.return_value = DiscoveryResult(
            devices=[DiscoveredDevice("LivingRoom", "192.168.1.100", 80, "LSXII", None)],
            method="ip_scan",
            duration_seconds=2.3456,
            errors=["mDNS discovery failed: no interface"],
        )

        response = harness.client.get("/api/discovery", params={"timeout": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["method"] == "ip_scan"
        assert body["duration_seconds"] == 2.35
        assert body["devices"][0]["name"] == "LivingRoom"
        assert body["devices"][0]["model"] == "LSXII"
        harness.discovery.discover_with_result.assert_awaited_once_with(3.0)

    def test_discovery_failure(self, harness):
        harness.discovery.discover_with_result.side_effect = NoSubnetFoundError()
        assert harness.client.get("/api/discovery").status_code == 502

    def test_discovery_timeout_validated(self, harness):
        assert harness.client.get("/api/discovery", params={"timeout": 0}).status_code == 422

    @pytest.mark.parametrize("speaker,syncing,status", [
        (None, False, "no_speaker"),
        ("speaker", False, "degraded"),
        ("speaker", True, "healthy"),
    ])
    def test_health(self, speaker, syncing, status):
        harness = APIHarness(speaker=make_speaker() if speaker else None, syncing=syncing)

        body = harness.client.get("/api/system/health").json()

        assert body["status"] == status
        assert body["live_sync_running"] is syncing
        assert body["speaker_host"] == ("192.168.1.100" if speaker else None)
