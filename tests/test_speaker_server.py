"""Tests for the server orchestrator: speaker resolution and the live sync service."""

import asyncio
import copy
from unittest.mock import AsyncMock, MagicMock

import pytest

from kef_local.config_loader import DEFAULTS
from kef_local.discovery.models import DiscoveredDevice, DiscoveryResult
from kef_local.services.speaker_server import SpeakerServer
from kef_local.speaker.client import KefSpeaker
from kef_local.speaker.errors import NoSubnetFoundError, SpeakerNotRespondingError
from kef_local.speaker.models import Source, SpeakerEvent


def make_config(**sections):
    config = copy.deepcopy(DEFAULTS)
    for section, values in sections.items():
        config[section].update(values)
    return config


class StreamingSpeaker:
    """Speaker stand-in whose event stream follows a script of events and exceptions."""

    def __init__(self, script):
        self.host = "192.168.1.100"
        self.script = list(script)
        self.subscription = MagicMock()
        self.streams = 0
        self.close = AsyncMock()

    async def stream_events(self, poll_interval, include_position_tracking, stop_event):
        self.streams += 1
        while self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            if item == "stop":
                stop_event.set()
                return
            yield item


@pytest.mark.asyncio
async def test_configured_host_used_directly():
    server = SpeakerServer(config=make_config(
        speaker={'host': '192.168.1.77', 'port': 8080},
        live_sync={'enabled': False, 'power_on_source': 'wifi'},
    ))
    server.discovery.discover_with_result = AsyncMock()

    await server.start_services()

    assert isinstance(server.speaker, KefSpeaker)
    assert (server.speaker.host, server.speaker.port) == ('192.168.1.77', 8080)
    assert server.speaker.poller.decoder.power_on_source is Source.WIFI
    assert server.tasks == []
    server.discovery.discover_with_result.assert_not_awaited()
    await server.stop()


@pytest.mark.asyncio
async def test_first_discovered_speaker_used():
    server = SpeakerServer(config=make_config(live_sync={'enabled': False}))
    server.discovery.discover_with_result = AsyncMock(return_value=DiscoveryResult(
        devices=[DiscoveredDevice("Kitchen", "192.168.1.21"), DiscoveredDevice("Study", "192.168.1.40")],
        method="mdns",
        duration_seconds=1.0,
    ))

    await server.start_services()

    assert server.speaker.host == "192.168.1.21"
    await server.stop()


@pytest.mark.asyncio
async def test_discovery_failure_leaves_no_speaker():
    server = SpeakerServer(config=make_config())
    server.discovery.discover_with_result = AsyncMock(side_effect=NoSubnetFoundError())

    await server.start_services()

    assert server.speaker is None
    assert server.tasks == []
    await server.stop()


@pytest.mark.asyncio
async def test_live_sync_feeds_state_tracker():
    server = SpeakerServer(config=make_config())
    server.speaker = StreamingSpeaker([
        SpeakerEvent(volume=20, source=Source.WIFI),
        SpeakerEvent(volume=22),
        "stop",
    ])
    server.running = True
    server._stop_event = asyncio.Event()

    await asyncio.wait_for(server._live_sync_service(), timeout=1)

    assert server.state_tracker.snapshot() == SpeakerEvent(volume=22, source=Source.WIFI)
    assert server.state_tracker.event_count == 2
    assert server.live_sync_running is False


@pytest.mark.asyncio
async def test_live_sync_reconnects_after_speaker_lost():
    server = SpeakerServer(config=make_config(live_sync={'reconnect_delay_seconds': 0.01}))
    speaker = StreamingSpeaker([
        SpeakerEvent(volume=20, source=Source.OPTICAL),
        SpeakerNotRespondingError(),
        SpeakerEvent(volume=25),
        "stop",
    ])
    server.speaker = speaker
    server.running = True
    server._stop_event = asyncio.Event()

    await asyncio.wait_for(server._live_sync_service(), timeout=1)

    assert speaker.streams == 2
    speaker.subscription.invalidate.assert_called()
    # State from before the connection was lost is discarded
    assert server.state_tracker.snapshot() == SpeakerEvent(volume=25)
    assert server.state_tracker.event_count == 1
