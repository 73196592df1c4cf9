"""
Main FastAPI application setup

Local HTTP API for the KEF control server: speaker discovery, speaker
control and the live state assembled from the event long-poll
"""

from fastapi import FastAPI
from typing import Callable, Dict, Optional
import logging

from ..discovery.manager import SpeakerDiscovery
from ..live_sync.state import SpeakerStateTracker
from ..speaker.client import KefSpeaker
from .speaker_routes import create_speaker_routes
from .system_routes import create_system_routes

logger = logging.getLogger(__name__)

class SpeakerAPI:
    """Local HTTP API for speaker control and monitoring"""

    def __init__(
        self,
        config: Dict,
        discovery: SpeakerDiscovery,
        state_tracker: SpeakerStateTracker,
        get_speaker: Callable[[], Optional[KefSpeaker]],
        is_syncing: Callable[[], bool] = lambda: False,
    ):
        self.config = config
        self.discovery = discovery
        self.state_tracker = state_tracker
        self.get_speaker = get_speaker
        self.is_syncing = is_syncing
        self.app = FastAPI(
            title="KEF Local Control Server",
            description="Local API for KEF speaker discovery, control and live state",
            version="1.0.0"
        )
        self._setup_routes()

    def _setup_routes(self):
        """Setup FastAPI routes using modular approach"""
        system_router = create_system_routes(self.discovery, self.state_tracker, self.get_speaker, self.is_syncing)
        speaker_router = create_speaker_routes(self.get_speaker, self.state_tracker)

        self.app.include_router(system_router)
        self.app.include_router(speaker_router)
