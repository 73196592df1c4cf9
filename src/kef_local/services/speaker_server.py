"""
Speaker Server - Main orchestrator for discovery, live sync and the local API
"""

import asyncio
import logging
from typing import Any, Dict, Optional
import uvicorn

from ..api.main_api import SpeakerAPI
from ..config_loader import load_config, setup_logging
from ..discovery.manager import SpeakerDiscovery
from ..live_sync.state import SpeakerStateTracker
from ..speaker.client import KefSpeaker
from ..speaker.errors import KefError, SpeakerNotRespondingError

logger = logging.getLogger(__name__)

class SpeakerServer:
    """Main server: resolves the speaker, keeps its live state in sync and serves the API"""

    def __init__(self, config_path: str = "config/config.yaml", config: Optional[Dict] = None):
        if config is None:
            config = load_config(config_path)
            setup_logging(config)
        self.config = config

        self.discovery = SpeakerDiscovery(self.config['discovery'])
        self.state_tracker = SpeakerStateTracker()
        self.speaker: Optional[KefSpeaker] = None

        self.api = SpeakerAPI(
            self.config,
            self.discovery,
            self.state_tracker,
            get_speaker=lambda: self.speaker,
            is_syncing=lambda: self.live_sync_running,
        )

        self.running = False
        self.live_sync_running = False
        self.tasks = []
        self._stop_event: Optional[asyncio.Event] = None

    async def start(self):
        """Start background services, then serve the API until stopped"""
        logger.info("Starting KEF Local Control Server...")
        try:
            await self.start_services()
            await self._start_api_server()
        except Exception as e:
            logger.error(f"Server startup failed: {e}")
            await self.stop()
            raise

    async def start_services(self):
        """Resolve the speaker and start live sync in the background"""
        self._stop_event = asyncio.Event()
        self.running = True
        self.speaker = await self._resolve_speaker()

        if self.speaker is None:
            logger.warning("[WARNING] No speaker available - API will serve discovery only")
        elif self.config['live_sync']['enabled']:
            self.tasks.append(asyncio.create_task(self._live_sync_service()))
        else:
            logger.info("Live sync disabled by configuration")

        logger.info(f"All services started successfully ({len(self.tasks)} background tasks)")

    async def stop(self):
        """Stop all server services gracefully"""
        logger.info("Stopping server...")
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()

        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

        if self.speaker is not None:
            await self.speaker.close()
        logger.info("Server stopped")

    # ================== SPEAKER RESOLUTION ==================

    def _create_speaker(self, host: str, port: int) -> KefSpeaker:
        speaker_config = self.config['speaker']
        live_sync = self.config['live_sync']
        return KefSpeaker(
            host,
            port,
            request_timeout=speaker_config['request_timeout'],
            queue_staleness_seconds=live_sync['queue_staleness_seconds'],
            poll_buffer_seconds=live_sync['poll_buffer_seconds'],
            retry_delay_seconds=live_sync['retry_delay_seconds'],
            power_on_source=live_sync['power_on_source'],
        )

    async def _resolve_speaker(self) -> Optional[KefSpeaker]:
        speaker_config = self.config['speaker']
        if speaker_config.get('host'):
            logger.info(f"Using configured speaker {speaker_config['host']}:{speaker_config['port']}")
            return self._create_speaker(speaker_config['host'], speaker_config['port'])

        try:
            result = await self.discovery.discover_with_result()
        except KefError as e:
            logger.error(f"Speaker discovery failed: {e}")
            return None

        if not result.devices:
            logger.warning("[WARNING] Discovery completed but no speakers found")
            return None

        device = result.devices[0]
        if len(result.devices) > 1:
            others = ', '.join(f"{d.name} ({d.host})" for d in result.devices[1:])
            logger.info(f"Multiple speakers found, ignoring: {others}")
        logger.info(f"Using discovered speaker {device.name} ({device.host}, model={device.model or 'unknown'})")
        return self._create_speaker(device.host, device.port)

    # ================== LIVE SYNC SERVICE ==================

    async def _live_sync_service(self):
        """Background service feeding live sync events into the state tracker"""
        live_sync = self.config['live_sync']
        reconnect_delay = live_sync['reconnect_delay_seconds']

        while self.running:
            try:
                self.live_sync_running = True
                async for event in self.speaker.stream_events(
                    live_sync['poll_timeout'],
                    live_sync['include_position_tracking'],
                    self._stop_event,
                ):
                    changed_fields = self.state_tracker.apply(event)
                    if changed_fields:
                        logger.info(f"[SYNC] {self.speaker.host} changed: {_describe_changes(changed_fields)}")
            except SpeakerNotRespondingError as e:
                logger.error(f"[SYNC] Lost {self.speaker.host}: {e} - reconnecting in {reconnect_delay}s")
                self.state_tracker.reset()
            except Exception as e:
                logger.error(f"Live sync service error: {e}")
            finally:
                self.live_sync_running = False

            if not self.running:
                break
            self.speaker.subscription.invalidate()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=reconnect_delay)
                break
            except asyncio.TimeoutError:
                continue

    async def _start_api_server(self):
        """Start the FastAPI server"""
        config = uvicorn.Config(
            self.api.app,
            host=self.config['api']['host'],
            port=self.config['api']['port'],
            log_level="info",
            access_log=False  # We handle our own logging
        )

        server = uvicorn.Server(config)

        logger.info(f"Starting API server on {self.config['api']['host']}:{self.config['api']['port']}")
        logger.info(f"API documentation: http://localhost:{self.config['api']['port']}/docs")
        await server.serve()


def _describe_changes(changed_fields: Dict[str, Any]) -> str:
    parts = []
    for name, change in changed_fields.items():
        value = change['to']
        parts.append(f"{name}={getattr(value, 'value', value)}")
    return ", ".join(parts)
