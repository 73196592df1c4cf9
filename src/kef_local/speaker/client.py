"""
KEF speaker client: control getters/setters and live-sync session

Control plane used here:
  GET /api/getData?path=<path>&roles=value  -> [ {<typed value>} ]
  GET /api/setData?path=<path>&roles=<role>&value=<json>
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional, Union
import aiohttp

from ..live_sync.decoder import EventDecoder, decode_song_info
from ..live_sync.poller import DEFAULT_RETRY_DELAY, ContinuousPoller
from ..live_sync.subscription import (
    DEFAULT_POLL_BUFFER,
    DEFAULT_STALENESS_WINDOW,
    SubscriptionManager,
)
from .command_executor import SpeakerCommandExecutor
from .errors import ParsingError
from .models import FirmwareInfo, PlaybackState, SongInfo, Source, SpeakerEvent, SpeakerStatus

logger = logging.getLogger(__name__)

GET_DATA_ENDPOINT = "/api/getData"
SET_DATA_ENDPOINT = "/api/setData"

PATH_VOLUME = "player:volume"
PATH_SOURCE = "settings:/kef/play/physicalSource"
PATH_SPEAKER_STATUS = "settings:/kef/host/speakerStatus"
PATH_PLAYER_DATA = "player:player/data"
PATH_PLAYER_CONTROL = "player:player/control"
PATH_DEVICE_NAME = "settings:/deviceName"
PATH_MAC_ADDRESS = "settings:/system/primaryMacAddress"
PATH_RELEASE_TEXT = "settings:/releasetext"

DEFAULT_UNMUTE_VOLUME = 15


class KefSpeaker:
    """One speaker session.

    Example:
        speaker = KefSpeaker("192.168.1.100")
        name = await speaker.get_speaker_name()
        await speaker.set_volume(30)
        async for event in speaker.stream_events():
            print(event.changed_fields())
    """

    def __init__(
        self,
        host: str,
        port: int = 80,
        executor: Optional[SpeakerCommandExecutor] = None,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 10,
        queue_staleness_seconds: float = DEFAULT_STALENESS_WINDOW,
        poll_buffer_seconds: float = DEFAULT_POLL_BUFFER,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY,
        power_on_source: Optional[Union[Source, str]] = None,
    ):
        self.host = host
        self.port = port
        self.executor = executor or SpeakerCommandExecutor(host, port, session=session, request_timeout=request_timeout)
        self._previous_volume = DEFAULT_UNMUTE_VOLUME
        self.subscription = SubscriptionManager(
            self.executor,
            staleness_window=queue_staleness_seconds,
            poll_buffer=poll_buffer_seconds,
        )
        self.poller = ContinuousPoller(
            self.subscription,
            EventDecoder(power_on_source=power_on_source),
            retry_delay=retry_delay_seconds,
        )

    def __repr__(self):
        return f"KefSpeaker(host={self.host!r}, port={self.port})"

    async def close(self):
        await self.executor.close()

    # ================== REQUEST HELPERS ==================

    async def _get_data(self, path: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Read one path and return the first item of the value list"""
        body = await self.executor.execute(
            GET_DATA_ENDPOINT, params={"path": path, "roles": "value"}, timeout=timeout
        )
        try:
            items = json.loads(body)
        except ValueError as e:
            raise ParsingError() from e
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            raise ParsingError()
        return items[0]

    async def _get_typed(self, path: str, key: str, expected_type: type, timeout: Optional[float] = None) -> Any:
        item = await self._get_data(path, timeout)
        value = item.get(key)
        if not isinstance(value, expected_type) or (expected_type is int and isinstance(value, bool)):
            raise ParsingError()
        return value

    async def _set_data(self, path: str, value: Dict[str, Any], roles: str = "value") -> None:
        await self.executor.execute(
            SET_DATA_ENDPOINT,
            params={"path": path, "roles": roles, "value": json.dumps(value, separators=(",", ":"))},
        )

    # ================== SPEAKER INFORMATION ==================

    async def get_speaker_name(self, timeout: Optional[float] = None) -> str:
        return await self._get_typed(PATH_DEVICE_NAME, "string_", str, timeout)

    async def get_mac_address(self, timeout: Optional[float] = None) -> str:
        return await self._get_typed(PATH_MAC_ADDRESS, "string_", str, timeout)

    async def get_firmware_version(self, timeout: Optional[float] = None) -> FirmwareInfo:
        """Release text is "<model>_<version>", e.g. "LSXII_V26120" """
        release_text = await self._get_typed(PATH_RELEASE_TEXT, "string_", str, timeout)
        parts = release_text.split("_")
        if len(parts) < 2:
            raise ParsingError(f"Unexpected release text: {release_text!r}")
        return FirmwareInfo(model=parts[0], version=parts[1])

    # ================== VOLUME ==================

    async def get_volume(self) -> int:
        return await self._get_typed(PATH_VOLUME, "i32_", int)

    async def set_volume(self, volume: int) -> None:
        volume = max(0, min(100, int(volume)))
        await self._set_data(PATH_VOLUME, {"type": "i32_", "i32_": volume})
        logger.debug(f"{self.host}: volume set to {volume}")

    async def mute(self) -> None:
        """Set volume to 0, remembering the current level for unmute()"""
        self._previous_volume = await self.get_volume()
        await self.set_volume(0)

    async def unmute(self) -> None:
        await self.set_volume(self._previous_volume)

    # ================== SOURCE AND POWER ==================

    async def get_source(self) -> Source:
        value = await self._get_typed(PATH_SOURCE, "kefPhysicalSource", str)
        try:
            return Source(value)
        except ValueError as e:
            raise ParsingError(f"Unknown source: {value!r}") from e

    async def set_source(self, source: Union[Source, str]) -> None:
        source = Source(source)
        await self._set_data(PATH_SOURCE, {"type": "kefPhysicalSource", "kefPhysicalSource": source.value})
        logger.info(f"{self.host}: source set to {source.value}")

    async def get_status(self) -> SpeakerStatus:
        value = await self._get_typed(PATH_SPEAKER_STATUS, "kefSpeakerStatus", str)
        try:
            return SpeakerStatus(value)
        except ValueError as e:
            raise ParsingError(f"Unknown speaker status: {value!r}") from e

    async def power_on(self) -> None:
        # Power is switched through the physicalSource path as well
        await self._set_data(
            PATH_SOURCE,
            {"type": "kefPhysicalSource", "kefPhysicalSource": SpeakerStatus.POWERED_ON.value},
        )
        logger.info(f"{self.host}: power on")

    async def shutdown(self) -> None:
        await self.set_source(Source.STANDBY)

    # ================== PLAYBACK ==================

    async def _track_control(self, command: str) -> None:
        await self._set_data(PATH_PLAYER_CONTROL, {"control": command}, roles="activate")

    async def toggle_play_pause(self) -> None:
        await self._track_control("pause")

    async def next_track(self) -> None:
        await self._track_control("next")

    async def previous_track(self) -> None:
        await self._track_control("previous")

    async def get_song_information(self) -> SongInfo:
        player_data = await self._get_data(PATH_PLAYER_DATA)
        try:
            return decode_song_info(player_data)
        except (KeyError, TypeError):
            return SongInfo()

    async def is_playing(self) -> bool:
        player_data = await self._get_data(PATH_PLAYER_DATA)
        return player_data.get("state") == PlaybackState.PLAYING.value

    # ================== LIVE SYNC ==================

    async def poll_speaker(self, timeout: float = 10, include_position_tracking: bool = False) -> SpeakerEvent:
        """Single long-poll; errors surface to the caller"""
        return await self.poller.poll_once(timeout, include_position_tracking)

    def stream_events(
        self,
        poll_interval: float = 10,
        include_position_tracking: bool = False,
        stop_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[SpeakerEvent]:
        return self.poller.stream(poll_interval, include_position_tracking, stop_event)
