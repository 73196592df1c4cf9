"""
Speaker control and live state API routes
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import Callable, Optional
from datetime import datetime, timezone
import logging

from ..live_sync.state import SpeakerStateTracker
from ..speaker.client import KefSpeaker
from ..speaker.errors import KefError
from ..speaker.models import Source

logger = logging.getLogger(__name__)

# Request models
class VolumeRequest(BaseModel):
    volume: int = Field(..., ge=0, le=100)

class SourceRequest(BaseModel):
    source: str  # standby, wifi, bluetooth, tv, optical, coaxial, analog, usb

class PowerRequest(BaseModel):
    on: bool

# Response models
class SpeakerInfoResponse(BaseModel):
    host: str
    port: int

class VolumeResponse(BaseModel):
    host: str
    volume: int

class CommandResponse(BaseModel):
    host: str
    command: str
    status: str

class SongInfoResponse(BaseModel):
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    cover_url: Optional[str] = None

class SpeakerStateResponse(BaseModel):
    source: Optional[str] = None
    volume: Optional[int] = None
    song_info: Optional[SongInfoResponse] = None
    song_position: Optional[int] = None
    song_duration: Optional[int] = None
    playback_state: Optional[str] = None
    speaker_status: Optional[str] = None
    device_name: Optional[str] = None
    is_muted: Optional[bool] = None
    last_update: Optional[datetime] = None
    event_count: int = 0

TRACK_COMMANDS = {
    "play_pause": "toggle_play_pause",
    "next": "next_track",
    "previous": "previous_track",
}

def _enum_value(value):
    return value.value if value is not None else None

def create_speaker_routes(get_speaker: Callable[[], Optional[KefSpeaker]], state_tracker: SpeakerStateTracker):
    """Create speaker control routes"""
    router = APIRouter(prefix="/api/speaker", tags=["speaker"])

    def require_speaker() -> KefSpeaker:
        speaker = get_speaker()
        if speaker is None:
            raise HTTPException(status_code=503, detail="No speaker connected")
        return speaker

    async def run_command(speaker: KefSpeaker, command: str, action) -> CommandResponse:
        try:
            await action()
        except KefError as e:
            logger.error(f"Command {command} failed on {speaker.host}: {e}")
            raise HTTPException(status_code=502, detail=str(e))
        return CommandResponse(host=speaker.host, command=command, status="success")

    @router.get("", response_model=SpeakerInfoResponse)
    async def get_speaker_info():
        """Speaker this server is connected to"""
        speaker = require_speaker()
        return SpeakerInfoResponse(host=speaker.host, port=speaker.port)

    @router.get("/state", response_model=SpeakerStateResponse)
    async def get_speaker_state():
        """Latest state assembled from live sync events"""
        state = state_tracker.snapshot()
        song_info = state.song_info
        return SpeakerStateResponse(
            source=_enum_value(state.source),
            volume=state.volume,
            song_info=SongInfoResponse(
                title=song_info.title,
                artist=song_info.artist,
                album=song_info.album,
                cover_url=song_info.cover_url,
            ) if song_info else None,
            song_position=state.song_position,
            song_duration=state.song_duration,
            playback_state=_enum_value(state.playback_state),
            speaker_status=_enum_value(state.speaker_status),
            device_name=state.device_name,
            is_muted=state.is_muted,
            last_update=datetime.fromtimestamp(state_tracker.last_update, tz=timezone.utc)
            if state_tracker.last_update else None,
            event_count=state_tracker.event_count,
        )

    @router.get("/volume", response_model=VolumeResponse)
    async def get_volume():
        speaker = require_speaker()
        try:
            volume = await speaker.get_volume()
        except KefError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return VolumeResponse(host=speaker.host, volume=volume)

    @router.post("/volume", response_model=CommandResponse)
    async def set_volume(request: VolumeRequest):
        speaker = require_speaker()
        return await run_command(speaker, f"volume={request.volume}", lambda: speaker.set_volume(request.volume))

    @router.post("/source", response_model=CommandResponse)
    async def set_source(request: SourceRequest):
        speaker = require_speaker()
        try:
            source = Source(request.source)
        except ValueError:
            valid = ", ".join(s.value for s in Source)
            raise HTTPException(status_code=400, detail=f"Invalid source '{request.source}'. Valid: {valid}")
        return await run_command(speaker, f"source={source.value}", lambda: speaker.set_source(source))

    @router.post("/power", response_model=CommandResponse)
    async def set_power(request: PowerRequest):
        speaker = require_speaker()
        action = speaker.power_on if request.on else speaker.shutdown
        return await run_command(speaker, "power_on" if request.on else "standby", action)

    @router.post("/control/{command}", response_model=CommandResponse)
    async def track_control(command: str):
        speaker = require_speaker()
        method_name = TRACK_COMMANDS.get(command)
        if method_name is None:
            raise HTTPException(
                status_code=400,
                detail=f"Unknown command '{command}'. Valid: {', '.join(TRACK_COMMANDS)}"
            )
        return await run_command(speaker, command, getattr(speaker, method_name))

    return router
