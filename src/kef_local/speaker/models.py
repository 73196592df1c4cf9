"""
Speaker value types: sources, power status, song metadata and live events
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Optional


class Source(str, Enum):
    """Physical input sources accepted by settings:/kef/play/physicalSource"""
    STANDBY = "standby"
    WIFI = "wifi"
    BLUETOOTH = "bluetooth"
    TV = "tv"
    OPTICAL = "optical"
    COAXIAL = "coaxial"
    ANALOG = "analog"
    USB = "usb"


class SpeakerStatus(str, Enum):
    STANDBY = "standby"
    POWERED_ON = "poweredOn"


class PlaybackState(str, Enum):
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SongInfo:
    """Currently playing track"""
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    cover_url: Optional[str] = None


@dataclass(frozen=True)
class FirmwareInfo:
    model: str
    version: str


@dataclass(frozen=True)
class SpeakerEvent:
    """
    One decoded poll result.

    Every field is a delta: None means "not reported in this poll", i.e. the
    value is unchanged since the previous event, not that it is unknown.
    """
    source: Optional[Source] = None
    volume: Optional[int] = None
    song_info: Optional[SongInfo] = None
    song_position: Optional[int] = None
    song_duration: Optional[int] = None
    playback_state: Optional[PlaybackState] = None
    speaker_status: Optional[SpeakerStatus] = None
    device_name: Optional[str] = None
    is_muted: Optional[bool] = None

    def changed_fields(self) -> Dict[str, Any]:
        """Fields reported by this event"""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @property
    def is_empty(self) -> bool:
        return not self.changed_fields()
