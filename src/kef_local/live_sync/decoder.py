"""
Decoding of long-poll event payloads into SpeakerEvent records

Each observed path maps to one or more independent extractors. An extractor
that meets a payload of the wrong shape raises; the decoder drops that field
and keeps going, so a single odd value never loses the rest of the poll.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..speaker.models import PlaybackState, SongInfo, Source, SpeakerEvent, SpeakerStatus

logger = logging.getLogger(__name__)

PATH_SOURCE = "settings:/kef/play/physicalSource"
PATH_VOLUME = "player:volume"
PATH_PLAYER_DATA = "player:player/data"
PATH_PLAY_TIME = "player:player/data/playTime"
PATH_SPEAKER_STATUS = "settings:/kef/host/speakerStatus"
PATH_DEVICE_NAME = "settings:/deviceName"
PATH_MUTE = "settings:/mediaPlayer/mute"

# Values the physicalSource path reports while the speaker changes power state
POWER_STATE_SOURCES = ("standby", "powerOn")

_DECODE_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


def _field(payload: Any, key: str) -> Any:
    if not isinstance(payload, dict):
        raise TypeError(f"expected object payload, got {type(payload).__name__}")
    return payload[key]


def _as_int(value: Any) -> int:
    # bool is an int subclass; a bool_ payload must not read as a number
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected integer, got {value!r}")
    return value


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {value!r}")
    return value


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def decode_volume(payload: Any) -> int:
    return _as_int(_field(payload, "i32_"))


def decode_song_position(payload: Any) -> int:
    return _as_int(_field(payload, "i64_"))


def decode_device_name(payload: Any) -> str:
    return _as_str(_field(payload, "string_"))


def decode_mute(payload: Any) -> bool:
    value = _field(payload, "bool_")
    if not isinstance(value, bool):
        raise TypeError(f"expected boolean, got {value!r}")
    return value


def decode_speaker_status(payload: Any) -> SpeakerStatus:
    return SpeakerStatus(_as_str(_field(payload, "kefSpeakerStatus")))


def decode_song_info(payload: Any) -> SongInfo:
    track_roles = _field(payload, "trackRoles")
    if not isinstance(track_roles, dict):
        raise TypeError("trackRoles is not an object")
    media_data = track_roles.get("mediaData")
    metadata = media_data.get("metaData") if isinstance(media_data, dict) else None
    if not isinstance(metadata, dict):
        metadata = {}
    return SongInfo(
        title=_optional_str(track_roles.get("title")),
        artist=_optional_str(metadata.get("artist")),
        album=_optional_str(metadata.get("album")),
        cover_url=_optional_str(track_roles.get("icon")),
    )


def decode_song_duration(payload: Any) -> int:
    return _as_int(_field(_field(payload, "status"), "duration"))


def decode_playback_state(payload: Any) -> PlaybackState:
    return PlaybackState(_as_str(_field(payload, "state")))


Extractor = Callable[[Any], Any]


class EventDecoder:
    """Maps {path: itemValue} from a poll into one SpeakerEvent.

    power_on_source: the physicalSource path reports "powerOn" right after the
    speaker wakes, before an input is chosen. By default that is not reported
    as a source. Setting a Source here reports it as that source instead.
    """

    def __init__(self, power_on_source: Optional[Source] = None):
        self.power_on_source = Source(power_on_source) if power_on_source else None
        self._table: Dict[str, List[Tuple[str, Extractor]]] = {
            PATH_SOURCE: [("source", self.decode_source)],
            PATH_VOLUME: [("volume", decode_volume)],
            PATH_PLAY_TIME: [("song_position", decode_song_position)],
            PATH_PLAYER_DATA: [
                ("song_info", decode_song_info),
                ("song_duration", decode_song_duration),
                ("playback_state", decode_playback_state),
            ],
            PATH_SPEAKER_STATUS: [("speaker_status", decode_speaker_status)],
            PATH_DEVICE_NAME: [("device_name", decode_device_name)],
            PATH_MUTE: [("is_muted", decode_mute)],
        }

    @property
    def known_paths(self) -> List[str]:
        return list(self._table)

    def decode_source(self, payload: Any) -> Optional[Source]:
        value = _as_str(_field(payload, "kefPhysicalSource"))
        if value == "powerOn":
            return self.power_on_source
        if value in POWER_STATE_SOURCES:
            return None
        return Source(value)

    def decode(self, events: Mapping[str, Any]) -> SpeakerEvent:
        decoded: Dict[str, Any] = {}
        if not isinstance(events, Mapping):
            logger.debug(f"Ignoring non-mapping event payload: {type(events).__name__}")
            return SpeakerEvent()

        for path, payload in events.items():
            extractors = self._table.get(path)
            if not extractors:
                continue
            for field_name, extract in extractors:
                try:
                    value = extract(payload)
                except _DECODE_ERRORS as e:
                    logger.debug(f"Skipping {field_name} from {path}: {e}")
                    continue
                if value is not None:
                    decoded[field_name] = value

        return SpeakerEvent(**decoded)
