"""
Speaker control plane: command execution, errors and value types
"""

from .command_executor import SpeakerCommandExecutor
from .errors import (
    DiscoveryError,
    InvalidResponseError,
    InvalidURLError,
    KefError,
    NetworkError,
    NoSubnetFoundError,
    ParsingError,
    SpeakerNotRespondingError,
)
from .models import FirmwareInfo, PlaybackState, SongInfo, Source, SpeakerEvent, SpeakerStatus

__all__ = [
    'SpeakerCommandExecutor',
    'KefError', 'NetworkError', 'InvalidResponseError', 'ParsingError',
    'SpeakerNotRespondingError', 'InvalidURLError', 'NoSubnetFoundError', 'DiscoveryError',
    'FirmwareInfo', 'PlaybackState', 'SongInfo', 'Source', 'SpeakerEvent', 'SpeakerStatus',
]
