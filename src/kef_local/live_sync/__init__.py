"""
Live state synchronization over the speaker's event queue long-poll API
"""

from .decoder import EventDecoder
from .poller import ContinuousPoller
from .state import SpeakerStateTracker
from .subscription import QueueState, SubscriptionManager, SubscriptionQueue

__all__ = [
    'EventDecoder', 'ContinuousPoller', 'SpeakerStateTracker',
    'QueueState', 'SubscriptionManager', 'SubscriptionQueue',
]
