"""
Live state cache built from SpeakerEvent deltas
"""

import time
from dataclasses import replace
from typing import Any, Dict, Optional

from ..speaker.models import SpeakerEvent


class SpeakerStateTracker:
    """Folds event deltas into the latest known speaker state"""

    def __init__(self):
        self._state = SpeakerEvent()
        self.last_update: Optional[float] = None
        self.event_count = 0

    def apply(self, event: SpeakerEvent) -> Dict[str, Any]:
        """Merge an event; returns {field: {'from': old, 'to': new}} for values that changed"""
        changed_fields = {}
        for name, value in event.changed_fields().items():
            previous = getattr(self._state, name)
            if previous != value:
                changed_fields[name] = {'from': previous, 'to': value}

        if changed_fields:
            self._state = replace(self._state, **{k: v['to'] for k, v in changed_fields.items()})
        self.event_count += 1
        self.last_update = time.time()
        return changed_fields

    def snapshot(self) -> SpeakerEvent:
        return self._state

    def reset(self) -> None:
        """Forget everything known; used when the speaker connection is lost"""
        self._state = SpeakerEvent()
        self.last_update = None
        self.event_count = 0
