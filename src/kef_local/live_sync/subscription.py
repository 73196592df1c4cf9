"""
Server-side event queue management for speaker long-polling

The speaker keeps a subscription queue per client: we declare the paths we
want to observe once (modifyQueue), then drain changes with blocking
pollQueue requests. Queues silently expire on the speaker side, so a queue is
recreated when it may have gone stale or when the observed paths change.

State machine per session:

    NO_QUEUE --subscribe--> ACTIVE
    ACTIVE --(stale | position tracking flag changed | invalidate)--> NO_QUEUE

The old queue is simply abandoned; the speaker expires it on its own.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional

from ..speaker.errors import ParsingError, SpeakerNotRespondingError

logger = logging.getLogger(__name__)

MODIFY_QUEUE_ENDPOINT = "/api/event/modifyQueue"
POLL_QUEUE_ENDPOINT = "/api/event/pollQueue"

CORE_OBSERVED_PATHS = (
    "settings:/mediaPlayer/playMode",
    "player:volume",
    "settings:/kef/host/speakerStatus",
    "settings:/kef/play/physicalSource",
    "player:player/data",
    "settings:/deviceName",
    "settings:/mediaPlayer/mute",
    "settings:/kef/host/maximumVolume",
    "settings:/kef/host/volumeStep",
    "settings:/kef/host/volumeLimit",
    "settings:/kef/host/modelName",
    "settings:/version",
    "network:info",
    "kef:eqProfile/v2",
)
POSITION_TRACKING_PATH = "player:player/data/playTime"

MIN_POLL_TIMEOUT = 1
MAX_POLL_TIMEOUT = 60
DEFAULT_STALENESS_WINDOW = 50
DEFAULT_POLL_BUFFER = 1


class QueueState(Enum):
    NO_QUEUE = "no_queue"
    ACTIVE = "active"


@dataclass(frozen=True)
class SubscriptionQueue:
    queue_id: str
    observed_paths: FrozenSet[str]
    includes_position_tracking: bool
    created_at: float


def observed_paths_for(include_position_tracking: bool) -> FrozenSet[str]:
    paths = set(CORE_OBSERVED_PATHS)
    if include_position_tracking:
        paths.add(POSITION_TRACKING_PATH)
    return frozenset(paths)


def clamp_poll_timeout(timeout: float) -> int:
    """Whole seconds within the range the speaker accepts"""
    return int(round(max(MIN_POLL_TIMEOUT, min(MAX_POLL_TIMEOUT, timeout))))


def parse_poll_response(body: str) -> Dict[str, Any]:
    """Reduce a pollQueue body to {path: latest itemValue}

    Empty body and [] both mean nothing changed during the poll window.
    """
    text = body.strip()
    if not text:
        return {}
    try:
        items = json.loads(text)
    except ValueError as e:
        raise ParsingError() from e
    if items is None:
        return {}
    if not isinstance(items, list):
        raise ParsingError(f"Expected event list, got {type(items).__name__}")

    events: Dict[str, Any] = {}
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("path"), str):
            continue
        # Later entries for the same path supersede earlier ones
        events[item["path"]] = item.get("itemValue", "updated")
    return events


class SubscriptionManager:
    """Owns the single current event queue of one speaker session"""

    def __init__(
        self,
        executor,
        staleness_window: float = DEFAULT_STALENESS_WINDOW,
        poll_buffer: float = DEFAULT_POLL_BUFFER,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.executor = executor
        self.staleness_window = staleness_window
        self.poll_buffer = poll_buffer
        self._clock = clock
        self._queue: Optional[SubscriptionQueue] = None
        self._last_polled: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> QueueState:
        return QueueState.ACTIVE if self._queue is not None else QueueState.NO_QUEUE

    @property
    def queue(self) -> Optional[SubscriptionQueue]:
        return self._queue

    @property
    def last_polled(self) -> Optional[float]:
        return self._last_polled

    def invalidate(self) -> None:
        """Forget the current queue; the next poll subscribes again"""
        if self._queue is not None:
            logger.debug(f"Dropping event queue {self._queue.queue_id}")
        self._queue = None

    def recreate_reason(self, include_position_tracking: bool) -> Optional[str]:
        """Why the current queue cannot serve this poll, or None if it can"""
        if self._queue is None:
            return "no queue"
        if self._last_polled is None or self._clock() - self._last_polled > self.staleness_window:
            return "queue stale"
        if self._queue.includes_position_tracking != include_position_tracking:
            return "position tracking changed"
        return None

    async def subscribe(self, include_position_tracking: bool = False) -> SubscriptionQueue:
        """Declare the observed paths and make the returned queue current"""
        paths = observed_paths_for(include_position_tracking)
        payload = {
            "subscribe": [
                {"path": path, "type": "itemWithValue"}
                for path in CORE_OBSERVED_PATHS
            ],
            "unsubscribe": [],
        }
        if include_position_tracking:
            payload["subscribe"].append({"path": POSITION_TRACKING_PATH, "type": "itemWithValue"})

        self._queue = None
        body = await self.executor.execute(MODIFY_QUEUE_ENDPOINT, method="POST", json_body=payload)
        queue_id = body.strip().strip('"')
        if not queue_id:
            raise SpeakerNotRespondingError("Speaker returned no event queue id")

        now = self._clock()
        self._queue = SubscriptionQueue(
            queue_id=queue_id,
            observed_paths=paths,
            includes_position_tracking=include_position_tracking,
            created_at=now,
        )
        self._last_polled = now
        logger.info(f"[SYNC] Event queue {queue_id} created on {self.executor.host} ({len(paths)} paths)")
        return self._queue

    async def _poll_queue(self, queue: SubscriptionQueue, timeout: float) -> Dict[str, Any]:
        timeout = clamp_poll_timeout(timeout)
        body = await self.executor.execute(
            POLL_QUEUE_ENDPOINT,
            params={"queueId": queue.queue_id, "timeout": timeout},
            # Transport must outlive the speaker-side wait or an empty poll looks like a failure
            timeout=timeout + self.poll_buffer,
        )
        events = parse_poll_response(body)
        self._last_polled = self._clock()
        return events

    async def poll(self, timeout: float = 10, include_position_tracking: bool = False) -> Dict[str, Any]:
        """Poll once, recreating the queue first when the guard requires it"""
        async with self._lock:
            reason = self.recreate_reason(include_position_tracking)
            if reason is not None:
                logger.debug(f"Recreating event queue on {self.executor.host}: {reason}")
                await self.subscribe(include_position_tracking)
            return await self._poll_queue(self._queue, timeout)
