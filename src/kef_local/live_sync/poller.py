"""
Continuous long-poll loop producing a stream of SpeakerEvent deltas
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from ..speaker.errors import KefError, SpeakerNotRespondingError
from ..speaker.models import SpeakerEvent
from .decoder import EventDecoder
from .subscription import SubscriptionManager

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 2


class ContinuousPoller:
    """Drives repeated polls of one speaker into an async event stream.

    Every KefError except SpeakerNotRespondingError is treated as transient:
    it is logged, the loop waits retry_delay seconds and polls again. A
    speaker that does not respond ends the stream with that error.

    Stopping: cancel the consuming task, call aclose() on the stream, or set
    the stop_event passed to stream(). The stop event also abandons a poll
    that is in flight.
    """

    def __init__(
        self,
        subscription: SubscriptionManager,
        decoder: Optional[EventDecoder] = None,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ):
        self.subscription = subscription
        self.decoder = decoder or EventDecoder()
        self.retry_delay = retry_delay

    async def poll_once(self, timeout: float = 10, include_position_tracking: bool = False) -> SpeakerEvent:
        events = await self.subscription.poll(timeout, include_position_tracking)
        return self.decoder.decode(events)

    async def stream(
        self,
        poll_interval: float = 10,
        include_position_tracking: bool = False,
        stop_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[SpeakerEvent]:
        host = getattr(self.subscription.executor, "host", "speaker")
        failures = 0
        logger.info(f"[SYNC] Live sync started for {host} (poll timeout {poll_interval}s)")

        try:
            while not _is_set(stop_event):
                try:
                    event = await self._poll_until_stopped(poll_interval, include_position_tracking, stop_event)
                except SpeakerNotRespondingError as e:
                    logger.error(f"[SYNC] {host}: {e} - ending live sync")
                    raise
                except KefError as e:
                    failures += 1
                    logger.warning(f"[SYNC] Poll of {host} failed ({e}), retry #{failures} in {self.retry_delay}s")
                    if await _sleep_until_stopped(self.retry_delay, stop_event):
                        break
                    continue

                if event is None:
                    break
                if failures:
                    logger.info(f"[SYNC] Poll of {host} recovered after {failures} failure(s)")
                    failures = 0
                yield event
        finally:
            logger.info(f"[SYNC] Live sync stopped for {host}")

    async def _poll_until_stopped(
        self,
        timeout: float,
        include_position_tracking: bool,
        stop_event: Optional[asyncio.Event],
    ) -> Optional[SpeakerEvent]:
        """Returns None when stop_event fired before the poll finished"""
        if stop_event is None:
            return await self.poll_once(timeout, include_position_tracking)

        poll_task = asyncio.ensure_future(self.poll_once(timeout, include_position_tracking))
        stop_task = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait({poll_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            poll_task.cancel()
            raise
        finally:
            stop_task.cancel()

        if poll_task.done():
            return poll_task.result()
        poll_task.cancel()
        return None


def _is_set(stop_event: Optional[asyncio.Event]) -> bool:
    return stop_event is not None and stop_event.is_set()


async def _sleep_until_stopped(delay: float, stop_event: Optional[asyncio.Event]) -> bool:
    """Sleep for delay seconds; True if stop_event fired meanwhile"""
    if stop_event is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
        return True
    except asyncio.TimeoutError:
        return False
