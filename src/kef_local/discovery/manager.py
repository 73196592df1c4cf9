"""
Main discovery manager: mDNS announcements first, subnet scan as fallback
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Dict, Optional, Set

from ..http_helper import create_scan_session
from ..speaker.errors import DiscoveryError
from .mdns_browser import DEFAULT_SERVICE_TYPE, ServiceAnnouncerBrowser
from .models import DiscoveredDevice, DiscoveryResult
from .network_discovery import SubnetScanner
from .prober import AddressProber

logger = logging.getLogger(__name__)

class SpeakerDiscovery:
    """Discovery service for KEF speakers on the local network"""

    def __init__(
        self,
        config: Dict,
        browser: Optional[ServiceAnnouncerBrowser] = None,
        scanner: Optional[SubnetScanner] = None,
    ):
        self.config = config
        self.discovery_timeout = config.get('timeout', 5)
        self.stream_timeout = config.get('stream_timeout', 10)
        self.probe_timeout = config.get('probe_timeout', 0.5)
        self.resolve_timeout = config.get('resolve_timeout', 2)
        self.service_type = config.get('service_type', DEFAULT_SERVICE_TYPE)
        self.scanner = scanner or SubnetScanner(
            per_host_timeout=self.probe_timeout,
            scan_ranges=config.get('scan_ranges'),
        )
        self._browser = browser
        self.last_result: Optional[DiscoveryResult] = None

    # ================== BATCH DISCOVERY ==================

    async def discover(self, timeout: Optional[float] = None) -> Set[DiscoveredDevice]:
        """All speakers found within timeout; an empty set is not an error"""
        result = await self.discover_with_result(timeout)
        return set(result.devices)

    async def discover_with_result(self, timeout: Optional[float] = None) -> DiscoveryResult:
        timeout = timeout or self.discovery_timeout
        start_time = time.time()
        errors = []

        logger.info(f"[DISCOVERY] Starting speaker discovery (timeout {timeout}s)")
        try:
            devices = await self._browse(timeout)
        except DiscoveryError as e:
            logger.warning(f"[DISCOVERY] mDNS unavailable, falling back to subnet scan: {e}")
            errors.append(str(e))
            devices = set()

        if devices:
            return self._finish(devices, "mdns", start_time, errors)

        logger.info("[DISCOVERY] No speakers announced via mDNS - scanning local subnet")
        candidate_range = self.scanner.derive_local_ranges()[0]
        devices = await self.scanner.scan(candidate_range, self.probe_timeout, timeout)
        return self._finish(devices, "ip_scan", start_time, errors)

    def _finish(self, devices: Set[DiscoveredDevice], method: str, start_time: float, errors) -> DiscoveryResult:
        result = DiscoveryResult(
            devices=sorted(devices, key=lambda d: (d.name, d.host)),
            method=method,
            duration_seconds=time.time() - start_time,
            errors=errors,
        )
        self.last_result = result
        logger.info(
            f"[DISCOVERY] {len(result.devices)} speaker(s) via {method} in {result.duration_seconds:.1f}s"
        )
        return result

    async def _browse(self, timeout: float, on_found=None) -> Set[DiscoveredDevice]:
        if self._browser is not None:
            return await self._browser.browse(self.service_type, timeout, on_found)

        async with create_scan_session(self.probe_timeout) as session:
            browser = ServiceAnnouncerBrowser(
                AddressProber(session=session, probe_timeout=self.probe_timeout),
                resolve_timeout=self.resolve_timeout,
            )
            return await browser.browse(self.service_type, timeout, on_found)

    # ================== STREAMING DISCOVERY ==================

    async def discover_stream(self, timeout: Optional[float] = None) -> AsyncIterator[DiscoveredDevice]:
        """Yields speakers as they are found. Best effort: errors just end the stream."""
        seen: Set[DiscoveredDevice] = set()
        try:
            async for device in self._stream_devices(timeout or self.stream_timeout):
                if device in seen:
                    continue
                seen.add(device)
                yield device
        except Exception as e:
            logger.debug(f"[DISCOVERY] Stream ended early: {e}")

    async def _stream_devices(self, timeout: float) -> AsyncIterator[DiscoveredDevice]:
        found_any = False
        queue: asyncio.Queue = asyncio.Queue()
        browse_task = asyncio.ensure_future(self._browse(timeout, on_found=queue.put_nowait))
        try:
            while True:
                get_task = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({get_task, browse_task}, return_when=asyncio.FIRST_COMPLETED)
                if get_task in done:
                    found_any = True
                    yield get_task.result()
                    continue
                get_task.cancel()
                break

            while not queue.empty():
                found_any = True
                yield queue.get_nowait()

            try:
                browse_task.result()
            except DiscoveryError as e:
                logger.debug(f"[DISCOVERY] mDNS unavailable for stream: {e}")
        finally:
            if not browse_task.done():
                browse_task.cancel()

        if found_any:
            return

        candidate_range = self.scanner.derive_local_ranges()[0]
        async for device in self.scanner.scan_iter(candidate_range, self.probe_timeout, timeout):
            yield device
