"""
Subnet scan discovery for speakers that do not announce themselves
"""

import asyncio
import ipaddress
import logging
import socket
import time
from typing import AsyncIterator, List, Optional, Set
import psutil

from ..http_helper import create_scan_session
from ..speaker.errors import NoSubnetFoundError
from .models import CandidateRange, DiscoveredDevice
from .prober import AddressProber

logger = logging.getLogger(__name__)

class SubnetScanner:
    """Probes every host of a /24 concurrently, bounded by an overall deadline.

    When the deadline passes the scan stops waiting. Probes still in flight
    are abandoned rather than cancelled: they finish on their own per-host
    timeout, their results are dropped and the shared HTTP session is closed
    once the last of them is done.
    """

    def __init__(
        self,
        per_host_timeout: float = 0.5,
        prober: Optional[AddressProber] = None,
        scan_ranges: Optional[List[str]] = None,
    ):
        self.per_host_timeout = per_host_timeout
        self.prober = prober
        self.scan_ranges = scan_ranges or []
        self._abandoned: Set[asyncio.Future] = set()

    def derive_local_ranges(self) -> List[CandidateRange]:
        """Candidate /24 ranges from active IPv4 interfaces, private ranges first"""
        if self.scan_ranges:
            return [CandidateRange(prefix) for prefix in self.scan_ranges]

        private: List[CandidateRange] = []
        other: List[CandidateRange] = []
        try:
            interfaces = psutil.net_if_addrs()
            stats = psutil.net_if_stats()
        except OSError as e:
            raise NoSubnetFoundError(f"Unable to list network interfaces: {e}") from e

        for interface_name, addresses in interfaces.items():
            interface_stats = stats.get(interface_name)
            if interface_stats is None or not interface_stats.isup:
                continue

            for addr in addresses:
                if addr.family != socket.AF_INET:
                    continue
                try:
                    ip = ipaddress.IPv4Address(addr.address)
                except ValueError:
                    continue
                if ip.is_loopback:
                    continue

                candidate = CandidateRange.from_address(str(ip))
                bucket = private if candidate.is_private else other
                if candidate not in private and candidate not in other:
                    bucket.append(candidate)
                    logger.debug(f"Candidate range {candidate} from {interface_name} ({ip})")

        ranges = private + other
        if not ranges:
            raise NoSubnetFoundError()
        return ranges

    async def scan(
        self,
        candidate_range: CandidateRange,
        per_host_timeout: Optional[float] = None,
        overall_deadline: float = 5,
    ) -> Set[DiscoveredDevice]:
        devices = set()
        async for device in self.scan_iter(candidate_range, per_host_timeout, overall_deadline):
            devices.add(device)
        return devices

    async def scan_iter(
        self,
        candidate_range: CandidateRange,
        per_host_timeout: Optional[float] = None,
        overall_deadline: float = 5,
    ) -> AsyncIterator[DiscoveredDevice]:
        """Yields devices in probe completion order until done or the deadline passes"""
        per_host_timeout = per_host_timeout or self.per_host_timeout
        session = None
        prober = self.prober
        if prober is None:
            session = create_scan_session(per_host_timeout)
            prober = AddressProber(session=session, probe_timeout=per_host_timeout)

        logger.info(f"[SCAN] Scanning {candidate_range} (deadline {overall_deadline}s, per-host {per_host_timeout}s)")
        start_time = time.time()
        pending = {asyncio.ensure_future(prober.probe(host)) for host in candidate_range.hosts()}
        timer = asyncio.ensure_future(asyncio.sleep(overall_deadline))
        found = 0

        try:
            while pending:
                done, _ = await asyncio.wait(pending | {timer}, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task is timer:
                        continue
                    pending.discard(task)
                    try:
                        device = task.result()
                    except Exception as e:
                        logger.debug(f"Probe task failed: {e}")
                        continue
                    if device is not None:
                        found += 1
                        logger.info(f"[SCAN] Found speaker: {device.name} ({device.host})")
                        yield device
                if timer.done():
                    logger.info(f"[SCAN] Deadline reached, abandoning {len(pending)} unfinished probes")
                    break
        finally:
            timer.cancel()
            self._release_after(pending, session)
            logger.info(f"[SCAN] {candidate_range}: {found} speaker(s) in {time.time() - start_time:.1f}s")

    def _release_after(self, pending: Set[asyncio.Future], session) -> None:
        """Close the scan session once abandoned probes have finished"""
        if not pending:
            if session is not None:
                self._track(asyncio.ensure_future(session.close()))
            return

        async def close_when_done():
            await asyncio.wait(pending)
            if session is not None:
                await session.close()

        self._track(asyncio.ensure_future(close_when_done()))

    def _track(self, task: asyncio.Future) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._abandoned.discard)
