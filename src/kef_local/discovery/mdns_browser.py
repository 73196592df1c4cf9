"""
mDNS discovery: resolve advertised services and probe them as speakers

KEF speakers advertise AirPlay (_airplay._tcp) on the local segment. Every
advertised service is resolved to an IPv4 address and handed to the address
prober, which decides whether it is actually a KEF speaker.
"""

import asyncio
import logging
from typing import Callable, Optional, Set
from zeroconf import IPVersion, ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from ..speaker.errors import DiscoveryError
from .models import DiscoveredDevice
from .prober import AddressProber

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_TYPE = "_airplay._tcp.local."

DeviceFoundCallback = Callable[[DiscoveredDevice], None]


class _BrowseState:
    """Result set of one browse() call, shared by concurrent resolutions"""

    def __init__(self, on_found: Optional[DeviceFoundCallback] = None):
        self.devices: Set[DiscoveredDevice] = set()
        self.seen_services: Set[str] = set()
        self.completed = False
        self.on_found = on_found
        self._lock = asyncio.Lock()

    async def add(self, device: DiscoveredDevice) -> None:
        async with self._lock:
            if self.completed or device in self.devices:
                return
            self.devices.add(device)
        if self.on_found:
            self.on_found(device)

    async def complete(self) -> Set[DiscoveredDevice]:
        """Finalize once; later adds are ignored"""
        async with self._lock:
            self.completed = True
            return set(self.devices)


class ServiceAnnouncerBrowser:
    """Browses one mDNS service type for a fixed time window"""

    def __init__(
        self,
        prober: AddressProber,
        resolve_timeout: float = 2,
        zeroconf_factory: Callable[[], AsyncZeroconf] = AsyncZeroconf,
    ):
        self.prober = prober
        self.resolve_timeout = resolve_timeout
        self._zeroconf_factory = zeroconf_factory

    async def browse(
        self,
        service_type: str = DEFAULT_SERVICE_TYPE,
        timeout: float = 5,
        on_found: Optional[DeviceFoundCallback] = None,
    ) -> Set[DiscoveredDevice]:
        """Collect speakers announced within timeout seconds.

        Raises DiscoveryError when mDNS itself cannot be used, so callers can
        tell "found nothing" from "could not look".
        """
        loop = asyncio.get_running_loop()
        state = _BrowseState(on_found)
        resolutions: Set[asyncio.Task] = set()
        aiozc = None
        browser = None

        def start_resolution(zeroconf, service_type: str, name: str) -> None:
            if state.completed or name in state.seen_services:
                return
            state.seen_services.add(name)
            task = loop.create_task(self._resolve_and_probe(zeroconf, service_type, name, state))
            resolutions.add(task)
            task.add_done_callback(resolutions.discard)

        def on_service_state_change(**kwargs) -> None:
            # zeroconf passes keyword-only arguments; may be called off-loop
            if kwargs.get("state_change") not in (ServiceStateChange.Added, ServiceStateChange.Updated):
                return
            loop.call_soon_threadsafe(
                start_resolution,
                kwargs.get("zeroconf"),
                kwargs.get("service_type", service_type),
                kwargs.get("name", ""),
            )

        try:
            aiozc = self._zeroconf_factory()
            browser = AsyncServiceBrowser(aiozc.zeroconf, service_type, handlers=[on_service_state_change])
        except Exception as e:
            if aiozc is not None:
                await self._close_quietly(aiozc.async_close())
            raise DiscoveryError(f"mDNS discovery failed: {e}") from e

        logger.info(f"[MDNS] Browsing {service_type} for {timeout}s")
        try:
            await asyncio.sleep(timeout)
        finally:
            devices = await state.complete()
            for task in list(resolutions):
                task.cancel()
            await self._close_quietly(browser.async_cancel())
            await self._close_quietly(aiozc.async_close())

        logger.info(f"[MDNS] {len(devices)} speaker(s) from {len(state.seen_services)} announced service(s)")
        return devices

    async def _resolve_and_probe(self, zeroconf, service_type: str, name: str, state: _BrowseState) -> None:
        address = await self._resolve_address(zeroconf, service_type, name)
        if address is None:
            logger.debug(f"[MDNS] Could not resolve {name}")
            return
        device = await self.prober.probe(address)
        if device is None:
            logger.debug(f"[MDNS] {name} ({address}) is not a KEF speaker")
            return
        logger.info(f"[MDNS] Found speaker: {device.name} ({device.host}) via {name}")
        await state.add(device)

    async def _resolve_address(self, zeroconf, service_type: str, name: str) -> Optional[str]:
        """First IPv4 address of the service, bounded by resolve_timeout"""
        info = AsyncServiceInfo(service_type, name)
        try:
            resolved = await asyncio.wait_for(
                info.async_request(zeroconf, int(self.resolve_timeout * 1000)),
                timeout=self.resolve_timeout,
            )
        except (asyncio.TimeoutError, OSError) as e:
            logger.debug(f"[MDNS] Resolution of {name} failed: {e}")
            return None
        if not resolved:
            return None
        addresses = info.parsed_addresses(IPVersion.V4Only)
        return addresses[0] if addresses else None

    @staticmethod
    async def _close_quietly(closing) -> None:
        try:
            await closing
        except Exception as e:
            logger.debug(f"[MDNS] Error during shutdown: {e}")
