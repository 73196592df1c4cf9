"""
Single-host speaker probe
"""

import logging
from typing import Callable, Optional
import aiohttp

from ..speaker.client import KefSpeaker
from ..speaker.command_executor import SpeakerCommandExecutor
from .models import DiscoveredDevice

logger = logging.getLogger(__name__)

class AddressProber:
    """Decides whether a host is a speaker by reading its friendly name.

    Anything that answers settings:/deviceName with a name counts as a
    speaker; every failure means "not a speaker". MAC address and model are
    read afterwards on a best-effort basis.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        probe_timeout: float = 0.5,
        metadata_timeout: float = 2,
        port: int = 80,
        executor_factory: Optional[Callable[[str], SpeakerCommandExecutor]] = None,
    ):
        self.session = session
        self.probe_timeout = probe_timeout
        self.metadata_timeout = metadata_timeout
        self.port = port
        self._executor_factory = executor_factory or self._default_executor

    def _default_executor(self, host: str) -> SpeakerCommandExecutor:
        return SpeakerCommandExecutor(host, self.port, session=self.session, request_timeout=self.probe_timeout)

    async def probe(self, host: str) -> Optional[DiscoveredDevice]:
        """Returns the device at host, or None if it is not a speaker"""
        speaker = KefSpeaker(host, self.port, executor=self._executor_factory(host))
        try:
            try:
                name = await speaker.get_speaker_name(timeout=self.probe_timeout)
            except Exception:
                return None

            mac_address = None
            model = None
            try:
                mac_address = await speaker.get_mac_address(timeout=self.metadata_timeout)
            except Exception as e:
                logger.debug(f"No MAC address from {host}: {e}")
            try:
                model = (await speaker.get_firmware_version(timeout=self.metadata_timeout)).model
            except Exception as e:
                logger.debug(f"No firmware info from {host}: {e}")

            return DiscoveredDevice(
                name=name,
                host=host,
                port=self.port,
                model=model,
                mac_address=mac_address,
            )
        finally:
            try:
                await speaker.close()
            except Exception as e:
                logger.debug(f"Error closing probe session for {host}: {e}")
