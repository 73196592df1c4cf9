"""
Discovery module for KEF speaker discovery
"""

from .manager import SpeakerDiscovery
from .mdns_browser import ServiceAnnouncerBrowser
from .models import CandidateRange, DiscoveredDevice, DiscoveryResult
from .network_discovery import SubnetScanner
from .prober import AddressProber

__all__ = [
    'SpeakerDiscovery', 'ServiceAnnouncerBrowser', 'SubnetScanner', 'AddressProber',
    'CandidateRange', 'DiscoveredDevice', 'DiscoveryResult',
]
