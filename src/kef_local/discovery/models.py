"""
Discovery data structures and models
"""

import ipaddress
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

PRIVATE_PREFIXES = ("10.", "172.", "192.168.")

@dataclass(frozen=True)
class DiscoveredDevice:
    """Snapshot of a speaker that answered a probe"""
    name: str
    host: str
    port: int = 80
    model: Optional[str] = None
    mac_address: Optional[str] = None

@dataclass(frozen=True)
class CandidateRange:
    """A /24 given by its first three octets, e.g. "192.168.1" """
    prefix: str

    def __post_init__(self):
        # Raises ValueError for anything that is not three valid octets
        ipaddress.IPv4Address(f"{self.prefix}.0")

    @classmethod
    def from_address(cls, address: str) -> "CandidateRange":
        octets = str(ipaddress.IPv4Address(address)).split(".")
        return cls(".".join(octets[:3]))

    @property
    def is_private(self) -> bool:
        return f"{self.prefix}.".startswith(PRIVATE_PREFIXES)

    def hosts(self) -> Iterator[str]:
        for i in range(1, 255):
            yield f"{self.prefix}.{i}"

    def __str__(self):
        return f"{self.prefix}.*"

@dataclass
class DiscoveryResult:
    """Results from discovery operations"""
    devices: List[DiscoveredDevice]
    method: str  # "mdns", "ip_scan"
    duration_seconds: float
    errors: List[str] = field(default_factory=list)
