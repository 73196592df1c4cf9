# HTTP Helper for KEF speaker connections
# Local speakers only speak plain HTTP on the LAN

import aiohttp
import logging

logger = logging.getLogger(__name__)

def create_speaker_session(timeout_seconds: float = 10) -> aiohttp.ClientSession:
    """
    Create properly configured aiohttp session for local speaker connections (always HTTP)
    """
    connector = aiohttp.TCPConnector(
        limit=100,
        limit_per_host=4,           # Long-poll + one control request + headroom
        ssl=False,                  # Speakers use HTTP only
        enable_cleanup_closed=True
    )

    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds)
    )

def create_scan_session(timeout_seconds: float = 0.5) -> aiohttp.ClientSession:
    """Session for subnet probing: unbounded fan-out, no keep-alive"""
    connector = aiohttp.TCPConnector(
        limit=0,
        ssl=False,
        force_close=True,           # One-shot probes, do not keep sockets around
        enable_cleanup_closed=True
    )

    logger.debug(f"Creating scan session (timeout={timeout_seconds}s)")
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds)
    )
