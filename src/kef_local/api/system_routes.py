"""
Discovery and system health API routes
"""

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel
from typing import Callable, List, Optional
from datetime import datetime, timezone
import logging

from ..discovery.manager import SpeakerDiscovery
from ..live_sync.state import SpeakerStateTracker
from ..speaker.errors import KefError

logger = logging.getLogger(__name__)

# Response models
class DiscoveredDeviceResponse(BaseModel):
    name: str
    host: str
    port: int
    model: Optional[str] = None
    mac_address: Optional[str] = None

class DiscoveryResponse(BaseModel):
    method: str
    duration_seconds: float
    devices: List[DiscoveredDeviceResponse]
    errors: List[str] = []

class HealthResponse(BaseModel):
    status: str
    speaker_host: Optional[str]
    live_sync_running: bool
    last_event: Optional[datetime]
    timestamp: datetime

def create_system_routes(
    discovery: SpeakerDiscovery,
    state_tracker: SpeakerStateTracker,
    get_speaker: Callable,
    is_syncing: Callable[[], bool],
):
    """Create discovery and health routes"""
    router = APIRouter(prefix="/api", tags=["system"])

    @router.get("/discovery", response_model=DiscoveryResponse)
    async def run_discovery(timeout: float = Query(5, gt=0, le=60)):
        """Discover speakers (mDNS first, subnet scan fallback)"""
        try:
            result = await discovery.discover_with_result(timeout)
        except KefError as e:
            logger.error(f"Discovery request failed: {e}")
            raise HTTPException(status_code=502, detail=str(e))

        return DiscoveryResponse(
            method=result.method,
            duration_seconds=round(result.duration_seconds, 2),
            devices=[
                DiscoveredDeviceResponse(
                    name=d.name, host=d.host, port=d.port, model=d.model, mac_address=d.mac_address
                )
                for d in result.devices
            ],
            errors=result.errors,
        )

    @router.get("/system/health", response_model=HealthResponse)
    async def get_health():
        """Connection and live sync status"""
        speaker = get_speaker()
        syncing = is_syncing()
        if speaker is None:
            status = "no_speaker"
        elif not syncing:
            status = "degraded"
        else:
            status = "healthy"

        return HealthResponse(
            status=status,
            speaker_host=speaker.host if speaker else None,
            live_sync_running=syncing,
            last_event=datetime.fromtimestamp(state_tracker.last_update, tz=timezone.utc)
            if state_tracker.last_update else None,
            timestamp=datetime.now(timezone.utc),
        )

    return router
