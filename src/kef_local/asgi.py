"""
ASGI entry point for uvicorn
This module exposes the FastAPI app for use with uvicorn command line:

    CONFIG_FILE=config/config.yaml uvicorn kef_local.asgi:app
"""

import logging
import os

from .services.speaker_server import SpeakerServer

server = SpeakerServer(config_path=os.environ.get('CONFIG_FILE', 'config/config.yaml'))

logger = logging.getLogger(__name__)

# Expose the FastAPI app for uvicorn
app = server.api.app

@app.on_event("startup")
async def startup_event():
    """Resolve the speaker and start live sync on startup"""
    logger.info("Starting up application...")
    await server.start_services()

@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources on shutdown"""
    logger.info("Shutting down application...")
    await server.stop()
    logger.info("Application shut down complete")

logger.info("ASGI app ready for uvicorn")
