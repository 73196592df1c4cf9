"""
Long-running services
"""

from .speaker_server import SpeakerServer

__all__ = ['SpeakerServer']
