"""
Error types raised when talking to a KEF speaker
"""


class KefError(Exception):
    """Base class for all speaker communication errors"""

    message = "Speaker error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)


class NetworkError(KefError):
    """Transport-level failure (timeout, HTTP error status, dropped connection)"""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Network error: {detail}")


class InvalidResponseError(KefError):
    message = "Invalid response from speaker"


class ParsingError(KefError):
    message = "Failed to parse JSON response"


class SpeakerNotRespondingError(KefError):
    """The device itself is unreachable. Live sync treats this as fatal."""

    message = "Speaker is not responding"


class InvalidURLError(KefError):
    message = "Invalid URL"


class NoSubnetFoundError(NetworkError):
    def __init__(self, detail: str = "Unable to determine local subnet"):
        super().__init__(detail)


class DiscoveryError(NetworkError):
    """The announcement-based discovery mechanism itself is unavailable"""
