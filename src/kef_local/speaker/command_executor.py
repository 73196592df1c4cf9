"""
Command execution against a speaker's local HTTP control plane
"""

import asyncio
import logging
from typing import Any, Dict, Optional
import aiohttp

from ..http_helper import create_speaker_session
from .errors import (
    InvalidResponseError,
    InvalidURLError,
    KefError,
    NetworkError,
)

logger = logging.getLogger(__name__)

class SpeakerCommandExecutor:
    """Issues single requests against one speaker and returns the body text.

    Failure mapping:
      - refused connect, timeout, non-200 status, dropped connection -> NetworkError
      - body is not UTF-8 text -> InvalidResponseError
      - host/endpoint cannot form a URL -> InvalidURLError

    A session may be shared (the subnet scan hands one session to every
    probe); only a session created here is closed by close().
    """
    def __init__(
        self,
        host: str,
        port: int = 80,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 10,
    ):
        self.host = host
        self.port = port
        self.request_timeout = request_timeout
        self._own_session = session is None
        self.session = session

    @property
    def base_url(self) -> str:
        if self.port == 80:
            return f"http://{self.host}"
        return f"http://{self.host}:{self.port}"

    async def close(self):
        if self._own_session and self.session is not None and not self.session.closed:
            await self.session.close()

    def _get_session(self) -> aiohttp.ClientSession:
        # Created lazily so the executor can be built outside a running loop
        if self.session is None or self.session.closed:
            self.session = create_speaker_session(self.request_timeout)
            self._own_session = True
        return self.session

    def _build_url(self, endpoint: str) -> str:
        if not self.host or any(ch.isspace() for ch in self.host) or not endpoint.startswith("/"):
            raise InvalidURLError()
        return f"{self.base_url}{endpoint}"

    async def execute(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        json_body: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        url = self._build_url(endpoint)
        timeout = self.request_timeout if timeout is None else timeout
        query = {k: str(v) for k, v in params.items()} if params else None

        try:
            async with self._get_session().request(
                method,
                url,
                params=query,
                json=json_body,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                if resp.status != 200:
                    raise NetworkError(f"HTTP {resp.status}")
                body = await resp.read()
        except KefError:
            raise
        except aiohttp.InvalidURL as e:
            raise InvalidURLError() from e
        except aiohttp.ClientConnectorError as e:
            raise NetworkError(f"cannot connect to {self.host}:{self.port}") from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"{method} {endpoint} timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(str(e) or e.__class__.__name__) from e

        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidResponseError() from e
