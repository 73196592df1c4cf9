"""Tests for the HTTP command executor and its error mapping."""

import asyncio
from unittest.mock import MagicMock

import aiohttp
import pytest

from kef_local.speaker.command_executor import SpeakerCommandExecutor
from kef_local.speaker.errors import (
    InvalidResponseError,
    InvalidURLError,
    NetworkError,
)
from tests.mocks import MockResponse, MockSession


def make_executor(outcome, host="192.168.1.50", port=80):
    session = MockSession(outcome)
    return SpeakerCommandExecutor(host, port, session=session, request_timeout=3), session


@pytest.mark.asyncio
async def test_returns_body_text():
    executor, session = make_executor(MockResponse(200, b'[{"i32_": 42}]'))

    body = await executor.execute("/api/getData", params={"path": "player:volume", "roles": "value"})

    assert body == '[{"i32_": 42}]'
    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url == "http://192.168.1.50/api/getData"
    assert kwargs["params"] == {"path": "player:volume", "roles": "value"}
    assert kwargs["timeout"].total == 3


@pytest.mark.asyncio
async def test_params_stringified_and_timeout_override():
    executor, session = make_executor(MockResponse(200, b"[]"))

    await executor.execute("/api/event/pollQueue", params={"queueId": "{q}", "timeout": 10}, timeout=11)

    _, _, kwargs = session.calls[0]
    assert kwargs["params"] == {"queueId": "{q}", "timeout": "10"}
    assert kwargs["timeout"].total == 11


@pytest.mark.asyncio
async def test_post_json_body():
    executor, session = make_executor(MockResponse(200, b'"{q}"'))

    await executor.execute("/api/event/modifyQueue", method="POST", json_body={"subscribe": []})

    method, _, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["json"] == {"subscribe": []}
    assert kwargs["params"] is None


def test_base_url_includes_non_default_port():
    executor, _ = make_executor(None, port=8080)
    assert executor.base_url == "http://192.168.1.50:8080"


@pytest.mark.asyncio
async def test_http_error_status():
    executor, _ = make_executor(MockResponse(500))
    with pytest.raises(NetworkError, match="HTTP 500"):
        await executor.execute("/api/getData")


@pytest.mark.asyncio
async def test_timeout_is_network_error():
    executor, _ = make_executor(asyncio.TimeoutError())
    with pytest.raises(NetworkError, match="timed out"):
        await executor.execute("/api/getData")


@pytest.mark.asyncio
async def test_connection_refused_is_network_error():
    error = aiohttp.ClientConnectorError(MagicMock(), OSError(111, "Connection refused"))
    executor, _ = make_executor(error)
    with pytest.raises(NetworkError, match="cannot connect to 192.168.1.50:80"):
        await executor.execute("/api/getData")


@pytest.mark.asyncio
async def test_dropped_connection_is_network_error():
    executor, _ = make_executor(aiohttp.ServerDisconnectedError())
    with pytest.raises(NetworkError):
        await executor.execute("/api/getData")


@pytest.mark.asyncio
async def test_non_utf8_body():
    executor, _ = make_executor(MockResponse(200, b"\xff\xfe\xfa"))
    with pytest.raises(InvalidResponseError):
        await executor.execute("/api/getData")


@pytest.mark.asyncio
@pytest.mark.parametrize("host,endpoint", [
    ("", "/api/getData"),
    ("bad host", "/api/getData"),
    ("192.168.1.50", "api/getData"),
])
async def test_invalid_url(host, endpoint):
    executor, session = make_executor(MockResponse(200), host=host)
    with pytest.raises(InvalidURLError):
        await executor.execute(endpoint)
    assert session.calls == []


@pytest.mark.asyncio
async def test_shared_session_not_closed():
    executor, session = make_executor(MockResponse(200))
    await executor.close()
    assert not session.closed
