"""Tests for the board HTTP client against a local aiohttp server."""

import asyncio
from unittest.mock import patch

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from splitflap.board.client import AnimationOptions, BoardClient, BoardHTTPClient
from splitflap.board.errors import (
    BoardAuthenticationError,
    BoardConnectionError,
    BoardHTTPError,
    BoardRateLimitError,
    BoardServerError,
    BoardTimeoutError,
)

GRID = [[0] * 22 for _ in range(6)]


class SleepRecorder:
    """Backoff sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class BoardStub:
    """Scripted board endpoint: one response factory per call, last repeats."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def handle(self, request):
        body = await request.json() if request.method == "POST" else None
        self.requests.append((request.method, dict(request.headers), body))
        index = min(len(self.requests), len(self.responses)) - 1
        return await self.responses[index]()

    def app(self):
        app = web.Application()
        app.router.add_route("*", "/local-api/message", self.handle)
        return app


def respond(status=200, text="{}", headers=None, delay=0.0):
    async def factory():
        if delay:
            await asyncio.sleep(delay)
        return web.Response(status=status, text=text, headers=headers)

    return factory


def make_client(server, sleep, **kwargs):
    return BoardHTTPClient(
        api_key="test-key",
        base_url=str(server.make_url("")),
        sleep=sleep,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_server_errors_then_success_retries_with_backoff():
    stub = BoardStub(respond(503), respond(503), respond(200))
    sleep = SleepRecorder()
    async with TestServer(stub.app()) as server:
        async with make_client(server, sleep) as client:
            await client.post(GRID)

    assert len(stub.requests) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_single_server_error_then_success():
    stub = BoardStub(respond(500), respond(200))
    sleep = SleepRecorder()
    async with TestServer(stub.app()) as server:
        async with make_client(server, sleep) as client:
            await client.post(GRID)

    assert len(stub.requests) == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_exhausted_server_errors_raise_last_failure():
    stub = BoardStub(respond(503))
    sleep = SleepRecorder()
    async with TestServer(stub.app()) as server:
        async with make_client(server, sleep) as client:
            with pytest.raises(BoardServerError) as excinfo:
                await client.post(GRID)

    assert excinfo.value.status_code == 503
    assert len(stub.requests) == 3


@pytest.mark.asyncio
async def test_unauthorized_is_not_retried():
    stub = BoardStub(respond(401))
    sleep = SleepRecorder()
    async with TestServer(stub.app()) as server:
        async with make_client(server, sleep) as client:
            with pytest.raises(BoardAuthenticationError) as excinfo:
                await client.post(GRID)

    assert excinfo.value.is_retryable is False
    assert len(stub.requests) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_invalid_api_key_body_on_success_is_auth_failure():
    stub = BoardStub(respond(200, text='{"error": "Invalid API Key"}'))
    sleep = SleepRecorder()
    async with TestServer(stub.app()) as server:
        async with make_client(server, sleep) as client:
            with pytest.raises(BoardAuthenticationError):
                await client.post(GRID)

    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_rate_limit_carries_retry_after():
    stub = BoardStub(respond(429, headers={"Retry-After": "120"}))
    sleep = SleepRecorder()
    async with TestServer(stub.app()) as server:
        async with make_client(server, sleep) as client:
            with pytest.raises(BoardRateLimitError) as excinfo:
                await client.post(GRID)

    assert excinfo.value.retry_after == 120
    assert len(stub.requests) == 3


@pytest.mark.asyncio
async def test_rate_limit_with_unparseable_retry_after():
    stub = BoardStub(respond(429, headers={"Retry-After": "soon"}))
    async with TestServer(stub.app()) as server:
        async with make_client(server, SleepRecorder(), max_retries=0) as client:
            with pytest.raises(BoardRateLimitError) as excinfo:
                await client.post(GRID)

    assert excinfo.value.retry_after is None


@pytest.mark.asyncio
async def test_other_status_is_generic_http_error():
    stub = BoardStub(respond(404))
    sleep = SleepRecorder()
    async with TestServer(stub.app()) as server:
        async with make_client(server, sleep) as client:
            with pytest.raises(BoardHTTPError, match="HTTP error 404: Not Found"):
                await client.post(GRID)

    assert len(stub.requests) == 3


@pytest.mark.asyncio
async def test_timeout_is_classified():
    stub = BoardStub(respond(200, delay=1.0))
    async with TestServer(stub.app()) as server:
        async with make_client(server, SleepRecorder(), timeout_ms=100, max_retries=0) as client:
            with pytest.raises(BoardTimeoutError, match="Request timed out"):
                await client.post(GRID)


@pytest.mark.asyncio
async def test_unreachable_board_is_connection_error():
    stub = BoardStub(respond(200))
    server = TestServer(stub.app())
    await server.start_server()
    base_url = str(server.make_url(""))
    await server.close()

    sleep = SleepRecorder()
    async with BoardHTTPClient("test-key", base_url=base_url, sleep=sleep) as client:
        with pytest.raises(BoardConnectionError, match="Connection error"):
            await client.post(GRID)
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_request_carries_api_key_and_grid():
    stub = BoardStub(respond(200))
    async with TestServer(stub.app()) as server:
        async with make_client(server, SleepRecorder()) as client:
            await client.post(GRID)

    method, headers, body = stub.requests[0]
    assert method == "POST"
    assert headers["X-Vestaboard-Local-Api-Key"] == "test-key"
    assert body == GRID


@pytest.mark.asyncio
async def test_animation_payload_defaults_and_overrides():
    stub = BoardStub(respond(200))
    async with TestServer(stub.app()) as server:
        async with make_client(server, SleepRecorder()) as client:
            await client.post_with_animation(GRID)
            await client.post_with_animation(
                GRID, AnimationOptions(strategy="edges-to-center", step_interval_ms=50, step_size=2),
            )

    assert stub.requests[0][2] == {
        "characters": GRID,
        "strategy": "column",
        "step_interval_ms": 100,
        "step_size": 1,
    }
    assert stub.requests[1][2]["strategy"] == "edges-to-center"
    assert stub.requests[1][2]["step_size"] == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", ['{"message": %s}', "%s"])
async def test_get_accepts_wrapped_and_bare_grid(payload):
    body = payload % str(GRID)
    stub = BoardStub(respond(200, text=body))
    async with TestServer(stub.app()) as server:
        async with make_client(server, SleepRecorder()) as client:
            assert await client.get() == GRID


def test_backoff_is_capped():
    client = BoardHTTPClient("k", backoff_base_ms=1000, backoff_max_ms=4000)
    assert [client.backoff_delay_ms(n) for n in range(1, 6)] == [1000, 2000, 4000, 4000, 4000]


@pytest.mark.asyncio
async def test_validate_connection_reports_latency():
    stub = BoardStub(respond(200, text='{"message": []}'))
    async with TestServer(stub.app()) as server:
        board = BoardClient(make_client(server, SleepRecorder()))
        connected, latency_ms = await board.validate_connection()
        await board.close()

    assert connected is True
    assert latency_ms >= 0


@pytest.mark.asyncio
async def test_validate_connection_failure():
    stub = BoardStub(respond(401))
    async with TestServer(stub.app()) as server:
        board = BoardClient(make_client(server, SleepRecorder()))
        assert await board.validate_connection() == (False, None)
        await board.close()


@pytest.mark.asyncio
async def test_get_with_non_json_body_is_connection_error():
    stub = BoardStub(respond(200, text="<html>ok</html>"))
    sleep = SleepRecorder()
    async with TestServer(stub.app()) as server:
        async with make_client(server, sleep) as client:
            with pytest.raises(BoardConnectionError, match="Connection error"):
                await client.get()

    assert len(stub.requests) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_validate_connection_with_non_json_body():
    stub = BoardStub(respond(200, text="<html>ok</html>"))
    async with TestServer(stub.app()) as server:
        board = BoardClient(make_client(server, SleepRecorder(), max_retries=0))
        assert await board.validate_connection() == (False, None)
        await board.close()


@pytest.mark.asyncio
async def test_connection_error_without_message():
    client = BoardHTTPClient("test-key", max_retries=0, sleep=SleepRecorder())
    with patch.object(
        aiohttp.ClientSession, "request", side_effect=aiohttp.ClientConnectionError(),
    ):
        with pytest.raises(BoardConnectionError) as excinfo:
            await client.post(GRID)
    await client.close()

    assert str(excinfo.value) == "Unknown connection error"
