"""Pytest configuration and fixtures for asterisk-ari tests.

This module provides common fixtures, including an in-process mock ARI
server (HTTP routes plus the ``/ari/events`` WebSocket) for end-to-end tests.
"""

import asyncio
from typing import Any, AsyncGenerator, Callable, Dict, List, Tuple
from unittest.mock import AsyncMock

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from asterisk_ari import ARIClient, ARIConfig
from asterisk_ari.dispatcher import EventDispatcher

TEST_USERNAME = "test_user"
TEST_PASSWORD = "test_password"


@pytest.fixture
def ari_test_config() -> Dict[str, Any]:
    """Provide test configuration for ARI client.

    Returns:
        Dictionary with test configuration values
    """
    return {
        "host": "localhost",
        "port": 8088,
        "username": TEST_USERNAME,
        "password": TEST_PASSWORD,
        "timeout": 30.0,
        "retry_attempts": 3,
        "debug": True,
    }


@pytest.fixture
def ari_config(ari_test_config: Dict[str, Any]) -> ARIConfig:
    """Provide ARIConfig instance for testing."""
    return ARIConfig(**ari_test_config)


@pytest.fixture
def mock_channel_data() -> Dict[str, Any]:
    """Provide mock channel data for testing.

    Returns:
        Dictionary with mock channel data
    """
    return {
        "id": "channel-1",
        "name": "PJSIP/1000-00000001",
        "state": "Ring",
        "caller": {
            "name": "Test Caller",
            "number": "1000"
        },
        "connected": {
            "name": "",
            "number": ""
        },
        "accountcode": "",
        "dialplan": {
            "context": "default",
            "exten": "100",
            "priority": 1,
            "app_name": "Stasis",
            "app_data": "app1"
        },
        "creationtime": "2023-09-21T12:00:00.000+0000",
        "language": "en"
    }


@pytest.fixture
def mock_bridge_data() -> Dict[str, Any]:
    """Provide mock bridge data for testing."""
    return {
        "id": "bridge-1",
        "technology": "simple_bridge",
        "bridge_type": "mixing",
        "bridge_class": "stasis",
        "name": "test_bridge",
        "channels": [],
        "creationtime": "2023-09-21T12:00:00.000+0000"
    }


@pytest.fixture
def make_event(mock_channel_data: Dict[str, Any]) -> Callable[..., Dict[str, Any]]:
    """Build raw event frames as Asterisk sends them."""

    def factory(event_type: str, **fields: Any) -> Dict[str, Any]:
        event = {
            "type": event_type,
            "application": "app1",
            "timestamp": "2023-09-21T12:00:01.000+0000",
            "asterisk_id": "00:11:22:33:44:55",
        }
        event.update(fields)
        return event

    return factory


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def mock_rest() -> AsyncMock:
    """REST collaborator double exposing ``request()``."""
    rest = AsyncMock()
    rest.request = AsyncMock(return_value=None)
    return rest


@pytest.fixture
def wait_for() -> Callable[..., Any]:
    """Poll a predicate until it holds, failing the test after ``timeout``."""

    async def waiter(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(interval)

    return waiter


class MockARIServer:
    """In-process ARI server.

    Serves a small subset of the REST routes and the event WebSocket. Tests
    push events with :meth:`send_event`, simulate network loss with
    :meth:`drop_connections` and count live sockets with :meth:`connections`.
    """

    def __init__(self) -> None:
        self.sockets: List[web.WebSocketResponse] = []
        self.requests: List[Tuple[str, str, Dict[str, str]]] = []
        self.websocket_queries: List[Dict[str, str]] = []
        self.reject_websocket = False
        self.failures: Dict[str, List[int]] = {}
        self.delays: Dict[str, float] = {}

        self.app = web.Application(middlewares=[self._auth_middleware])
        self.app.router.add_get("/ari/events", self.events)
        self.app.router.add_get("/ari/asterisk/ping", self.ping)
        self.app.router.add_get("/ari/asterisk/info", self.info)
        self.app.router.add_get("/ari/channels", self.channels_list)
        self.app.router.add_post("/ari/channels", self.channels_create)
        self.app.router.add_post("/ari/channels/externalMedia", self.external_media)
        self.app.router.add_get("/ari/channels/{channel_id}", self.channel_get)
        self.app.router.add_post("/ari/channels/{channel_id}/answer", self.no_content)
        self.app.router.add_delete("/ari/channels/{channel_id}", self.no_content)
        self.app.router.add_post("/ari/bridges", self.bridges_create)
        self.app.router.add_post("/ari/bridges/{bridge_id}/addChannel", self.no_content)
        self.app.router.add_post("/ari/bridges/{bridge_id}/removeChannel", self.no_content)
        self.app.router.add_delete("/ari/bridges/{bridge_id}", self.no_content)
        self.server = TestServer(self.app)

    @property
    def host(self) -> str:
        return self.server.host

    @property
    def port(self) -> int:
        return self.server.port

    async def start(self) -> None:
        await self.server.start_server()

    async def close(self) -> None:
        await self.drop_connections()
        await self.server.close()

    def fail_next(self, path: str, *statuses: int) -> None:
        """Answer the next requests to ``path`` with the given error statuses."""
        self.failures.setdefault(path, []).extend(statuses)

    def delay(self, path: str, seconds: float) -> None:
        """Hold every request to ``path`` for ``seconds`` before answering it."""
        self.delays[path] = seconds

    @web.middleware
    async def _auth_middleware(self, request: web.Request, handler):
        self.requests.append((request.method, request.path, dict(request.query)))

        if request.path == "/ari/events":
            authorized = request.query.get("api_key") == f"{TEST_USERNAME}:{TEST_PASSWORD}"
        else:
            header = request.headers.get("Authorization", "")
            try:
                auth = aiohttp.BasicAuth.decode(header)
            except ValueError:
                auth = None
            authorized = auth is not None and auth.login == TEST_USERNAME and auth.password == TEST_PASSWORD
        if not authorized:
            return web.json_response({"message": "Authentication required"}, status=401)

        if request.path in self.delays:
            await asyncio.sleep(self.delays[request.path])

        pending = self.failures.get(request.path)
        if pending:
            return web.json_response({"message": "Injected failure"}, status=pending.pop(0))
        return await handler(request)

    # ────────────────────────── Event stream ─────────────────────────────────
    async def events(self, request: web.Request) -> web.StreamResponse:
        if self.reject_websocket:
            return web.json_response({"message": "Service unavailable"}, status=503)

        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.websocket_queries.append(dict(request.query))
        self.sockets.append(ws)
        try:
            async for _ in ws:
                pass
        finally:
            if ws in self.sockets:
                self.sockets.remove(ws)
        return ws

    def connections(self) -> int:
        return sum(1 for ws in self.sockets if not ws.closed)

    async def send_event(self, event: Dict[str, Any]) -> None:
        for ws in list(self.sockets):
            if not ws.closed:
                await ws.send_json(event)

    async def send_raw(self, data: str) -> None:
        for ws in list(self.sockets):
            if not ws.closed:
                await ws.send_str(data)

    async def drop_connections(self) -> None:
        for ws in list(self.sockets):
            if not ws.closed:
                await ws.close()

    # ────────────────────────── REST routes ──────────────────────────────────
    async def ping(self, request: web.Request) -> web.Response:
        return web.json_response({
            "asterisk_id": "mock",
            "ping": "pong",
            "timestamp": "2023-09-21T12:00:00.000+0000",
        })

    async def info(self, request: web.Request) -> web.Response:
        return web.json_response({
            "system": {"version": "20.5.0", "entity_id": "mock"},
            "build": {"os": "Linux"},
        })

    async def channels_list(self, request: web.Request) -> web.Response:
        return web.json_response([{"id": "channel-1"}, {"id": "channel-2"}])

    async def channels_create(self, request: web.Request) -> web.Response:
        params = request.query
        return web.json_response({
            "id": params.get("channelId", "generated-channel"),
            "name": f"TEST/{params.get('endpoint', 'unknown')}",
            "state": "Down",
        })

    async def external_media(self, request: web.Request) -> web.Response:
        params = request.query
        return web.json_response({
            "id": params.get("channelId", "external-1"),
            "name": f"UnicastRTP/{params.get('external_host', 'unknown')}",
            "state": "Up",
        })

    async def channel_get(self, request: web.Request) -> web.Response:
        channel_id = request.match_info["channel_id"]
        if channel_id == "missing":
            return web.json_response({"message": "Channel not found"}, status=404)
        return web.json_response({"id": channel_id, "name": "PJSIP/1000-00000001", "state": "Up"})

    async def bridges_create(self, request: web.Request) -> web.Response:
        params = request.query
        return web.json_response({
            "id": params.get("bridgeId", "generated-bridge"),
            "technology": "simple_bridge",
            "bridge_type": params.get("type", "mixing"),
            "channels": [],
        })

    async def no_content(self, request: web.Request) -> web.Response:
        return web.Response(status=204)


@pytest.fixture
async def mock_ari_server() -> AsyncGenerator[MockARIServer, None]:
    """Start a mock ARI server for the duration of a test."""
    server = MockARIServer()
    await server.start()
    try:
        yield server
    finally:
        await server.close()


@pytest.fixture
def live_config(mock_ari_server: MockARIServer) -> ARIConfig:
    """ARIConfig pointing at the mock server, with short delays."""
    return ARIConfig(
        host=mock_ari_server.host,
        port=mock_ari_server.port,
        username=TEST_USERNAME,
        password=TEST_PASSWORD,
        retry_attempts=1,
        retry_backoff=0.01,
        max_retry_delay=0.05,
        reconnect_initial_delay=0.01,
        reconnect_max_delay=0.05,
        websocket_ping_interval=None,
        websocket_close_timeout=1.0,
        client_name="test-client",
    )


@pytest.fixture
async def live_client(live_config: ARIConfig) -> AsyncGenerator[ARIClient, None]:
    """Provide an ARIClient bound to the mock server, closed after the test."""
    client = ARIClient(live_config)
    try:
        yield client
    finally:
        await client.close()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "websocket: mark test as WebSocket related"
    )
