"""Event stream connection management.

The ConnectionManager owns the ARI events WebSocket. It performs the
handshake, reads frames one at a time in arrival order, and reconnects with
backoff when the socket drops without an explicit ``close()``.

State machine::

    DISCONNECTED -> CONNECTING -> CONNECTED <-> RECONNECTING
          any state --close()--> CLOSED
    RECONNECTING --attempts exhausted--> CLOSED
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import aiohttp
from aiohttp import ClientTimeout

from asterisk_ari.backoff import ExponentialBackoff
from asterisk_ari.config import ARIConfig
from asterisk_ari.dispatcher import ClientEvent, EventDispatcher
from asterisk_ari.exceptions import (
    ConfigurationError,
    ConnectionError,
    ProtocolError,
    ReconnectExhausted,
    WebSocketError,
)
from asterisk_ari.log import LoggerLike
from asterisk_ari.models import Event, parse_event

EventHandler = Callable[[Event], Awaitable[Any]]


class ConnectionState(str, Enum):
    """Event stream connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


@dataclass(frozen=True)
class ReconnectInfo:
    """Payload of the ``reconnected`` event."""
    apps: List[str]
    subscribed_events: Optional[List[str]] = None


@dataclass
class ConnectionStats:
    """Counters for the event stream."""
    connected_at: Optional[float] = None
    last_event_at: Optional[float] = None
    events_received: int = 0
    frames_dropped: int = 0
    reconnect_count: int = 0
    last_error: Optional[str] = None


def _normalize_applications(applications: Any) -> List[str]:
    if isinstance(applications, str) or not isinstance(applications, (list, tuple, set, frozenset)):
        raise ConfigurationError(
            "Applications must be given as a list of names",
            field="applications",
            invalid_value=applications,
        )
    names = list(applications)
    if not names:
        raise ConfigurationError(
            "At least one application name is required",
            field="applications",
            invalid_value=applications,
        )
    for name in names:
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(
                f"Invalid application name: {name!r}",
                field="applications",
                invalid_value=applications,
            )
    return [name.strip() for name in names]


class ConnectionManager:
    """Owns the persistent event stream connection of one client.

    Each inbound frame is decoded into an event envelope and awaited through
    ``on_event`` before the next frame is read. Lifecycle events
    (``connected``, ``disconnected``, ``reconnected``, ``reconnectFailed``,
    ``error``) are emitted on the dispatcher.

    Args:
        config: Configuration object with connection settings
        dispatcher: Dispatcher receiving lifecycle events
        on_event: Coroutine function handling each parsed event
        logger: Logger for the owning client
    """

    def __init__(
            self,
            config: ARIConfig,
            dispatcher: EventDispatcher,
            on_event: EventHandler,
            logger: Optional[LoggerLike] = None,
    ) -> None:
        self.config = config
        self._dispatcher = dispatcher
        self._on_event = on_event
        self._logger = logger if logger is not None else logging.getLogger(__name__)

        self._state = ConnectionState.DISCONNECTED
        self._apps: List[str] = []
        self._subscribed_events: Optional[List[str]] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._websocket: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_attempts = 0
        self._last_error: Optional[BaseException] = None
        self._connect_lock = asyncio.Lock()
        self._backoff = ExponentialBackoff(
            initial_delay=config.reconnect_initial_delay,
            max_delay=config.reconnect_max_delay,
            factor=config.reconnect_backoff_factor,
        )
        self.stats = ConnectionStats()

    # ────────────────────────── Status ───────────────────────────────────────
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """True while the stream is in the CONNECTED state. Performs no I/O."""
        return self._state is ConnectionState.CONNECTED

    @property
    def subscribed_applications(self) -> List[str]:
        return list(self._apps)

    @property
    def subscribed_events(self) -> Optional[List[str]]:
        return list(self._subscribed_events) if self._subscribed_events else None

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def get_status(self) -> Dict[str, Any]:
        """Return a snapshot of the connection status."""
        now = time.monotonic()
        return {
            "state": self._state.value,
            "applications": self.subscribed_applications,
            "subscribed_events": self.subscribed_events,
            "reconnect_attempts": self._reconnect_attempts,
            "reconnect_pending": self.reconnect_pending,
            "uptime_seconds": (
                now - self.stats.connected_at
                if self.is_connected and self.stats.connected_at else 0
            ),
            "events_received": self.stats.events_received,
            "frames_dropped": self.stats.frames_dropped,
            "reconnect_count": self.stats.reconnect_count,
            "last_error": self.stats.last_error,
        }

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            self._logger.debug(f"Event stream state {self._state.value} -> {state.value}")
            self._state = state

    # ────────────────────────── Public API ───────────────────────────────────
    async def connect(
            self,
            applications: Sequence[str],
            subscribed_events: Optional[Sequence[str]] = None,
    ) -> None:
        """Open the event stream for the given Stasis applications.

        Args:
            applications: Non-empty list of application names
            subscribed_events: Optional event types to subscribe to instead
                of all events

        Raises:
            ConfigurationError: If the application list is empty or invalid,
                or the stream is already open for other applications
            ConnectionError: If the WebSocket handshake fails
        """
        apps = _normalize_applications(applications)
        events = list(subscribed_events) if subscribed_events else None

        async with self._connect_lock:
            if self._state in (ConnectionState.CONNECTED, ConnectionState.RECONNECTING):
                if set(apps) == set(self._apps) and events == self._subscribed_events:
                    self._logger.debug("Event stream already connected")
                    return
                raise ConfigurationError(
                    f"Event stream is already open for {self._apps}; close() it before "
                    f"connecting other applications",
                    field="applications",
                    invalid_value=apps,
                )

            self._apps = apps
            self._subscribed_events = events
            self._reconnect_attempts = 0
            self._set_state(ConnectionState.CONNECTING)
            self._logger.info(f"Connecting to event stream at {self.config.websocket_url} for {apps}")

            try:
                websocket = await self._open_websocket()
            except asyncio.CancelledError:
                if self._state is ConnectionState.CONNECTING:
                    self._set_state(ConnectionState.DISCONNECTED)
                await self._release_session()
                raise
            except Exception as e:
                if self._state is ConnectionState.CONNECTING:
                    self._set_state(ConnectionState.DISCONNECTED)
                await self._release_session()
                self.stats.last_error = str(e)
                self._logger.error(f"Event stream connection failed: {e}")
                raise ConnectionError(
                    f"Failed to connect WebSocket: {e}",
                    host=self.config.host,
                    port=self.config.port,
                ) from e

            if self._state is not ConnectionState.CONNECTING:
                # close() ran during the handshake
                await websocket.close()
                raise ConnectionError(
                    "Event stream was closed during the handshake",
                    host=self.config.host,
                    port=self.config.port,
                )

            self._install(websocket)
            self._logger.info("Event stream connected")

        await self._dispatcher.emit(ClientEvent.CONNECTED, wildcard=False)
        self._start_reader(websocket)

    async def close(self) -> None:
        """Close the event stream. Safe to call any number of times.

        Cancels a pending reconnect before the socket is released, so a
        reconnect can never revive a closed connection.
        """
        if self._state is ConnectionState.CLOSED:
            return

        self._set_state(ConnectionState.CLOSED)
        reconnect_task, self._reconnect_task = self._reconnect_task, None
        if reconnect_task is not None and not reconnect_task.done():
            reconnect_task.cancel()

        websocket, self._websocket = self._websocket, None
        reader_task, self._reader_task = self._reader_task, None

        if websocket is not None and not websocket.closed:
            try:
                await asyncio.wait_for(websocket.close(), timeout=self.config.websocket_close_timeout)
            except (asyncio.TimeoutError, aiohttp.ClientError, OSError) as e:
                self._logger.warning(f"Error closing event stream socket: {e}")

        current = asyncio.current_task()
        for task in (reader_task, reconnect_task):
            if task is None or task is current or task.done():
                continue
            await asyncio.wait({task}, timeout=self.config.websocket_close_timeout)
            if not task.done():
                task.cancel()

        await self._release_session()
        self._logger.info("Event stream disconnected")
        await self._dispatcher.emit(ClientEvent.DISCONNECTED, wildcard=False)

    # ────────────────────────── Socket handling ──────────────────────────────
    async def _open_websocket(self) -> aiohttp.ClientWebSocketResponse:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=ClientTimeout(
                    total=None,
                    connect=self.config.timeout,
                    sock_connect=self.config.timeout,
                ),
                headers={"User-Agent": self.config.user_agent},
            )
        url = self.config.build_websocket_url(self._apps, self._subscribed_events)
        return await self._session.ws_connect(url, **self.config.get_websocket_kwargs())

    def _install(self, websocket: aiohttp.ClientWebSocketResponse) -> None:
        self._websocket = websocket
        self._reconnect_attempts = 0
        self.stats.connected_at = time.monotonic()
        self._set_state(ConnectionState.CONNECTED)

    def _start_reader(self, websocket: aiohttp.ClientWebSocketResponse) -> None:
        # A lifecycle listener may have closed the stream meanwhile.
        if self._state is not ConnectionState.CONNECTED or self._websocket is not websocket:
            return
        self._reader_task = asyncio.create_task(self._read_loop(websocket))

    async def _release_session(self) -> None:
        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()

    async def _read_loop(self, websocket: aiohttp.ClientWebSocketResponse) -> None:
        """Process frames sequentially until the socket closes."""
        error: Optional[BaseException] = None
        try:
            async for msg in websocket:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    try:
                        text = msg.data.decode("utf-8")
                    except UnicodeDecodeError:
                        self._drop_frame(ProtocolError("Binary frame is not valid UTF-8"))
                        continue
                    await self._handle_frame(text)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = websocket.exception()
                    self._logger.error(f"WebSocket error: {error}")
                    break
        except asyncio.CancelledError:
            self._logger.debug("Event stream reader cancelled")
            raise
        except Exception as e:
            error = e
            self._logger.error(f"Event stream reader error: {e}")

        await self._handle_socket_closed(websocket, error)

    def _drop_frame(self, error: ProtocolError) -> None:
        self.stats.frames_dropped += 1
        self._logger.warning(f"Dropping malformed frame: {error}")

    async def _handle_frame(self, data: str) -> None:
        try:
            payload = json.loads(data)
        except ValueError as e:
            self._drop_frame(ProtocolError(f"Frame is not valid JSON: {e}", frame=data))
            return

        try:
            event = parse_event(payload)
        except ProtocolError as e:
            self._drop_frame(e)
            return

        self.stats.events_received += 1
        self.stats.last_event_at = time.monotonic()
        self._logger.debug(f"Received event: {event.type}")

        try:
            await self._on_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.exception(f"Error processing {event.type} event")
            await self._dispatcher.emit(ClientEvent.ERROR, e, wildcard=False)

    async def _handle_socket_closed(
            self,
            websocket: aiohttp.ClientWebSocketResponse,
            error: Optional[BaseException],
    ) -> None:
        if websocket is not self._websocket or self._state is not ConnectionState.CONNECTED:
            return

        self._websocket = None
        self._reader_task = None
        self._last_error = error or WebSocketError(
            "Event stream closed unexpectedly",
            close_code=websocket.close_code,
        )
        self.stats.last_error = str(self._last_error)
        self._logger.warning(f"Event stream lost ({self._last_error}), reconnecting")

        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

        if not websocket.closed:
            await websocket.close()

    # ────────────────────────── Reconnection ─────────────────────────────────
    async def _reconnect_loop(self) -> None:
        """Reconnect sequentially with backoff until connected, closed or exhausted."""
        max_attempts = self.config.max_reconnect_attempts

        while self._state is ConnectionState.RECONNECTING:
            if max_attempts is not None and self._reconnect_attempts >= max_attempts:
                await self._give_up()
                return

            delay = self._backoff.delay(self._reconnect_attempts)
            self._reconnect_attempts += 1
            attempt = self._reconnect_attempts
            self._logger.info(f"Attempting event stream reconnection in {delay:.2f}s (attempt {attempt})")
            await asyncio.sleep(delay)

            if self._state is not ConnectionState.RECONNECTING:
                return

            try:
                websocket = await self._open_websocket()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._last_error = e
                self.stats.last_error = str(e)
                self._logger.warning(f"Event stream reconnection attempt {attempt} failed: {e}")
                continue

            if self._state is not ConnectionState.RECONNECTING:
                await websocket.close()
                return

            self._install(websocket)
            self.stats.reconnect_count += 1
            # This task is finished as far as close() is concerned.
            self._reconnect_task = None
            self._logger.info(f"Event stream reconnected after {attempt} attempt(s)")

            await self._dispatcher.emit(
                ClientEvent.RECONNECTED,
                ReconnectInfo(apps=list(self._apps), subscribed_events=self.subscribed_events),
                wildcard=False,
            )
            self._start_reader(websocket)
            return

    async def _give_up(self) -> None:
        error = ReconnectExhausted(
            "Event stream reconnection failed",
            attempts=self._reconnect_attempts,
            last_error=self._last_error,
        )
        error.__cause__ = self._last_error
        self._reconnect_task = None
        self._set_state(ConnectionState.CLOSED)
        await self._release_session()
        self._logger.error(str(error))
        await self._dispatcher.emit(ClientEvent.RECONNECT_FAILED, error, wildcard=False)


__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStats",
    "ReconnectInfo",
]
