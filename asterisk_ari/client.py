"""Main ARI client implementation.

This module provides the ARIClient facade. It composes the event stream
connection, the event dispatcher, the instance cache and the REST transport
of one Asterisk connection.
"""

import uuid
from types import TracebackType
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from asterisk_ari.binder import InstanceBinder
from asterisk_ari.cache import InstanceCache
from asterisk_ari.config import ARIConfig
from asterisk_ari.connection import ConnectionManager, ConnectionState
from asterisk_ari.dispatcher import ClientEvent, EventDispatcher, Listener
from asterisk_ari.exceptions import ConfigurationError
from asterisk_ari.log import LoggerLike, configure_level, get_client_logger
from asterisk_ari.resources import (
    INSTANCE_TYPES,
    BridgeInstance,
    ChannelInstance,
    PlaybackInstance,
    ResourceInstance,
)
from asterisk_ari.rest import RestClient


class ARIClient:
    """Async-first client for Asterisk REST Interface (ARI).

    Events received on the stream are enriched with cached instance proxies
    (``event.instance_channel`` and friends) before listeners see them.

    Example:
        ```python
        import asyncio
        from asterisk_ari import ARIClient, ARIConfig

        async def main():
            config = ARIConfig(host="localhost", username="asterisk", password="asterisk")

            async with ARIClient(config) as client:
                @client.on("StasisStart")
                async def on_start(event):
                    await event.instance_channel.answer()

                await client.connect_websocket(["hello_world"])
                await asyncio.sleep(60)

        asyncio.run(main())
        ```

    Args:
        config: Configuration object with connection settings
        logger: Logger to use instead of the per-client default
    """

    def __init__(self, config: ARIConfig, logger: Optional[LoggerLike] = None) -> None:
        self.config = config
        configure_level(config.debug, config.log_level)
        self.logger = logger if logger is not None else get_client_logger(config.display_name)

        self.dispatcher = EventDispatcher(logger=self.logger)
        self.cache = InstanceCache()
        self.rest = RestClient(config, logger=self.logger)
        self.binder = InstanceBinder(self.cache, self.dispatcher, self._create_instance, logger=self.logger)
        self.connection = ConnectionManager(config, self.dispatcher, self.binder.process, logger=self.logger)

    async def __aenter__(self) -> "ARIClient":
        """Async context manager entry."""
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type],
            exc_val: Optional[Exception],
            exc_tb: Optional[TracebackType],
    ) -> None:
        """Async context manager exit."""
        await self.close()

    def _create_instance(self, kind: str, entity_id: str) -> ResourceInstance:
        return INSTANCE_TYPES[kind](entity_id, self.rest, self.dispatcher, self.binder)

    # ────────────────────────── Event stream ─────────────────────────────────
    async def connect_websocket(
            self,
            applications: Sequence[str],
            subscribed_events: Optional[Sequence[str]] = None,
    ) -> None:
        """Open the event stream for the given Stasis applications.

        Args:
            applications: Application names to subscribe to
            subscribed_events: Optional event type filter

        Raises:
            ConfigurationError: If the application list is invalid
            ConnectionError: If the WebSocket handshake fails
        """
        await self.connection.connect(applications, subscribed_events)

    async def close_websocket(self) -> None:
        """Close the event stream and cancel any pending reconnect."""
        await self.connection.close()

    def is_websocket_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def get_connection_status(self) -> Dict[str, Any]:
        """Get connection status of the stream and the REST transport."""
        status = self.connection.get_status()
        status["http_session_open"] = not self.rest.closed
        status["cached_instances"] = len(self.cache)
        return status

    # ────────────────────────── Listeners ────────────────────────────────────
    def on(
            self,
            event_type: Union[str, ClientEvent],
            listener: Optional[Listener] = None,
    ) -> Union[Listener, Callable[[Listener], Listener]]:
        """Register a listener for an ARI event type or a ClientEvent.

        Can be used as a decorator when ``listener`` is omitted::

            @client.on("StasisStart")
            async def handle(event): ...
        """
        if listener is None:
            return lambda fn: self.dispatcher.on(event_type, fn)
        return self.dispatcher.on(event_type, listener)

    def once(self, event_type: Union[str, ClientEvent], listener: Listener) -> Listener:
        return self.dispatcher.once(event_type, listener)

    def off(self, event_type: Union[str, ClientEvent], listener: Optional[Listener] = None) -> bool:
        return self.dispatcher.off(event_type, listener)

    # ────────────────────────── Instances ────────────────────────────────────
    def channel(self, channel_id: str) -> ChannelInstance:
        """Return the cached instance for a channel id."""
        return self.binder.instance_for("channel", channel_id)

    def bridge(self, bridge_id: str) -> BridgeInstance:
        """Return the cached instance for a bridge id."""
        return self.binder.instance_for("bridge", bridge_id)

    def playback(self, playback_id: str) -> PlaybackInstance:
        """Return the cached instance for a playback id."""
        return self.binder.instance_for("playback", playback_id)

    # ────────────────────────── REST ─────────────────────────────────────────
    async def request(
            self,
            method: str,
            path: str,
            params: Optional[Dict[str, Any]] = None,
            json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make an authenticated request to the ARI API."""
        return await self.rest.request(method, path, params=params, json=json)

    async def ping(self) -> Dict[str, Any]:
        return await self.rest.ping()

    async def get_info(self) -> Dict[str, Any]:
        return await self.rest.get_info()

    async def get_channels(self) -> List[ChannelInstance]:
        """List active channels as instances."""
        data = await self.rest.request("GET", "/channels")
        return [self.channel(item["id"]) for item in data or []]

    async def get_bridges(self) -> List[BridgeInstance]:
        """List active bridges as instances."""
        data = await self.rest.request("GET", "/bridges")
        return [self.bridge(item["id"]) for item in data or []]

    def _default_app(self, app: Optional[str]) -> str:
        if app:
            return app
        apps = self.connection.subscribed_applications
        if not apps:
            raise ConfigurationError(
                "No application given and the event stream is not subscribed to any",
                field="app",
            )
        return apps[0]

    async def create_bridge(
            self,
            bridge_type: str = "mixing",
            bridge_id: Optional[str] = None,
            name: Optional[str] = None,
    ) -> BridgeInstance:
        """Create a new bridge.

        Args:
            bridge_type: Type of bridge (mixing, holding, dtmf_events, proxy_media)
            bridge_id: Bridge ID to use (optional)
            name: Bridge name (optional)

        Returns:
            The cached BridgeInstance of the created bridge
        """
        bridge_id = bridge_id or str(uuid.uuid4())
        params = {"type": bridge_type, "bridgeId": bridge_id}
        if name:
            params["name"] = name

        async with self.binder.pending("bridge", bridge_id) as instance:
            created = await self.rest.request("POST", "/bridges", params=params)
        self.logger.info(f"Created bridge {bridge_id}")
        if isinstance(created, dict) and created.get("id") not in (None, bridge_id):
            return self.bridge(created["id"])
        return instance

    async def originate(
            self,
            endpoint: str,
            app: Optional[str] = None,
            app_args: Optional[str] = None,
            extension: Optional[str] = None,
            context: Optional[str] = None,
            priority: Optional[int] = None,
            caller_id: Optional[str] = None,
            timeout: Optional[int] = 30,
            channel_id: Optional[str] = None,
            variables: Optional[Dict[str, str]] = None,
    ) -> ChannelInstance:
        """Originate a call to ``endpoint``.

        When neither ``app`` nor a dialplan ``extension`` is given, the new
        channel enters the first application the event stream is subscribed
        to. The channel id is chosen before the request is sent so early
        events bind to the returned instance. A failed request leaves no
        cache entry behind.

        Returns:
            The cached ChannelInstance of the new channel
        """
        channel_id = channel_id or str(uuid.uuid4())
        params: Dict[str, Any] = {"endpoint": endpoint, "channelId": channel_id}
        if extension:
            params["extension"] = extension
            if context:
                params["context"] = context
            if priority:
                params["priority"] = priority
        else:
            params["app"] = self._default_app(app)
            if app_args:
                params["appArgs"] = app_args
        if caller_id:
            params["callerId"] = caller_id
        if timeout:
            params["timeout"] = timeout

        body = {"variables": variables} if variables else None
        async with self.binder.pending("channel", channel_id) as instance:
            await self.rest.request("POST", "/channels", params=params, json=body)
        self.logger.info(f"Originated channel {channel_id} to {endpoint}")
        return instance

    async def create_external_media(
            self,
            external_host: str,
            app: Optional[str] = None,
            format: str = "slin16",
            encapsulation: str = "rtp",
            transport: str = "udp",
            direction: str = "both",
            connection_type: str = "client",
            channel_id: Optional[str] = None,
    ) -> ChannelInstance:
        """Create an external media channel streaming to ``external_host``.

        Args:
            external_host: host:port of the media receiver
            app: Stasis application for the channel (defaults to the first
                subscribed application)
            format: Audio format (codec)
            encapsulation: Payload encapsulation
            transport: Transport protocol
            direction: Media direction
            connection_type: client or server
            channel_id: Explicit channel id (generated if omitted)

        Returns:
            The cached ChannelInstance of the external media channel
        """
        channel_id = channel_id or str(uuid.uuid4())
        params = {
            "app": self._default_app(app),
            "external_host": external_host,
            "format": format,
            "encapsulation": encapsulation,
            "transport": transport,
            "direction": direction,
            "connection_type": connection_type,
            "channelId": channel_id,
        }
        async with self.binder.pending("channel", channel_id) as instance:
            await self.rest.request("POST", "/channels/externalMedia", params=params)
        self.logger.info(f"Created external media channel {channel_id} to {external_host}")
        return instance

    # ────────────────────────── Teardown ─────────────────────────────────────
    async def close(self) -> None:
        """Close the event stream and HTTP session, drop listeners and cached instances."""
        await self.connection.close()
        await self.rest.close()
        self.dispatcher.clear()
        self.cache.clear()
        self.logger.info("Client closed")
