"""Instance proxies for ARI channels, bridges and playbacks.

An instance is bound to one entity id. Its operations forward to the REST
collaborator with the id filled in and raise whatever the collaborator
raises. Its ``on``/``off`` methods subscribe to the client's event
dispatcher, filtered to events about this entity.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Awaitable, Dict, List, Optional, Protocol, Tuple, Union

from asterisk_ari.dispatcher import EventDispatcher, Listener
from asterisk_ari.exceptions import ARIError
from asterisk_ari.models import Bridge, Channel, Event, Playback

logger = logging.getLogger(__name__)


class RequestHandler(Protocol):
    """The REST collaborator instances delegate to."""

    def request(
            self,
            method: str,
            path: str,
            params: Optional[Dict[str, Any]] = None,
            json: Optional[Dict[str, Any]] = None,
    ) -> Awaitable[Any]:
        ...


class InstanceRegistry(Protocol):
    """Hands out the cached instance for an entity about to be created."""

    def pending(self, kind: str, entity_id: str) -> AsyncContextManager["ResourceInstance"]:
        ...


def _bool_param(value: bool) -> str:
    return "true" if value else "false"


class ResourceInstance:
    """Base class for entity-bound proxies.

    Args:
        entity_id: Identifier of the channel, bridge or playback
        client: REST collaborator providing ``request()``
        dispatcher: The owning client's event dispatcher
        registry: Source of cached instances for related entities
    """

    kind: str = ""

    def __init__(
            self,
            entity_id: str,
            client: RequestHandler,
            dispatcher: EventDispatcher,
            registry: Optional[InstanceRegistry] = None,
    ) -> None:
        if not entity_id:
            raise ValueError(f"{self.kind} id cannot be empty")
        self._id = entity_id
        self._client = client
        self._dispatcher = dispatcher
        self._registry = registry
        self._released = False
        self._listeners: List[Tuple[str, Listener, Listener]] = []

    @property
    def id(self) -> str:
        return self._id

    @property
    def released(self) -> bool:
        """True once the entity ended and this instance left the cache."""
        return self._released

    # ────────────────────────── id-scoped subscriptions ──────────────────────
    def _matches(self, event: Any) -> bool:
        if not isinstance(event, Event):
            return False
        entity = event.entity(self.kind)
        return entity is not None and entity.id == self._id

    def on(self, event_type: str, listener: Listener, once: bool = False) -> Listener:
        """Subscribe to ``event_type`` events about this entity only.

        Returns:
            The listener, for use with :meth:`off`
        """
        if self._released:
            raise ARIError(
                f"{self!r} was released after its terminal event; "
                f"use client.{self.kind}({self._id!r}) for a live instance"
            )

        def scoped(event: Any = None) -> Union[None, Awaitable[None]]:
            if not self._matches(event):
                return None
            if once:
                self.off(event_type, listener)
            return listener(event)

        self._dispatcher.on(event_type, scoped)
        self._listeners.append((event_type, listener, scoped))
        return listener

    def once(self, event_type: str, listener: Listener) -> Listener:
        """Like :meth:`on`, but delivered at most once."""
        return self.on(event_type, listener, once=True)

    def off(self, event_type: str, listener: Optional[Listener] = None) -> bool:
        """Remove one scoped listener, or all of this instance's listeners for the type."""
        removed = False
        for entry in list(self._listeners):
            registered_type, original, scoped = entry
            if registered_type != event_type:
                continue
            if listener is not None and original is not listener:
                continue
            self._dispatcher.off(registered_type, scoped)
            self._listeners.remove(entry)
            removed = True
            if listener is not None:
                break
        return removed

    def remove_all_listeners(self) -> None:
        for event_type, _, scoped in self._listeners:
            self._dispatcher.off(event_type, scoped)
        self._listeners.clear()

    def release(self) -> None:
        """Detach all listeners and refuse new ones."""
        self._released = True
        self.remove_all_listeners()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @asynccontextmanager
    async def _creating(self, kind: str, entity_id: str) -> AsyncIterator["ResourceInstance"]:
        if self._registry is None:
            yield INSTANCE_TYPES[kind](entity_id, self._client, self._dispatcher)
            return
        async with self._registry.pending(kind, entity_id) as instance:
            yield instance

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._id!r})"


class ChannelInstance(ResourceInstance):
    """Operations on one Asterisk channel."""

    kind = "channel"

    async def get(self) -> Channel:
        """Fetch the current channel details."""
        data = await self._client.request("GET", f"/channels/{self.id}")
        return Channel.from_dict(data)

    async def answer(self) -> None:
        """Answer the channel."""
        await self._client.request("POST", f"/channels/{self.id}/answer")
        logger.debug(f"Answered channel {self.id}")

    async def ring(self) -> None:
        await self._client.request("POST", f"/channels/{self.id}/ring")

    async def ring_stop(self) -> None:
        await self._client.request("DELETE", f"/channels/{self.id}/ring")

    async def hangup(self, reason: Optional[str] = None) -> None:
        """Hang up the channel.

        Args:
            reason: Hangup reason (normal, busy, congestion, ...)
        """
        params = {"reason": reason} if reason else None
        await self._client.request("DELETE", f"/channels/{self.id}", params=params)
        logger.debug(f"Hung up channel {self.id}")

    async def play(
            self,
            media: Union[str, List[str]],
            lang: Optional[str] = None,
            playback_id: Optional[str] = None,
            offsetms: Optional[int] = None,
            skipms: Optional[int] = None,
    ) -> "PlaybackInstance":
        """Play media to the channel.

        The playback id is chosen before the request is sent, so the returned
        instance already receives the ``PlaybackStarted`` event. If the request
        fails, the playback instance is not kept.

        Args:
            media: Media URI(s) to play (e.g. "sound:hello-world")
            lang: Language for the media
            playback_id: Explicit playback id (generated if omitted)
            offsetms: Start offset in milliseconds
            skipms: Skip interval for forward/reverse in milliseconds

        Returns:
            The PlaybackInstance bound to the new playback
        """
        playback_id = playback_id or str(uuid.uuid4())
        params: Dict[str, Any] = {
            "media": media if isinstance(media, str) else ",".join(media),
            "playbackId": playback_id,
        }
        if lang:
            params["lang"] = lang
        if offsetms is not None:
            params["offsetms"] = offsetms
        if skipms is not None:
            params["skipms"] = skipms

        async with self._creating("playback", playback_id) as playback:
            await self._client.request("POST", f"/channels/{self.id}/play", params=params)
        return playback

    async def record(
            self,
            name: str,
            format: str = "wav",
            max_duration: Optional[int] = None,
            max_silence: Optional[int] = None,
            if_exists: str = "fail",
            beep: bool = False,
            terminate_on: str = "none",
    ) -> Dict[str, Any]:
        """Start recording the channel.

        Returns:
            The LiveRecording returned by Asterisk
        """
        params: Dict[str, Any] = {
            "name": name,
            "format": format,
            "ifExists": if_exists,
            "beep": _bool_param(beep),
            "terminateOn": terminate_on,
        }
        if max_duration:
            params["maxDurationSeconds"] = max_duration
        if max_silence:
            params["maxSilenceSeconds"] = max_silence
        return await self._client.request("POST", f"/channels/{self.id}/record", params=params)

    async def send_dtmf(self, dtmf: str, between: Optional[int] = None, duration: Optional[int] = None) -> None:
        params: Dict[str, Any] = {"dtmf": dtmf}
        if between is not None:
            params["between"] = between
        if duration is not None:
            params["duration"] = duration
        await self._client.request("POST", f"/channels/{self.id}/dtmf", params=params)

    async def mute(self, direction: str = "both") -> None:
        await self._client.request("POST", f"/channels/{self.id}/mute", params={"direction": direction})

    async def unmute(self, direction: str = "both") -> None:
        await self._client.request("DELETE", f"/channels/{self.id}/mute", params={"direction": direction})

    async def hold(self) -> None:
        await self._client.request("POST", f"/channels/{self.id}/hold")

    async def unhold(self) -> None:
        await self._client.request("DELETE", f"/channels/{self.id}/hold")

    async def continue_in_dialplan(
            self,
            context: Optional[str] = None,
            extension: Optional[str] = None,
            priority: Optional[int] = None,
            label: Optional[str] = None,
    ) -> None:
        """Exit the application and continue execution in the dialplan."""
        params = {
            key: value
            for key, value in (
                ("context", context),
                ("extension", extension),
                ("priority", priority),
                ("label", label),
            )
            if value is not None
        }
        await self._client.request("POST", f"/channels/{self.id}/continue", params=params or None)

    async def set_variable(self, variable: str, value: Optional[str] = None) -> None:
        params = {"variable": variable}
        if value is not None:
            params["value"] = value
        await self._client.request("POST", f"/channels/{self.id}/variable", params=params)

    async def get_variable(self, variable: str) -> Optional[str]:
        data = await self._client.request("GET", f"/channels/{self.id}/variable", params={"variable": variable})
        return (data or {}).get("value")


class BridgeInstance(ResourceInstance):
    """Operations on one Asterisk bridge."""

    kind = "bridge"

    async def get(self) -> Bridge:
        """Fetch the current bridge details."""
        data = await self._client.request("GET", f"/bridges/{self.id}")
        return Bridge.from_dict(data)

    async def add_channel(
            self,
            channel: Union[str, ChannelInstance, List[str]],
            role: Optional[str] = None,
            absorb_dtmf: bool = False,
            mute: bool = False,
    ) -> None:
        """Add one or more channels to the bridge.

        Args:
            channel: Channel id, ChannelInstance or list of channel ids
            role: Role of the channel in the bridge
            absorb_dtmf: Absorb DTMF coming from the channel
            mute: Mute audio coming from the channel
        """
        params: Dict[str, Any] = {
            "channel": _channel_ids(channel),
            "absorbDTMF": _bool_param(absorb_dtmf),
            "mute": _bool_param(mute),
        }
        if role:
            params["role"] = role
        await self._client.request("POST", f"/bridges/{self.id}/addChannel", params=params)
        logger.debug(f"Added channel(s) {params['channel']} to bridge {self.id}")

    async def remove_channel(self, channel: Union[str, ChannelInstance, List[str]]) -> None:
        """Remove one or more channels from the bridge."""
        await self._client.request(
            "POST", f"/bridges/{self.id}/removeChannel", params={"channel": _channel_ids(channel)}
        )

    async def play(
            self,
            media: Union[str, List[str]],
            lang: Optional[str] = None,
            playback_id: Optional[str] = None,
    ) -> "PlaybackInstance":
        """Play media to every channel in the bridge."""
        playback_id = playback_id or str(uuid.uuid4())
        params: Dict[str, Any] = {
            "media": media if isinstance(media, str) else ",".join(media),
            "playbackId": playback_id,
        }
        if lang:
            params["lang"] = lang
        async with self._creating("playback", playback_id) as playback:
            await self._client.request("POST", f"/bridges/{self.id}/play", params=params)
        return playback

    async def record(self, name: str, format: str = "wav", max_duration: Optional[int] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"name": name, "format": format}
        if max_duration:
            params["maxDurationSeconds"] = max_duration
        return await self._client.request("POST", f"/bridges/{self.id}/record", params=params)

    async def destroy(self) -> None:
        """Destroy the bridge."""
        await self._client.request("DELETE", f"/bridges/{self.id}")
        logger.debug(f"Destroyed bridge {self.id}")


class PlaybackInstance(ResourceInstance):
    """Controls for one media playback."""

    kind = "playback"

    async def get(self) -> Playback:
        data = await self._client.request("GET", f"/playbacks/{self.id}")
        return Playback.from_dict(data)

    async def control(self, operation: str) -> None:
        """Control the playback.

        Args:
            operation: pause, unpause, restart, reverse or forward
        """
        await self._client.request("POST", f"/playbacks/{self.id}/control", params={"operation": operation})

    async def pause(self) -> None:
        await self.control("pause")

    async def unpause(self) -> None:
        await self.control("unpause")

    async def restart(self) -> None:
        await self.control("restart")

    async def stop(self) -> None:
        """Stop the playback."""
        await self._client.request("DELETE", f"/playbacks/{self.id}")

    async def wait_finished(self, timeout: Optional[float] = None) -> Event:
        """Wait for the ``PlaybackFinished`` event of this playback."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def finished(event: Event) -> None:
            if not future.done():
                future.set_result(event)

        self.once("PlaybackFinished", finished)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            self.off("PlaybackFinished", finished)


def _channel_ids(channel: Union[str, ChannelInstance, List[str]]) -> str:
    if isinstance(channel, ChannelInstance):
        return channel.id
    if isinstance(channel, str):
        return channel
    return ",".join(c.id if isinstance(c, ChannelInstance) else c for c in channel)


INSTANCE_TYPES: Dict[str, type] = {
    ChannelInstance.kind: ChannelInstance,
    BridgeInstance.kind: BridgeInstance,
    PlaybackInstance.kind: PlaybackInstance,
}

__all__ = [
    "RequestHandler",
    "InstanceRegistry",
    "ResourceInstance",
    "ChannelInstance",
    "BridgeInstance",
    "PlaybackInstance",
    "INSTANCE_TYPES",
]
