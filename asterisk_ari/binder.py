"""Attach instance proxies to inbound events before dispatch."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional

from asterisk_ari.cache import InstanceCache
from asterisk_ari.dispatcher import EventDispatcher
from asterisk_ari.log import LoggerLike
from asterisk_ari.models import Event
from asterisk_ari.resources import ResourceInstance

ENTITY_KINDS = ("channel", "bridge", "playback")

# Event type -> entity kind whose cache entry ends with the event.
TERMINAL_EVENTS: Dict[str, str] = {
    "ChannelDestroyed": "channel",
    "BridgeDestroyed": "bridge",
    "PlaybackFinished": "playback",
}

InstanceFactory = Callable[[str, str], ResourceInstance]


class InstanceBinder:
    """Enrich events with cached instances, dispatch them, then evict.

    For each entity (channel, bridge, playback) an event carries, the
    matching instance is fetched from the cache or created, and attached as
    ``instance_<kind>`` on a copy of the envelope. The terminal event of an
    entity is still delivered with its instance attached; the cache entry is
    dropped afterwards, together with the instance's id-scoped listeners.

    Args:
        cache: The client's instance cache
        dispatcher: The client's event dispatcher
        factory: Creates a new instance for ``(kind, id)``
        logger: Logger for the client
    """

    def __init__(
            self,
            cache: InstanceCache,
            dispatcher: EventDispatcher,
            factory: InstanceFactory,
            logger: Optional[LoggerLike] = None,
    ) -> None:
        self._cache = cache
        self._dispatcher = dispatcher
        self._factory = factory
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    def instance_for(self, kind: str, entity_id: str) -> ResourceInstance:
        """Get-or-create the instance for ``(kind, entity_id)``."""
        return self._cache.get_or_create(kind, entity_id, lambda: self._factory(kind, entity_id))

    @asynccontextmanager
    async def pending(self, kind: str, entity_id: str) -> AsyncIterator[ResourceInstance]:
        """Yield the instance for an entity that is about to be created over REST.

        If the body raises, the cache entry is dropped again, unless it was
        already cached before this call.
        """
        existed = (kind, entity_id) in self._cache
        instance = self.instance_for(kind, entity_id)
        try:
            yield instance
        except BaseException:
            if not existed:
                self.evict(kind, entity_id)
            raise

    def enrich(self, event: Event) -> Event:
        """Return ``event`` with instance proxies attached (or unchanged)."""
        instances = {}
        for kind in ENTITY_KINDS:
            entity = event.entity(kind)
            if entity is not None and entity.id:
                instances[kind] = self.instance_for(kind, entity.id)
        if not instances:
            return event
        return event.with_instances(**instances)

    async def process(self, event: Event) -> Event:
        """Enrich and dispatch one event; evict on terminal events."""
        enriched = self.enrich(event)
        await self._dispatcher.emit(enriched.type, enriched)

        kind = TERMINAL_EVENTS.get(enriched.type)
        if kind is not None:
            entity = enriched.entity(kind)
            if entity is not None:
                self.evict(kind, entity.id)
        return enriched

    def evict(self, kind: str, entity_id: str) -> None:
        instance = self._cache.evict(kind, entity_id)
        if instance is not None:
            instance.release()
            self._logger.debug(f"Evicted {kind} {entity_id} from instance cache")
