"""Typed publish/subscribe registry for ARI events.

The dispatcher delivers protocol events (keyed by their ARI ``type``) and the
client's own lifecycle events (``ClientEvent``) through one registry.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from asterisk_ari.log import LoggerLike

Listener = Callable[..., Union[None, Awaitable[None]]]

WILDCARD = "*"


class ClientEvent(str, Enum):
    """Synthetic events emitted by the client, never sent by Asterisk."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTED = "reconnected"
    RECONNECT_FAILED = "reconnectFailed"
    ERROR = "error"


def _key(event_type: Union[str, ClientEvent]) -> str:
    return event_type.value if isinstance(event_type, ClientEvent) else event_type


class EventDispatcher:
    """Deliver events to listeners in registration order.

    Listeners may be plain callables or coroutine functions; coroutine
    listeners are awaited one after another. A listener that raises is
    logged and skipped, so it cannot affect the emitter or other listeners.

    Listeners registered under ``"*"`` receive every protocol event after
    the listeners of its specific type.

    Args:
        logger: Logger used to report listener failures
    """

    def __init__(self, logger: Optional[LoggerLike] = None) -> None:
        self._listeners: Dict[str, List[Listener]] = {}
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    def on(self, event_type: Union[str, ClientEvent], listener: Listener) -> Listener:
        """Register a listener and return it."""
        if not callable(listener):
            raise TypeError("listener must be callable")
        key = _key(event_type)
        self._listeners.setdefault(key, []).append(listener)
        self._logger.debug(f"Registered listener for event type: {key}")
        return listener

    def once(self, event_type: Union[str, ClientEvent], listener: Listener) -> Listener:
        """Register a listener that is removed before its first delivery.

        Returns the wrapper actually registered, which can be passed to
        :meth:`off`.
        """
        key = _key(event_type)

        def wrapper(*args: Any) -> Union[None, Awaitable[None]]:
            self.off(key, wrapper)
            return listener(*args)

        wrapper.__wrapped__ = listener
        return self.on(key, wrapper)

    def off(self, event_type: Union[str, ClientEvent], listener: Optional[Listener] = None) -> bool:
        """Remove one listener, or every listener of the type if none is given.

        Returns:
            True if anything was removed
        """
        key = _key(event_type)
        listeners = self._listeners.get(key)
        if not listeners:
            return False

        if listener is None:
            del self._listeners[key]
            return True

        for index, registered in enumerate(listeners):
            if registered is listener or getattr(registered, "__wrapped__", None) is listener:
                del listeners[index]
                if not listeners:
                    del self._listeners[key]
                return True
        return False

    async def emit(
            self,
            event_type: Union[str, ClientEvent],
            payload: Any = None,
            wildcard: bool = True,
    ) -> int:
        """Deliver ``payload`` to the listeners registered for ``event_type``.

        Listeners of payload-less events are called without arguments.

        Args:
            event_type: Event type key
            payload: Event envelope or lifecycle payload
            wildcard: Also deliver to ``"*"`` listeners

        Returns:
            Number of listeners that handled the event without raising
        """
        key = _key(event_type)
        # Snapshot so listeners may (un)register during delivery.
        targets = list(self._listeners.get(key, ()))
        if wildcard and key != WILDCARD:
            targets.extend(self._listeners.get(WILDCARD, ()))

        args = () if payload is None else (payload,)
        delivered = 0
        for listener in targets:
            try:
                result = listener(*args)
                if asyncio.iscoroutine(result):
                    await result
                delivered += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self._logger.exception(f"Error in listener {listener!r} for event {key}")
        return delivered

    def listener_count(self, event_type: Union[str, ClientEvent]) -> int:
        return len(self._listeners.get(_key(event_type), ()))

    def event_types(self) -> List[str]:
        return list(self._listeners)

    def clear(self) -> None:
        """Remove every listener."""
        self._listeners.clear()
