"""Per-client cache of resource instance proxies."""

import threading
from typing import Callable, Dict, Iterator, Optional, Tuple, TypeVar

T = TypeVar("T")

CacheKey = Tuple[str, str]


class InstanceCache:
    """Maps ``(kind, id)`` to the single live instance proxy for that entity.

    Lookups are get-or-create under a lock, so two concurrent lookups for a
    new id always observe the same instance.
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, object] = {}
        self._lock = threading.RLock()

    def get_or_create(self, kind: str, entity_id: str, factory: Callable[[], T]) -> T:
        """Return the cached instance for ``(kind, entity_id)``, creating it once."""
        key = (kind, entity_id)
        with self._lock:
            instance = self._entries.get(key)
            if instance is None:
                instance = factory()
                self._entries[key] = instance
            return instance

    def get(self, kind: str, entity_id: str) -> Optional[object]:
        with self._lock:
            return self._entries.get((kind, entity_id))

    def evict(self, kind: str, entity_id: str) -> Optional[object]:
        """Drop the entry; the next lookup for this id creates a fresh instance."""
        with self._lock:
            return self._entries.pop((kind, entity_id), None)

    def clear(self, kind: Optional[str] = None) -> None:
        with self._lock:
            if kind is None:
                self._entries.clear()
            else:
                for key in [k for k in self._entries if k[0] == kind]:
                    del self._entries[key]

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[CacheKey]:
        with self._lock:
            return iter(list(self._entries))
