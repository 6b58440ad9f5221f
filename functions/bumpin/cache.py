"""
Per-session TTL cache for user and card lookups.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

from shared.constants import CACHE_LIFETIME_SECONDS
from shared.types import BusinessCard, User

T = TypeVar("T")


class TTLCache(Generic[T]):
    """
    Maps entity id to (entity, fetched_at).

    Entries older than ``lifetime`` are treated as absent and evicted on the
    next read; there is no background sweep and no size bound. All access is
    serialized with a lock.
    """

    def __init__(
        self,
        lifetime: float = CACHE_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.lifetime = lifetime
        self._clock = clock
        self._entries: Dict[str, Tuple[T, float]] = {}
        self._lock = threading.Lock()

    def put(self, entity: T) -> None:
        with self._lock:
            self._entries[entity.id] = (entity, self._clock())

    def get(self, entity_id: str) -> Optional[T]:
        with self._lock:
            cached = self._entries.get(entity_id)
            if cached is None:
                return None
            entity, fetched_at = cached
            if self._clock() - fetched_at < self.lifetime:
                return entity
            del self._entries[entity_id]
            return None

    def invalidate(self, entity_id: str) -> None:
        with self._lock:
            self._entries.pop(entity_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class SessionCache:
    """User and card caches owned by one signed-in session."""

    lifetime: float = CACHE_LIFETIME_SECONDS
    clock: Callable[[], float] = time.monotonic
    users: TTLCache[User] = field(init=False)
    cards: TTLCache[BusinessCard] = field(init=False)

    def __post_init__(self):
        self.users = TTLCache(self.lifetime, self.clock)
        self.cards = TTLCache(self.lifetime, self.clock)

    def clear(self) -> None:
        self.users.clear()
        self.cards.clear()
