"""
Realtime bridge from the store's snapshot stream to the pending requests list.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from bumpin.connections import decode_requests
from bumpin.state import Observable
from bumpin.store import Document, DocumentStore, Subscription
from shared.firebase_constants import inbox_path
from shared.types import ConnectionRequest, RequestStatus

logger = logging.getLogger(__name__)


class PendingRequestsListener:
    """
    Keeps ``target`` equal to the pending requests in one user's inbox.

    At most one subscription is live. Each snapshot replaces the whole list,
    newest first. Callbacks from a subscription that has been replaced or
    stopped are dropped.
    """

    def __init__(self, store: DocumentStore, target: Observable[List[ConnectionRequest]]):
        self.store = store
        self.target = target
        self.user_id: Optional[str] = None
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._ready = False
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        with self._lock:
            return self.user_id is not None

    @property
    def ready(self) -> bool:
        """Whether the current subscription has delivered a snapshot yet."""
        with self._lock:
            return self._ready

    def start(self, user_id: str) -> None:
        with self._lock:
            self._stop_locked()
            self._generation += 1
            generation = self._generation
            self.user_id = user_id

        subscription = self.store.watch(
            inbox_path(user_id),
            [("toUserId", "==", user_id), ("status", "==", RequestStatus.PENDING.value)],
            lambda docs: self._on_snapshot(generation, user_id, docs),
        )

        with self._lock:
            if generation != self._generation:
                # stop() or another start() ran while we were subscribing.
                subscription.unsubscribe()
                return
            self._subscription = subscription
        logger.info("Listening for connection requests to %s", user_id)

    def stop(self) -> None:
        with self._lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.info("Stopped listening for connection requests to %s", self.user_id)
        self._generation += 1
        self.user_id = None
        self._ready = False

    def _on_snapshot(self, generation: int, user_id: str, docs: List[Document]) -> None:
        requests = [r for r in decode_requests(docs) if r.from_user_id != user_id]
        requests.sort(key=lambda r: r.timestamp, reverse=True)
        with self._lock:
            if generation != self._generation:
                return
            self.target.set(requests)
            self._ready = True
