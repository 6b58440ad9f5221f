"""
Per-user session state: the cache, the services that share it and the
pending requests listener.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from bumpin.cache import SessionCache
from bumpin.cards import CardService
from bumpin.config import Settings
from bumpin.connections import ConnectionService
from bumpin.listener import PendingRequestsListener
from bumpin.queue import NotificationQueue
from bumpin.retry import RetryingDocumentStore
from bumpin.storage import StorageClient
from bumpin.users import UserService

logger = logging.getLogger(__name__)


@dataclass
class UserSession:
    user_id: str
    cache: SessionCache
    cards: CardService
    users: UserService
    connections: ConnectionService
    listener: PendingRequestsListener
    last_used: float = 0.0

    def close(self) -> None:
        """Sign-out: stop listening and forget everything cached for this user."""
        self.listener.stop()
        self.cache.clear()
        self.connections.pending_requests.set([])
        self.connections.sent_requests.set([])
        self.connections.connections.set([])
        self.users.current_user.set(None)
        self.users.search_results.set([])
        self.cards.user_card.set(None)
        self.cards.contacts.set([])
        self.cards.recent_contacts.set([])


class SessionRegistry:
    """
    Creates sessions on first use and keeps one per signed-in user.

    A session unused for ``settings.session_idle_seconds`` is closed the next
    time any session is opened, which also releases its listener.
    """

    def __init__(
        self,
        store: RetryingDocumentStore,
        settings: Settings,
        *,
        storage: Optional[StorageClient] = None,
        notifications: Optional[NotificationQueue] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.settings = settings
        self.storage = storage
        self.notifications = notifications
        self._clock = clock
        self._sessions: Dict[str, UserSession] = {}
        self._lock = threading.Lock()

    def _build(self, user_id: str) -> UserSession:
        cache = SessionCache(lifetime=self.settings.cache_lifetime_seconds)
        cards = CardService(self.store, cache, self.storage, actor_id=user_id)
        users = UserService(
            self.store,
            cache,
            cards,
            actor_id=user_id,
            search_limit=self.settings.search_results_limit,
        )
        connections = ConnectionService(
            self.store,
            users,
            actor_id=user_id,
            notifications=self.notifications,
            enforce_block_on_send=self.settings.enforce_block_on_send,
        )
        listener = PendingRequestsListener(self.store, connections.pending_requests)
        connections.attach_listener(listener)
        return UserSession(user_id, cache, cards, users, connections, listener)

    def open(self, user_id: str) -> UserSession:
        now = self._clock()
        with self._lock:
            idle = self._pop_idle_locked(now)
            session = self._sessions.get(user_id)
            created = session is None
            if created:
                session = self._build(user_id)
                self._sessions[user_id] = session
            session.last_used = now

        for stale in idle:
            stale.close()
            logger.info("Closed idle session for %s", stale.user_id)
        if created:
            session.listener.start(user_id)
            logger.info("Opened session for %s", user_id)
        return session

    def _pop_idle_locked(self, now: float) -> List[UserSession]:
        cutoff = now - self.settings.session_idle_seconds
        idle = [s for s in self._sessions.values() if s.last_used <= cutoff]
        for session in idle:
            del self._sessions[session.user_id]
        return idle

    def get(self, user_id: str) -> Optional[UserSession]:
        with self._lock:
            return self._sessions.get(user_id)

    def close(self, user_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        session.close()
        logger.info("Closed session for %s", user_id)
        return True

    def close_all(self) -> None:
        with self._lock:
            user_ids = list(self._sessions)
        for user_id in user_ids:
            self.close(user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
