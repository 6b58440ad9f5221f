"""
Connection requests and the social graph.

Every change that touches more than one document is written in a single batch:

* a request lives in the recipient's ``connectionRequests`` inbox and in the
  sender's ``sentRequests`` list under the same id;
* a connection is two edges, ``users/A/connections/B`` and
  ``users/B/connections/A``;
* blocking and disconnecting remove both edges and every request document
  between the two users.

Local observable lists are only updated after the store confirms a write.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import replace
from enum import StrEnum
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional

from dacite import DaciteError

from bumpin.errors import (
    AlreadyConnectedError,
    BlockedError,
    DocumentAlreadyExistsError,
    InvalidRequestError,
    NotAuthenticatedError,
    RequestAlreadyExistsError,
    RequestNotFoundError,
    UserNotFoundError,
)
from bumpin.notifications import connection_request_job
from bumpin.queue import NotificationQueue
from bumpin.retry import RetryingDocumentStore
from bumpin.state import Observable
from bumpin.store import Document, WriteBatch
from bumpin.users import UserService
from shared.documents import from_document, to_document
from shared.firebase_constants import (
    blocked_users_path,
    connections_path,
    inbox_path,
    request_lock_path,
    sent_requests_path,
    user_path,
)
from shared.types import Block, Connection, ConnectionRequest, RequestStatus, User

if TYPE_CHECKING:
    from bumpin.listener import PendingRequestsListener

logger = logging.getLogger(__name__)


class ConnectionStatus(StrEnum):
    """Relationship between the actor and another user, for picking UI actions."""

    NONE = "none"
    CONNECTED = "connected"
    OUTGOING_PENDING = "outgoing_pending"
    INCOMING_PENDING = "incoming_pending"
    BLOCKED = "blocked"


def decode_requests(docs: Iterable[Document]) -> List[ConnectionRequest]:
    """Decodes request documents, skipping any that are malformed."""
    requests = []
    for doc in docs:
        try:
            requests.append(from_document(ConnectionRequest, doc.data))
        except (DaciteError, ValueError, TypeError) as exc:
            logger.warning("Skipping malformed request %s: %s", doc.path, exc)
    return requests


def _pending_from(user_id: str):
    return [("fromUserId", "==", user_id), ("status", "==", RequestStatus.PENDING.value)]


def _pending_to(user_id: str):
    return [("toUserId", "==", user_id), ("status", "==", RequestStatus.PENDING.value)]


class ConnectionService:
    def __init__(
        self,
        store: RetryingDocumentStore,
        users: UserService,
        *,
        actor_id: Optional[str] = None,
        notifications: Optional[NotificationQueue] = None,
        enforce_block_on_send: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.users = users
        self.actor_id = actor_id
        self.notifications = notifications
        self.enforce_block_on_send = enforce_block_on_send
        self._clock = clock
        self._listener: Optional["PendingRequestsListener"] = None

        self.connections: Observable[List[User]] = Observable([])
        self.pending_requests: Observable[List[ConnectionRequest]] = Observable([])
        self.sent_requests: Observable[List[ConnectionRequest]] = Observable([])
        self.blocked_users: Observable[frozenset[str]] = Observable(frozenset())

    def _require_actor(self) -> str:
        if not self.actor_id:
            raise NotAuthenticatedError()
        return self.actor_id

    def attach_listener(self, listener: "PendingRequestsListener") -> None:
        """Once the listener is running it is the only writer of pending_requests."""
        self._listener = listener

    @property
    def listener_owns_pending(self) -> bool:
        return self._listener is not None and self._listener.active

    # Requests

    def send_request(self, to_user_id: str) -> ConnectionRequest:
        actor = self._require_actor()
        if to_user_id == actor:
            raise InvalidRequestError("You can't send a connection request to yourself")
        if self.enforce_block_on_send and self.is_blocked_between(actor, to_user_id):
            raise BlockedError()
        if self.is_connected(to_user_id):
            raise AlreadyConnectedError()
        if self.has_pending_request(to_user_id):
            raise RequestAlreadyExistsError()

        # Usernames are a snapshot taken now; later renames do not update them.
        sender = self.store.get(user_path(actor))
        if not sender or not sender.get("username"):
            raise InvalidRequestError("Set up your profile before connecting")
        recipient = self.store.get(user_path(to_user_id))
        if not recipient:
            raise UserNotFoundError()

        request = ConnectionRequest(
            id=uuid.uuid4().hex,
            from_user_id=actor,
            to_user_id=to_user_id,
            from_username=sender["username"],
            to_username=recipient.get("username", ""),
            status=RequestStatus.PENDING,
            timestamp=self._clock(),
        )
        doc = to_document(request)
        lock_path = request_lock_path(actor, to_user_id)

        def build(batch: WriteBatch) -> None:
            # The lock makes a concurrent second send fail as a whole.
            batch.create(lock_path, {"requestId": request.id, "timestamp": request.timestamp})
            batch.set(f"{inbox_path(to_user_id)}/{request.id}", doc)
            batch.set(f"{sent_requests_path(actor)}/{request.id}", doc)

        try:
            self.store.commit_idempotent(build)
        except DocumentAlreadyExistsError:
            held = self.store.get(lock_path) or {}
            if held.get("requestId") != request.id:
                raise RequestAlreadyExistsError() from None
            # A retried commit found the lock its own first attempt wrote.
        logger.info("Connection request %s: %s -> %s", request.id, actor, to_user_id)

        self.sent_requests.update(lambda items: [request, *items])
        self._queue_notification(request)
        return request

    def _queue_notification(self, request: ConnectionRequest) -> None:
        if self.notifications is None:
            return
        try:
            self.notifications.enqueue(
                connection_request_job(request.to_user_id, request.from_username)
            )
        except Exception:
            # The request is already committed; a lost push is not worth failing it.
            logger.exception("Failed to queue notification for request %s", request.id)

    def get_incoming_request(self, request_id: str) -> ConnectionRequest:
        actor = self._require_actor()
        data = self.store.get(f"{inbox_path(actor)}/{request_id}")
        if data is None:
            raise RequestNotFoundError()
        return from_document(ConnectionRequest, data)

    def handle_request(self, request: ConnectionRequest, accept: bool) -> ConnectionRequest:
        """
        Accepts or rejects a pending request addressed to the actor.

        Both stored copies change status in one batch; on accept the same batch
        creates both connection edges and drops any pending request the actor
        had sent the other way.
        """
        actor = self._require_actor()
        if request.to_user_id != actor:
            raise InvalidRequestError("Only the recipient can answer a request")

        current = self.get_incoming_request(request.id)
        if current.status != RequestStatus.PENDING:
            raise InvalidRequestError("This request was already answered")
        if current.from_user_id == actor:
            raise InvalidRequestError()

        sender_id = current.from_user_id
        status = RequestStatus.ACCEPTED if accept else RequestStatus.REJECTED
        batch = self.store.batch()
        batch.update(f"{inbox_path(actor)}/{current.id}", {"status": status.value})
        batch.update(f"{sent_requests_path(sender_id)}/{current.id}", {"status": status.value})
        batch.delete(request_lock_path(sender_id, actor))

        if accept:
            now = self._clock()
            batch.set(
                f"{connections_path(actor)}/{sender_id}",
                to_document(Connection(sender_id, current.from_username, now)),
            )
            batch.set(
                f"{connections_path(sender_id)}/{actor}",
                to_document(Connection(actor, current.to_username, now)),
            )
            for doc in self.store.query(inbox_path(sender_id), _pending_from(actor)):
                batch.delete(doc.path)
            for doc in self.store.query(sent_requests_path(actor), _pending_to(sender_id)):
                batch.delete(doc.path)
            batch.delete(request_lock_path(actor, sender_id))

        batch.commit()
        logger.info("Request %s %s by %s", current.id, status.value, actor)
        if accept:
            # The sender's card is visible now.
            self.users.cache.users.invalidate(sender_id)

        self.fetch_pending_requests()
        self.fetch_connections()
        return replace(current, status=status)

    def cancel_request(self, to_user_id: str) -> None:
        """Deletes the actor's pending request to ``to_user_id`` from both places."""
        actor = self._require_actor()
        recipient_docs = self.store.query(inbox_path(to_user_id), _pending_from(actor))
        sender_docs = self.store.query(
            sent_requests_path(actor),
            [("toUserId", "==", to_user_id), ("status", "==", RequestStatus.PENDING.value)],
        )
        if not recipient_docs and not sender_docs:
            raise RequestNotFoundError()

        batch = self.store.batch()
        for doc in [*recipient_docs, *sender_docs]:
            batch.delete(doc.path)
        batch.delete(request_lock_path(actor, to_user_id))
        batch.commit()
        logger.info("Cancelled request %s -> %s", actor, to_user_id)

        self.sent_requests.update(
            lambda items: [
                r
                for r in items
                if not (r.to_user_id == to_user_id and r.status == RequestStatus.PENDING)
            ]
        )

    def has_pending_request(self, user_id: str) -> bool:
        """Whether the actor has a pending request waiting in ``user_id``'s inbox."""
        actor = self._require_actor()
        return bool(self.store.query(inbox_path(user_id), _pending_from(actor), limit=1))

    def has_incoming_request(self, user_id: str) -> bool:
        return self.find_pending_request(user_id) is not None

    def find_pending_request(self, user_id: str) -> Optional[ConnectionRequest]:
        """The pending request from ``user_id`` in the actor's inbox, if any."""
        actor = self._require_actor()
        docs = self.store.query(inbox_path(actor), _pending_from(user_id), limit=1)
        requests = decode_requests(docs)
        return requests[0] if requests else None

    def fetch_pending_requests(self) -> List[ConnectionRequest]:
        actor = self._require_actor()
        docs = self.store.query(
            inbox_path(actor),
            [("status", "==", RequestStatus.PENDING.value)],
            order_by="timestamp",
            descending=True,
        )
        requests = [r for r in decode_requests(docs) if r.from_user_id != actor]
        if not self.listener_owns_pending:
            self.pending_requests.set(requests)
        return requests

    def current_pending_requests(self) -> List[ConnectionRequest]:
        """The listener's list once it has a snapshot, otherwise a fresh query."""
        if self.listener_owns_pending and self._listener.ready:
            return list(self.pending_requests.value)
        return self.fetch_pending_requests()

    def fetch_sent_requests(self) -> List[ConnectionRequest]:
        actor = self._require_actor()
        docs = self.store.query(
            sent_requests_path(actor), order_by="timestamp", descending=True
        )
        requests = decode_requests(docs)
        self.sent_requests.set(requests)
        return requests

    # Connections

    def is_connected(self, user_id: str) -> bool:
        actor = self._require_actor()
        return self.store.get(f"{connections_path(actor)}/{user_id}") is not None

    def fetch_connection_edges(self) -> List[Connection]:
        actor = self._require_actor()
        docs = self.store.query(
            connections_path(actor), order_by="timestamp", descending=True
        )
        return [from_document(Connection, doc.data) for doc in docs]

    def fetch_connections(self) -> List[User]:
        users: List[User] = []
        for edge in self.fetch_connection_edges():
            user = self.users.get_user(edge.user_id)
            if user is None:
                continue
            if user.card is None:
                # Connected peers always see each other's cards.
                card = self.users.cards.fetch_user_card(edge.user_id)
                if card is not None:
                    user = replace(user, card=card)
            users.append(user)
        self.connections.set(users)
        return users

    def _stage_disconnect(self, batch: WriteBatch, actor: str, peer: str) -> None:
        """Adds deletes for both edges and every request document between the pair."""
        batch.delete(f"{connections_path(actor)}/{peer}")
        batch.delete(f"{connections_path(peer)}/{actor}")
        batch.delete(request_lock_path(actor, peer))
        batch.delete(request_lock_path(peer, actor))
        lookups = [
            (inbox_path(actor), "fromUserId", peer),
            (sent_requests_path(actor), "toUserId", peer),
            (inbox_path(peer), "fromUserId", actor),
            (sent_requests_path(peer), "toUserId", actor),
        ]
        for collection, field_name, value in lookups:
            for doc in self.store.query(collection, [(field_name, "==", value)]):
                batch.delete(doc.path)

    def remove_connection(self, user_id: str) -> None:
        actor = self._require_actor()
        if user_id == actor:
            raise InvalidRequestError()
        batch = self.store.batch()
        self._stage_disconnect(batch, actor, user_id)
        batch.commit()
        logger.info("Removed connection %s <-> %s", actor, user_id)
        self.users.cache.users.invalidate(user_id)

        self.sent_requests.update(
            lambda items: [r for r in items if r.to_user_id != user_id]
        )
        self.fetch_connections()

    def connection_status(self, user_id: str) -> ConnectionStatus:
        actor = self._require_actor()
        if self.store.get(f"{blocked_users_path(actor)}/{user_id}") is not None:
            return ConnectionStatus.BLOCKED
        if self.is_connected(user_id):
            return ConnectionStatus.CONNECTED
        if self.has_pending_request(user_id):
            return ConnectionStatus.OUTGOING_PENDING
        if self.has_incoming_request(user_id):
            return ConnectionStatus.INCOMING_PENDING
        return ConnectionStatus.NONE

    # Blocking

    def is_blocked_between(self, user_a: str, user_b: str) -> bool:
        return (
            self.store.get(f"{blocked_users_path(user_a)}/{user_b}") is not None
            or self.store.get(f"{blocked_users_path(user_b)}/{user_a}") is not None
        )

    def block_user(self, user_id: str) -> None:
        """Blocks ``user_id``. The block replaces any connection or request between the two."""
        actor = self._require_actor()
        if user_id == actor:
            raise InvalidRequestError("You can't block yourself")
        batch = self.store.batch()
        batch.set(
            f"{blocked_users_path(actor)}/{user_id}",
            to_document(Block(user_id, self._clock())),
        )
        self._stage_disconnect(batch, actor, user_id)
        batch.commit()
        logger.info("User %s blocked %s", actor, user_id)
        self.users.cache.users.invalidate(user_id)

        self.blocked_users.update(lambda ids: ids | {user_id})
        self.sent_requests.update(
            lambda items: [r for r in items if r.to_user_id != user_id]
        )
        self.fetch_connections()

    def unblock_user(self, user_id: str) -> None:
        actor = self._require_actor()
        self.store.delete(f"{blocked_users_path(actor)}/{user_id}")
        self.blocked_users.update(lambda ids: ids - {user_id})

    def fetch_blocked_users(self) -> frozenset[str]:
        actor = self._require_actor()
        ids = frozenset(doc.id for doc in self.store.query(blocked_users_path(actor)))
        self.blocked_users.set(ids)
        return ids
