import random
import threading
import unittest
from unittest.mock import MagicMock

from bumpin.connections import ConnectionStatus
from bumpin.errors import (
    AlreadyConnectedError,
    BlockedError,
    InvalidRequestError,
    NotAuthenticatedError,
    RequestAlreadyExistsError,
    RequestNotFoundError,
    UserNotFoundError,
)
from bumpin.queue import NotificationJob
from bumpin_test_utils import World
from shared.firebase_constants import (
    blocked_users_path,
    connections_path,
    inbox_path,
    request_lock_path,
    sent_requests_path,
)
from shared.types import RequestStatus


class SendRequestTests(unittest.TestCase):
    def setUp(self):
        self.world = World()
        self.alice = self.world.sign_up("alice-id", "alice")
        self.bob = self.world.sign_up("bob-id", "bob")

    def test_writes_inbox_and_sent_copies(self):
        request = self.alice.connections.send_request("bob-id")

        inbox = self.world.backing.get(f"{inbox_path('bob-id')}/{request.id}")
        sent = self.world.backing.get(f"{sent_requests_path('alice-id')}/{request.id}")
        self.assertEqual(inbox, sent)
        self.assertEqual(inbox["fromUserId"], "alice-id")
        self.assertEqual(inbox["toUserId"], "bob-id")
        self.assertEqual(inbox["fromUsername"], "alice")
        self.assertEqual(inbox["toUsername"], "bob")
        self.assertEqual(inbox["status"], "pending")
        self.assertEqual(request.status, RequestStatus.PENDING)

    def test_sent_list_updated_after_commit(self):
        request = self.alice.connections.send_request("bob-id")
        self.assertEqual([r.id for r in self.alice.connections.sent_requests.value], [request.id])

    def test_second_send_fails_with_request_already_exists(self):
        self.alice.connections.send_request("bob-id")
        with self.assertRaises(RequestAlreadyExistsError):
            self.alice.connections.send_request("bob-id")
        self.assertEqual(len(self.world.backing.query(inbox_path("bob-id"))), 1)

    def test_concurrent_sends_leave_one_pending(self):
        # Both sends pass the duplicate check before either commits.
        barrier = threading.Barrier(2, timeout=5)
        sent, errors = [], []

        def send(services):
            check = services.connections.has_pending_request

            def checked(user_id):
                found = check(user_id)
                barrier.wait()
                return found

            services.connections.has_pending_request = checked
            try:
                sent.append(services.connections.send_request("bob-id"))
            except RequestAlreadyExistsError as exc:
                errors.append(exc)

        threads = [
            threading.Thread(target=send, args=(self.world.services("alice-id"),))
            for _ in range(2)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(sent), 1)
        self.assertEqual(len(errors), 1)
        inbox = self.world.backing.query(inbox_path("bob-id"))
        outbox = self.world.backing.query(sent_requests_path("alice-id"))
        self.assertEqual([doc.id for doc in inbox], [sent[0].id])
        self.assertEqual([doc.id for doc in outbox], [sent[0].id])
        self.assertEqual(
            self.world.backing.get(request_lock_path("alice-id", "bob-id"))["requestId"],
            sent[0].id,
        )

    def test_send_to_self_is_invalid(self):
        commits = self.world.backing.commits
        with self.assertRaises(InvalidRequestError):
            self.alice.connections.send_request("alice-id")
        self.assertEqual(self.world.backing.commits, commits)

    def test_send_without_actor_is_not_authenticated(self):
        anonymous = self.world.services(None)
        with self.assertRaises(NotAuthenticatedError):
            anonymous.connections.send_request("bob-id")

    def test_send_to_unknown_user(self):
        with self.assertRaises(UserNotFoundError):
            self.alice.connections.send_request("nobody")

    def test_send_when_connected_fails(self):
        request = self.alice.connections.send_request("bob-id")
        self.bob.connections.handle_request(request, accept=True)
        with self.assertRaises(AlreadyConnectedError):
            self.alice.connections.send_request("bob-id")
        with self.assertRaises(AlreadyConnectedError):
            self.bob.connections.send_request("alice-id")

    def test_queues_push_notification(self):
        self.alice.connections.send_request("bob-id")
        self.assertEqual(
            self.world.queue.pending(),
            [NotificationJob("connection_request", "bob-id", "alice")],
        )

    def test_queue_failure_does_not_fail_send(self):
        queue = MagicMock()
        queue.enqueue.side_effect = ConnectionError("redis down")
        self.alice.connections.notifications = queue

        with self.assertLogs("bumpin.connections", level="ERROR"):
            request = self.alice.connections.send_request("bob-id")
        self.assertTrue(self.alice.connections.has_pending_request("bob-id"))
        self.assertEqual(request.to_user_id, "bob-id")

    def test_usernames_are_a_snapshot(self):
        request = self.alice.connections.send_request("bob-id")
        self.world.store.set("users/alice-id", {"username": "alice2"}, merge=True)

        stored = self.bob.connections.get_incoming_request(request.id)
        self.assertEqual(stored.from_username, "alice")


class HandleRequestTests(unittest.TestCase):
    def setUp(self):
        self.world = World()
        self.alice = self.world.sign_up("alice-id", "alice")
        self.bob = self.world.sign_up("bob-id", "bob")
        self.request = self.alice.connections.send_request("bob-id")

    def test_accept_creates_symmetric_edges(self):
        handled = self.bob.connections.handle_request(self.request, accept=True)

        self.assertEqual(handled.status, RequestStatus.ACCEPTED)
        a_to_b = self.world.backing.get(f"{connections_path('alice-id')}/bob-id")
        b_to_a = self.world.backing.get(f"{connections_path('bob-id')}/alice-id")
        self.assertEqual(a_to_b["userId"], "bob-id")
        self.assertEqual(a_to_b["username"], "bob")
        self.assertEqual(b_to_a["userId"], "alice-id")
        self.assertEqual(b_to_a["username"], "alice")
        self.assertEqual(a_to_b["timestamp"], b_to_a["timestamp"])

    def test_accept_updates_both_copies(self):
        self.bob.connections.handle_request(self.request, accept=True)

        inbox = self.world.backing.get(f"{inbox_path('bob-id')}/{self.request.id}")
        sent = self.world.backing.get(f"{sent_requests_path('alice-id')}/{self.request.id}")
        self.assertEqual(inbox["status"], "accepted")
        self.assertEqual(sent["status"], "accepted")

    def test_accept_refreshes_local_lists(self):
        self.bob.connections.fetch_pending_requests()
        self.assertEqual(len(self.bob.connections.pending_requests.value), 1)

        self.bob.connections.handle_request(self.request, accept=True)

        self.assertEqual(self.bob.connections.pending_requests.value, [])
        self.assertEqual(
            [u.id for u in self.bob.connections.connections.value], ["alice-id"]
        )
        self.assertEqual(
            [u.id for u in self.alice.connections.fetch_connections()], ["bob-id"]
        )

    def test_reject_creates_no_edges(self):
        handled = self.bob.connections.handle_request(self.request, accept=False)

        self.assertEqual(handled.status, RequestStatus.REJECTED)
        self.assertIsNone(self.world.backing.get(f"{connections_path('alice-id')}/bob-id"))
        self.assertIsNone(self.world.backing.get(f"{connections_path('bob-id')}/alice-id"))
        sent = self.world.backing.get(f"{sent_requests_path('alice-id')}/{self.request.id}")
        self.assertEqual(sent["status"], "rejected")
        # Only pending requests block a new one.
        self.alice.connections.send_request("bob-id")

    def test_only_recipient_can_answer(self):
        with self.assertRaises(InvalidRequestError):
            self.alice.connections.handle_request(self.request, accept=True)

    def test_cannot_answer_twice(self):
        self.bob.connections.handle_request(self.request, accept=False)
        with self.assertRaises(InvalidRequestError):
            self.bob.connections.handle_request(self.request, accept=True)

    def test_answering_cancelled_request_fails(self):
        self.alice.connections.cancel_request("bob-id")
        with self.assertRaises(RequestNotFoundError):
            self.bob.connections.handle_request(self.request, accept=True)

    def test_accept_drops_crossed_request(self):
        # Both users asked each other before either answered.
        crossed = self.bob.connections.send_request("alice-id")

        self.bob.connections.handle_request(self.request, accept=True)

        self.assertIsNone(self.world.backing.get(f"{inbox_path('alice-id')}/{crossed.id}"))
        self.assertIsNone(
            self.world.backing.get(f"{sent_requests_path('bob-id')}/{crossed.id}")
        )
        self.assertFalse(self.alice.connections.has_incoming_request("bob-id"))


class CancelAndRemoveTests(unittest.TestCase):
    def setUp(self):
        self.world = World()
        self.alice = self.world.sign_up("alice-id", "alice")
        self.bob = self.world.sign_up("bob-id", "bob")

    def test_cancel_deletes_both_copies(self):
        request = self.alice.connections.send_request("bob-id")

        self.alice.connections.cancel_request("bob-id")

        self.assertIsNone(self.world.backing.get(f"{inbox_path('bob-id')}/{request.id}"))
        self.assertIsNone(
            self.world.backing.get(f"{sent_requests_path('alice-id')}/{request.id}")
        )
        self.assertFalse(self.alice.connections.has_pending_request("bob-id"))
        self.assertEqual(self.alice.connections.sent_requests.value, [])
        self.assertIsNone(self.world.backing.get(request_lock_path("alice-id", "bob-id")))

    def test_cancel_without_request(self):
        with self.assertRaises(RequestNotFoundError):
            self.alice.connections.cancel_request("bob-id")

    def test_remove_connection_cleans_up_everything(self):
        request = self.alice.connections.send_request("bob-id")
        self.bob.connections.handle_request(request, accept=True)

        self.alice.connections.remove_connection("bob-id")

        self.assertIsNone(self.world.backing.get(f"{connections_path('alice-id')}/bob-id"))
        self.assertIsNone(self.world.backing.get(f"{connections_path('bob-id')}/alice-id"))
        for collection in (
            inbox_path("bob-id"),
            sent_requests_path("alice-id"),
            inbox_path("alice-id"),
            sent_requests_path("bob-id"),
        ):
            self.assertEqual(self.world.backing.query(collection), [])
        self.assertEqual(self.alice.connections.connections.value, [])

        # Either side may start over.
        self.bob.connections.send_request("alice-id")

    def test_remove_connection_is_one_commit(self):
        request = self.alice.connections.send_request("bob-id")
        self.bob.connections.handle_request(request, accept=True)
        commits = self.world.backing.commits

        self.bob.connections.remove_connection("alice-id")

        self.assertEqual(self.world.backing.commits, commits + 1)


class QueryTests(unittest.TestCase):
    def setUp(self):
        self.world = World()
        self.alice = self.world.sign_up("alice-id", "alice")
        self.bob = self.world.sign_up("bob-id", "bob")
        self.carol = self.world.sign_up("carol-id", "carol")

    def test_pending_and_incoming_lookups(self):
        request = self.alice.connections.send_request("bob-id")

        self.assertTrue(self.alice.connections.has_pending_request("bob-id"))
        self.assertFalse(self.bob.connections.has_pending_request("alice-id"))
        self.assertTrue(self.bob.connections.has_incoming_request("alice-id"))
        self.assertFalse(self.alice.connections.has_incoming_request("bob-id"))
        self.assertEqual(self.bob.connections.find_pending_request("alice-id").id, request.id)
        self.assertIsNone(self.bob.connections.find_pending_request("carol-id"))

    def test_pending_requests_newest_first(self):
        first = self.alice.connections.send_request("carol-id")
        second = self.bob.connections.send_request("carol-id")

        pending = self.carol.connections.fetch_pending_requests()

        self.assertEqual([r.id for r in pending], [second.id, first.id])
        self.assertEqual(self.carol.connections.pending_requests.value, pending)

    def test_sent_requests_include_answered(self):
        request = self.alice.connections.send_request("bob-id")
        self.bob.connections.handle_request(request, accept=False)

        sent = self.alice.connections.fetch_sent_requests()

        self.assertEqual([(r.id, r.status) for r in sent], [(request.id, RequestStatus.REJECTED)])

    def test_connection_status(self):
        connections = self.alice.connections
        self.assertEqual(connections.connection_status("bob-id"), ConnectionStatus.NONE)

        request = connections.send_request("bob-id")
        self.assertEqual(connections.connection_status("bob-id"), ConnectionStatus.OUTGOING_PENDING)
        self.assertEqual(
            self.bob.connections.connection_status("alice-id"),
            ConnectionStatus.INCOMING_PENDING,
        )

        self.bob.connections.handle_request(request, accept=True)
        self.assertEqual(connections.connection_status("bob-id"), ConnectionStatus.CONNECTED)

        connections.block_user("bob-id")
        self.assertEqual(connections.connection_status("bob-id"), ConnectionStatus.BLOCKED)


class BlockTests(unittest.TestCase):
    def setUp(self):
        self.world = World()
        self.alice = self.world.sign_up("alice-id", "alice")
        self.bob = self.world.sign_up("bob-id", "bob")

    def test_block_removes_connection_and_requests(self):
        request = self.alice.connections.send_request("bob-id")
        self.bob.connections.handle_request(request, accept=True)

        self.alice.connections.block_user("bob-id")

        self.assertIsNone(self.world.backing.get(f"{connections_path('alice-id')}/bob-id"))
        self.assertIsNone(self.world.backing.get(f"{connections_path('bob-id')}/alice-id"))
        self.assertEqual(self.world.backing.query(inbox_path("bob-id")), [])
        self.assertEqual(self.alice.connections.fetch_blocked_users(), frozenset({"bob-id"}))

    def test_block_removes_pending_request_both_ways(self):
        self.alice.connections.send_request("bob-id")

        self.bob.connections.block_user("alice-id")

        self.assertEqual(self.world.backing.query(inbox_path("bob-id")), [])
        self.assertEqual(self.world.backing.query(sent_requests_path("alice-id")), [])

    def test_blocked_pair_cannot_send_either_way(self):
        self.alice.connections.block_user("bob-id")

        with self.assertRaises(BlockedError):
            self.bob.connections.send_request("alice-id")
        with self.assertRaises(BlockedError):
            self.alice.connections.send_request("bob-id")

    def test_block_check_can_be_disabled(self):
        world = World(enforce_block_on_send=False)
        alice = world.sign_up("alice-id", "alice")
        bob = world.sign_up("bob-id", "bob")
        alice.connections.block_user("bob-id")

        request = bob.connections.send_request("alice-id")

        self.assertEqual(request.status, RequestStatus.PENDING)

    def test_unblock_allows_requests_again(self):
        self.alice.connections.block_user("bob-id")
        self.alice.connections.unblock_user("bob-id")

        self.bob.connections.send_request("alice-id")

        self.assertEqual(self.alice.connections.fetch_blocked_users(), frozenset())

    def test_cannot_block_self(self):
        with self.assertRaises(InvalidRequestError):
            self.alice.connections.block_user("alice-id")


class RandomSequenceTests(unittest.TestCase):
    """Random request traffic between a few users keeps the graph consistent."""

    USERS = ["u0-id", "u1-id", "u2-id", "u3-id"]
    ACTIONS = ["send", "send", "send", "accept", "reject", "cancel", "remove", "block", "unblock"]
    STEPS = 250

    def _sign_up_all(self):
        self.world = World()
        self.services = {
            user_id: self.world.sign_up(user_id, f"user{i}")
            for i, user_id in enumerate(self.USERS)
        }

    def _step(self, rng):
        actor, peer = rng.sample(self.USERS, 2)
        action = rng.choice(self.ACTIONS)
        connections = self.services[actor].connections
        try:
            if action == "send":
                connections.send_request(peer)
            elif action in ("accept", "reject"):
                request = connections.find_pending_request(peer)
                if request is not None:
                    connections.handle_request(request, accept=action == "accept")
            elif action == "cancel":
                connections.cancel_request(peer)
            elif action == "remove":
                connections.remove_connection(peer)
            elif action == "block":
                connections.block_user(peer)
            else:
                connections.unblock_user(peer)
        except (
            AlreadyConnectedError,
            BlockedError,
            RequestAlreadyExistsError,
            RequestNotFoundError,
        ):
            pass
        return f"{actor} {action} {peer}"

    def _check_pair(self, a, b, context):
        backing = self.world.backing
        edge = backing.get(f"{connections_path(a)}/{b}")
        reverse = backing.get(f"{connections_path(b)}/{a}")
        self.assertEqual(edge is None, reverse is None, context)

        inbox = {
            doc.id: doc.data["status"]
            for doc in backing.query(inbox_path(b), [("fromUserId", "==", a)])
        }
        outbox = {
            doc.id: doc.data["status"]
            for doc in backing.query(sent_requests_path(a), [("toUserId", "==", b)])
        }
        self.assertEqual(inbox, outbox, context)
        pending = [request_id for request_id, status in inbox.items() if status == "pending"]
        self.assertLessEqual(len(pending), 1, context)

        lock = backing.get(request_lock_path(a, b))
        self.assertEqual(lock["requestId"] if lock else None, pending[0] if pending else None, context)

        if edge is not None:
            self.assertEqual(pending, [], context)
        blocked = (
            backing.get(f"{blocked_users_path(a)}/{b}") is not None
            or backing.get(f"{blocked_users_path(b)}/{a}") is not None
        )
        if blocked:
            self.assertIsNone(edge, context)
            self.assertEqual(pending, [], context)

    def test_graph_stays_consistent(self):
        for seed in (7, 42, 2024):
            with self.subTest(seed=seed):
                self._sign_up_all()
                rng = random.Random(seed)
                history = []
                for _ in range(self.STEPS):
                    history.append(self._step(rng))
                    context = f"seed {seed} after: {history[-5:]}"
                    for a in self.USERS:
                        for b in self.USERS:
                            if a != b:
                                self._check_pair(a, b, context)


if __name__ == "__main__":
    unittest.main()
