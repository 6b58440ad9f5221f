import unittest
from unittest.mock import patch

from bumpin.errors import StoreError, TransientStoreError
from bumpin.retry import RetryingDocumentStore, call_with_retry, retry_delay
from bumpin.store import InMemoryDocumentStore
from bumpin_test_utils import World
from shared.firebase_constants import inbox_path


class _FlakyStore:
    """Delegates to an in-memory store, failing the first ``failures`` calls of each kind."""

    def __init__(self, failures=1):
        self.inner = InMemoryDocumentStore()
        self.failures = {"get": failures, "commit": failures}

    def _maybe_fail(self, kind):
        if self.failures[kind] > 0:
            self.failures[kind] -= 1
            raise TransientStoreError(cause=TimeoutError("deadline exceeded"))

    def get(self, path):
        self._maybe_fail("get")
        return self.inner.get(path)

    def query(self, collection, filters=(), **kwargs):
        return self.inner.query(collection, filters, **kwargs)

    def set(self, path, data, *, merge=False):
        self.inner.set(path, data, merge=merge)

    def delete(self, path):
        self.inner.delete(path)

    def batch(self):
        store = self
        batch = self.inner.batch()
        original_commit = batch.commit

        def commit():
            store._maybe_fail("commit")
            original_commit()

        batch.commit = commit
        return batch

    def watch(self, collection, filters, callback):
        return self.inner.watch(collection, filters, callback)


class RetryDelayTests(unittest.TestCase):
    def test_exponential_with_jitter(self):
        with patch("bumpin.retry.random.uniform", return_value=0.0):
            self.assertAlmostEqual(retry_delay(1, 0.2), 0.2)
            self.assertAlmostEqual(retry_delay(2, 0.2), 0.4)
            self.assertAlmostEqual(retry_delay(3, 0.2), 0.8)

    def test_jitter_is_bounded(self):
        for _ in range(50):
            delay = retry_delay(2, 1.0)
            self.assertGreaterEqual(delay, 1.4)
            self.assertLessEqual(delay, 2.6)

    def test_invalid_attempt(self):
        with self.assertRaises(ValueError):
            retry_delay(0)


class CallWithRetryTests(unittest.TestCase):
    def test_retries_transient_errors(self):
        calls = []
        sleeps = []

        def fn():
            calls.append(1)
            if len(calls) < 3:
                raise TransientStoreError()
            return "ok"

        self.assertEqual(call_with_retry(fn, attempts=3, sleep=sleeps.append), "ok")
        self.assertEqual(len(calls), 3)
        self.assertEqual(len(sleeps), 2)

    def test_gives_up_after_attempts(self):
        def fn():
            raise TransientStoreError()

        with self.assertRaises(TransientStoreError):
            call_with_retry(fn, attempts=2, sleep=lambda _: None)

    def test_does_not_retry_other_errors(self):
        calls = []

        def fn():
            calls.append(1)
            raise StoreError()

        with self.assertRaises(StoreError):
            call_with_retry(fn, attempts=3, sleep=lambda _: None)
        self.assertEqual(len(calls), 1)


class RetryingDocumentStoreTests(unittest.TestCase):
    def test_reads_are_retried(self):
        flaky = _FlakyStore(failures=2)
        flaky.inner.set("users/u1", {"id": "u1"})
        store = RetryingDocumentStore(flaky, attempts=3, sleep=lambda _: None)

        self.assertEqual(store.get("users/u1"), {"id": "u1"})

    def test_plain_commits_are_not_retried(self):
        flaky = _FlakyStore(failures=1)
        store = RetryingDocumentStore(flaky, attempts=3, sleep=lambda _: None)
        batch = store.batch()
        batch.set("users/u1", {"id": "u1"})

        with self.assertRaises(TransientStoreError):
            batch.commit()

    def test_send_request_survives_a_transient_commit_failure(self):
        world = World()
        alice = world.sign_up("alice-id", "alice")
        world.sign_up("bob-id", "bob")
        flaky = _FlakyStore(failures=0)
        flaky.inner = world.backing
        alice.connections.store = RetryingDocumentStore(flaky, sleep=lambda _: None)
        flaky.failures["commit"] = 1

        request = alice.connections.send_request("bob-id")

        docs = world.backing.query(inbox_path("bob-id"))
        self.assertEqual([doc.id for doc in docs], [request.id])

    def test_send_request_when_the_first_commit_landed(self):
        world = World()
        alice = world.sign_up("alice-id", "alice")
        world.sign_up("bob-id", "bob")
        lost_acks = [TransientStoreError(cause=TimeoutError("deadline exceeded"))]
        flaky = _FlakyStore(failures=0)
        flaky.inner = world.backing

        def batch():
            staged = world.backing.batch()
            commit = staged.commit

            def commit_then_fail():
                commit()
                if lost_acks:
                    raise lost_acks.pop()

            staged.commit = commit_then_fail
            return staged

        flaky.batch = batch
        alice.connections.store = RetryingDocumentStore(flaky, sleep=lambda _: None)

        request = alice.connections.send_request("bob-id")

        docs = world.backing.query(inbox_path("bob-id"))
        self.assertEqual([doc.id for doc in docs], [request.id])
        self.assertEqual(lost_acks, [])


if __name__ == "__main__":
    unittest.main()
