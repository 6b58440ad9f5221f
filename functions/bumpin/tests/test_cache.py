import threading
import unittest

from bumpin.cache import SessionCache, TTLCache
from bumpin_test_utils import ManualClock
from shared.types import BusinessCard, User


class TTLCacheTests(unittest.TestCase):
    def setUp(self):
        self.clock = ManualClock(100.0)
        self.cache = TTLCache(lifetime=300, clock=self.clock)

    def test_hit_within_lifetime(self):
        user = User(id="u1", username="alice")
        self.cache.put(user)
        self.clock.advance(299)
        self.assertIs(self.cache.get("u1"), user)

    def test_expires_at_lifetime(self):
        self.cache.put(User(id="u1", username="alice"))
        self.clock.advance(300)
        self.assertIsNone(self.cache.get("u1"))
        # Expired entries are evicted on read.
        self.assertEqual(len(self.cache), 0)

    def test_put_refreshes_timestamp(self):
        self.cache.put(User(id="u1", username="alice"))
        self.clock.advance(200)
        self.cache.put(User(id="u1", username="alice2"))
        self.clock.advance(200)
        self.assertEqual(self.cache.get("u1").username, "alice2")

    def test_invalidate_and_clear(self):
        self.cache.put(User(id="u1", username="alice"))
        self.cache.put(User(id="u2", username="bob"))
        self.cache.invalidate("u1")
        self.assertIsNone(self.cache.get("u1"))
        self.assertIsNotNone(self.cache.get("u2"))
        self.cache.clear()
        self.assertEqual(len(self.cache), 0)

    def test_concurrent_puts(self):
        def fill(prefix):
            for i in range(200):
                self.cache.put(User(id=f"{prefix}{i}", username=f"user{i}"))

        threads = [threading.Thread(target=fill, args=(p,)) for p in "abcd"]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(self.cache), 800)


class SessionCacheTests(unittest.TestCase):
    def test_clear_empties_users_and_cards(self):
        cache = SessionCache()
        cache.users.put(User(id="u1", username="alice"))
        cache.cards.put(BusinessCard(id="u1", user_id="u1"))

        cache.clear()

        self.assertEqual(len(cache.users), 0)
        self.assertEqual(len(cache.cards), 0)

    def test_sessions_do_not_share_entries(self):
        first = SessionCache()
        second = SessionCache()
        first.users.put(User(id="u1", username="alice"))
        self.assertIsNone(second.users.get("u1"))


if __name__ == "__main__":
    unittest.main()
