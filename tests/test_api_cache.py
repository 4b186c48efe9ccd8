import unittest

from ghwatchdog.api.api_cache import ApiCache

from support import FakeClock


class ApiCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.cache = ApiCache(default_ttl=60, clock=self.clock)

    def test_entry_expires_after_ttl(self) -> None:
        self.cache.put("/users/alice", None, {"login": "alice"})
        self.clock.now += 59
        self.assertEqual(self.cache.get("/users/alice"), {"login": "alice"})
        self.clock.now += 2
        self.assertIsNone(self.cache.get("/users/alice"))

    def test_key_ignores_parameter_order(self) -> None:
        first = ApiCache.make_key("/search/repositories", {"q": "x", "sort": "updated"})
        second = ApiCache.make_key("/search/repositories", {"sort": "updated", "q": "x"})
        self.assertEqual(first, second)
        self.assertNotEqual(first, ApiCache.make_key("/search/repositories", {"q": "y", "sort": "updated"}))

    def test_put_overwrites_and_restamps(self) -> None:
        self.cache.put_raw("k", 1)
        self.clock.now += 50
        self.cache.put_raw("k", 2)
        self.clock.now += 50
        self.assertEqual(self.cache.get_raw("k"), 2)

    def test_explicit_ttl_and_clear(self) -> None:
        self.cache.put_raw("k", "v")
        self.clock.now += 30
        self.assertIsNone(self.cache.get_raw("k", ttl=10))
        self.assertEqual(len(self.cache), 1)
        self.cache.clear()
        self.assertEqual(len(self.cache), 0)


if __name__ == "__main__":
    unittest.main()
