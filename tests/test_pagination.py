import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.session_store import MemoryCache, SessionGuard, SqliteCache  # noqa: E402
from app.schemas import Intent, Profile, ScoredCandidate  # noqa: E402
from app.search.pagination import Paginator  # noqa: E402


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _candidates(count):
    return [
        ScoredCandidate(profile=Profile(email=f"p{i}@example.org", name=f"Person {i}"), score=100 - i)
        for i in range(count)
    ]


class CacheBackendTests(unittest.TestCase):
    def test_memory_cache_expiry_and_sweep(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        cache.set("a", {"v": 1}, ttl_s=10)
        cache.set("b", {"v": 2}, ttl_s=100)
        self.assertEqual(cache.get("a"), {"v": 1})
        clock.now += 11
        self.assertIsNone(cache.get("a"))
        clock.now += 100
        self.assertEqual(cache.sweep(), 1)
        self.assertEqual(len(cache), 0)

    def test_memory_cache_returns_copies(self):
        cache = MemoryCache()
        cache.set("k", {"items": [1]}, ttl_s=60)
        cache.get("k")["items"].append(2)
        self.assertEqual(cache.get("k"), {"items": [1]})

    def test_sqlite_cache_round_trip_and_sweep(self):
        clock = FakeClock()
        with tempfile.TemporaryDirectory() as tmp:
            cache = SqliteCache(str(Path(tmp) / "sessions.db"), clock=clock)
            try:
                cache.set("a", {"topic": "lawyers"}, ttl_s=5)
                cache.set("b", {"topic": "doctors"}, ttl_s=50)
                self.assertEqual(cache.get("a"), {"topic": "lawyers"})
                clock.now += 10
                self.assertIsNone(cache.get("a"))
                self.assertEqual(cache.get("b"), {"topic": "doctors"})
                clock.now += 100
                self.assertEqual(cache.sweep(), 1)
                cache.delete("missing")
            finally:
                cache.close()


class PaginatorTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = MemoryCache(clock=self.clock)
        self.paginator = Paginator(self.cache, page_size=3, ttl_s=600, clock=self.clock)

    def test_pages_cover_every_candidate_once(self):
        candidates = _candidates(7)
        first = self.paginator.start("u1", "topic", candidates)
        second = self.paginator.next_page("u1")
        third = self.paginator.next_page("u1")
        fourth = self.paginator.next_page("u1")

        self.assertEqual((len(first.visible), first.remaining, first.total), (3, 4, 7))
        self.assertEqual((len(second.visible), second.remaining), (3, 1))
        self.assertEqual((len(third.visible), third.remaining), (1, 0))
        self.assertTrue(fourth.exhausted)

        seen = [c.email for page in (first, second, third) for c in page.visible]
        self.assertEqual(seen, [c.email for c in candidates])

    def test_small_result_set_reports_exhaustion(self):
        self.paginator.start("u1", "old", _candidates(7))
        page = self.paginator.start("u1", "new", _candidates(2))
        self.assertEqual(page.remaining, 0)
        following = self.paginator.next_page("u1")
        self.assertTrue(following.exhausted)
        self.assertEqual(following.topic, "new")
        self.assertEqual(following.total, 2)

    def test_batch_expires_after_fixed_ttl(self):
        self.paginator.start("u1", "topic", _candidates(10))
        self.clock.now += 300
        self.assertIsNotNone(self.paginator.next_page("u1"))
        self.clock.now += 301
        self.assertIsNone(self.paginator.next_page("u1"))

    def test_push_front_returns_candidates_to_the_head(self):
        candidates = _candidates(5)
        page = self.paginator.start("u1", "topic", candidates)
        remaining = self.paginator.push_front("u1", "topic", page.visible[2:])
        self.assertEqual(remaining, 3)
        following = self.paginator.next_page("u1")
        self.assertEqual([c.email for c in following.visible], [c.email for c in candidates[2:5]])

    def test_push_front_onto_empty_remainder(self):
        page = self.paginator.start("u1", "topic", _candidates(2))
        self.assertEqual(self.paginator.push_front("u1", "topic", page.visible[1:]), 1)
        self.assertEqual(self.paginator.remaining("u1"), 1)

    def test_push_front_without_batch_creates_one(self):
        self.assertEqual(self.paginator.push_front("u1", "topic", _candidates(2)), 2)
        self.assertEqual(self.paginator.next_page("u1").topic, "topic")

    def test_page_size_follows_config_override(self):
        paginator = Paginator(self.cache, config={"pagination": {"page_size": 2}}, clock=self.clock)
        page = paginator.start("u1", "topic", _candidates(5))
        self.assertEqual((len(page.visible), page.remaining), (2, 3))

    def test_users_are_isolated(self):
        self.paginator.start("u1", "topic", _candidates(5))
        self.assertIsNone(self.paginator.next_page("u2"))


class SessionGuardTests(unittest.TestCase):
    def setUp(self):
        self.cache = MemoryCache()
        self.paginator = Paginator(self.cache, page_size=3)
        self.guard = SessionGuard(self.cache, self.paginator, ttl_s=1800)

    def test_same_topic_keeps_shown_profiles(self):
        state = self.guard.begin("u1", "lawyers in delhi")
        self.guard.mark_shown(state, ["a@example.org", "b@example.org", "a@example.org"])
        again = self.guard.begin("u1", "lawyers in delhi")
        self.assertEqual(again.shown_emails, ["a@example.org", "b@example.org"])

    def test_topic_switch_clears_shown_and_overflow(self):
        state = self.guard.begin("u1", "lawyers in delhi")
        self.guard.mark_shown(state, ["a@example.org"])
        self.paginator.start("u1", "lawyers in delhi", _candidates(6))
        switched = self.guard.begin("u1", "doctors in pune")
        self.assertEqual(switched.shown_emails, [])
        self.assertEqual(switched.topic, "doctors in pune")
        self.assertIsNone(self.paginator.next_page("u1"))

    def test_remember_keeps_last_two_turns(self):
        state = self.guard.begin("u1", "q1")
        for query in ("q1", "q2", "q3"):
            self.guard.remember(state, Intent(roles=["lawyer"]), query)
        stored = self.guard.state("u1")
        self.assertEqual(stored.recent_turns, ["q2", "q3"])
        self.assertEqual(stored.last_intent.roles, ["lawyer"])

    def test_forget_removes_state_and_overflow(self):
        self.guard.begin("u1", "topic")
        self.paginator.start("u1", "topic", _candidates(6))
        self.guard.forget("u1")
        self.assertEqual(self.guard.state("u1").topic, "")
        self.assertIsNone(self.paginator.next_page("u1"))


if __name__ == "__main__":
    unittest.main()
