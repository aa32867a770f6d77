import sys
import time
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.session_store import MemoryCache  # noqa: E402
from app.services.search_service import SearchService  # noqa: E402
from app.store import MemoryProfileStore  # noqa: E402
from app.store.loader import load_profiles  # noqa: E402

SAMPLE_PATH = PROJECT_ROOT / "data" / "sample_profiles.json"


def _web_developers(count):
    return [
        {
            "email": f"dev{index}@example.org",
            "name": f"Developer {index}",
            "headline": "Web developer",
            "location": "Pune",
            "skills": ["React"],
            "completed": True,
        }
        for index in range(1, count + 1)
    ]


class FailingClient:
    def __init__(self):
        self.calls = 0

    async def complete_json(self, messages):
        self.calls += 1
        raise RuntimeError("model unavailable")

    async def complete_text(self, messages):
        raise RuntimeError("model unavailable")


class SlowWideningStore(MemoryProfileStore):
    """Answers the first query at once and stalls on every later one."""

    def __init__(self, documents, delay_s):
        super().__init__(documents)
        self.delay_s = delay_s
        self.calls = 0

    def find(self, filter_expression, projection=None, limit=50):
        self.calls += 1
        if self.calls > 1:
            time.sleep(self.delay_s)
        return super().find(filter_expression, projection, limit)


class BrokenStore:
    def find(self, filter_expression, projection=None, limit=50):
        raise ConnectionError("connection refused")

    def upsert(self, document):
        raise ConnectionError("connection refused")


def _sample_store():
    store = MemoryProfileStore()
    load_profiles(SAMPLE_PATH, store)
    return store


class SearchScenarioTests(unittest.IsolatedAsyncioTestCase):
    def _service(self, store=None, **kwargs):
        return SearchService(store=store or _sample_store(), cache=MemoryCache(), **kwargs)

    async def test_skill_and_location_search(self):
        service = self._service()
        reply = await service.search("Web developers in Pune", "user-a")
        self.assertEqual(reply.kind, "results")
        self.assertEqual(reply.shown, ["asha.verma@example.org", "meera.iyer@example.org"])
        self.assertNotIn("rahul.mehta@example.org", reply.shown)
        self.assertIn("Found 2 matches", reply.text)
        self.assertIsNone(reply.overflow)
        self.assertEqual(reply.intent.skills, ["web development"])
        self.assertEqual(reply.intent.locations, ["pune"])

    async def test_name_search_ranks_exact_name_first(self):
        service = self._service()
        reply = await service.search("Do you know about Asha Verma?", "user-b")
        self.assertEqual(reply.kind, "results")
        self.assertEqual(reply.shown[0], "asha.verma@example.org")
        self.assertIn("asha.v@example.org", reply.shown)
        self.assertTrue(reply.text.startswith('Profiles for "Asha Verma"'))

    async def test_model_failure_falls_back_to_rules(self):
        client = FailingClient()
        service = self._service(ai_client=client)
        reply = await service.search("Lawers in Dilli", "user-d")
        self.assertEqual(client.calls, 1)
        self.assertEqual(reply.kind, "results")
        self.assertEqual(reply.intent.source, "rules")
        self.assertEqual(
            sorted(reply.shown),
            ["neha.kapoor@example.org", "vikram.singh@example.org"],
        )

    async def test_requester_is_excluded_by_linked_email(self):
        service = self._service()
        reply = await service.search("lawyers in delhi", "user-d", requester_email="Neha@KapoorLaw.example")
        self.assertEqual(reply.shown, ["vikram.singh@example.org"])

    async def test_no_results_offers_samples(self):
        service = self._service()
        reply = await service.search("dentists in goa", "user-e")
        self.assertEqual(reply.kind, "no_results")
        self.assertIn("No profiles found for", reply.text)
        self.assertEqual(len(reply.shown), 2)
        self.assertIsNone(reply.overflow)

    async def test_empty_query(self):
        service = self._service()
        for text in ("", "   ", "?!"):
            reply = await service.search(text, "user-f")
            self.assertEqual(reply.kind, "empty_query")
            self.assertEqual(reply.shown, [])

    async def test_slow_widening_query_keeps_strict_matches(self):
        store = SlowWideningStore(
            [
                {"email": "lawyer@example.org", "name": "Kabir Shah", "current_role": "Lawyer", "location": "New Delhi"},
                {"email": "cook@example.org", "name": "Ravi Das", "current_role": "Chef", "location": "Delhi"},
            ],
            delay_s=0.5,
        )
        service = self._service(store=store, store_timeout_s=0.2)
        with self.assertLogs("app.search.retriever", level="WARNING"):
            reply = await service.search("lawyers in delhi", "user-h")
        self.assertEqual(reply.kind, "results")
        self.assertEqual(reply.shown, ["lawyer@example.org"])
        self.assertEqual(store.calls, 2)

    async def test_unlisted_profession_finds_profiles_holding_that_role(self):
        store = MemoryProfileStore(
            [{"email": "wine@example.org", "name": "Tara Joshi", "current_role": "Sommelier", "location": "Goa"}]
        )
        service = self._service(store=store)
        reply = await service.search("sommelier", "user-i")
        self.assertEqual(reply.kind, "results")
        self.assertEqual(reply.shown, ["wine@example.org"])

    async def test_bare_name_still_ranks_exact_name_first(self):
        service = self._service()
        reply = await service.search("Asha Verma", "user-j")
        self.assertEqual(reply.kind, "results")
        self.assertEqual(reply.shown[0], "asha.verma@example.org")
        self.assertIn("asha.v@example.org", reply.shown)

    async def test_more_after_a_short_result_list_reports_exhaustion(self):
        service = self._service()
        first = await service.search("web developers in pune", "user-k")
        self.assertEqual(len(first.shown), 2)
        self.assertIsNone(first.overflow)
        more = await service.show_more("user-k")
        self.assertEqual(more.kind, "exhausted")
        self.assertTrue(more.text.startswith("No more results for: *web developers in pune*"))

    async def test_store_outage_is_reported_as_unavailable(self):
        service = self._service(store=BrokenStore())
        reply = await service.search("web developers in pune", "user-g")
        self.assertEqual(reply.kind, "unavailable")
        self.assertIn("unavailable", reply.text)


class SearchPaginationTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = SearchService(store=MemoryProfileStore(_web_developers(7)), cache=MemoryCache())

    async def test_pages_cover_every_match_once(self):
        first = await self.service.search("web developers in pune", "u1")
        self.assertEqual(first.kind, "results")
        self.assertEqual(len(first.shown), 3)
        self.assertEqual(first.overflow.remaining, 4)
        self.assertIn("Type *more* to see 4 more", first.text)

        second = await self.service.search("more", "u1")
        self.assertEqual(second.kind, "more")
        self.assertEqual(len(second.shown), 3)
        self.assertIn("4. *Developer", second.text)
        self.assertEqual(second.overflow.remaining, 1)

        third = await self.service.show_more("u1")
        self.assertEqual(len(third.shown), 1)
        self.assertIn("7. *Developer", third.text)
        self.assertIsNone(third.overflow)

        fourth = await self.service.show_more("u1")
        self.assertEqual(fourth.kind, "exhausted")

        shown = first.shown + second.shown + third.shown
        self.assertEqual(len(shown), 7)
        self.assertEqual(len(set(shown)), 7)

    async def test_more_without_previous_search(self):
        reply = await self.service.search("show me more", "fresh-user")
        self.assertEqual(reply.kind, "no_previous")
        self.assertTrue(reply.text.startswith("No previous search found."))

    async def test_repeating_a_search_skips_profiles_already_shown(self):
        first = await self.service.search("web developers in pune", "u2")
        again = await self.service.search("web developers in pune", "u2")
        self.assertEqual(again.kind, "results")
        self.assertFalse(set(first.shown) & set(again.shown))
        self.assertEqual(len(again.shown), 3)
        self.assertEqual(again.overflow.remaining, 1)

    async def test_topic_switch_discards_overflow(self):
        await self.service.search("web developers in pune", "u3")
        switched = await self.service.search("lawyers in delhi", "u3")
        self.assertEqual(switched.kind, "no_results")
        more = await self.service.search("more", "u3")
        self.assertEqual(more.kind, "no_previous")

    async def test_users_do_not_share_overflow(self):
        await self.service.search("web developers in pune", "u4")
        other = await self.service.show_more("u5")
        self.assertEqual(other.kind, "no_previous")

    async def test_small_ceiling_returns_unrendered_candidates_to_overflow(self):
        service = SearchService(
            store=MemoryProfileStore(_web_developers(4)),
            cache=MemoryCache(),
            max_message_chars=260,
        )
        first = await service.search("web developers in pune", "u6")
        self.assertEqual(len(first.shown), 1)
        self.assertEqual(first.overflow.remaining, 3)
        seen = list(first.shown)
        while True:
            page = await service.show_more("u6")
            if page.kind != "more":
                break
            self.assertTrue(page.shown)
            seen.extend(page.shown)
        self.assertEqual(page.kind, "exhausted")
        self.assertEqual(len(seen), 4)
        self.assertEqual(len(set(seen)), 4)


if __name__ == "__main__":
    unittest.main()
