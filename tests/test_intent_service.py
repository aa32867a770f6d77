import asyncio
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.errors import ExtractionFailure  # noqa: E402
from app.schemas import Intent  # noqa: E402
from app.services.intent_service import IntentExtractor  # noqa: E402


class StubClient:
    def __init__(self, payload=None, error=None, delay=0.0):
        self.payload = payload
        self.error = error
        self.delay = delay
        self.calls = []

    async def complete_json(self, messages):
        self.calls.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload

    async def complete_text(self, messages):
        return ""


class IntentExtractorTests(unittest.IsolatedAsyncioTestCase):
    async def test_model_payload_becomes_model_intent(self):
        client = StubClient(
            payload={
                "is_name_search": False,
                "person_name": None,
                "skills": ["Web Developers"],
                "locations": ["Pune"],
                "roles": [],
            }
        )
        extractor = IntentExtractor(client)
        intent = await extractor.extract("web developers in pune")
        self.assertEqual(intent.source, "model")
        self.assertEqual(intent.skills, ["web development"])
        self.assertEqual(intent.locations, ["pune"])
        self.assertEqual(intent.companies, [])
        self.assertEqual(intent.keywords, [])

    async def test_history_is_sent_as_context(self):
        client = StubClient(payload={"roles": ["lawyer"]})
        extractor = IntentExtractor(client)
        await extractor.extract("lawyers", history=["web developers in pune"])
        messages = client.calls[0]
        self.assertEqual(messages[0].role, "system")
        self.assertIn("do not carry", messages[0].content)
        self.assertIn("web developers in pune", messages[1].content)
        self.assertTrue(messages[-1].content.endswith("lawyers"))

    async def test_model_failure_falls_back_to_rules(self):
        extractor = IntentExtractor(StubClient(error=RuntimeError("service down")))
        with self.assertLogs("app.services.intent_service", level="WARNING"):
            intent = await extractor.extract("lawyers in delhi")
        self.assertEqual(intent.source, "rules")
        self.assertEqual(intent.roles, ["lawyer"])
        self.assertEqual(intent.locations, ["delhi"])

    async def test_malformed_output_falls_back_to_rules(self):
        extractor = IntentExtractor(StubClient(error=ExtractionFailure("bad json", code="invalid_json")))
        intent = await extractor.extract("lawyers in delhi")
        self.assertEqual(intent.source, "rules")

        extractor = IntentExtractor(StubClient(payload=["not", "an", "object"]))
        intent = await extractor.extract("lawyers in delhi")
        self.assertEqual(intent.source, "rules")
        self.assertEqual(intent.roles, ["lawyer"])

    async def test_timeout_falls_back_to_rules(self):
        extractor = IntentExtractor(StubClient(payload={"roles": ["doctor"]}, delay=1.0), llm_timeout_s=0.05)
        intent = await extractor.extract("lawyers in delhi")
        self.assertEqual(intent.source, "rules")
        self.assertEqual(intent.roles, ["lawyer"])

    async def test_exhausted_budget_skips_model(self):
        client = StubClient(payload={"roles": ["doctor"]})
        extractor = IntentExtractor(client)
        intent = await extractor.extract("lawyers in delhi", timeout_s=0.0)
        self.assertEqual(client.calls, [])
        self.assertEqual(intent.roles, ["lawyer"])

    async def test_empty_model_reading_uses_rules(self):
        extractor = IntentExtractor(StubClient(payload={}))
        intent = await extractor.extract("lawyers in delhi")
        self.assertEqual(intent.source, "rules")

    async def test_disabled_model_uses_rules(self):
        extractor = IntentExtractor(None)
        self.assertFalse(extractor.model_enabled)
        intent = await extractor.extract("who is asha verma")
        self.assertTrue(intent.is_name_search)
        self.assertEqual(intent.person_name, "asha verma")

    async def test_model_call_without_client_raises_extraction_failure(self):
        extractor = IntentExtractor(None)
        with self.assertRaises(ExtractionFailure) as caught:
            await extractor._extract_with_model("lawyers in delhi", None, 2.0)
        self.assertEqual(caught.exception.code, "model_disabled")

    async def test_continuation_returns_previous_intent(self):
        previous = Intent(roles=["lawyer"], locations=["delhi"], source="model")
        client = StubClient(payload={"roles": ["doctor"]})
        extractor = IntentExtractor(client)
        intent = await extractor.extract("show more", previous=previous)
        self.assertEqual(intent.source, "previous")
        self.assertEqual(intent.roles, ["lawyer"])
        self.assertEqual(client.calls, [])

    async def test_continuation_with_new_terms_is_a_new_search(self):
        previous = Intent(roles=["lawyer"], source="rules")
        extractor = IntentExtractor(None)
        intent = await extractor.extract("more doctors in pune", previous=previous)
        self.assertEqual(intent.roles, ["doctor"])
        self.assertEqual(intent.locations, ["pune"])

    async def test_name_payload_requires_a_name(self):
        extractor = IntentExtractor(StubClient(payload={"is_name_search": True, "person_name": "", "roles": ["lawyer"]}))
        intent = await extractor.extract("lawyers")
        self.assertFalse(intent.is_name_search)
        self.assertEqual(intent.roles, ["lawyer"])


if __name__ == "__main__":
    unittest.main()
