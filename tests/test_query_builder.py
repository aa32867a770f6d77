import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.schemas import Intent  # noqa: E402
from app.search.categories import term_pattern, variants_for  # noqa: E402
from app.search.query_builder import QueryBuilder, QueryPlan  # noqa: E402
from app.store import matches_filter  # noqa: E402


def _regexes(clause):
    return {next(iter(condition.values()))["$regex"] for condition in clause["$or"]}


class QueryBuilderTests(unittest.TestCase):
    def setUp(self):
        self.builder = QueryBuilder()

    def test_empty_intent_gives_empty_plan(self):
        plan = self.builder.build(Intent())
        self.assertEqual(plan, QueryPlan.empty())
        self.assertTrue(plan.is_empty)

    def test_single_category_has_no_relaxed_query(self):
        plan = self.builder.build(Intent(roles=["lawyer"]))
        self.assertEqual(plan.categories, ("roles",))
        self.assertIsNone(plan.relaxed)
        clause = plan.strict["$and"][0]
        self.assertIn(term_pattern("advocate"), _regexes(clause))
        fields = {next(iter(condition)) for condition in clause["$or"]}
        self.assertEqual(fields, {"current_role", "headline", "experience.title"})

    def test_two_categories_give_strict_and_relaxed(self):
        plan = self.builder.build(Intent(skills=["web development"], locations=["pune"]))
        self.assertEqual(plan.categories, ("skills", "locations"))
        self.assertEqual(len(plan.strict["$and"]), 2)
        self.assertEqual(len(plan.relaxed["$and"][0]["$or"]), 2)

        pune_react = {"email": "a@example.org", "skills": ["React"], "location": "Pune"}
        mumbai_react = {"email": "b@example.org", "skills": ["React"], "location": "Mumbai"}
        self.assertTrue(matches_filter(pune_react, plan.strict))
        self.assertFalse(matches_filter(mumbai_react, plan.strict))
        self.assertTrue(matches_filter(mumbai_react, plan.relaxed))

    def test_exclusion_applies_to_primary_and_linked_emails(self):
        plan = self.builder.build(Intent(roles=["lawyer"]), exclude_emails=["Shown@Example.org", "me@example.org"])
        exclusion = plan.strict["$and"][-1]
        self.assertEqual(exclusion["$and"][0], {"email": {"$nin": ["me@example.org", "shown@example.org"]}})
        aliased = {"email": "new@example.org", "linked_emails": ["shown@example.org"], "current_role": "Lawyer"}
        self.assertFalse(matches_filter(aliased, plan.strict))
        fresh = {"email": "fresh@example.org", "current_role": "Lawyer"}
        self.assertTrue(matches_filter(fresh, plan.strict))

    def test_name_variants_include_tokens_of_three_or_more_chars(self):
        self.assertEqual(variants_for("name", "Asha  Verma"), ("asha verma", "asha", "verma"))
        self.assertEqual(variants_for("name", "Jo Li"), ("jo li",))
        plan = self.builder.build(Intent(is_name_search=True, person_name="asha verma"))
        self.assertEqual(plan.categories, ("name",))
        self.assertTrue(matches_filter({"email": "v@example.org", "name": "Asha V."}, plan.strict))
        self.assertFalse(matches_filter({"email": "x@example.org", "name": "Natasha Rao"}, plan.strict))

    def test_keywords_only_search_when_nothing_else_is_populated(self):
        keyword_plan = self.builder.build(Intent(keywords=["beekeeping", "honey"]))
        self.assertEqual(keyword_plan.categories, ("keywords",))
        self.assertTrue(matches_filter({"email": "k@example.org", "about": "Honey producer"}, keyword_plan.strict))

        mixed = self.builder.build(Intent(roles=["lawyer"], keywords=["beekeeping"]))
        self.assertEqual(mixed.categories, ("roles",))

    def test_term_pattern_matches_word_starts_only(self):
        condition = {"skills": {"$regex": term_pattern("ml"), "$options": "i"}}
        self.assertTrue(matches_filter({"skills": ["ML ops"]}, condition))
        self.assertFalse(matches_filter({"skills": ["HTML"]}, condition))
        condition = {"headline": {"$regex": term_pattern("developer"), "$options": "i"}}
        self.assertTrue(matches_filter({"headline": "Developers guild"}, condition))


if __name__ == "__main__":
    unittest.main()
