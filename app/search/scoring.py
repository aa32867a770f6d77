from __future__ import annotations

from typing import Any, Iterable, Sequence

from app.core.config.scoring import get_scoring_value
from app.schemas import Intent, Profile, ScoredCandidate
from app.schemas.intent import TERM_FIELDS
from app.store.filters import resolve_path
from app.taxonomy import TaxonomyProvider

from .categories import category_fields, compile_term, name_tokens, variants_for

_COMPLETENESS_FIELDS = ("headline", "about", "experience", "skills", "linkedin")


def _field_values(document: dict[str, Any], paths: Iterable[str]) -> list[str]:
    values: list[str] = []
    for path in paths:
        values.extend(str(value) for value in resolve_path(document, path) if isinstance(value, (str, int, float)))
    return values


def _term_matches(category: str, term: str, values: Sequence[str], taxonomy: TaxonomyProvider | None) -> bool:
    for variant in variants_for(category, term, taxonomy):
        pattern = compile_term(variant)
        if any(pattern.search(value) for value in values):
            return True
    return False


def name_score(profile_name: str, requested: str, config: dict[str, Any] | None = None) -> float:
    """Exact name beats containment or a shared name token; anything else scores nothing."""
    actual = " ".join(profile_name.lower().split())
    wanted = " ".join(requested.lower().split())
    if not actual or not wanted:
        return 0.0
    if actual == wanted:
        return float(get_scoring_value("weights.name_exact", 100, config))
    if wanted in actual or actual in wanted or set(name_tokens(actual)) & set(name_tokens(wanted)):
        return float(get_scoring_value("weights.name_partial", 50, config))
    return 0.0


def completeness_bonus(profile: Profile, config: dict[str, Any] | None = None) -> float:
    weights = get_scoring_value("weights.completeness", {}, config) or {}
    bonus = float(weights.get("completed", 0)) if profile.completed else 0.0
    for field in _COMPLETENESS_FIELDS:
        if getattr(profile, field):
            bonus += float(weights.get(field, 0))
    return bonus


def score_candidates(
    profiles: Iterable[Profile],
    intent: Intent,
    config: dict[str, Any] | None = None,
    taxonomy: TaxonomyProvider | None = None,
) -> list[ScoredCandidate]:
    """Score every profile against the intent and sort best first.

    Each requested term contributes its category weight once when any of its
    variants appears in any of the category's fields, so matching more of the
    requested terms always ranks higher. Ties keep `completed` profiles first
    and otherwise preserve retrieval order.
    """
    scored: list[ScoredCandidate] = []
    for profile in profiles:
        document = profile.model_dump()
        score = 0.0
        matched: dict[str, list[str]] = {}

        if intent.person_name:
            points = name_score(profile.name, intent.person_name, config)
            if points > 0:
                score += points
                matched["name"] = [intent.person_name]

        for category in TERM_FIELDS:
            terms = intent.terms_for(category)
            if not terms:
                continue
            values = _field_values(document, category_fields(category, config))
            if not values:
                continue
            weight = float(get_scoring_value(f"weights.{category}", 0, config))
            hits = [term for term in terms if _term_matches(category, term, values, taxonomy)]
            if hits:
                matched[category] = hits
                score += weight * len(hits)

        score += completeness_bonus(profile, config)
        scored.append(ScoredCandidate(profile=profile, score=score, matched=matched))

    return sorted(scored, key=lambda candidate: (-candidate.score, not candidate.profile.completed))


def verify_candidates(
    scored: Iterable[ScoredCandidate],
    intent: Intent,
    config: dict[str, Any] | None = None,
) -> list[ScoredCandidate]:
    """Keep candidates above the score floor that match every populated category."""
    floor = float(get_scoring_value("verification.score_floor", 5, config))
    required = intent.populated_categories()
    return [
        candidate
        for candidate in scored
        if candidate.score >= floor and all(candidate.matched.get(category) for category in required)
    ]
