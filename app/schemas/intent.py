from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

IntentSource = Literal["model", "rules", "tokens", "previous"]

SEARCH_CATEGORIES = ("name", "skills", "locations", "education", "companies", "roles")
TERM_FIELDS = ("skills", "locations", "companies", "roles", "education", "keywords")


def _dedupe_terms(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        return []
    ordered: list[str] = []
    for item in value:
        if item is None:
            continue
        term = " ".join(str(item).split()).strip().lower()
        if term and term not in ordered:
            ordered.append(term)
    return ordered


class Intent(BaseModel):
    """Structured reading of one user message.

    Term fields behave as sets (no duplicates, never null) but keep first-seen
    order so replies describe the search the way the user phrased it.
    A person_name without is_name_search is only a guess: it boosts profiles
    with that name but does not restrict the search to names.
    """

    is_name_search: bool = False
    person_name: str | None = None
    skills: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    companies: list[str] = Field(default_factory=list)
    roles: list[str] = Field(default_factory=list)
    education: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    source: IntentSource = "rules"

    @field_validator(*TERM_FIELDS, mode="before")
    @classmethod
    def _coerce_terms(cls, value: Any) -> list[str]:
        return _dedupe_terms(value)

    @field_validator("person_name", mode="before")
    @classmethod
    def _coerce_person_name(cls, value: Any) -> str | None:
        if value is None:
            return None
        name = " ".join(str(value).split()).strip().lower()
        return name or None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.5
        return min(1.0, max(0.0, number))

    @property
    def has_name(self) -> bool:
        return self.is_name_search and bool(self.person_name)

    def terms_for(self, category: str) -> list[str]:
        if category == "name":
            return [self.person_name] if self.has_name and self.person_name else []
        return list(getattr(self, category, []) or [])

    def populated_categories(self) -> list[str]:
        """Categories that constrain the search; keywords only when nothing else does."""
        populated = [category for category in SEARCH_CATEGORIES if self.terms_for(category)]
        if not populated and self.keywords:
            return ["keywords"]
        return populated

    def has_category_terms(self) -> bool:
        return any(self.terms_for(category) for category in SEARCH_CATEGORIES)

    def is_empty(self) -> bool:
        return not self.populated_categories()
