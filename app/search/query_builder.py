from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from app.schemas import Intent
from app.taxonomy import TaxonomyProvider

from .categories import category_fields, term_pattern, variants_for

FilterExpression = dict[str, Any]


@dataclass(frozen=True)
class QueryPlan:
    strict: FilterExpression | None = None
    relaxed: FilterExpression | None = None
    categories: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> "QueryPlan":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.strict is None


def exclusion_clause(emails: Iterable[str]) -> FilterExpression | None:
    excluded = sorted({email.strip().lower() for email in emails if email and email.strip()})
    if not excluded:
        return None
    return {
        "$and": [
            {"email": {"$nin": excluded}},
            {"linked_emails": {"$nin": excluded}},
        ]
    }


class QueryBuilder:
    """Turns an Intent into strict and relaxed filter expressions for the profile store."""

    def __init__(self, config: dict[str, Any] | None = None, taxonomy: TaxonomyProvider | None = None) -> None:
        self._config = config
        self._taxonomy = taxonomy

    def category_clause(self, category: str, terms: Iterable[str]) -> FilterExpression | None:
        fields = category_fields(category, self._config)
        variants: list[str] = []
        for term in terms:
            for variant in variants_for(category, term, self._taxonomy):
                if variant and variant not in variants:
                    variants.append(variant)
        if not variants:
            return None
        return {
            "$or": [
                {path: {"$regex": term_pattern(variant), "$options": "i"}}
                for variant in variants
                for path in fields
            ]
        }

    def build(self, intent: Intent, *, exclude_emails: Iterable[str] = ()) -> QueryPlan:
        clauses: list[FilterExpression] = []
        categories: list[str] = []
        for category in intent.populated_categories():
            clause = self.category_clause(category, intent.terms_for(category))
            if clause is not None:
                clauses.append(clause)
                categories.append(category)

        if not clauses:
            return QueryPlan.empty()

        exclusion = exclusion_clause(exclude_emails)
        strict_parts = list(clauses)
        if exclusion is not None:
            strict_parts.append(exclusion)
        strict: FilterExpression = {"$and": strict_parts}

        relaxed: FilterExpression | None = None
        if len(clauses) >= 2:
            relaxed_parts: list[FilterExpression] = [{"$or": list(clauses)}]
            if exclusion is not None:
                relaxed_parts.append(exclusion)
            relaxed = {"$and": relaxed_parts}

        return QueryPlan(strict=strict, relaxed=relaxed, categories=tuple(categories))
