from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Mapping

from app.core.config.scoring import get_scoring_value
from app.normalize.lexical import expand_term
from app.taxonomy import TaxonomyProvider

_NAME_TOKEN_MIN_CHARS = 3
_BOUNDARY = r"(?<![a-z0-9])"


def term_pattern(term: str) -> str:
    """Regex source matching term at the start of a word ("ml" misses "html", "developer" hits "developers")."""
    return _BOUNDARY + re.escape(term.strip().lower())


@lru_cache(maxsize=4096)
def compile_term(term: str) -> re.Pattern[str]:
    return re.compile(term_pattern(term), re.IGNORECASE)


def category_table(config: dict[str, Any] | None = None) -> dict[str, tuple[str, ...]]:
    raw = get_scoring_value("categories", {}, config) or {}
    if not isinstance(raw, Mapping):
        raise RuntimeError("Scoring config 'categories' must be a mapping of category -> field list.")
    return {str(category): tuple(str(field) for field in fields or ()) for category, fields in raw.items()}


def category_fields(category: str, config: dict[str, Any] | None = None) -> tuple[str, ...]:
    fields = category_table(config).get(category)
    if not fields:
        raise KeyError(f"No document fields configured for category '{category}'")
    return fields


def name_tokens(name: str) -> list[str]:
    return [token for token in name.lower().split() if len(token) >= _NAME_TOKEN_MIN_CHARS]


def variants_for(category: str, term: str, taxonomy: TaxonomyProvider | None = None) -> tuple[str, ...]:
    """Every surface form a requested term may take in a profile."""
    if category == "name":
        full = " ".join(term.lower().split())
        ordered = [full] if full else []
        for token in name_tokens(full):
            if token not in ordered:
                ordered.append(token)
        return tuple(ordered)
    if category == "keywords":
        return (term.lower(),) if term else ()
    return expand_term(category, term, taxonomy)
