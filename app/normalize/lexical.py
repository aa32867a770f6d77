from __future__ import annotations

import re
from functools import lru_cache
from typing import Mapping

from app.taxonomy import TaxonomyProvider, get_default_taxonomy_provider

_SMART_PUNCTUATION = {
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "–": "-",
    "—": "-",
}
_PUNCT_RE = re.compile(r"[?!,;:\"()\[\]{}<>*_~`]")
_TRAILING_DOTS_RE = re.compile(r"\.+(?=\s|$)")
_WHITESPACE_RE = re.compile(r"\s+")


@lru_cache(maxsize=8)
def _misspelling_pattern(keys: tuple[str, ...]) -> re.Pattern[str] | None:
    if not keys:
        return None
    ordered = sorted(keys, key=len, reverse=True)
    alternation = "|".join(re.escape(key) for key in ordered)
    return re.compile(rf"(?<![a-z0-9])(?P<word>{alternation})(?P<suffix>s|es)?(?![a-z0-9])")


@lru_cache(maxsize=8)
def _corrected_forms(values: tuple[str, ...]) -> frozenset[str]:
    return frozenset(form for value in values for form in (value, value + "s", value + "es"))


def _correction(match: re.Match[str], table: Mapping[str, str]) -> str:
    # "bangalores" reads as "bangalor" + "es"; a word already in corrected form stays as written.
    if match.group(0) in _corrected_forms(tuple(sorted(set(table.values())))):
        return match.group(0)
    return table[match.group("word")] + (match.group("suffix") or "")


def _apply_misspellings(text: str, table: Mapping[str, str]) -> str:
    pattern = _misspelling_pattern(tuple(sorted(table)))
    if pattern is None:
        return text
    return pattern.sub(lambda match: _correction(match, table), text)


def normalize_text(text: str | None, taxonomy: TaxonomyProvider | None = None) -> str:
    """Lower-case, strip noise punctuation and apply known spelling corrections.

    The result is stable under repeated application, which lets it double as
    the topic key for a user's search session.
    """
    if not text:
        return ""
    provider = taxonomy or get_default_taxonomy_provider()

    cleaned = text.lower()
    for source, target in _SMART_PUNCTUATION.items():
        cleaned = cleaned.replace(source, target)
    cleaned = _PUNCT_RE.sub(" ", cleaned)
    cleaned = _TRAILING_DOTS_RE.sub("", cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return _apply_misspellings(cleaned, provider.misspellings())


def expand_term(category: str, term: str, taxonomy: TaxonomyProvider | None = None) -> tuple[str, ...]:
    provider = taxonomy or get_default_taxonomy_provider()
    return provider.expand(category, term)


def spelling_corrections(text: str | None, taxonomy: TaxonomyProvider | None = None) -> list[tuple[str, str]]:
    """List (wrong, right) pairs that normalize_text would apply to text."""
    if not text:
        return []
    provider = taxonomy or get_default_taxonomy_provider()
    table = provider.misspellings()
    pattern = _misspelling_pattern(tuple(sorted(table)))
    if pattern is None:
        return []
    lowered = _WHITESPACE_RE.sub(" ", text.lower())
    pairs = [(match.group(0), _correction(match, table)) for match in pattern.finditer(lowered)]
    return [(wrong, right) for wrong, right in pairs if wrong != right]
