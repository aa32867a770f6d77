from __future__ import annotations

from typing import Mapping, Protocol


class TaxonomyProvider(Protocol):
    def misspellings(self) -> Mapping[str, str]:
        """Return the misspelling -> canonical word map."""

    def expand(self, category: str, term: str) -> tuple[str, ...]:
        """Return the term followed by its synonyms for the category."""

    def vocabulary(self, category: str) -> Mapping[str, str]:
        """Return phrase -> canonical term for rule-based extraction."""

    def stop_words(self) -> frozenset[str]:
        ...

    def continuation_phrases(self) -> tuple[str, ...]:
        ...
