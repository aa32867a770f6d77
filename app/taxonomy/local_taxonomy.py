from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Mapping

from .provider import TaxonomyProvider

CATEGORIES = ("skills", "roles", "locations", "education", "companies")


class LocalTaxonomy(TaxonomyProvider):
    def __init__(self, lexicon_path: str | Path | None = None) -> None:
        path = Path(lexicon_path) if lexicon_path else Path(__file__).with_name("lexicon.json")
        raw = self._load_lexicon(path)
        self._misspellings = self._clean_mapping(raw.get("misspellings", {}))
        self._validate_misspellings(self._misspellings)
        self._expansions: dict[str, dict[str, tuple[str, ...]]] = {}
        for category, table in (raw.get("expansions") or {}).items():
            self._expansions[category] = {
                str(key).strip().lower(): tuple(str(item).strip().lower() for item in values if str(item).strip())
                for key, values in table.items()
            }
        self._vocabulary = {
            category: self._clean_mapping(table)
            for category, table in (raw.get("vocabulary") or {}).items()
        }
        self._stop_words = frozenset(str(word).strip().lower() for word in raw.get("stop_words", []))
        self._continuations = tuple(
            str(phrase).strip().lower() for phrase in raw.get("continuation_phrases", []) if str(phrase).strip()
        )

    @staticmethod
    def _load_lexicon(path: Path) -> dict[str, Any]:
        with path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        if not isinstance(raw, dict):
            raise ValueError(f"Lexicon '{path}' must be a JSON object.")
        return raw

    @staticmethod
    def _clean_mapping(table: Mapping[str, Any]) -> dict[str, str]:
        return {str(key).strip().lower(): str(value).strip().lower() for key, value in table.items()}

    @staticmethod
    def _validate_misspellings(table: Mapping[str, str]) -> None:
        # A correction that reintroduces a misspelled word would make normalization non-idempotent.
        for wrong, right in table.items():
            for word in re.findall(r"[a-z0-9&.+#-]+", right):
                forms = {word, word + "s", word + "es", word.removesuffix("s"), word.removesuffix("es")}
                if forms & table.keys():
                    raise ValueError(f"Misspelling correction '{wrong}' -> '{right}' contains misspelled word '{word}'.")

    def misspellings(self) -> Mapping[str, str]:
        return self._misspellings

    def expand(self, category: str, term: str) -> tuple[str, ...]:
        normalized = (term or "").strip().lower()
        if not normalized:
            return ()
        expanded = self._expansions.get(category, {}).get(normalized, ())
        ordered = [normalized]
        for item in expanded:
            if item not in ordered:
                ordered.append(item)
        return tuple(ordered)

    def vocabulary(self, category: str) -> Mapping[str, str]:
        return self._vocabulary.get(category, {})

    def stop_words(self) -> frozenset[str]:
        return self._stop_words

    def continuation_phrases(self) -> tuple[str, ...]:
        return self._continuations
