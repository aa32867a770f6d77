from __future__ import annotations

import re
from functools import lru_cache

from app.normalize.lexical import normalize_text
from app.schemas import Intent
from app.taxonomy import CATEGORIES, TaxonomyProvider, get_default_taxonomy_provider

# Category order decides ties between equally long phrases.
_PHRASE_CATEGORIES = ("skills", "roles", "locations", "companies", "education")

_NAME_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        r"^(?:who is|who's|whos)\s+(?P<name>.+)$",
        r"^tell me about\s+(?P<name>.+)$",
        r"^do you know(?:\s+about)?\s+(?P<name>.+)$",
        r"^(?:show me\s+|show\s+|get\s+|give me\s+)?(?:the\s+)?profile of\s+(?P<name>.+)$",
        r"^(?:show me\s+|show\s+)?(?P<name>.+?)'s profile$",
        r"^(?:find|search for|search|looking for|look up|lookup)\s+(?P<name>.+)$",
    )
)
_NAME_TOKEN_RE = re.compile(r"^[a-z][a-z.'-]*$")
_TOKEN_STRIP = ".'-&/+#"
_MAX_NAME_TOKENS = 4
_MAX_BARE_NAME_TOKENS = 3
_KEYWORD_MIN_CHARS = 3


@lru_cache(maxsize=1024)
def _phrase_regex(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(phrase)}(?:s|es)?(?![a-z0-9])")


def _phrase_table(taxonomy: TaxonomyProvider) -> list[tuple[str, str, str]]:
    entries: list[tuple[str, str, str]] = []
    for category in _PHRASE_CATEGORIES:
        for phrase, canonical in taxonomy.vocabulary(category).items():
            entries.append((phrase, category, canonical))
    order = {category: index for index, category in enumerate(_PHRASE_CATEGORIES)}
    # Stable sort: longest phrase first, category order breaks ties.
    return sorted(entries, key=lambda entry: (-len(entry[0]), order[entry[1]]))


def match_vocabulary(text: str, taxonomy: TaxonomyProvider | None = None) -> tuple[dict[str, list[str]], str]:
    """Find vocabulary phrases in normalized text.

    Returns canonical terms per category in order of appearance, plus the text
    with every consumed span blanked out.
    """
    provider = taxonomy or get_default_taxonomy_provider()
    consumed = [False] * len(text)
    hits: list[tuple[int, str, str]] = []

    for phrase, category, canonical in _phrase_table(provider):
        for match in _phrase_regex(phrase).finditer(text):
            start, end = match.span()
            if any(consumed[start:end]):
                continue
            for index in range(start, end):
                consumed[index] = True
            hits.append((start, category, canonical))

    found: dict[str, list[str]] = {category: [] for category in CATEGORIES}
    for _, category, canonical in sorted(hits, key=lambda hit: hit[0]):
        if canonical not in found[category]:
            found[category].append(canonical)

    leftover = "".join(" " if consumed[index] else char for index, char in enumerate(text))
    return found, leftover


def _clean_tokens(text: str) -> list[str]:
    tokens: list[str] = []
    for raw in text.split():
        token = raw.strip(_TOKEN_STRIP)
        if token:
            tokens.append(token)
    return tokens


def leftover_keywords(leftover: str, stop_words: frozenset[str]) -> list[str]:
    keywords: list[str] = []
    for token in _clean_tokens(leftover):
        if len(token) < _KEYWORD_MIN_CHARS or token in stop_words or token.isdigit():
            continue
        if token not in keywords:
            keywords.append(token)
    return keywords


def _plausible_name(candidate: str, taxonomy: TaxonomyProvider, *, max_tokens: int) -> str | None:
    tokens = _clean_tokens(candidate)
    if not tokens or len(tokens) > max_tokens:
        return None
    stop_words = taxonomy.stop_words()
    if any(token in stop_words or not _NAME_TOKEN_RE.match(token) for token in tokens):
        return None
    found, _ = match_vocabulary(" ".join(tokens), taxonomy)
    if any(found.values()):
        return None
    return " ".join(tokens)


def detect_person_name(text: str, taxonomy: TaxonomyProvider | None = None) -> str | None:
    """Name asked for by "who is X", "tell me about X" and similar phrasings."""
    provider = taxonomy or get_default_taxonomy_provider()
    for pattern in _NAME_PATTERNS:
        match = pattern.match(text)
        if match:
            name = _plausible_name(match.group("name"), provider, max_tokens=_MAX_NAME_TOKENS)
            if name:
                return name
    return None


def is_continuation(text: str, taxonomy: TaxonomyProvider | None = None) -> bool:
    provider = taxonomy or get_default_taxonomy_provider()
    normalized = normalize_text(text, provider)
    if not normalized:
        return False
    for phrase in provider.continuation_phrases():
        if normalized == phrase or normalized.startswith(phrase + " "):
            return True
    return False


def is_bare_continuation(text: str, taxonomy: TaxonomyProvider | None = None) -> bool:
    """A "show more" style message that names no new search terms."""
    if not is_continuation(text, taxonomy):
        return False
    return not extract_intent_rules(text, taxonomy).has_category_terms()


def extract_intent_rules(text: str, taxonomy: TaxonomyProvider | None = None) -> Intent:
    provider = taxonomy or get_default_taxonomy_provider()
    normalized = normalize_text(text, provider)
    if not normalized:
        return Intent(confidence=0.0, source="rules")

    person_name = detect_person_name(normalized, provider)
    if person_name:
        return Intent(is_name_search=True, person_name=person_name, confidence=0.8, source="rules")

    found, leftover = match_vocabulary(normalized, provider)
    has_hits = any(found.values())

    if not has_hits:
        bare_name = _plausible_name(normalized, provider, max_tokens=_MAX_BARE_NAME_TOKENS)
        if bare_name:
            # An unknown short phrase may be a name or an unlisted profession:
            # search it as keywords and let name matches rank first.
            guess_keywords = leftover_keywords(bare_name, provider.stop_words())
            if guess_keywords:
                return Intent(person_name=bare_name, keywords=guess_keywords, confidence=0.5, source="rules")
            return Intent(is_name_search=True, person_name=bare_name, confidence=0.5, source="rules")

    keywords = leftover_keywords(leftover, provider.stop_words())
    confidence = 0.7 if has_hits else (0.3 if keywords else 0.0)
    return Intent(keywords=keywords, confidence=confidence, source="rules", **found)


def token_intent(text: str) -> Intent:
    """Last-resort reading: every whitespace token is a keyword."""
    return Intent(keywords=(text or "").lower().split(), confidence=0.1, source="tokens")
