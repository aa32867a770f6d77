from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from pydantic import ValidationError

from app.ai.types import AIClient, ChatMessage
from app.core.errors import ExtractionFailure
from app.features.intent_rules import extract_intent_rules, is_continuation, token_intent
from app.normalize.lexical import normalize_text
from app.schemas import Intent
from app.schemas.intent import TERM_FIELDS
from app.taxonomy import TaxonomyProvider, get_default_taxonomy_provider

logger = logging.getLogger(__name__)

INTENT_SYSTEM_PROMPT = (
    "You read one message sent to an alumni directory search bot and describe what the user "
    "is searching for.\n"
    "Return ONLY a JSON object with exactly these keys:\n"
    '  "is_name_search": true when the user asks about one specific person by name,\n'
    '  "person_name": that person\'s name or null,\n'
    '  "skills": skills, fields or domains,\n'
    '  "locations": cities, states or countries,\n'
    '  "companies": employers or organisations,\n'
    '  "roles": job titles or professions,\n'
    '  "education": schools, colleges or degrees,\n'
    '  "keywords": any other meaningful search words.\n'
    "All list values are arrays of short lower-case strings; use [] when nothing applies. "
    "Do not invent terms that are not in the message. "
    "Earlier messages are context only: do not carry their search terms into this answer "
    "unless the current message refers back to them."
)

_HISTORY_PREFIX = "Earlier message (context only): "
_CURRENT_PREFIX = "Current message: "
_TERM_KEYS = ("skills", "locations", "companies", "roles", "education")


class IntentExtractor:
    """Reads a message into an Intent, preferring the model and falling back to rules."""

    def __init__(
        self,
        ai_client: AIClient | None,
        *,
        taxonomy: TaxonomyProvider | None = None,
        llm_timeout_s: float = 8.0,
        model_confidence: float = 0.9,
    ) -> None:
        self._client = ai_client
        self._taxonomy = taxonomy or get_default_taxonomy_provider()
        self._llm_timeout_s = llm_timeout_s
        self._model_confidence = model_confidence

    @property
    def model_enabled(self) -> bool:
        return self._client is not None

    def build_messages(self, text: str, history: Sequence[str] | None = None) -> list[ChatMessage]:
        messages = [ChatMessage(role="system", content=INTENT_SYSTEM_PROMPT)]
        for turn in history or ():
            if turn and turn != text:
                messages.append(ChatMessage(role="user", content=_HISTORY_PREFIX + turn))
        messages.append(ChatMessage(role="user", content=_CURRENT_PREFIX + text))
        return messages

    def _canonical(self, category: str, term: str) -> str:
        normalized = normalize_text(term, self._taxonomy)
        vocabulary = self._taxonomy.vocabulary(category)
        candidates = [normalized]
        if normalized.endswith("es"):
            candidates.append(normalized[:-2])
        if normalized.endswith("s"):
            candidates.append(normalized[:-1])
        for candidate in candidates:
            if candidate in vocabulary:
                return vocabulary[candidate]
        return normalized

    def intent_from_payload(self, payload: dict[str, Any]) -> Intent:
        data: dict[str, Any] = {key: payload.get(key) for key in TERM_FIELDS}
        for key in _TERM_KEYS:
            terms = data.get(key)
            if isinstance(terms, list):
                data[key] = [self._canonical(key, str(term)) for term in terms if term is not None]
        data["is_name_search"] = bool(payload.get("is_name_search")) and bool(payload.get("person_name"))
        data["person_name"] = payload.get("person_name") if data["is_name_search"] else None
        data["confidence"] = self._model_confidence
        data["source"] = "model"
        try:
            return Intent.model_validate(data)
        except ValidationError as exc:
            raise ExtractionFailure(f"Model intent failed validation: {exc}", code="invalid_schema") from exc

    async def _extract_with_model(self, text: str, history: Sequence[str] | None, timeout_s: float) -> Intent:
        if self._client is None:
            raise ExtractionFailure("No model client is configured.", code="model_disabled")
        if timeout_s <= 0:
            raise ExtractionFailure("No turn budget left for the model call.", code="budget_exhausted")
        try:
            payload = await asyncio.wait_for(
                self._client.complete_json(self.build_messages(text, history)),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise ExtractionFailure("Model call timed out.", code="timeout") from exc
        if not isinstance(payload, dict):
            raise ExtractionFailure("Model returned JSON that is not an object.", code="invalid_schema")
        return self.intent_from_payload(payload)

    async def extract(
        self,
        text: str,
        *,
        history: Sequence[str] | None = None,
        previous: Intent | None = None,
        timeout_s: float | None = None,
    ) -> Intent:
        """Never raises; the worst case is a token-only Intent.

        A continuation such as "show more" with no new terms returns
        ``previous`` with ``source="previous"``. SearchService pages its
        overflow for those turns before calling here, so this branch serves
        callers that use the extractor on its own.
        """
        try:
            normalized = normalize_text(text, self._taxonomy)
            if is_continuation(normalized, self._taxonomy):
                rules = extract_intent_rules(normalized, self._taxonomy)
                if not rules.has_category_terms() and previous is not None:
                    return previous.model_copy(update={"source": "previous"})

            if self._client is not None:
                budget = self._llm_timeout_s if timeout_s is None else min(self._llm_timeout_s, timeout_s)
                try:
                    intent = await self._extract_with_model(normalized, history, budget)
                except Exception as exc:  # noqa: BLE001 - rule extraction is the documented fallback
                    failure = exc if isinstance(exc, ExtractionFailure) else ExtractionFailure(str(exc), code="model_error")
                    logger.warning(
                        "intent_model_failed code=%s error=%s: falling back to rules",
                        failure.code,
                        type(exc).__name__,
                    )
                else:
                    if not intent.is_empty():
                        return intent
                    logger.info("intent_model_empty: falling back to rules")

            return extract_intent_rules(normalized, self._taxonomy)
        except Exception:
            logger.exception("intent_extraction_failed")
            return token_intent(text)
