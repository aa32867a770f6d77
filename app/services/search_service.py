from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any

from app.ai.types import AIClient
from app.core.budget import TurnBudget
from app.core.config import Settings
from app.core.config.scoring import get_scoring_value
from app.core.errors import ExternalServiceUnavailable
from app.core.session_store import CacheBackend, SessionGuard
from app.features.intent_rules import is_bare_continuation
from app.normalize.lexical import normalize_text
from app.schemas import Intent, OverflowPointer, SearchReply
from app.search import CandidateRetriever, Paginator, QueryBuilder, score_candidates, verify_candidates
from app.services.formatter import RenderedPage, ReplyFormatter
from app.services.intent_service import IntentExtractor
from app.store import ProfileStore
from app.taxonomy import TaxonomyProvider, get_default_taxonomy_provider

logger = logging.getLogger("app.search")


def _short_hash(value: str | None) -> str:
    normalized = (value or "").strip()
    if not normalized:
        return ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]


class SearchService:
    """One conversational turn of directory search: read, query, rank, page, render."""

    def __init__(
        self,
        *,
        store: ProfileStore,
        cache: CacheBackend,
        ai_client: AIClient | None = None,
        taxonomy: TaxonomyProvider | None = None,
        config: dict[str, Any] | None = None,
        turn_budget_s: float = 30.0,
        store_timeout_s: float = 10.0,
        llm_timeout_s: float = 8.0,
        session_ttl_s: float = 1800,
        overflow_ttl_s: float = 600,
        max_message_chars: int = 1600,
        enrich_summaries: bool = False,
        enrich_concurrency: int = 3,
        page_size: int | None = None,
    ) -> None:
        self._taxonomy = taxonomy or get_default_taxonomy_provider()
        self._config = config
        self._turn_budget_s = turn_budget_s
        self._store_timeout_s = store_timeout_s
        self._sample_size = int(get_scoring_value("retrieval.no_results_sample_size", 2, config))
        self._more_command = str(get_scoring_value("formatting.more_command", "more", config))

        self.paginator = Paginator(cache, page_size=page_size, ttl_s=overflow_ttl_s, config=config)
        self.guard = SessionGuard(cache, self.paginator, ttl_s=session_ttl_s)
        self.extractor = IntentExtractor(ai_client, taxonomy=self._taxonomy, llm_timeout_s=llm_timeout_s)
        self.builder = QueryBuilder(config, self._taxonomy)
        self.retriever = CandidateRetriever(store, config)
        self.formatter = ReplyFormatter(
            max_message_chars=max_message_chars,
            config=config,
            ai_client=ai_client,
            enrich_summaries=enrich_summaries,
            enrich_concurrency=enrich_concurrency,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: ProfileStore,
        cache: CacheBackend,
        ai_client: AIClient | None = None,
        llm_timeout_s: float = 8.0,
    ) -> "SearchService":
        return cls(
            store=store,
            cache=cache,
            ai_client=ai_client,
            turn_budget_s=settings.turn_budget_s,
            store_timeout_s=settings.store_timeout_s,
            llm_timeout_s=llm_timeout_s,
            session_ttl_s=settings.session_ttl_s,
            overflow_ttl_s=settings.overflow_ttl_s,
            max_message_chars=settings.max_message_chars,
            enrich_summaries=settings.enrich_summaries,
            enrich_concurrency=settings.enrich_concurrency,
        )

    def _pointer(self, remaining: int) -> OverflowPointer | None:
        if remaining <= 0:
            return None
        return OverflowPointer(remaining=remaining, command=self._more_command)

    def _return_unrendered(self, user_key: str, topic: str, visible: list, page: RenderedPage, remaining: int) -> int:
        unrendered = visible[len(page.rendered) :]
        if not unrendered:
            return remaining
        return self.paginator.push_front(user_key, topic, unrendered)

    async def search(self, query_text: str, user_key: str, *, requester_email: str | None = None) -> SearchReply:
        started_at = time.perf_counter()
        budget = TurnBudget(self._turn_budget_s)
        try:
            normalized = normalize_text(query_text, self._taxonomy)
            if not normalized:
                return SearchReply(text=self.formatter.empty_query(), kind="empty_query")
            if is_bare_continuation(normalized, self._taxonomy):
                return await self._show_more(user_key, budget)

            state = self.guard.begin(user_key, normalized)
            intent = await self.extractor.extract(
                normalized,
                history=state.recent_turns,
                previous=state.last_intent,
                timeout_s=budget.remaining(),
            )
            logger.info(
                json.dumps(
                    {
                        "event": "search_request",
                        "user_hash": _short_hash(user_key),
                        "query_hash": _short_hash(normalized),
                        "query_len": len(normalized),
                        "intent_source": intent.source,
                        "categories": intent.populated_categories(),
                        "confidence": intent.confidence,
                    }
                )
            )
            if intent.is_empty():
                self.guard.remember(state, intent, normalized)
                return SearchReply(text=self.formatter.empty_query(), kind="empty_query", intent=intent)

            excluded = list(state.shown_emails)
            if requester_email:
                excluded.append(requester_email)
            plan = self.builder.build(intent, exclude_emails=excluded)
            profiles = await self.retriever.retrieve(plan, timeout_s=budget.cap(self._store_timeout_s))
            scored = score_candidates(profiles, intent, self._config, self._taxonomy)
            verified = verify_candidates(scored, intent, self._config)

            if not verified:
                reply = await self._no_results(query_text, intent, excluded, budget)
                self.guard.mark_shown(state, reply.shown)
                self.guard.remember(state, intent, normalized)
                self._log_complete("search_complete", started_at, reply, candidates=len(profiles), verified=0)
                return reply

            page = self.paginator.start(user_key, normalized, verified)
            rendered = await self.formatter.render_results(
                intent,
                page.visible,
                total=page.total,
                remaining=page.remaining,
                budget=budget,
            )
            remaining = self._return_unrendered(user_key, normalized, page.visible, rendered, page.remaining)
            self.guard.mark_shown(state, rendered.emails)
            self.guard.remember(state, intent, normalized)

            reply = SearchReply(
                text=rendered.text,
                kind="results",
                shown=rendered.emails,
                overflow=self._pointer(remaining),
                intent=intent,
            )
            self._log_complete("search_complete", started_at, reply, candidates=len(profiles), verified=len(verified))
            return reply
        except ExternalServiceUnavailable as exc:
            logger.warning(
                json.dumps(
                    {
                        "event": "search_unavailable",
                        "code": exc.code,
                        "user_hash": _short_hash(user_key),
                        "duration_ms": int((time.perf_counter() - started_at) * 1000),
                    }
                )
            )
            return SearchReply(text=self.formatter.unavailable(), kind="unavailable")
        except Exception as ex:
            logger.exception(
                json.dumps(
                    {
                        "event": "search_error",
                        "error": str(ex),
                        "user_hash": _short_hash(user_key),
                        "duration_ms": int((time.perf_counter() - started_at) * 1000),
                    }
                )
            )
            return SearchReply(text=self.formatter.error(), kind="error")

    async def _no_results(
        self,
        query_text: str,
        intent: Intent,
        excluded: list[str],
        budget: TurnBudget,
    ) -> SearchReply:
        samples = []
        if self._sample_size > 0 and not budget.expired:
            try:
                samples = await self.retriever.fetch_sample(
                    exclude_emails=excluded,
                    limit=self._sample_size,
                    timeout_s=budget.cap(self._store_timeout_s),
                )
            except ExternalServiceUnavailable as exc:
                logger.warning("no_results_sample_failed code=%s", exc.code)
        page = self.formatter.render_no_results(intent, query_text, samples)
        return SearchReply(text=page.text, kind="no_results", shown=page.emails, intent=intent)

    async def show_more(self, user_key: str) -> SearchReply:
        started_at = time.perf_counter()
        try:
            return await self._show_more(user_key, TurnBudget(self._turn_budget_s))
        except Exception as ex:
            logger.exception(
                json.dumps(
                    {
                        "event": "search_error",
                        "error": str(ex),
                        "user_hash": _short_hash(user_key),
                        "duration_ms": int((time.perf_counter() - started_at) * 1000),
                    }
                )
            )
            return SearchReply(text=self.formatter.error(), kind="error")

    async def _show_more(self, user_key: str, budget: TurnBudget) -> SearchReply:
        started_at = time.perf_counter()
        page = self.paginator.next_page(user_key)
        if page is None:
            reply = SearchReply(text=self.formatter.no_previous(), kind="no_previous")
        elif page.exhausted:
            reply = SearchReply(text=self.formatter.exhausted(page.topic), kind="exhausted")
        else:
            state = self.guard.state(user_key)
            start_number = page.total - page.remaining - len(page.visible) + 1
            rendered = await self.formatter.render_more(
                page.visible,
                start_number=start_number,
                total=page.total,
                remaining=page.remaining,
                intent=state.last_intent,
                budget=budget,
            )
            remaining = self._return_unrendered(user_key, state.topic, page.visible, rendered, page.remaining)
            self.guard.mark_shown(state, rendered.emails)
            reply = SearchReply(
                text=rendered.text,
                kind="more",
                shown=rendered.emails,
                overflow=self._pointer(remaining),
                intent=state.last_intent,
            )
        logger.info(
            json.dumps(
                {
                    "event": "show_more",
                    "user_hash": _short_hash(user_key),
                    "kind": reply.kind,
                    "shown": len(reply.shown),
                    "remaining": reply.overflow.remaining if reply.overflow else 0,
                    "duration_ms": int((time.perf_counter() - started_at) * 1000),
                }
            )
        )
        return reply

    def _log_complete(self, event: str, started_at: float, reply: SearchReply, *, candidates: int, verified: int) -> None:
        logger.info(
            json.dumps(
                {
                    "event": event,
                    "kind": reply.kind,
                    "candidates": candidates,
                    "verified": verified,
                    "shown": len(reply.shown),
                    "remaining": reply.overflow.remaining if reply.overflow else 0,
                    "duration_ms": int((time.perf_counter() - started_at) * 1000),
                }
            )
        )
