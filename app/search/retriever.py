from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Sequence

from pydantic import ValidationError

from app.core.config.scoring import get_scoring_value
from app.core.errors import ExternalServiceUnavailable
from app.schemas import Profile
from app.store import ProfileStore

from .categories import category_table
from .query_builder import FilterExpression, QueryPlan, exclusion_clause

logger = logging.getLogger(__name__)


class CandidateRetriever:
    def __init__(self, store: ProfileStore, config: dict[str, Any] | None = None) -> None:
        self._store = store
        self._config = config
        self.candidate_limit = int(get_scoring_value("retrieval.candidate_limit", 50, config))
        self.min_strict_candidates = int(get_scoring_value("retrieval.min_strict_candidates", 5, config))
        self.projection = self._build_projection()

    def _build_projection(self) -> list[str]:
        fields: list[str] = []
        for paths in category_table(self._config).values():
            fields.extend(paths)
        fields.extend(get_scoring_value("display_fields", [], self._config) or [])
        ordered: list[str] = []
        for path in fields:
            root = str(path).split(".", 1)[0]
            if root not in ordered:
                ordered.append(root)
        return ordered

    async def _find(self, expression: FilterExpression, limit: int, timeout_s: float) -> list[dict[str, Any]]:
        if timeout_s <= 0:
            raise ExternalServiceUnavailable("Turn budget exhausted before the profile store was queried.")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._store.find, expression, self.projection, limit),
                timeout=timeout_s,
            )
        except ExternalServiceUnavailable:
            raise
        except asyncio.TimeoutError as exc:
            raise ExternalServiceUnavailable("Profile store query timed out.") from exc
        except Exception as exc:
            raise ExternalServiceUnavailable(f"Profile store query failed: {exc}") from exc

    @staticmethod
    def _to_profiles(documents: Iterable[dict[str, Any]]) -> list[Profile]:
        profiles: list[Profile] = []
        for document in documents:
            try:
                profiles.append(Profile.model_validate(document))
            except ValidationError:
                logger.warning("profile_document_invalid fields=%s", sorted(document)[:8])
        return profiles

    async def retrieve(self, plan: QueryPlan, *, timeout_s: float) -> list[Profile]:
        """Run the strict query, widening to the relaxed one when it comes back thin."""
        if plan.strict is None:
            return []

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s

        documents = await self._find(plan.strict, self.candidate_limit, timeout_s)
        strict_count = len(documents)
        if strict_count < self.min_strict_candidates and plan.relaxed is not None:
            try:
                relaxed = await self._find(plan.relaxed, self.candidate_limit, deadline - loop.time())
            except ExternalServiceUnavailable as exc:
                # Strict matches are kept when the widening query fails.
                logger.warning("retrieval_relaxed_failed code=%s strict=%s", exc.code, strict_count)
                relaxed = []
            seen = {str(document.get("email", "")).lower() for document in documents}
            for document in relaxed:
                email = str(document.get("email", "")).lower()
                if email in seen:
                    continue
                seen.add(email)
                documents.append(document)
                if len(documents) >= self.candidate_limit:
                    break
            logger.info("retrieval_relaxed strict=%s merged=%s", strict_count, len(documents))

        return self._to_profiles(documents[: self.candidate_limit])

    async def fetch_sample(self, *, exclude_emails: Sequence[str], limit: int, timeout_s: float) -> list[Profile]:
        """Completed profiles not yet shown, used to fill a no-results reply."""
        if limit <= 0:
            return []
        parts: list[FilterExpression] = [{"completed": True}]
        exclusion = exclusion_clause(exclude_emails)
        if exclusion is not None:
            parts.append(exclusion)
        documents = await self._find({"$and": parts}, limit, timeout_s)
        return self._to_profiles(documents)
