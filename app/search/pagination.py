from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

from app.core.config.scoring import get_scoring_value
from app.core.session_store import CacheBackend, Clock
from app.schemas import OverflowBatch, ScoredCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Page:
    visible: list[ScoredCandidate] = field(default_factory=list)
    remaining: int = 0
    total: int = 0
    topic: str = ""

    @property
    def exhausted(self) -> bool:
        return not self.visible


class Paginator:
    """Visible first page plus a per-user overflow remainder served on "more"."""

    def __init__(
        self,
        cache: CacheBackend,
        *,
        page_size: int | None = None,
        ttl_s: float = 600,
        clock: Clock = time.time,
        config: dict[str, Any] | None = None,
    ) -> None:
        self._cache = cache
        self.page_size = max(1, int(page_size or get_scoring_value("pagination.page_size", 3, config)))
        self._ttl_s = ttl_s
        self._clock = clock

    @staticmethod
    def _key(user_key: str) -> str:
        return f"overflow:{user_key}"

    def _store(self, batch: OverflowBatch) -> None:
        ttl_left = batch.created_at + self._ttl_s - self._clock()
        self._cache.set(self._key(batch.user_key), batch.model_dump(mode="json"), ttl_left)

    def load(self, user_key: str) -> OverflowBatch | None:
        raw = self._cache.get(self._key(user_key))
        if not isinstance(raw, dict):
            return None
        try:
            batch = OverflowBatch.model_validate(raw)
        except ValueError:
            logger.warning("overflow_batch_invalid")
            self.discard(user_key)
            return None
        if batch.created_at + self._ttl_s <= self._clock():
            self.discard(user_key)
            return None
        return batch

    def start(self, user_key: str, topic: str, verified: Sequence[ScoredCandidate]) -> Page:
        """Split a fresh result set, replacing whatever overflow the user had.

        The batch is stored even when the remainder is empty, so a later
        "more" reports exhaustion rather than a missing search.
        """
        self.discard(user_key)
        candidates = list(verified)
        visible = candidates[: self.page_size]
        remainder = candidates[self.page_size :]
        self._store(
            OverflowBatch(
                user_key=user_key,
                topic=topic,
                remainder=remainder,
                total=len(candidates),
                created_at=self._clock(),
            )
        )
        return Page(visible=visible, remaining=len(remainder), total=len(candidates), topic=topic)

    def next_page(self, user_key: str) -> Page | None:
        """Pop the next page; None when there is no live batch, an empty Page when exhausted."""
        batch = self.load(user_key)
        if batch is None:
            return None
        visible = batch.remainder[: self.page_size]
        batch.remainder = batch.remainder[self.page_size :]
        # Exhausted batches stay until expiry so repeated "more" reports exhaustion.
        self._store(batch)
        return Page(visible=visible, remaining=len(batch.remainder), total=batch.total, topic=batch.topic)

    def push_front(self, user_key: str, topic: str, candidates: Sequence[ScoredCandidate]) -> int:
        """Return unrendered candidates to the head of the remainder; returns the new remainder size."""
        if not candidates:
            batch = self.load(user_key)
            return len(batch.remainder) if batch else 0
        batch = self.load(user_key)
        if batch is None:
            batch = OverflowBatch(
                user_key=user_key,
                topic=topic,
                remainder=[],
                total=len(candidates),
                created_at=self._clock(),
            )
        batch.remainder = list(candidates) + batch.remainder
        self._store(batch)
        return len(batch.remainder)

    def remaining(self, user_key: str) -> int:
        batch = self.load(user_key)
        return len(batch.remainder) if batch else 0

    def discard(self, user_key: str) -> None:
        self._cache.delete(self._key(user_key))
