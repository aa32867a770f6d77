from __future__ import annotations

import copy
import threading
from typing import Any, Iterable, Mapping, Sequence

from .base import primary_email
from .filters import FilterExpression, filter_documents


class MemoryProfileStore:
    def __init__(self, documents: Iterable[Mapping[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        for document in documents or []:
            self.upsert(document)

    def upsert(self, document: Mapping[str, Any]) -> str:
        email = primary_email(document)
        stored = copy.deepcopy(dict(document))
        stored["email"] = email
        with self._lock:
            self._documents[email] = stored
        return email

    def find(
        self,
        filter_expression: FilterExpression | None,
        projection: Sequence[str] | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        with self._lock:
            snapshot = list(self._documents.values())
        return copy.deepcopy(filter_documents(snapshot, filter_expression, projection, limit))

    def count(self) -> int:
        with self._lock:
            return len(self._documents)
