from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from .filters import FilterExpression


class ProfileStore(Protocol):
    def find(
        self,
        filter_expression: FilterExpression | None,
        projection: Sequence[str] | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Return matching profile documents in store order, at most `limit`."""

    def upsert(self, document: Mapping[str, Any]) -> str:
        """Insert or replace a profile keyed by its primary email."""


def primary_email(document: Mapping[str, Any]) -> str:
    email = str(document.get("email") or "").strip().lower()
    if "@" not in email:
        raise ValueError("profile document requires an 'email' field")
    return email
