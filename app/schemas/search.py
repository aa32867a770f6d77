from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .intent import Intent
from .profile import Profile

ReplyKind = Literal[
    "results",
    "no_results",
    "more",
    "exhausted",
    "no_previous",
    "empty_query",
    "unavailable",
    "error",
]


class ScoredCandidate(BaseModel):
    profile: Profile
    score: float = 0.0
    matched: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def email(self) -> str:
        return self.profile.email

    @property
    def matched_categories(self) -> list[str]:
        return [category for category, terms in self.matched.items() if terms]


class OverflowBatch(BaseModel):
    user_key: str
    topic: str
    remainder: list[ScoredCandidate] = Field(default_factory=list)
    total: int = 0
    created_at: float


class SessionState(BaseModel):
    user_key: str
    topic: str = ""
    last_intent: Intent | None = None
    shown_emails: list[str] = Field(default_factory=list)
    recent_turns: list[str] = Field(default_factory=list)
    updated_at: float = 0.0


class OverflowPointer(BaseModel):
    remaining: int = Field(ge=0)
    command: str = "more"


class SearchReply(BaseModel):
    text: str
    kind: ReplyKind
    shown: list[str] = Field(default_factory=list)
    overflow: OverflowPointer | None = None
    intent: Intent | None = None
