from .intent import SEARCH_CATEGORIES, Intent
from .profile import EducationEntry, ExperienceEntry, Profile
from .search import (
    OverflowBatch,
    OverflowPointer,
    ScoredCandidate,
    SearchReply,
    SessionState,
)

__all__ = [
    "SEARCH_CATEGORIES",
    "Intent",
    "Profile",
    "ExperienceEntry",
    "EducationEntry",
    "ScoredCandidate",
    "OverflowBatch",
    "OverflowPointer",
    "SessionState",
    "SearchReply",
]
