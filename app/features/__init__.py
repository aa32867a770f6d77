from .intent_rules import (
    detect_person_name,
    extract_intent_rules,
    is_bare_continuation,
    is_continuation,
    match_vocabulary,
    token_intent,
)

__all__ = [
    "detect_person_name",
    "extract_intent_rules",
    "is_bare_continuation",
    "is_continuation",
    "match_vocabulary",
    "token_intent",
]
