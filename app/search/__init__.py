from .pagination import Page, Paginator
from .query_builder import QueryBuilder, QueryPlan
from .retriever import CandidateRetriever
from .scoring import score_candidates, verify_candidates

__all__ = [
    "CandidateRetriever",
    "Page",
    "Paginator",
    "QueryBuilder",
    "QueryPlan",
    "score_candidates",
    "verify_candidates",
]
