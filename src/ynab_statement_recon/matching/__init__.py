"""Matching engine and candidate selection."""

from .engine import MatchingEngine, match_transactions
from .strategies import (
    CandidateSelector,
    InputOrderSelector,
    LedgerIdSelector,
    amount_difference,
    date_difference,
    find_candidates,
    is_candidate,
    select_best_candidate,
)

__all__ = [
    "MatchingEngine",
    "match_transactions",
    "CandidateSelector",
    "InputOrderSelector",
    "LedgerIdSelector",
    "amount_difference",
    "date_difference",
    "find_candidates",
    "is_candidate",
    "select_best_candidate",
]
