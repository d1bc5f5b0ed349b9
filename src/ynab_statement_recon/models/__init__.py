"""Data models for reconciliation."""

from .transaction import (
    BatchUpdateResult,
    ClearedStatus,
    CreateResult,
    DiscrepancyReport,
    FlagColor,
    FlagResult,
    ItemError,
    LedgerAccount,
    LedgerBudget,
    LedgerTransaction,
    LedgerTransactionDraft,
    MatchPair,
    ReconciliationActions,
    ReconciliationMatch,
    ReconciliationResult,
    ReconciliationResultWithActions,
    ReconciliationRunLog,
    StatementTransaction,
)

__all__ = [
    "BatchUpdateResult",
    "ClearedStatus",
    "CreateResult",
    "DiscrepancyReport",
    "FlagColor",
    "FlagResult",
    "ItemError",
    "LedgerAccount",
    "LedgerBudget",
    "LedgerTransaction",
    "LedgerTransactionDraft",
    "MatchPair",
    "ReconciliationActions",
    "ReconciliationMatch",
    "ReconciliationResult",
    "ReconciliationResultWithActions",
    "ReconciliationRunLog",
    "StatementTransaction",
]
