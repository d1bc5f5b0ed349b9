"""Reconcile card statement transactions against a YNAB budget."""

from .config import MatchingConfig, ReconConfig, load_config
from .ledger.client import LedgerClient
from .matching.engine import MatchingEngine, match_transactions
from .service import ReconcileRequest, ReconciliationService, parse_reconcile_request
from .store.database import SqlStatementStore

__version__ = "0.1.0"

__all__ = [
    "LedgerClient",
    "MatchingConfig",
    "MatchingEngine",
    "ReconConfig",
    "ReconcileRequest",
    "ReconciliationService",
    "SqlStatementStore",
    "load_config",
    "match_transactions",
    "parse_reconcile_request",
]
