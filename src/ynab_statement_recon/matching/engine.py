"""
Matching engine for statement-to-ledger reconciliation.

Pure set logic: given statement and ledger transactions it partitions
them into matched pairs, statement-only and ledger-only transactions.
It never performs I/O and never fails on odd input.
"""

from datetime import datetime
from typing import Optional, Sequence
import logging

from ..config import MatchingConfig
from ..models.transaction import (
    DiscrepancyReport,
    LedgerTransaction,
    ReconciliationMatch,
    StatementTransaction,
)
from .strategies import CandidateSelector, find_candidates, get_selector

logger = logging.getLogger(__name__)


def match_transactions(
    statement_txns: Sequence[StatementTransaction],
    ledger_txns: Sequence[LedgerTransaction],
    config: MatchingConfig,
    selector: Optional[CandidateSelector] = None,
) -> DiscrepancyReport:
    """
    Pair statement transactions with ledger transactions one-to-one.

    Statement transactions are processed in input order. Each takes the
    best remaining candidate within tolerance, which is then no longer
    available to later statement transactions.

    Args:
        statement_txns: Statement transactions for the run
        ledger_txns: Ledger transactions, already scoped to the account
            and stripped of deleted entries
        config: Date and amount tolerances
        selector: Tie-break strategy, defaults to the one in ``config``

    Returns:
        DiscrepancyReport with matched, missing and unexpected partitions
    """
    if selector is None:
        selector = get_selector(config.tie_break)

    remaining: list[LedgerTransaction] = list(ledger_txns)
    matched: list[ReconciliationMatch] = []
    missing: list[StatementTransaction] = []

    for statement_txn in statement_txns:
        candidates = find_candidates(statement_txn, remaining, config)
        best = selector.select(candidates)

        if best is None:
            missing.append(statement_txn)
            continue

        logger.debug(
            f"Statement txn {statement_txn.id} matched ledger txn "
            f"{best.ledger_transaction.id} ({len(candidates)} candidate(s), "
            f"{best.date_difference:+d} day(s))"
        )
        matched.append(best)
        remaining = [t for t in remaining if t is not best.ledger_transaction]

    return DiscrepancyReport(
        matched=matched,
        missing_in_ledger=missing,
        unexpected_in_ledger=remaining,
    )


class MatchingEngine:
    """
    Runs the matching algorithm under a fixed configuration.

    Thin wrapper over :func:`match_transactions` that adds run logging.
    """

    def __init__(self, config: MatchingConfig):
        """
        Initialize the matching engine.

        Args:
            config: Date and amount tolerances plus tie-break rule
        """
        self.config = config
        self.selector = get_selector(config.tie_break)

    def match(
        self,
        statement_txns: Sequence[StatementTransaction],
        ledger_txns: Sequence[LedgerTransaction],
    ) -> DiscrepancyReport:
        """
        Partition statement and ledger transactions.

        Args:
            statement_txns: Statement transactions for the run
            ledger_txns: Ledger transactions eligible for matching

        Returns:
            DiscrepancyReport for this run
        """
        start_time = datetime.now()
        logger.info(
            f"Starting matching: {len(statement_txns)} statement txns, "
            f"{len(ledger_txns)} ledger txns "
            f"(date tolerance {self.config.date_tolerance_days}d, "
            f"amount tolerance {self.config.amount_tolerance})"
        )

        report = match_transactions(
            statement_txns, ledger_txns, self.config, selector=self.selector
        )

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Matching complete in {elapsed:.2f}s: {len(report.matched)} matched, "
            f"{len(report.missing_in_ledger)} missing in ledger, "
            f"{len(report.unexpected_in_ledger)} unexpected in ledger"
        )
        return report
