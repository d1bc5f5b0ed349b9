"""
Candidate filtering and selection for statement-to-ledger matching.

Both systems record the same expense with opposite signs (statement
charges are positive, ledger outflows are negative), so amounts are
always compared by absolute value.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Sequence

from ..config import MatchingConfig, TieBreak
from ..models.transaction import (
    LedgerTransaction,
    ReconciliationMatch,
    StatementTransaction,
)
from ..utils.currency import to_major_units


def date_difference(
    statement_txn: StatementTransaction, ledger_txn: LedgerTransaction
) -> int:
    """Signed day count ``ledger.date - statement.date``."""
    return (ledger_txn.date - statement_txn.date).days


def amount_difference(
    statement_txn: StatementTransaction, ledger_txn: LedgerTransaction
) -> Decimal:
    """Distance between the two amounts, ignoring sign conventions."""
    amount = statement_txn.amount
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    statement_amount = abs(amount)
    ledger_amount = abs(to_major_units(ledger_txn.amount))
    return abs(statement_amount - ledger_amount)


def is_candidate(
    statement_txn: StatementTransaction,
    ledger_txn: LedgerTransaction,
    config: MatchingConfig,
) -> bool:
    """Whether the pair lies within both the date and the amount tolerance."""
    if statement_txn.date is None or ledger_txn.date is None:
        return False
    if statement_txn.amount is None or ledger_txn.amount is None:
        return False

    if abs(date_difference(statement_txn, ledger_txn)) > config.date_tolerance_days:
        return False
    return amount_difference(statement_txn, ledger_txn) <= config.amount_tolerance


def find_candidates(
    statement_txn: StatementTransaction,
    ledger_txns: Sequence[LedgerTransaction],
    config: MatchingConfig,
) -> list[ReconciliationMatch]:
    """
    Build a tentative match for every ledger transaction within tolerance.

    Args:
        statement_txn: Statement transaction to match
        ledger_txns: Ledger transactions still available, in input order
        config: Matching tolerances

    Returns:
        Candidate matches in the same order as ``ledger_txns``
    """
    return [
        ReconciliationMatch(
            statement_transaction=statement_txn,
            ledger_transaction=ledger_txn,
            date_difference=date_difference(statement_txn, ledger_txn),
        )
        for ledger_txn in ledger_txns
        if is_candidate(statement_txn, ledger_txn, config)
    ]


class CandidateSelector(ABC):
    """Picks the single best candidate for a statement transaction."""

    @abstractmethod
    def select(
        self, candidates: Sequence[ReconciliationMatch]
    ) -> Optional[ReconciliationMatch]:
        """
        Choose one candidate.

        Args:
            candidates: Candidate matches in ledger input order

        Returns:
            The chosen match, or None when there are no candidates
        """
        pass


class InputOrderSelector(CandidateSelector):
    """
    Closest date wins; ties go to the first candidate in ledger order.

    The ledger's response ordering therefore decides ties.
    """

    def select(
        self, candidates: Sequence[ReconciliationMatch]
    ) -> Optional[ReconciliationMatch]:
        if not candidates:
            return None
        # min() keeps the first of equal keys
        return min(candidates, key=lambda c: abs(c.date_difference))


class LedgerIdSelector(CandidateSelector):
    """Closest date wins; ties go to the lexically smallest ledger id."""

    def select(
        self, candidates: Sequence[ReconciliationMatch]
    ) -> Optional[ReconciliationMatch]:
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda c: (abs(c.date_difference), c.ledger_transaction.id),
        )


def get_selector(tie_break: TieBreak) -> CandidateSelector:
    """Return the selector implementing a tie-break rule."""
    if tie_break == TieBreak.LEDGER_ID:
        return LedgerIdSelector()
    return InputOrderSelector()


def select_best_candidate(
    candidates: Sequence[ReconciliationMatch],
    tie_break: TieBreak = TieBreak.INPUT_ORDER,
) -> Optional[ReconciliationMatch]:
    """Select the best candidate by minimum absolute date difference."""
    return get_selector(tie_break).select(candidates)
