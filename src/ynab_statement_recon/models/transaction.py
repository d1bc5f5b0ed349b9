"""Data models for statement and ledger transactions and reconciliation results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class ClearedStatus(Enum):
    """Cleared state of a ledger transaction."""

    CLEARED = "cleared"
    UNCLEARED = "uncleared"
    RECONCILED = "reconciled"


class FlagColor(Enum):
    """Visual marker colors supported by the ledger."""

    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"


@dataclass
class StatementTransaction:
    """
    A transaction imported from the card issuer's statement.

    Amounts follow the statement convention: positive is money leaving the
    account (a charge), negative is a credit or refund.
    """

    id: int
    date: date
    amount: Decimal
    reference: str
    description: str = ""
    card_member: str = ""
    account_number: str = ""

    # Reconciliation marker
    reconciled: bool = False
    ledger_transaction_id: Optional[str] = None
    reconciled_at: Optional[datetime] = None


@dataclass
class LedgerTransaction:
    """
    A transaction fetched from the external budgeting ledger.

    Amounts are integer milliunits where an expense is negative and an
    inflow is positive, the opposite of the statement convention.
    """

    id: str
    date: date
    amount: int
    account_id: Optional[str] = None
    payee_name: Optional[str] = None
    category_name: Optional[str] = None
    memo: Optional[str] = None
    cleared: ClearedStatus = ClearedStatus.UNCLEARED
    deleted: bool = False
    flag_color: Optional[str] = None
    import_id: Optional[str] = None


@dataclass
class LedgerTransactionDraft:
    """Payload for a transaction about to be created on the ledger."""

    date: date
    amount: int
    payee_name: Optional[str] = None
    memo: Optional[str] = None
    cleared: ClearedStatus = ClearedStatus.UNCLEARED
    import_id: Optional[str] = None


@dataclass
class LedgerBudget:
    """Budget as listed by the ledger."""

    id: str
    name: str


@dataclass
class LedgerAccount:
    """Account within a ledger budget."""

    id: str
    name: str
    type: Optional[str] = None
    closed: bool = False
    deleted: bool = False


@dataclass(frozen=True)
class ReconciliationMatch:
    """One statement transaction paired with one ledger transaction."""

    statement_transaction: StatementTransaction
    ledger_transaction: LedgerTransaction

    # ledger.date - statement.date, in days
    date_difference: int


@dataclass
class DiscrepancyReport:
    """Partition of one matching run's inputs."""

    matched: list[ReconciliationMatch] = field(default_factory=list)
    missing_in_ledger: list[StatementTransaction] = field(default_factory=list)
    unexpected_in_ledger: list[LedgerTransaction] = field(default_factory=list)


@dataclass
class MatchPair:
    """A (statement id, ledger id) pair to persist as reconciled."""

    statement_id: int
    ledger_id: str


@dataclass
class ItemError:
    """Failure of a single item within a batch operation."""

    item_id: Any
    error: str


@dataclass
class BatchUpdateResult:
    """Outcome of marking a batch of statement transactions as reconciled."""

    updated_count: int = 0
    errors: list[ItemError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class ReconciliationRunLog:
    """Append-only audit record of one persisted reconciliation run."""

    budget_id: str
    account_id: str
    start_date: date
    end_date: date
    matched_count: int
    missing_in_ledger_count: int
    unexpected_in_ledger_count: int
    reconciled_at: datetime
    flagged_count: int = 0
    created_in_ledger_count: int = 0
    config: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    id: Optional[int] = None


@dataclass
class ReconciliationResult:
    """Outcome of a reconciliation run. Failures are data, not exceptions."""

    success: bool
    budget_id: str
    account_id: str
    start_date: Optional[date]
    end_date: Optional[date]
    statement_transaction_count: int = 0
    ledger_transaction_count: int = 0
    report: DiscrepancyReport = field(default_factory=DiscrepancyReport)
    timestamp: datetime = field(default_factory=datetime.now)
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def matched_count(self) -> int:
        return len(self.report.matched)

    @property
    def missing_in_ledger_count(self) -> int:
        return len(self.report.missing_in_ledger)

    @property
    def unexpected_in_ledger_count(self) -> int:
        return len(self.report.unexpected_in_ledger)


@dataclass
class ReconciliationActions:
    """Follow-up actions available after a run, and what persistence did."""

    can_persist: bool
    can_flag: bool
    can_create: bool
    persisted_count: Optional[int] = None
    persist_errors: list[ItemError] = field(default_factory=list)
    run_log_id: Optional[int] = None


@dataclass
class ReconciliationResultWithActions:
    """A reconciliation result together with its available actions."""

    result: ReconciliationResult
    actions: ReconciliationActions

    @property
    def success(self) -> bool:
        return self.result.success


@dataclass
class FlagResult:
    """Outcome of flagging unexpected ledger transactions."""

    flagged: int = 0
    errors: list[ItemError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class CreateResult:
    """Outcome of creating missing transactions on the ledger."""

    created: int = 0
    skipped: int = 0
    errors: list[ItemError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors
