"""Shared fixtures and test doubles."""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence
import itertools

import pytest

from ynab_statement_recon.config import MatchingConfig
from ynab_statement_recon.models.transaction import (
    BatchUpdateResult,
    ClearedStatus,
    FlagColor,
    ItemError,
    LedgerTransaction,
    LedgerTransactionDraft,
    MatchPair,
    ReconciliationRunLog,
    StatementTransaction,
)
from ynab_statement_recon.store.database import SqlStatementStore
from ynab_statement_recon.utils.exceptions import DuplicateSubmission

ACCOUNT_ID = "acct-amex"
OTHER_ACCOUNT_ID = "acct-visa"
BUDGET_ID = "budget-1"

_ids = itertools.count(1)


def make_statement(
    amount: str,
    on: str,
    id: Optional[int] = None,
    reference: Optional[str] = None,
    description: str = "MERCHANT",
) -> StatementTransaction:
    txn_id = id if id is not None else next(_ids)
    return StatementTransaction(
        id=txn_id,
        date=date.fromisoformat(on),
        amount=Decimal(amount),
        reference=reference or f"AT2603200030000{txn_id:08d}",
        description=description,
        card_member="J SMITH",
        account_number="-41009",
    )


def make_ledger(
    id: str,
    amount: int,
    on: str,
    account_id: Optional[str] = ACCOUNT_ID,
    deleted: bool = False,
    payee_name: str = "Merchant",
) -> LedgerTransaction:
    return LedgerTransaction(
        id=id,
        date=date.fromisoformat(on),
        amount=amount,
        account_id=account_id,
        payee_name=payee_name,
        deleted=deleted,
    )


class FakeStore:
    """In-memory statement store."""

    def __init__(self, transactions: Iterable[StatementTransaction] = ()):
        self.transactions = {t.id: t for t in transactions}
        self.run_logs: list[ReconciliationRunLog] = []
        self.fail_ids: set[int] = set()

    def list_by_date_range(self, start: date, end: date) -> list[StatementTransaction]:
        return sorted(
            (t for t in self.transactions.values() if start <= t.date <= end),
            key=lambda t: (t.date, t.id),
        )

    def get(self, statement_id: int) -> Optional[StatementTransaction]:
        return self.transactions.get(statement_id)

    def batch_mark_reconciled(self, pairs: Sequence[MatchPair]) -> BatchUpdateResult:
        result = BatchUpdateResult()
        for pair in pairs:
            txn = self.transactions.get(pair.statement_id)
            if pair.statement_id in self.fail_ids:
                result.errors.append(ItemError(pair.statement_id, "disk I/O error"))
                continue
            if txn is None:
                result.errors.append(ItemError(pair.statement_id, "Transaction not found"))
                continue
            txn.reconciled = True
            txn.ledger_transaction_id = pair.ledger_id
            txn.reconciled_at = datetime.now()
            result.updated_count += 1
        return result

    def unmark(self, statement_id: int) -> bool:
        txn = self.transactions.get(statement_id)
        if txn is None or not txn.reconciled:
            return False
        txn.reconciled = False
        txn.ledger_transaction_id = None
        txn.reconciled_at = None
        return True

    def find_reconciled_ledger_ids(self, ledger_ids: Iterable[str]) -> dict[str, int]:
        wanted = set(ledger_ids)
        return {
            t.ledger_transaction_id: t.id
            for t in self.transactions.values()
            if t.reconciled and t.ledger_transaction_id in wanted
        }

    def append_run_log(self, entry: ReconciliationRunLog) -> int:
        entry.id = len(self.run_logs) + 1
        self.run_logs.append(entry)
        return entry.id

    def list_run_logs(
        self, budget_id: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> list[ReconciliationRunLog]:
        logs = [log for log in reversed(self.run_logs) if not budget_id or log.budget_id == budget_id]
        return logs[offset : offset + limit]


class FakeLedger:
    """In-memory ledger honoring import id uniqueness."""

    def __init__(self, transactions: Iterable[LedgerTransaction] = ()):
        self.transactions = list(transactions)
        self.list_calls: list[tuple] = []
        self.flag_calls: list[tuple[str, str, FlagColor]] = []
        self.created: list[LedgerTransaction] = []
        self.errors: dict[str, Exception] = {}
        self.list_error: Optional[Exception] = None

    def list_transactions(
        self,
        budget_id: str,
        account_id: str,
        since_date: date,
        until_date: Optional[date] = None,
    ) -> list[LedgerTransaction]:
        self.list_calls.append((budget_id, account_id, since_date, until_date))
        if self.list_error is not None:
            raise self.list_error
        return [
            t
            for t in self.transactions
            if t.account_id == account_id
            and t.date >= since_date
            and (until_date is None or t.date <= until_date)
        ]

    def set_flag(self, budget_id: str, transaction_id: str, color: FlagColor) -> LedgerTransaction:
        self.flag_calls.append((budget_id, transaction_id, color))
        if transaction_id in self.errors:
            raise self.errors[transaction_id]
        for txn in self.transactions:
            if txn.id == transaction_id:
                txn.flag_color = color.value
                return txn
        raise KeyError(transaction_id)

    def create_transaction(
        self, budget_id: str, account_id: str, draft: LedgerTransactionDraft
    ) -> LedgerTransaction:
        if draft.import_id in self.errors:
            raise self.errors[draft.import_id]
        if any(t.import_id == draft.import_id for t in self.transactions):
            raise DuplicateSubmission(
                f"Duplicate transaction: import_id {draft.import_id} already exists",
                import_id=draft.import_id,
            )
        txn = LedgerTransaction(
            id=f"created-{len(self.created) + 1}",
            date=draft.date,
            amount=draft.amount,
            account_id=account_id,
            payee_name=draft.payee_name,
            memo=draft.memo,
            cleared=ClearedStatus.UNCLEARED,
            import_id=draft.import_id,
        )
        self.transactions.append(txn)
        self.created.append(txn)
        return txn


@pytest.fixture
def matching_config() -> MatchingConfig:
    return MatchingConfig(date_tolerance_days=7, amount_tolerance=Decimal("0.01"))


@pytest.fixture
def sql_store(tmp_path) -> SqlStatementStore:
    store = SqlStatementStore.from_url(f"sqlite:///{tmp_path / 'transactions.db'}")
    store.create_schema()
    return store
