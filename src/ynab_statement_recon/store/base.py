"""Interface of the local statement transaction store."""

from datetime import date
from typing import Iterable, Optional, Protocol, Sequence

from ..models.transaction import (
    BatchUpdateResult,
    MatchPair,
    ReconciliationRunLog,
    StatementTransaction,
)


class StatementStore(Protocol):
    """Persistent statement transactions plus the reconciliation audit log."""

    def list_by_date_range(self, start: date, end: date) -> list[StatementTransaction]:
        """Statement transactions dated within ``[start, end]``, oldest first."""
        ...

    def get(self, statement_id: int) -> Optional[StatementTransaction]:
        ...

    def batch_mark_reconciled(self, pairs: Sequence[MatchPair]) -> BatchUpdateResult:
        """Mark each statement id as reconciled against its ledger id.

        Each row is updated atomically on its own; a failing row is
        reported in the result and does not stop the others.
        """
        ...

    def unmark(self, statement_id: int) -> bool:
        """Clear the reconciliation marker. False if it was not set."""
        ...

    def find_reconciled_ledger_ids(self, ledger_ids: Iterable[str]) -> dict[str, int]:
        """Map each given ledger id already reconciled to its statement id."""
        ...

    def append_run_log(self, entry: ReconciliationRunLog) -> int:
        ...

    def list_run_logs(
        self, budget_id: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> list[ReconciliationRunLog]:
        ...
