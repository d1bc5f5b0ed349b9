"""
Reconciliation orchestration.

Drives one run end to end: reads statement transactions from the local
store, reads ledger transactions over a window widened by the date
tolerance, matches them, and optionally persists the outcome back to the
store and the ledger.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional
import logging
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .config import MatchingConfig
from .ledger.client import LedgerClient
from .matching.engine import MatchingEngine
from .models.transaction import (
    CreateResult,
    DiscrepancyReport,
    FlagColor,
    FlagResult,
    ItemError,
    LedgerTransaction,
    LedgerTransactionDraft,
    MatchPair,
    ReconciliationActions,
    ReconciliationResult,
    ReconciliationResultWithActions,
    ReconciliationRunLog,
    StatementTransaction,
)
from .store.base import StatementStore
from .utils.currency import build_idempotency_key, to_minor_units
from .utils.exceptions import (
    DuplicateSubmission,
    LedgerError,
    ReconciliationError,
    StoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ReconcileRequest(BaseModel):
    """Parameters of a reconciliation request.

    Accepts both snake_case and camelCase keys.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    budget_id: str
    account_id: str
    start_date: date
    end_date: date
    date_tolerance_days: Optional[int] = Field(default=None, ge=0)
    amount_tolerance: Optional[Decimal] = Field(default=None, ge=0)
    persist: bool = False

    @field_validator("budget_id", "account_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> Any:
        if isinstance(value, date):
            return value
        if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
            raise ValueError("must be an ISO 8601 date (YYYY-MM-DD)")
        return value

    @model_validator(mode="after")
    def _ordered_range(self) -> "ReconcileRequest":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be before or equal to end_date")
        return self


def parse_reconcile_request(data: dict[str, Any]) -> ReconcileRequest:
    """
    Validate raw request parameters.

    Raises:
        ValidationError: If a field is missing, malformed or out of range
    """
    try:
        return ReconcileRequest.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid reconciliation request: {problems}") from e


class ReconciliationService:
    """
    Coordinates reconciliation runs between the statement store and the ledger.

    Collaborators are injected so each caller (and each test) supplies its
    own store and ledger client.
    """

    def __init__(
        self,
        store: StatementStore,
        ledger: LedgerClient,
        matching_config: Optional[MatchingConfig] = None,
        flag_color: FlagColor = FlagColor.ORANGE,
    ):
        """
        Initialize the service.

        Args:
            store: Local statement store
            ledger: Ledger API client
            matching_config: Default tolerances for runs
            flag_color: Default color for flagging unexpected transactions
        """
        self.store = store
        self.ledger = ledger
        self.matching_config = matching_config or MatchingConfig()
        self.flag_color = flag_color

    def run(self, request: ReconcileRequest) -> ReconciliationResultWithActions:
        """Reconcile (and optionally persist) from a validated request."""
        overrides: dict[str, Any] = {}
        if request.date_tolerance_days is not None:
            overrides["date_tolerance_days"] = request.date_tolerance_days
        if request.amount_tolerance is not None:
            overrides["amount_tolerance"] = request.amount_tolerance
        config = self.matching_config.model_copy(update=overrides)

        return self.reconcile_and_persist(
            request.budget_id,
            request.account_id,
            request.start_date,
            request.end_date,
            config=config,
            persist=request.persist,
        )

    def reconcile(
        self,
        budget_id: str,
        account_id: str,
        start_date: date,
        end_date: date,
        config: Optional[MatchingConfig] = None,
    ) -> ReconciliationResult:
        """
        Reconcile statement transactions against the ledger for a date range.

        Never raises: any failure is returned as an unsuccessful result
        carrying the error message and code.

        Args:
            budget_id: Ledger budget id
            account_id: Ledger account the statement belongs to
            start_date: First statement date, inclusive
            end_date: Last statement date, inclusive
            config: Tolerances for this run, defaults to the service's

        Returns:
            ReconciliationResult with the discrepancy report
        """
        config = config or self.matching_config

        try:
            _require_identifiers(budget_id, account_id)
            if start_date > end_date:
                raise ValidationError("start_date must be before or equal to end_date")

            statement_txns = self.store.list_by_date_range(start_date, end_date)

            # Widen the ledger window so pairs straddling the range edges still meet
            buffer = timedelta(days=config.date_tolerance_days)
            ledger_txns = self.ledger.list_transactions(
                budget_id,
                account_id,
                since_date=start_date - buffer,
                until_date=end_date + buffer,
            )
            eligible = _eligible_ledger_transactions(ledger_txns, account_id, config)

            report = MatchingEngine(config).match(statement_txns, eligible)
            report.unexpected_in_ledger = self._narrow_unexpected(
                report.unexpected_in_ledger, statement_txns, start_date, end_date
            )
        except ReconciliationError as e:
            logger.error(f"Reconciliation failed for budget {budget_id}: {e}")
            return _failure(budget_id, account_id, start_date, end_date, str(e), e.code)
        except Exception as e:
            logger.exception(f"Unexpected error reconciling budget {budget_id}")
            return _failure(
                budget_id, account_id, start_date, end_date, str(e), ReconciliationError.code
            )

        in_window = [t for t in eligible if start_date <= t.date <= end_date]
        result = ReconciliationResult(
            success=True,
            budget_id=budget_id,
            account_id=account_id,
            start_date=start_date,
            end_date=end_date,
            statement_transaction_count=len(statement_txns),
            ledger_transaction_count=len(in_window),
            report=report,
        )
        logger.info(
            f"Reconciled {start_date}..{end_date} for account {account_id}: "
            f"{result.matched_count} matched, {result.missing_in_ledger_count} missing "
            f"in ledger, {result.unexpected_in_ledger_count} unexpected in ledger"
        )
        return result

    def reconcile_and_persist(
        self,
        budget_id: str,
        account_id: str,
        start_date: date,
        end_date: date,
        config: Optional[MatchingConfig] = None,
        persist: bool = False,
    ) -> ReconciliationResultWithActions:
        """
        Reconcile, then optionally record the matches in the local store.

        When ``persist`` is set and there is at least one match, every
        matched pair is marked reconciled and a run log entry is appended.

        Returns:
            The result plus the follow-up actions it makes available
        """
        config = config or self.matching_config
        result = self.reconcile(budget_id, account_id, start_date, end_date, config=config)
        report = result.report

        actions = ReconciliationActions(
            can_persist=bool(report.matched),
            can_flag=bool(report.unexpected_in_ledger),
            can_create=bool(report.missing_in_ledger),
        )

        if persist and actions.can_persist:
            pairs = [
                MatchPair(m.statement_transaction.id, m.ledger_transaction.id)
                for m in report.matched
            ]
            try:
                batch = self.store.batch_mark_reconciled(pairs)
                actions.persisted_count = batch.updated_count
                actions.persist_errors = batch.errors
                actions.run_log_id = self.store.append_run_log(
                    ReconciliationRunLog(
                        budget_id=budget_id,
                        account_id=account_id,
                        start_date=start_date,
                        end_date=end_date,
                        matched_count=result.matched_count,
                        missing_in_ledger_count=result.missing_in_ledger_count,
                        unexpected_in_ledger_count=result.unexpected_in_ledger_count,
                        reconciled_at=datetime.now(),
                        config=config.model_dump(mode="json"),
                    )
                )
            except StoreError as e:
                logger.error(f"Failed to persist reconciliation for budget {budget_id}: {e}")
                result.success = False
                result.error = str(e)
                result.error_code = e.code
            else:
                logger.info(
                    f"Persisted {batch.updated_count} of {len(pairs)} match(es) "
                    f"(run log {actions.run_log_id})"
                )

        return ReconciliationResultWithActions(result=result, actions=actions)

    def flag_unexpected(
        self,
        budget_id: str,
        ledger_ids: Iterable[str],
        color: Optional[FlagColor] = None,
    ) -> FlagResult:
        """
        Flag ledger transactions that have no statement counterpart.

        A failure on one id is recorded and the remaining ids are still
        processed.
        """
        color = color or self.flag_color
        result = FlagResult()

        for ledger_id in ledger_ids:
            try:
                self.ledger.set_flag(budget_id, ledger_id, color)
            except LedgerError as e:
                logger.warning(f"Failed to flag ledger txn {ledger_id}: {e}")
                result.errors.append(ItemError(ledger_id, str(e)))
                continue
            result.flagged += 1

        logger.info(f"Flagged {result.flagged} ledger txn(s), {len(result.errors)} error(s)")
        return result

    def create_missing(
        self, budget_id: str, account_id: str, statement_ids: Iterable[int]
    ) -> CreateResult:
        """
        Create ledger transactions for statement transactions missing there.

        Each submission carries an idempotency key, so a transaction the
        ledger already holds is counted as skipped rather than created twice.

        Raises:
            ValidationError: If the budget or account id is blank
        """
        _require_identifiers(budget_id, account_id)
        result = CreateResult()

        for statement_id in statement_ids:
            try:
                statement_txn = self.store.get(statement_id)
            except StoreError as e:
                result.errors.append(ItemError(statement_id, str(e)))
                continue
            if statement_txn is None:
                result.errors.append(ItemError(statement_id, "Transaction not found"))
                continue

            draft = build_ledger_draft(statement_txn)
            try:
                self.ledger.create_transaction(budget_id, account_id, draft)
            except DuplicateSubmission:
                logger.info(f"Statement txn {statement_id} already on ledger, skipping")
                result.skipped += 1
                continue
            except LedgerError as e:
                logger.warning(f"Failed to create ledger txn for statement txn {statement_id}: {e}")
                result.errors.append(ItemError(statement_id, str(e)))
                continue
            result.created += 1

        logger.info(
            f"Created {result.created} ledger txn(s), skipped {result.skipped}, "
            f"{len(result.errors)} error(s)"
        )
        return result

    def unmatch(self, statement_id: int) -> bool:
        """
        Return a statement transaction to the unreconciled state.

        Returns:
            True if a marker was cleared, False if it was not reconciled
        """
        cleared = self.store.unmark(statement_id)
        if cleared:
            logger.info(f"Unmatched statement txn {statement_id}")
        return cleared

    def history(
        self, budget_id: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> list[ReconciliationRunLog]:
        """Persisted run logs, newest first."""
        return self.store.list_run_logs(budget_id=budget_id, limit=limit, offset=offset)

    def _narrow_unexpected(
        self,
        unexpected: list[LedgerTransaction],
        statement_txns: list[StatementTransaction],
        start_date: date,
        end_date: date,
    ) -> list[LedgerTransaction]:
        """
        Drop buffer-zone and previously reconciled ledger transactions.

        Ledger transactions outside ``[start_date, end_date]`` were fetched
        only as match candidates. One already reconciled against a statement
        transaction outside this run is accounted for there; one reconciled
        against a statement transaction of this run that no longer matches
        it stays unexpected.
        """
        in_window = [t for t in unexpected if start_date <= t.date <= end_date]
        if not in_window:
            return in_window

        reconciled = self.store.find_reconciled_ledger_ids(t.id for t in in_window)
        run_ids = {s.id for s in statement_txns}
        claimed = {
            ledger_id
            for ledger_id, statement_id in reconciled.items()
            if statement_id not in run_ids
        }
        if claimed:
            logger.debug(
                f"Excluding {len(claimed)} ledger txn(s) reconciled by earlier runs "
                f"from unexpected"
            )
        return [t for t in in_window if t.id not in claimed]


def build_ledger_draft(statement_txn: StatementTransaction) -> LedgerTransactionDraft:
    """
    Describe a statement transaction as a new ledger transaction.

    The statement's charge (positive) becomes a ledger outflow (negative).
    """
    import_id = build_idempotency_key(
        statement_txn.amount, statement_txn.date.isoformat(), statement_txn.reference
    )
    memo_parts = [p for p in (statement_txn.card_member, statement_txn.reference) if p]
    return LedgerTransactionDraft(
        date=statement_txn.date,
        amount=-to_minor_units(statement_txn.amount),
        payee_name=statement_txn.description or None,
        memo=" | ".join(memo_parts) or None,
        import_id=import_id,
    )


def _require_identifiers(budget_id: str, account_id: str) -> None:
    if not budget_id or not budget_id.strip():
        raise ValidationError("budget_id is required")
    if not account_id or not account_id.strip():
        raise ValidationError("account_id is required")


def _eligible_ledger_transactions(
    ledger_txns: list[LedgerTransaction], account_id: str, config: MatchingConfig
) -> list[LedgerTransaction]:
    """Keep the requested account's transactions, minus deleted ones."""
    eligible = [t for t in ledger_txns if t.account_id == account_id]
    if config.exclude_deleted:
        eligible = [t for t in eligible if not t.deleted]
    return eligible


def _failure(
    budget_id: str,
    account_id: str,
    start_date: Optional[date],
    end_date: Optional[date],
    message: str,
    code: str,
) -> ReconciliationResult:
    return ReconciliationResult(
        success=False,
        budget_id=budget_id,
        account_id=account_id,
        start_date=start_date,
        end_date=end_date,
        report=DiscrepancyReport(),
        error=message,
        error_code=code,
    )
