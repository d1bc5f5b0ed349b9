"""
SQLAlchemy-backed statement store.

Statement transactions are keyed by the issuer's unique reference. The
reconciliation marker lives on the transaction row; run logs are an
append-only table.
"""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence
import logging

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..models.transaction import (
    BatchUpdateResult,
    ItemError,
    MatchPair,
    ReconciliationRunLog,
    StatementTransaction,
)
from ..utils.exceptions import StoreError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


class StatementTransactionRecord(Base):
    """A statement transaction row."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    txn_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    card_member: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    account_number: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    reference: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now, onupdate=datetime.now
    )

    reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    ynab_transaction_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    reconciled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class ReconciliationLogRecord(Base):
    """One persisted reconciliation run."""

    __tablename__ = "reconciliation_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    budget_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    matched_count: Mapped[int] = mapped_column(Integer, nullable=False)
    missing_in_ynab_count: Mapped[int] = mapped_column(Integer, nullable=False)
    unexpected_in_ynab_count: Mapped[int] = mapped_column(Integer, nullable=False)
    flagged_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_in_ynab_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reconciled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    config: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class SqlStatementStore:
    """Statement store over any SQLAlchemy engine (SQLite by default)."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlStatementStore":
        """Create a store, making the SQLite directory when needed."""
        url = make_url(database_url)
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return cls(create_engine(database_url))

    def create_schema(self) -> None:
        """Create tables and indexes that do not exist yet."""
        Base.metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Statement transactions
    # ------------------------------------------------------------------

    def add_transactions(
        self, transactions: Sequence[StatementTransaction]
    ) -> tuple[list[StatementTransaction], list[ItemError]]:
        """
        Insert statement transactions, skipping references already stored.

        Args:
            transactions: Transactions to insert; their ``id`` is ignored

        Returns:
            Tuple of (inserted transactions with assigned ids, per-item errors
            keyed by reference)
        """
        errors: list[ItemError] = []
        records: list[StatementTransactionRecord] = []

        with self._session() as session:
            seen = set(
                session.scalars(
                    select(StatementTransactionRecord.reference).where(
                        StatementTransactionRecord.reference.in_(
                            [t.reference for t in transactions]
                        )
                    )
                ).all()
            )
            for txn in transactions:
                if txn.reference in seen:
                    errors.append(ItemError(txn.reference, "Duplicate reference"))
                    continue
                seen.add(txn.reference)
                records.append(
                    StatementTransactionRecord(
                        txn_date=txn.date,
                        description=txn.description,
                        card_member=txn.card_member,
                        account_number=txn.account_number,
                        amount=txn.amount,
                        reference=txn.reference,
                    )
                )
            session.add_all(records)
            session.flush()
            inserted = [_to_statement(r) for r in records]

        logger.info(f"Inserted {len(inserted)} statement txn(s), {len(errors)} skipped")
        return inserted, errors

    def list_by_date_range(self, start: date, end: date) -> list[StatementTransaction]:
        with self._session() as session:
            records = session.scalars(
                select(StatementTransactionRecord)
                .where(StatementTransactionRecord.txn_date >= start)
                .where(StatementTransactionRecord.txn_date <= end)
                .order_by(StatementTransactionRecord.txn_date, StatementTransactionRecord.id)
            ).all()
            return [_to_statement(r) for r in records]

    def get(self, statement_id: int) -> Optional[StatementTransaction]:
        with self._session() as session:
            record = session.get(StatementTransactionRecord, statement_id)
            return _to_statement(record) if record is not None else None

    # ------------------------------------------------------------------
    # Reconciliation marker
    # ------------------------------------------------------------------

    def batch_mark_reconciled(self, pairs: Sequence[MatchPair]) -> BatchUpdateResult:
        result = BatchUpdateResult()
        now = datetime.now()

        for pair in pairs:
            statement = (
                update(StatementTransactionRecord)
                .where(StatementTransactionRecord.id == pair.statement_id)
                .values(
                    reconciled=True,
                    ynab_transaction_id=pair.ledger_id,
                    reconciled_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            # One unit of work per row: a failing row never undoes the others
            try:
                with self._session() as session:
                    rowcount = session.execute(statement).rowcount
            except StoreError as e:
                logger.warning(f"Failed to mark statement txn {pair.statement_id}: {e}")
                result.errors.append(ItemError(pair.statement_id, str(e)))
                continue

            if rowcount:
                result.updated_count += 1
            else:
                result.errors.append(ItemError(pair.statement_id, "Transaction not found"))

        logger.info(
            f"Marked {result.updated_count} statement txn(s) reconciled, "
            f"{len(result.errors)} error(s)"
        )
        return result

    def unmark(self, statement_id: int) -> bool:
        statement = (
            update(StatementTransactionRecord)
            .where(StatementTransactionRecord.id == statement_id)
            .where(StatementTransactionRecord.reconciled.is_(True))
            .values(
                reconciled=False,
                ynab_transaction_id=None,
                reconciled_at=None,
                updated_at=datetime.now(),
            )
            .execution_options(synchronize_session=False)
        )
        with self._session() as session:
            return bool(session.execute(statement).rowcount)

    def find_reconciled_ledger_ids(self, ledger_ids: Iterable[str]) -> dict[str, int]:
        ids = list(ledger_ids)
        if not ids:
            return {}
        with self._session() as session:
            rows = session.execute(
                select(
                    StatementTransactionRecord.ynab_transaction_id,
                    StatementTransactionRecord.id,
                )
                .where(StatementTransactionRecord.reconciled.is_(True))
                .where(StatementTransactionRecord.ynab_transaction_id.in_(ids))
            ).all()
            return {ledger_id: statement_id for ledger_id, statement_id in rows}

    # ------------------------------------------------------------------
    # Run log
    # ------------------------------------------------------------------

    def append_run_log(self, entry: ReconciliationRunLog) -> int:
        record = ReconciliationLogRecord(
            budget_id=entry.budget_id,
            account_id=entry.account_id,
            start_date=entry.start_date,
            end_date=entry.end_date,
            matched_count=entry.matched_count,
            missing_in_ynab_count=entry.missing_in_ledger_count,
            unexpected_in_ynab_count=entry.unexpected_in_ledger_count,
            flagged_count=entry.flagged_count,
            created_in_ynab_count=entry.created_in_ledger_count,
            reconciled_at=entry.reconciled_at,
            config=entry.config,
            notes=entry.notes,
        )
        with self._session() as session:
            session.add(record)
            session.flush()
            return record.id

    def list_run_logs(
        self, budget_id: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> list[ReconciliationRunLog]:
        query = select(ReconciliationLogRecord)
        if budget_id:
            query = query.where(ReconciliationLogRecord.budget_id == budget_id)
        query = query.order_by(
            ReconciliationLogRecord.reconciled_at.desc(), ReconciliationLogRecord.id.desc()
        ).limit(limit).offset(offset)

        with self._session() as session:
            return [_to_run_log(r) for r in session.scalars(query).all()]

    def _session(self) -> "_WrappedSession":
        return _WrappedSession(self._sessions)


class _WrappedSession:
    """Context manager for one unit of work, wrapping database errors."""

    def __init__(self, factory: sessionmaker):
        self._factory = factory
        self._session: Optional[Session] = None

    def __enter__(self) -> Session:
        self._session = self._factory()
        return self._session

    def __exit__(self, exc_type, exc, tb) -> bool:
        session = self._session
        try:
            if exc_type is None:
                session.commit()
            else:
                session.rollback()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Statement store commit failed: {e}") from e
        finally:
            session.close()

        if exc_type is not None and issubclass(exc_type, SQLAlchemyError):
            raise StoreError(f"Statement store error: {exc}") from exc
        return False


def _to_statement(record: StatementTransactionRecord) -> StatementTransaction:
    return StatementTransaction(
        id=record.id,
        date=record.txn_date,
        amount=Decimal(record.amount),
        reference=record.reference,
        description=record.description,
        card_member=record.card_member,
        account_number=record.account_number,
        reconciled=bool(record.reconciled),
        ledger_transaction_id=record.ynab_transaction_id,
        reconciled_at=record.reconciled_at,
    )


def _to_run_log(record: ReconciliationLogRecord) -> ReconciliationRunLog:
    return ReconciliationRunLog(
        id=record.id,
        budget_id=record.budget_id,
        account_id=record.account_id,
        start_date=record.start_date,
        end_date=record.end_date,
        matched_count=record.matched_count,
        missing_in_ledger_count=record.missing_in_ynab_count,
        unexpected_in_ledger_count=record.unexpected_in_ynab_count,
        flagged_count=record.flagged_count,
        created_in_ledger_count=record.created_in_ynab_count,
        reconciled_at=record.reconciled_at,
        config=record.config,
        notes=record.notes,
    )
