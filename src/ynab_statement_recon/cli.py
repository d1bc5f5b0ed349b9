"""
Command-line interface for reconciling card statements against YNAB.
"""

from pathlib import Path
from typing import Optional
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import ReconConfig, generate_default_config, load_config
from .ledger.client import LedgerClient
from .models.transaction import ReconciliationResultWithActions
from .service import ReconciliationService, parse_reconcile_request
from .store.database import SqlStatementStore
from .utils.currency import to_major_units
from .utils.exceptions import ReconciliationError
from .utils.logging_config import configure_logging

console = Console()

CONFIG_OPTION = click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)


@click.group()
@click.version_option(version=__version__)
def main():
    """Card statement to YNAB reconciliation tool."""
    pass


@main.command()
@click.argument("start_date")
@click.argument("end_date")
@CONFIG_OPTION
@click.option("-b", "--budget", "budget_id", help="YNAB budget id")
@click.option("-a", "--account", "account_id", help="YNAB account id")
@click.option("--date-tolerance", type=int, default=None, help="Override date tolerance in days")
@click.option(
    "--amount-tolerance", type=str, default=None, help="Override amount tolerance in currency units"
)
@click.option("--persist", is_flag=True, help="Mark matched statement transactions as reconciled")
@click.option("--flag-unexpected", is_flag=True, help="Flag ledger-only transactions")
@click.option("--create-missing", is_flag=True, help="Create statement-only transactions in YNAB")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def reconcile(
    start_date: str,
    end_date: str,
    config_path: Optional[Path],
    budget_id: Optional[str],
    account_id: Optional[str],
    date_tolerance: Optional[int],
    amount_tolerance: Optional[str],
    persist: bool,
    flag_unexpected: bool,
    create_missing: bool,
    verbose: bool,
):
    """
    Reconcile statement transactions between START_DATE and END_DATE.

    Dates are YYYY-MM-DD and inclusive.
    """
    recon_config = _load(config_path, verbose)

    request_data = {
        "budget_id": budget_id or recon_config.ledger.default_budget_id or "",
        "account_id": account_id or recon_config.ledger.default_account_id or "",
        "start_date": start_date,
        "end_date": end_date,
        "persist": persist,
    }
    if date_tolerance is not None:
        request_data["date_tolerance_days"] = date_tolerance
    if amount_tolerance is not None:
        request_data["amount_tolerance"] = amount_tolerance

    try:
        # Validate before touching the store or the network
        request = parse_reconcile_request(request_data)
        ledger = _build_ledger(recon_config)
    except ReconciliationError as e:
        _fail(e, verbose)

    with ledger:
        try:
            service = _build_service(recon_config, ledger)
            outcome = service.run(request)
        except ReconciliationError as e:
            _fail(e, verbose)

        _display_outcome(outcome)
        if not outcome.success:
            sys.exit(1)

        report = outcome.result.report
        if flag_unexpected and outcome.actions.can_flag:
            flag_result = service.flag_unexpected(
                request.budget_id, [t.id for t in report.unexpected_in_ledger]
            )
            console.print(
                f"Flagged {flag_result.flagged} transaction(s), "
                f"{len(flag_result.errors)} error(s)"
            )
            for error in flag_result.errors:
                console.print(f"  [red]{error.item_id}: {escape(error.error)}[/red]")

        if create_missing and outcome.actions.can_create:
            create_result = service.create_missing(
                request.budget_id,
                request.account_id,
                [t.id for t in report.missing_in_ledger],
            )
            console.print(
                f"Created {create_result.created} transaction(s), "
                f"skipped {create_result.skipped}, {len(create_result.errors)} error(s)"
            )
            for error in create_result.errors:
                console.print(f"  [red]{error.item_id}: {escape(error.error)}[/red]")


@main.command()
@click.argument("statement_id", type=int)
@CONFIG_OPTION
def unmatch(statement_id: int, config_path: Optional[Path]):
    """Clear the reconciliation marker of STATEMENT_ID."""
    recon_config = _load(config_path, verbose=False)
    try:
        store = _build_store(recon_config)
        cleared = store.unmark(statement_id)
    except ReconciliationError as e:
        _fail(e, verbose=False)

    if cleared:
        console.print(f"[green]Statement transaction {statement_id} unmatched[/green]")
    else:
        console.print(f"[yellow]Statement transaction {statement_id} was not reconciled[/yellow]")


@main.command()
@CONFIG_OPTION
@click.option("-b", "--budget", "budget_id", help="Only runs for this budget")
@click.option("--limit", type=int, default=20, show_default=True)
def history(config_path: Optional[Path], budget_id: Optional[str], limit: int):
    """Show persisted reconciliation runs."""
    recon_config = _load(config_path, verbose=False)
    try:
        logs = _build_store(recon_config).list_run_logs(budget_id=budget_id, limit=limit)
    except ReconciliationError as e:
        _fail(e, verbose=False)

    table = Table(title="Reconciliation History")
    table.add_column("Run", justify="right")
    table.add_column("Reconciled At")
    table.add_column("Budget")
    table.add_column("Range")
    table.add_column("Matched", justify="right")
    table.add_column("Missing", justify="right")
    table.add_column("Unexpected", justify="right")

    for log in logs:
        table.add_row(
            str(log.id),
            log.reconciled_at.strftime("%Y-%m-%d %H:%M"),
            log.budget_id,
            f"{log.start_date} to {log.end_date}",
            str(log.matched_count),
            str(log.missing_in_ledger_count),
            str(log.unexpected_in_ledger_count),
        )

    console.print(table)


@main.command()
@CONFIG_OPTION
def budgets(config_path: Optional[Path]):
    """List budgets available to the access token."""
    recon_config = _load(config_path, verbose=False)
    try:
        with _build_ledger(recon_config) as ledger:
            found = ledger.list_budgets()
    except ReconciliationError as e:
        _fail(e, verbose=False)

    table = Table(title="YNAB Budgets")
    table.add_column("Id")
    table.add_column("Name")
    for budget in found:
        table.add_row(budget.id, budget.name)
    console.print(table)


@main.command()
@click.argument("budget_id")
@CONFIG_OPTION
def accounts(budget_id: str, config_path: Optional[Path]):
    """List open accounts of BUDGET_ID."""
    recon_config = _load(config_path, verbose=False)
    try:
        with _build_ledger(recon_config) as ledger:
            found = ledger.list_accounts(budget_id)
    except ReconciliationError as e:
        _fail(e, verbose=False)

    table = Table(title=f"Accounts: {budget_id}")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Type")
    for account in found:
        if account.closed or account.deleted:
            continue
        table.add_row(account.id, account.name, account.type or "-")
    console.print(table)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _load(config_path: Optional[Path], verbose: bool) -> ReconConfig:
    """Load configuration and set up logging from it."""
    try:
        recon_config = load_config(config_path)
    except ReconciliationError as e:
        _fail(e, verbose)

    configure_logging(recon_config.logging, verbose=verbose)
    return recon_config


def _build_store(config: ReconConfig) -> SqlStatementStore:
    store = SqlStatementStore.from_url(config.store.database_url)
    store.create_schema()
    return store


def _build_ledger(config: ReconConfig) -> LedgerClient:
    return LedgerClient.from_config(config.ledger)


def _build_service(config: ReconConfig, ledger: LedgerClient) -> ReconciliationService:
    return ReconciliationService(
        store=_build_store(config),
        ledger=ledger,
        matching_config=config.matching,
        flag_color=config.actions.flag_color,
    )


def _fail(error: Exception, verbose: bool) -> None:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    if verbose:
        console.print_exception()
    sys.exit(1)


def _display_outcome(outcome: ReconciliationResultWithActions) -> None:
    """Display reconciliation results in console."""
    result = outcome.result
    if not result.success:
        message = escape(result.error or "")
        console.print(f"[red]Reconciliation failed ({result.error_code}): {message}[/red]")
        return

    table = Table(title="Reconciliation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Date Range", f"{result.start_date} to {result.end_date}")
    table.add_row("Statement Transactions", str(result.statement_transaction_count))
    table.add_row("Ledger Transactions", str(result.ledger_transaction_count))
    table.add_row("Matched", str(result.matched_count))
    table.add_row("Missing in YNAB", str(result.missing_in_ledger_count))
    table.add_row("Unexpected in YNAB", str(result.unexpected_in_ledger_count))
    if outcome.actions.persisted_count is not None:
        table.add_row("Persisted", str(outcome.actions.persisted_count))
    console.print(table)

    report = result.report
    if report.missing_in_ledger:
        missing = Table(title="Missing in YNAB")
        missing.add_column("Id", justify="right")
        missing.add_column("Date")
        missing.add_column("Amount", justify="right")
        missing.add_column("Description")
        for txn in report.missing_in_ledger:
            missing.add_row(
                str(txn.id),
                str(txn.date),
                f"{txn.amount:,.2f}",
                txn.description[:40] + "..." if len(txn.description) > 40 else txn.description,
            )
        console.print(missing)

    if report.unexpected_in_ledger:
        unexpected = Table(title="Unexpected in YNAB")
        unexpected.add_column("Id")
        unexpected.add_column("Date")
        unexpected.add_column("Amount", justify="right")
        unexpected.add_column("Payee")
        for txn in report.unexpected_in_ledger:
            unexpected.add_row(
                txn.id,
                str(txn.date),
                f"{to_major_units(txn.amount):,.2f}",
                txn.payee_name or "-",
            )
        console.print(unexpected)


if __name__ == "__main__":
    main()
