"""Tests for the command-line interface."""

import logging
from pathlib import Path

from click.testing import CliRunner
import pytest

from ynab_statement_recon import cli
from ynab_statement_recon.models.transaction import (
    FlagColor,
    LedgerAccount,
    LedgerBudget,
    MatchPair,
)
from ynab_statement_recon.service import ReconciliationService
from ynab_statement_recon.utils.exceptions import AuthenticationError
from ynab_statement_recon.utils.logging_config import PACKAGE_LOGGER

from conftest import ACCOUNT_ID, BUDGET_ID, FakeLedger, FakeStore, make_ledger, make_statement


class DirectoryLedger(FakeLedger):
    def list_budgets(self):
        return [LedgerBudget(id=BUDGET_ID, name="Household")]

    def list_accounts(self, budget_id):
        return [
            LedgerAccount(id=ACCOUNT_ID, name="Amex", type="creditCard"),
            LedgerAccount(id="old", name="Closed Card", closed=True),
        ]

    closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logging.getLogger(PACKAGE_LOGGER).handlers = []


@pytest.fixture
def wired(monkeypatch):
    """Point the CLI at in-memory collaborators."""
    store = FakeStore(
        [
            make_statement("10.00", "2026-02-02", description="COFFEE"),
            make_statement("99.00", "2026-02-05", description="HARDWARE"),
        ]
    )
    ledger = DirectoryLedger(
        [make_ledger("m", -10000, "2026-02-02"), make_ledger("stray", -1000, "2026-02-06")]
    )
    monkeypatch.setattr(cli, "_build_store", lambda config: store)
    monkeypatch.setattr(cli, "_build_ledger", lambda config: ledger)
    monkeypatch.setattr(
        cli,
        "_build_service",
        lambda config, ledger: ReconciliationService(
            store, ledger, matching_config=config.matching, flag_color=config.actions.flag_color
        ),
    )
    return store, ledger


def test_reconcile_prints_summary(runner, wired):
    result = runner.invoke(
        cli.main, ["reconcile", "2026-02-01", "2026-02-28", "-b", BUDGET_ID, "-a", ACCOUNT_ID]
    )

    assert result.exit_code == 0, result.output
    assert "Reconciliation Summary" in result.output
    assert "Missing in YNAB" in result.output
    assert "Unexpected in YNAB" in result.output


def test_reconcile_persist_and_follow_up_actions(runner, wired):
    store, ledger = wired

    result = runner.invoke(
        cli.main,
        [
            "reconcile", "2026-02-01", "2026-02-28",
            "-b", BUDGET_ID, "-a", ACCOUNT_ID,
            "--persist", "--flag-unexpected", "--create-missing",
        ],
    )

    assert result.exit_code == 0, result.output
    assert len(store.run_logs) == 1
    assert [call[1] for call in ledger.flag_calls] == ["stray"]
    assert [t.payee_name for t in ledger.created] == ["HARDWARE"]
    assert "Flagged 1 transaction(s)" in result.output
    assert "Created 1 transaction(s)" in result.output


def test_reconcile_uses_configured_defaults(runner, wired, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"ledger:\n  default_budget_id: {BUDGET_ID}\n  default_account_id: {ACCOUNT_ID}\n"
    )
    _, ledger = wired

    result = runner.invoke(cli.main, ["reconcile", "2026-02-01", "2026-02-28", "-c", str(path)])

    assert result.exit_code == 0, result.output
    assert ledger.list_calls[0][:2] == (BUDGET_ID, ACCOUNT_ID)


def test_reconcile_rejects_bad_dates_before_io(runner, wired):
    _, ledger = wired

    result = runner.invoke(
        cli.main, ["reconcile", "02/01/2026", "2026-02-28", "-b", BUDGET_ID, "-a", ACCOUNT_ID]
    )

    assert result.exit_code == 1
    assert "Invalid reconciliation request" in result.output
    assert ledger.list_calls == []


def test_reconcile_without_account_fails(runner, wired):
    result = runner.invoke(cli.main, ["reconcile", "2026-02-01", "2026-02-28", "-b", BUDGET_ID])

    assert result.exit_code == 1
    assert "account_id" in result.output


def test_reconcile_reports_ledger_failure(runner, wired):
    _, ledger = wired
    ledger.list_error = AuthenticationError("Unauthorized: invalid ledger access token", 401)

    result = runner.invoke(
        cli.main, ["reconcile", "2026-02-01", "2026-02-28", "-b", BUDGET_ID, "-a", ACCOUNT_ID]
    )

    assert result.exit_code == 1
    assert "AUTH_FAILED" in result.output


def test_unmatch(runner, wired):
    store, _ = wired
    statement_id = next(iter(store.transactions))
    store.batch_mark_reconciled([MatchPair(statement_id, "m")])

    first = runner.invoke(cli.main, ["unmatch", str(statement_id)])
    second = runner.invoke(cli.main, ["unmatch", str(statement_id)])

    assert first.exit_code == 0
    assert "unmatched" in first.output
    assert "was not reconciled" in second.output


def test_history_lists_persisted_runs(runner, wired):
    runner.invoke(
        cli.main,
        ["reconcile", "2026-02-01", "2026-02-28", "-b", BUDGET_ID, "-a", ACCOUNT_ID, "--persist"],
    )

    result = runner.invoke(cli.main, ["history"])

    assert result.exit_code == 0, result.output
    assert "Reconciliation History" in result.output
    assert "Matched" in result.output


def test_budgets_and_accounts(runner, wired):
    budgets = runner.invoke(cli.main, ["budgets"])
    accounts = runner.invoke(cli.main, ["accounts", BUDGET_ID])

    assert "Household" in budgets.output
    assert "Amex" in accounts.output
    assert "Closed Card" not in accounts.output


def test_init_config(runner, tmp_path):
    output = tmp_path / "config.yaml"

    result = runner.invoke(cli.main, ["init-config", "-o", str(output)])

    assert result.exit_code == 0
    assert Path(output).exists()


def test_reconcile_closes_ledger_client(runner, wired):
    _, ledger = wired

    result = runner.invoke(
        cli.main, ["reconcile", "2026-02-01", "2026-02-28", "-b", BUDGET_ID, "-a", ACCOUNT_ID]
    )

    assert result.exit_code == 0, result.output
    assert ledger.closed is True


def test_reconcile_closes_ledger_client_on_failed_run(runner, wired):
    _, ledger = wired
    ledger.list_error = AuthenticationError("Unauthorized: invalid ledger access token", 401)

    runner.invoke(
        cli.main, ["reconcile", "2026-02-01", "2026-02-28", "-b", BUDGET_ID, "-a", ACCOUNT_ID]
    )

    assert ledger.closed is True


def test_configured_flag_color_is_used(runner, wired, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("actions:\n  flag_color: purple\n")
    _, ledger = wired

    result = runner.invoke(
        cli.main,
        [
            "reconcile", "2026-02-01", "2026-02-28",
            "-b", BUDGET_ID, "-a", ACCOUNT_ID, "-c", str(path), "--flag-unexpected",
        ],
    )

    assert result.exit_code == 0, result.output
    assert [call[2] for call in ledger.flag_calls] == [FlagColor.PURPLE]


def test_unknown_flag_color_is_a_config_error(runner, wired, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("actions:\n  flag_color: pink\n")
    _, ledger = wired

    result = runner.invoke(
        cli.main,
        ["reconcile", "2026-02-01", "2026-02-28", "-b", BUDGET_ID, "-a", ACCOUNT_ID, "-c", str(path)],
    )

    assert result.exit_code == 1
    assert not isinstance(result.exception, ValueError)
    assert "Invalid configuration" in result.output
    assert ledger.list_calls == []
