"""Unit tests for the maintenance CLI."""

import pytest
from unittest.mock import patch
from click.testing import CliRunner

from procurement_core.cli.maintenance import cli

BUSINESS_ID = "biz-1"
OWNER_ID = "owner-1"
USER_ID = "user-1"


@pytest.fixture
def run_cli(store):
    """Invoke the CLI against the test store without reconfiguring logging."""
    runner = CliRunner()

    def invoke(*args):
        with patch("procurement_core.cli.maintenance.create_store", return_value=store), \
             patch("procurement_core.cli.maintenance.init_logging"), \
             patch("procurement_core.cli.maintenance.init_tracing"):
            return runner.invoke(cli, list(args))

    return invoke


@pytest.mark.unit
class TestMaintenanceCli:
    """verify-access, recompute-summary and budget-overview commands."""

    def test_verify_access_granted(self, run_cli, business):
        result = run_cli("verify-access", "--user", OWNER_ID, "--business", BUSINESS_ID)

        assert result.exit_code == 0
        assert f"User {OWNER_ID} has access" in result.output

    def test_verify_access_denied_exits_nonzero(self, run_cli, business, user):
        result = run_cli("verify-access", "--user", USER_ID, "--business", BUSINESS_ID)

        assert result.exit_code == 1
        assert "has no access" in result.output

    def test_recompute_summary_prints_table(self, run_cli, budgets):
        result = run_cli("recompute-summary", "--business", BUSINESS_ID, "--year", "2024")

        assert result.exit_code == 0
        assert "Office" in result.output
        assert "6,300.00" in result.output

    def test_budget_overview(self, run_cli, budgets):
        result = run_cli("budget-overview", "--business", BUSINESS_ID, "--year", "2024")

        assert result.exit_code == 0
        assert "4% spent" in result.output
        assert "6,050.00" in result.output

    def test_tables_keep_formatted_amounts(self, run_cli, budgets):
        result = run_cli("recompute-summary", "--business", BUSINESS_ID, "--year", "2024")

        assert result.exit_code == 0
        assert "1,300.00" in result.output
        assert "5,000.00" in result.output
        assert " 6300 " not in result.output

    def test_print_metrics_after_command(self, run_cli, business):
        result = run_cli("--print-metrics", "verify-access", "--user", OWNER_ID, "--business", BUSINESS_ID)

        assert result.exit_code == 0
        assert f"User {OWNER_ID} has access" in result.output
        assert "pms_access_checks_total" in result.output
