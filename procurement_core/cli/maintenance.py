"""CLI commands for access repair and budget summary maintenance."""

import asyncio
from typing import Optional

import click
from tabulate import tabulate

from procurement_core import __version__
from procurement_core.observability.logging import init_logging
from procurement_core.observability.metrics import render_metrics
from procurement_core.observability.tracing import init_tracing
from procurement_core.services.access_resolver import AccessResolver
from procurement_core.services.budget_ledger import BudgetLedger, current_year
from procurement_core.settings import settings
from procurement_core.storage import create_store


@click.group()
@click.version_option(__version__, prog_name="procurement-core")
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
@click.option('--print-metrics', is_flag=True, help='Print Prometheus metrics for this run on exit')
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], print_metrics: bool):
    """Procurement core maintenance commands."""
    init_logging(level=log_level or settings.LOG_LEVEL, log_dir=settings.LOG_DIR)
    init_tracing(settings.SERVICE_NAME)
    if print_metrics:
        ctx.call_on_close(lambda: click.echo(render_metrics().decode()))


@cli.command("verify-access")
@click.option('--user', 'user_id', required=True, help='User ID')
@click.option('--business', 'business_id', required=True, help='Business ID')
def verify_access(user_id: str, business_id: str):
    """Verify a user's access to a business and repair missing relation records."""

    async def run() -> bool:
        store = create_store()
        try:
            return await AccessResolver(store).verify_access(user_id, business_id)
        finally:
            await store.close()

    if asyncio.run(run()):
        click.echo(f"✅ User {user_id} has access to business {business_id}")
    else:
        click.echo(f"❌ User {user_id} has no access to business {business_id}")
        raise SystemExit(1)


@cli.command("recompute-summary")
@click.option('--business', 'business_id', required=True, help='Business ID')
@click.option('--year', type=int, default=None, help='Budget year (default: current year)')
def recompute_summary(business_id: str, year: Optional[int]):
    """Rebuild the annual budget summary from the year's budgets."""
    year = year or current_year()

    async def run():
        store = create_store()
        try:
            return await BudgetLedger(store).recompute_annual_summary(business_id, year)
        finally:
            await store.close()

    summary = asyncio.run(run())
    click.echo(f"✅ Recomputed {year} summary for business {business_id}")

    table_data = [[category.name, f"{category.amount:,.2f}"] for category in summary.categories]
    table_data.append(["TOTAL", f"{summary.total_amount:,.2f}"])
    click.echo("\n" + tabulate(table_data, headers=["Category", "Allocated"], tablefmt="grid", disable_numparse=True))


@cli.command("budget-overview")
@click.option('--business', 'business_id', required=True, help='Business ID')
@click.option('--year', type=int, default=None, help='Budget year (default: current year)')
def budget_overview(business_id: str, year: Optional[int]):
    """Show allocated, spent and remaining amounts per category."""

    async def run():
        store = create_store()
        try:
            return await BudgetLedger(store).budget_spend_overview(business_id, year)
        finally:
            await store.close()

    overview = asyncio.run(run())

    table_data = [
        [category.name, f"{category.amount:,.2f}", f"{category.spent:,.2f}",
         f"{category.amount - category.spent:,.2f}"]
        for category in overview.categories
    ]
    table_data.append([
        "TOTAL", f"{overview.total_amount:,.2f}", f"{overview.total_spent:,.2f}",
        f"{overview.remaining:,.2f}"
    ])
    headers = ["Category", "Allocated", "Spent", "Remaining"]
    click.echo(f"Budget overview {overview.year}: {overview.percent_spent}% spent")
    click.echo("\n" + tabulate(table_data, headers=headers, tablefmt="grid", disable_numparse=True))


if __name__ == "__main__":
    cli()
