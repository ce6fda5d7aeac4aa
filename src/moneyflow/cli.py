"""Command line entry points for MoneyFlow."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import click

from .config import BaseConfig
from .context import AppContext, create_app_context
from .domain.registry import ACCOUNT_COLLECTIONS
from .logging_config import setup_logging
from .services import debts
from .services.export_csv import export_transactions_csv

_BALANCE_FIELDS = {
    "fund_sources": "current_balance",
    "credit_cards": "current_balance",
    "loans": "current_balance",
    "debts": "balance",
}


def _label(account) -> str:
    return getattr(account, "account_name", None) or getattr(account, "name", account.id)


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """MoneyFlow ledger maintenance commands."""

    config = BaseConfig()
    setup_logging(config)
    ctx.obj = create_app_context(config)


user_option = click.option("--user", "user_id", required=True, help="User id to operate on")


@cli.command("balances")
@user_option
@click.pass_obj
def balances(app: AppContext, user_id: str) -> None:
    """Print every account balance for a user."""

    session = app.open_session(user_id)
    now = datetime.now()
    for collection in ACCOUNT_COLLECTIONS:
        accounts = session.accounts(collection)
        if not accounts:
            continue
        click.echo(f"[{collection}]")
        for account in accounts:
            balance = getattr(account, _BALANCE_FIELDS[collection])
            line = f"  {account.id}  {_label(account)}: {balance} {app.config.CURRENCY}"
            if collection == "fund_sources":
                flow = session.fund_source(account.id, now=now).monthly_flow
                line += f" ({session.window_days}-day flow {flow})"
            click.echo(line)


@cli.command("process-recurring")
@user_option
@click.option("--now", "now", type=click.DateTime(), default=None, help="Override the current time")
@click.pass_obj
def process_recurring(app: AppContext, user_id: str, now: datetime | None) -> None:
    """Spawn due recurring transactions and mirror the result."""

    session = app.open_session(user_id)
    spawned = session.process_recurring(now=now)
    report = session.flush(app.flusher)
    click.echo(f"Spawned {len(spawned)} transaction(s); wrote {report.written} document(s).")
    if not report.ok:
        raise click.ClickException(f"Mirror failed for: {', '.join(report.failed)}")


@cli.command("flush")
@user_option
@click.pass_obj
def flush(app: AppContext, user_id: str) -> None:
    """Recompute fund-source flows and mirror pending changes."""

    session = app.open_session(user_id)
    session.refresh_monthly_flows()
    report = session.flush(app.flusher)
    click.echo(f"Wrote {report.written} document(s), deleted {report.deleted}.")
    if not report.ok:
        raise click.ClickException(f"Mirror failed for: {', '.join(report.failed)}")


@cli.command("export-csv")
@user_option
@click.option(
    "--output",
    "output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Destination CSV file",
)
@click.pass_obj
def export_csv(app: AppContext, user_id: str, output: Path) -> None:
    """Export a user's ledger to CSV."""

    session = app.open_session(user_id)
    path = export_transactions_csv(transactions=session.transactions(), output_path=output)
    click.echo(f"Export written: {path}")


@cli.command("payoff")
@user_option
@click.option(
    "--strategy",
    type=click.Choice(["snowball", "avalanche"]),
    default="snowball",
    show_default=True,
)
@click.option("--surplus", type=float, default=0.0, show_default=True, help="Extra monthly payment")
@click.pass_obj
def payoff(app: AppContext, user_id: str, strategy: str, surplus: float) -> None:
    """Project when the user's debts, loans and cards are paid off."""

    session = app.open_session(user_id)
    accounts = debts.debt_accounts_from(session.registry)
    if not accounts:
        click.echo("No outstanding liabilities.")
        return
    schedule = debts.payoff_schedule(debts=accounts, strategy=strategy, surplus=surplus)
    payoff_date, interest, months = debts.schedule_summary(schedule)
    names = {a.id: a.name for a in accounts}
    for account_id, when in debts.debt_payoff_dates(schedule).items():
        click.echo(f"  {names.get(account_id, account_id)}: {when}")
    click.echo(f"Debt free by {payoff_date} after {months} month(s); interest {interest:.2f}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
