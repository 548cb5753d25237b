"""Command-line interface for the late fee calculator.

This module uses the ``click`` library to implement a multi-command
interface. Users can list a loan's due dates, compute a late fee breakdown,
simulate a late fee payment, or work against a loan database: register loans,
recalculate their late fees and record late fee payments. Breakdowns can be
printed to the terminal or exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import functools
import json
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

import click

from .accrual import normalize_mode
from .allocation import allocate, applied_amounts
from .config import load_settings
from .data_models import ACCRUAL_MODES, PAYMENT_FREQUENCIES, Breakdown, LoanAccrualConfig
from .engine import build_breakdown, build_installments
from .exceptions import LateFeeError, LoanNotFoundError
from .formatter import breakdown_to_dict, print_allocation, print_breakdown, print_due_dates
from .logging_config import setup_logging
from .schedule import due_dates
from .service import pay_late_fee, recalculate_all, recalculate_loan
from .store import create_store_from_env
from .utils import decimal_from_str, parse_date, today_in


def parse_amount(value: str) -> str:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000", "1,250.50") and shorthand with ``k``/``m``
    suffixes (e.g., "500k" meaning 500_000). Returns a plain numeric string
    suitable for ``decimal_from_str``.
    """
    value = value.strip().lower()
    value = value.replace(",", "")
    factor = 1
    if value.endswith("k"):
        factor = 1_000
        value = value[:-1]
    elif value.endswith("m"):
        factor = 1_000_000
        value = value[:-1]
    try:
        return str(decimal_from_str(value) * factor)
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def _decimal_option(value: Optional[str]):
    if value is None:
        return None
    return decimal_from_str(parse_amount(value))


def _date_option(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint=name)


def build_config_from_options(
    principal: str,
    term: int,
    frequency: str,
    anchor_date: str,
    rate: str,
    mode: str,
    grace: int,
    max_fee: Optional[str] = None,
    disabled: bool = False,
    monthly_payment: Optional[str] = None,
    interest_rate: Optional[str] = None,
) -> LoanAccrualConfig:
    try:
        accrual_mode = normalize_mode(mode)
    except LateFeeError as exc:
        raise click.BadParameter(str(exc), param_hint="--mode")
    return LoanAccrualConfig(
        principal_amount=_decimal_option(principal),
        term_count=term,
        payment_frequency=frequency.lower(),
        anchor_date=_date_option(anchor_date, "--anchor-date"),
        accrual_enabled=not disabled,
        accrual_rate=_decimal_option(rate),
        accrual_mode=accrual_mode,
        grace_period_days=grace,
        max_fee_per_installment=_decimal_option(max_fee),
        monthly_payment=_decimal_option(monthly_payment),
        interest_rate=_decimal_option(interest_rate),
    )


def loan_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the options describing a loan's late fee terms."""
    options = [
        click.option("--principal", "-p", "principal", required=True, help="Loan amount"),
        click.option("--term", "-t", "term", required=True, type=int, help="Number of installments"),
        click.option(
            "--frequency",
            "-f",
            "frequency",
            type=click.Choice(PAYMENT_FREQUENCIES),
            default="monthly",
            help="Payment frequency",
        ),
        click.option("--anchor-date", "-s", "anchor_date", required=True, help="Due date of installment 1 (YYYY-MM-DD)"),
        click.option("--rate", "-r", "rate", default="0", help="Late fee rate (percent per period)"),
        click.option("--mode", "mode", type=click.Choice(ACCRUAL_MODES + ("monthly-stepped",)), default="daily", help="Accrual mode"),
        click.option("--grace", "grace", type=int, default=0, help="Grace period in days"),
        click.option("--max-fee", "max_fee", help="Maximum late fee per installment"),
        click.option("--disabled", "disabled", is_flag=True, help="Late fees disabled for this loan"),
        click.option("--monthly-payment", "monthly_payment", help="Installment amount (flat interest loans)"),
        click.option("--interest-rate", "interest_rate", help="Interest rate per installment (percent)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _config_from_kwargs(kwargs: dict) -> LoanAccrualConfig:
    return build_config_from_options(
        kwargs.pop("principal"),
        kwargs.pop("term"),
        kwargs.pop("frequency"),
        kwargs.pop("anchor_date"),
        kwargs.pop("rate"),
        kwargs.pop("mode"),
        kwargs.pop("grace"),
        kwargs.pop("max_fee"),
        kwargs.pop("disabled"),
        kwargs.pop("monthly_payment"),
        kwargs.pop("interest_rate"),
    )


def engine_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Report engine and lookup errors as click errors instead of tracebacks."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except LoanNotFoundError as exc:
            raise click.ClickException(str(exc))
        except LateFeeError as exc:
            raise click.ClickException(f"{type(exc).__name__}: {exc}")

    return wrapper


def _as_of(ctx: click.Context, as_of: Optional[str]) -> date:
    """Evaluation date from ``--as-of`` or today in the configured timezone."""
    parsed = _date_option(as_of, "--as-of")
    if parsed is not None:
        return parsed
    return today_in(ctx.obj["settings"].timezone)


def export_to_json(path: Path, breakdown: Breakdown) -> None:
    """Export a breakdown to a JSON file."""
    with path.open("w", encoding="utf-8") as f:
        json.dump(breakdown_to_dict(breakdown), f, indent=2)


def export_to_csv(path: Path, breakdown: Breakdown) -> None:
    """Export the per installment rows of a breakdown to a CSV file."""
    header = ["Installment", "Due_Date", "Principal", "Days_Overdue", "Late_Fee", "Paid"]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for e in breakdown.entries:
            writer.writerow(
                [
                    e.index,
                    e.due_date.isoformat(),
                    str(e.principal_base),
                    e.days_overdue,
                    str(e.late_fee),
                    e.paid,
                ]
            )


@click.group()
@click.option("--database", "database", help="Database URL (defaults to LATE_FEE_DATABASE_URL)")
@click.pass_context
def cli(ctx: click.Context, database: Optional[str]) -> None:
    """Late fee accrual and payment allocation for installment loans."""
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_format)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["database"] = database or settings.database_url


@cli.command()
@loan_options
@engine_errors
def schedule(**kwargs: Any) -> None:
    """Print the due date of every installment."""
    config = _config_from_kwargs(kwargs)
    print_due_dates(due_dates(config))


@cli.command()
@loan_options
@click.option("--paid", "paid", type=int, multiple=True, help="Index of a paid installment (repeatable)")
@click.option("--as-of", "as_of", help="Evaluation date (YYYY-MM-DD), defaults to today")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
@click.pass_context
@engine_errors
def breakdown(ctx: click.Context, paid: Tuple[int, ...], as_of: Optional[str], output: Optional[str], **kwargs: Any) -> None:
    """Compute and print the late fee breakdown of a loan."""
    config = _config_from_kwargs(kwargs)
    result = build_breakdown(config, build_installments(config, paid), _as_of(ctx, as_of))
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, result)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, result)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Breakdown exported to {path}")
    else:
        print_breakdown(result)


@cli.command(name="allocate")
@loan_options
@click.option("--paid", "paid", type=int, multiple=True, help="Index of a paid installment (repeatable)")
@click.option("--as-of", "as_of", help="Evaluation date (YYYY-MM-DD), defaults to today")
@click.option("--payment", "payment", required=True, help="Late fee payment amount")
@click.option("--reject-overpayment", "reject_overpayment", is_flag=True, help="Fail instead of reporting an unapplied remainder")
@click.pass_context
@engine_errors
def allocate_command(
    ctx: click.Context,
    paid: Tuple[int, ...],
    as_of: Optional[str],
    payment: str,
    reject_overpayment: bool,
    **kwargs: Any,
) -> None:
    """Simulate a late fee payment against a loan's breakdown."""
    config = _config_from_kwargs(kwargs)
    before = build_breakdown(config, build_installments(config, paid), _as_of(ctx, as_of))
    after = allocate(before, parse_amount(payment), reject_overpayment=reject_overpayment)
    print_allocation(applied_amounts(before, after), before, after)
    print_breakdown(after)


@cli.command(name="add-loan")
@click.argument("loan_id")
@loan_options
@click.option("--paid", "paid", type=int, multiple=True, help="Index of a paid installment (repeatable)")
@click.pass_context
@engine_errors
def add_loan(ctx: click.Context, loan_id: str, paid: Tuple[int, ...], **kwargs: Any) -> None:
    """Register a loan and its installment schedule in the database."""
    config = _config_from_kwargs(kwargs)
    store = create_store_from_env(ctx.obj["database"])
    store.add_loan(loan_id, config, build_installments(config, paid, with_due_dates=True))
    click.echo(f"Loan {loan_id} stored with {config.term_count} installments")


@cli.command()
@click.argument("loan_id")
@click.option("--as-of", "as_of", help="Evaluation date (YYYY-MM-DD), defaults to today")
@click.pass_context
@engine_errors
def recalculate(ctx: click.Context, loan_id: str, as_of: Optional[str]) -> None:
    """Recalculate and store the late fee of one loan."""
    store = create_store_from_env(ctx.obj["database"])
    print_breakdown(recalculate_loan(store, loan_id, _as_of(ctx, as_of)))


@cli.command(name="recalculate-all")
@click.option("--as-of", "as_of", help="Evaluation date (YYYY-MM-DD), defaults to today")
@click.pass_context
@engine_errors
def recalculate_all_command(ctx: click.Context, as_of: Optional[str]) -> None:
    """Recalculate and store the late fee of every loan with late fees enabled."""
    store = create_store_from_env(ctx.obj["database"])
    count = recalculate_all(store, _as_of(ctx, as_of))
    click.echo(f"Late fees updated for {count} loans")


@cli.command()
@click.argument("loan_id")
@click.option("--amount", "amount", required=True, help="Late fee payment amount")
@click.option("--as-of", "as_of", help="Evaluation date (YYYY-MM-DD), defaults to today")
@click.option("--reject-overpayment/--accept-overpayment", "reject_overpayment", default=None, help="Overpayment policy (defaults to LATE_FEE_REJECT_OVERPAYMENT)")
@click.pass_context
@engine_errors
def pay(ctx: click.Context, loan_id: str, amount: str, as_of: Optional[str], reject_overpayment: Optional[bool]) -> None:
    """Apply a late fee payment to a stored loan."""
    if reject_overpayment is None:
        reject_overpayment = ctx.obj["settings"].reject_overpayment
    store = create_store_from_env(ctx.obj["database"])
    result = pay_late_fee(
        store,
        loan_id,
        decimal_from_str(parse_amount(amount)),
        _as_of(ctx, as_of),
        reject_overpayment=reject_overpayment,
    )
    print_breakdown(result)


@cli.command()
@click.argument("loan_id")
@click.pass_context
def history(ctx: click.Context, loan_id: str) -> None:
    """Show the stored late fee recalculations of a loan."""
    store = create_store_from_env(ctx.obj["database"])
    rows = store.late_fee_history(loan_id)
    if not rows:
        click.echo(f"No late fee history for loan {loan_id}")
        return
    click.echo(f"{'Date':12s} {'Days':>6s} {'Rate':>10s} {'Late fee':>15s}")
    for row in rows:
        click.echo(
            f"{row.calculation_date.isoformat():12s} {row.days_overdue:6d} "
            f"{row.late_fee_rate:10.4f} {row.total_late_fee:15.2f}"
        )


if __name__ == "__main__":
    cli()
