"""CLI for the ``expense_import`` package.

Command handlers (``cmd_*``) hold the logic and return a process exit code;
the Typer commands below only translate options and delegate. Environment
variables (``DATABASE_URL``, ``OPENAI_API_KEY``, ``EXPENSE_IMPORT_*``) are
loaded from a local ``.env`` with ``python-dotenv`` before any command runs.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .categories import CATEGORY_NAMES, KIND_NAMES
from .config import ImportSettings, load_settings
from .logging_setup import configure_logging
from .models import ColumnMapping, TransactionFilters
from .normalizers import parse_date

# ---- Small module-level helpers ----------------------------------------------


def _settings(database_url: str | None) -> ImportSettings:
    settings = load_settings()
    if database_url:
        settings = dataclasses.replace(settings, database_url=database_url)
    return settings


def _error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def _parse_cli_date(value: str | None, option: str) -> dt.date | None:
    if value is None:
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"{option} is not a recognizable date: {value!r}")
    return parsed


def _exit_with(code: int) -> None:
    if code:
        raise typer.Exit(code)


# ---- Command handlers --------------------------------------------------------


def cmd_init_db(*, database_url: str | None) -> int:
    from db.client import create_schema

    settings = _settings(database_url)
    try:
        create_schema(database_url=settings.database_url)
    except Exception as e:
        _error(f"schema creation failed: {e}")
        return 1
    print("Database schema is ready.")
    return 0


def cmd_import(
    file_path: Path,
    *,
    database_url: str | None,
    date_col: str | None = None,
    merchant_col: str | None = None,
    amount_col: str | None = None,
    keep_duplicates: bool = False,
    dry_run: bool = False,
) -> int:
    """Import one statement file and print the stored records.

    Exit codes: ``0`` success (including an empty file), ``1`` read or parse
    failure, ``2`` when the columns need an explicit mapping.
    """

    from .currency import format_transaction_amount
    from .errors import ParseError
    from .importer import ImportOrchestrator

    given = [c for c in (date_col, merchant_col, amount_col) if c]
    if given and len(given) != 3:
        _error("--date-col, --merchant-col and --amount-col must be given together")
        return 2
    mapping = (
        ColumnMapping(date=date_col, merchant=merchant_col, amount=amount_col)  # type: ignore[arg-type]
        if given
        else None
    )

    try:
        data = file_path.read_bytes()
    except FileNotFoundError:
        _error(f"File not found: {file_path}")
        return 1
    except PermissionError:
        _error(f"Permission denied: {file_path}")
        return 1

    settings = _settings(database_url)
    try:
        report = ImportOrchestrator(settings).run(
            data,
            file_path.name,
            mapping,
            skip_duplicates=not keep_duplicates,
            dry_run=dry_run,
        )
    except ParseError as e:
        _error(f"Failed to parse {file_path.name}: {e}")
        return 1

    if report.status == "needs_mapping":
        headers = ", ".join(report.headers or ())
        _error(
            "Could not detect the date, merchant and amount columns. "
            f"Headers: {headers}. Re-run with --date-col, --merchant-col and --amount-col."
        )
        return 2
    if report.status == "empty":
        print(f"No transactions found in {file_path.name}.")
        return 0

    for tx in report.imported:
        amount = format_transaction_amount(
            tx.usd_amount, tx.original_amount, tx.original_currency
        )
        print(
            f"{tx.date.isoformat()}\t{tx.merchant}\t{amount}\t"
            f"{tx.category.value}\t{tx.transaction_kind.value}"
        )
    for warning in report.warnings:
        print(f"Warning: {warning}", file=sys.stderr)

    verb = "would import" if dry_run else "imported"
    sources = " ".join(f"{k}={v}" for k, v in sorted(report.source_counts.items()))
    print(
        f"{verb}={len(report.imported)} duplicates={len(report.duplicates)} "
        f"format={report.format} {sources}".rstrip()
    )
    return 0


def cmd_categorize(merchant: str, *, database_url: str | None) -> int:
    from db.client import session_scope

    from .categorize import categorize_merchant, default_completion

    settings = _settings(database_url)
    with session_scope(database_url=settings.database_url) as session:
        result = categorize_merchant(session, merchant, remote=default_completion(settings))
    print(f"{result.category.value}\t{result.kind.value}\t{result.source}")
    return 0


def cmd_rate(from_currency: str, to_currency: str, on: str, *, database_url: str | None) -> int:
    from .currency import ExchangeRateService
    from .errors import ConversionUnavailable

    try:
        day = _parse_cli_date(on, "DATE")
    except ValueError as e:
        _error(str(e))
        return 2
    assert day is not None

    settings = _settings(database_url)
    try:
        quote = ExchangeRateService(settings).get_rate(from_currency, to_currency, day)
    except ConversionUnavailable as e:
        _error(str(e))
        return 1
    pair = f"{from_currency.upper()}->{to_currency.upper()}"
    print(f"{pair}\t{day.isoformat()}\t{quote.rate:.6f}\t{quote.source}")
    return 0


def cmd_similar(transaction_id: int, *, threshold: float, database_url: str | None) -> int:
    from .api import similar_transactions
    from .errors import TransactionNotFound

    try:
        groups = similar_transactions(
            transaction_id, threshold=threshold, settings=_settings(database_url)
        )
    except TransactionNotFound as e:
        _error(str(e))
        return 1

    if not groups:
        print("No similar transactions found.")
        return 0
    for group in groups:
        print(f"{group.core_name}\taverage={group.average_similarity:.2f}")
        for item in group.transactions:
            tx = item.transaction
            print(
                f"  {tx.id}\t{tx.date.isoformat()}\t{tx.merchant}\t"
                f"{item.similarity.score:.2f}\t{item.similarity.method}"
            )
    return 0


def cmd_stats(
    *, date_from: str | None, date_to: str | None, database_url: str | None
) -> int:
    from db.client import session_scope

    from .currency import format_usd
    from .reports import dashboard_stats

    try:
        start = _parse_cli_date(date_from, "--from")
        end = _parse_cli_date(date_to, "--to")
    except ValueError as e:
        _error(str(e))
        return 2

    settings = _settings(database_url)
    with session_scope(database_url=settings.database_url) as session:
        stats = dashboard_stats(session, start, end)

    print(f"total_spent\t{format_usd(stats.total_spent)}")
    print(f"transactions\t{stats.transaction_count}")
    print(f"average\t{format_usd(stats.average_amount)}")
    print(f"top_category\t{stats.top_category or 'None'}")
    for category, total in sorted(stats.category_totals.items(), key=lambda kv: -kv[1]):
        pct = stats.category_percentages.get(category, 0.0)
        print(f"  {category}\t{format_usd(total)}\t{pct:.1f}%")
    if stats.unconverted_count:
        print(f"unconverted\t{stats.unconverted_count} (excluded from totals)")
    return 0


def cmd_export(output: Path | None, *, database_url: str | None) -> int:
    from db.client import session_scope

    from .reports import export_transactions_csv

    settings = _settings(database_url)
    with session_scope(database_url=settings.database_url) as session:
        text = export_transactions_csv(session, TransactionFilters())
    if output is None:
        sys.stdout.write(text)
    else:
        output.write_text(text, encoding="utf-8")
        print(f"Wrote {output}")
    return 0


def cmd_recategorize(
    merchant: str, category: str, *, kind: str | None, database_url: str | None
) -> int:
    from db.client import session_scope

    from .persistence import recategorize_merchant

    if category.casefold() not in {c.casefold() for c in CATEGORY_NAMES}:
        _error(f"Unknown category {category!r}. Choose one of: {', '.join(CATEGORY_NAMES)}")
        return 2
    if kind is not None and kind.lower() not in KIND_NAMES:
        _error(f"Unknown kind {kind!r}. Choose one of: {', '.join(KIND_NAMES)}")
        return 2

    settings = _settings(database_url)
    with session_scope(database_url=settings.database_url) as session:
        count = recategorize_merchant(session, merchant, category, kind)
    print(f"Updated {count} transaction(s) for {merchant}.")
    return 0


def cmd_wipe(*, yes: bool, database_url: str | None) -> int:
    from db.client import session_scope

    from .persistence import wipe_all_data

    if not yes:
        _error("Refusing to delete all data without --yes")
        return 1
    settings = _settings(database_url)
    with session_scope(database_url=settings.database_url) as session:
        counts = wipe_all_data(session)
    print(" ".join(f"{k}={v}" for k, v in counts.items()))
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank and card statements (CSV, XLSX, TXT, PDF), categorize "
        "merchants, and convert amounts to the base currency. Loads settings "
        "from a local .env before running."
    ),
)

# Module-level option objects keep calls out of parameter defaults (ruff B008).
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
FILE_ARGUMENT = typer.Argument(
    ..., help="Statement file (.csv, .xlsx, .xls, .txt, .pdf)", dir_okay=False
)


@app.command("init-db")
def init_db_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Create the tables on a fresh database."""

    _exit_with(cmd_init_db(database_url=database_url))


@app.command("import")
def import_cmd(
    file_path: Annotated[Path, FILE_ARGUMENT],
    *,
    date_col: str | None = typer.Option(None, help="Header of the date column."),
    merchant_col: str | None = typer.Option(None, help="Header of the merchant column."),
    amount_col: str | None = typer.Option(None, help="Header of the amount column."),
    keep_duplicates: bool = typer.Option(
        False, help="Insert records that match stored transactions instead of skipping them."
    ),
    dry_run: bool = typer.Option(False, help="Run every step except the final insert."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Import one statement file."""

    _exit_with(
        cmd_import(
            file_path,
            database_url=database_url,
            date_col=date_col,
            merchant_col=merchant_col,
            amount_col=amount_col,
            keep_duplicates=keep_duplicates,
            dry_run=dry_run,
        )
    )


@app.command("categorize")
def categorize_cmd(
    merchant: str,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Categorize a single merchant string (rules, cache, then the model)."""

    _exit_with(cmd_categorize(merchant, database_url=database_url))


@app.command("rate")
def rate_cmd(
    from_currency: str,
    to_currency: str,
    on: str,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Show the historical exchange rate for a currency pair on a date."""

    _exit_with(cmd_rate(from_currency, to_currency, on, database_url=database_url))


@app.command("similar")
def similar_cmd(
    transaction_id: int,
    threshold: float = typer.Option(0.70, min=0.0, max=1.0, help="Minimum similarity score."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """List stored transactions from vendors resembling the given transaction's."""

    _exit_with(cmd_similar(transaction_id, threshold=threshold, database_url=database_url))


@app.command("stats")
def stats_cmd(
    date_from: str | None = typer.Option(None, "--from", help="First day (inclusive)."),
    date_to: str | None = typer.Option(None, "--to", help="Last day (inclusive)."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Summarize purchase spend by category in the base currency."""

    _exit_with(cmd_stats(date_from=date_from, date_to=date_to, database_url=database_url))


@app.command("export")
def export_cmd(
    output: Path | None = typer.Option(None, "--output", "-o", help="Write CSV here."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Export stored transactions as CSV (stdout by default)."""

    _exit_with(cmd_export(output, database_url=database_url))


@app.command("recategorize")
def recategorize_cmd(
    merchant: str,
    category: str,
    kind: str | None = typer.Option(None, help="Also set the transaction kind."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Re-categorize every stored transaction for a merchant and remember it."""

    _exit_with(cmd_recategorize(merchant, category, kind=kind, database_url=database_url))


@app.command("wipe")
def wipe_cmd(
    yes: bool = typer.Option(False, "--yes", help="Confirm deletion of all data."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Delete all transactions and both caches."""

    _exit_with(cmd_wipe(yes=yes, database_url=database_url))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps already-set environment variables
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
