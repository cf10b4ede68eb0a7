"""Public API surface for the ``expense_import`` package.

Most callers need one of three things:

- :func:`import_statement`: import one statement file into the store
- :func:`categorize`: resolve a single merchant's category and kind
- :func:`similar_transactions`: group stored transactions by vendor resemblance

Each helper builds its collaborators from :class:`~expense_import.config.ImportSettings`
(``load_settings()`` when omitted). Lower-level pieces are importable from
their own modules.
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path

from db.client import session_scope

from .categorize import CompletionFn, categorize_merchant, default_completion
from .config import ImportSettings, load_settings
from .currency import ExchangeRateService
from .importer import ImportOrchestrator
from .models import Categorization, ColumnMapping, ImportReport, RateQuote
from .persistence import get_transaction, list_transactions
from .similarity import (
    DEFAULT_SIMILARITY_THRESHOLD,
    SimilarVendorGroup,
    find_similar_transactions,
    group_similar_transactions,
)


def import_statement(
    path: str | Path,
    manual_mapping: ColumnMapping | None = None,
    *,
    settings: ImportSettings | None = None,
    remote: CompletionFn | None = None,
    skip_duplicates: bool = True,
    dry_run: bool = False,
) -> ImportReport:
    """Read ``path`` and run it through :class:`ImportOrchestrator`.

    Raises
    ------
    OSError
        When the file cannot be read.
    ParseError
        When the format is unsupported or the file is unreadable.
    """

    settings = settings or load_settings()
    p = Path(path)
    orchestrator = ImportOrchestrator(settings, remote=remote)
    return orchestrator.run(
        p.read_bytes(),
        p.name,
        manual_mapping,
        skip_duplicates=skip_duplicates,
        dry_run=dry_run,
    )


def categorize(
    merchant: str,
    *,
    settings: ImportSettings | None = None,
    remote: CompletionFn | None = None,
) -> Categorization:
    settings = settings or load_settings()
    with session_scope(database_url=settings.database_url) as session:
        return categorize_merchant(
            session, merchant, remote=remote or default_completion(settings)
        )


def exchange_rate(
    from_currency: str,
    to_currency: str,
    on: dt.date,
    *,
    settings: ImportSettings | None = None,
) -> RateQuote:
    """Return the historical rate for the pair; raises ``ConversionUnavailable``."""

    return ExchangeRateService(settings or load_settings()).get_rate(
        from_currency, to_currency, on
    )


def similar_transactions(
    transaction_id: int,
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    settings: ImportSettings | None = None,
) -> list[SimilarVendorGroup]:
    """Group stored transactions whose vendor resembles ``transaction_id``'s.

    Raises
    ------
    TransactionNotFound
        When ``transaction_id`` does not exist.
    """

    settings = settings or load_settings()
    with session_scope(database_url=settings.database_url) as session:
        target = get_transaction(session, transaction_id)
        pool = list_transactions(session)
    return group_similar_transactions(
        find_similar_transactions(target, pool, threshold=threshold)
    )


__all__ = [
    "import_statement",
    "categorize",
    "exchange_rate",
    "similar_transactions",
]
