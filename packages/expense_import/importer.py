"""Import orchestration: parse, categorize, convert, dedupe, persist.

One :meth:`ImportOrchestrator.run` call handles one statement file end to end:

1. parse the bytes (``ParseError`` is the only failure that escapes)
2. categorize unique merchants (rules, then cache, then one batched remote call)
3. resolve one exchange rate per distinct ``(currency, date)``
4. check each record against the store for duplicates
5. insert the accepted records in a single transaction

Categorization and conversion failures are isolated per merchant/rate and
resolve to defined fallbacks, reported as warnings on the result.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from db.client import session_scope

from .categorize import CompletionFn, batch_categorize_merchants, default_completion
from .config import ImportSettings
from .currency import ExchangeRateService
from .duplicates import find_duplicates
from .ingest import parse_file
from .logging_setup import get_logger
from .models import (
    CanonicalTransaction,
    Categorization,
    ColumnMapping,
    ImportReport,
    ParsedTransaction,
    RateQuote,
)
from .persistence import insert_transactions, to_usd

_logger = get_logger("expense_import.importer")


class ImportOrchestrator:
    """Run statement imports against one database."""

    def __init__(
        self,
        settings: ImportSettings,
        *,
        database_url: str | None = None,
        rate_service: ExchangeRateService | None = None,
        remote: CompletionFn | None = None,
    ) -> None:
        self._settings = settings
        self._database_url = database_url or settings.database_url
        self._rates = rate_service or ExchangeRateService(settings, database_url=self._database_url)
        self._remote = remote or default_completion(settings)

    def _canonicalize(
        self,
        tx: ParsedTransaction,
        categorization: Categorization,
        quote: RateQuote,
        *,
        source_file: str,
    ) -> CanonicalTransaction:
        base = self._settings.base_currency
        currency = (tx.currency or base).upper()

        # The pipeline's kind wins unless it only produced the default fallback.
        kind = categorization.kind
        if categorization.is_default and tx.transaction_kind is not None:
            kind = tx.transaction_kind

        if quote.source == "identity":
            fx_status, rate, usd = "identity", 1.0, tx.amount
        elif quote.source == "unavailable":
            fx_status, rate, usd = "unconverted", 1.0, tx.amount
        else:
            fx_status, rate, usd = "converted", quote.rate, to_usd(tx.amount, quote.rate)

        return CanonicalTransaction(
            date=tx.date,
            merchant=tx.merchant,
            amount=usd,
            raw_description=tx.raw_description,
            category=categorization.category,
            transaction_kind=kind,
            original_currency=currency,
            original_amount=tx.amount,
            exchange_rate=rate,
            usd_amount=usd,
            fx_status=fx_status,  # type: ignore[arg-type]
            source_file=source_file,
        )

    def _resolve_rates(
        self, transactions: Sequence[ParsedTransaction]
    ) -> tuple[dict[tuple, RateQuote], list[str]]:
        base = self._settings.base_currency
        wanted = list(
            dict.fromkeys(((t.currency or base).upper(), base, t.date) for t in transactions)
        )
        quotes = self._rates.batch_get_rates(wanted)

        warnings: list[str] = []
        for (src, dst, on), quote in quotes.items():
            if quote.source == "unavailable":
                n = sum(
                    1 for t in transactions if (t.currency or base).upper() == src and t.date == on
                )
                warnings.append(
                    f"No exchange rate for {src}->{dst} on {on.isoformat()}; "
                    f"{n} transaction(s) kept in {src} and marked unconverted"
                )
        return quotes, warnings

    def run(
        self,
        data: bytes,
        filename: str,
        manual_mapping: ColumnMapping | None = None,
        *,
        skip_duplicates: bool = True,
        dry_run: bool = False,
    ) -> ImportReport:
        """Import one statement file.

        Parameters
        ----------
        data, filename:
            Raw file bytes; the extension of ``filename`` selects the parser.
        manual_mapping:
            Header names for tabular files whose columns were not auto-detected.
        skip_duplicates:
            When true (default), records matching stored transactions are
            reported but not inserted.
        dry_run:
            Run every step except the final insert.

        Raises
        ------
        ParseError
            Unsupported or unreadable file.
        """

        parsed = parse_file(data, filename, manual_mapping)
        if parsed.needs_mapping:
            return ImportReport(
                filename=filename,
                format=parsed.format,
                status="needs_mapping",
                headers=parsed.headers,
            )
        if not parsed.transactions:
            _logger.info("import:empty filename=%s format=%s", filename, parsed.format)
            return ImportReport(
                filename=filename, format=parsed.format, status="empty", headers=parsed.headers
            )

        transactions = parsed.transactions
        _logger.info(
            "import:start filename=%s format=%s transactions=%d",
            filename,
            parsed.format,
            len(transactions),
        )

        with session_scope(database_url=self._database_url) as session:
            categorized = batch_categorize_merchants(
                session, [t.merchant for t in transactions], remote=self._remote
            )

        quotes, warnings = self._resolve_rates(transactions)

        base = self._settings.base_currency
        canonical: list[CanonicalTransaction] = []
        source_counts: Counter[str] = Counter()
        for tx in transactions:
            cat = categorized[tx.merchant]
            source_counts[cat.source] += 1
            quote = quotes[((tx.currency or base).upper(), base, tx.date)]
            canonical.append(self._canonicalize(tx, cat, quote, source_file=filename))

        if source_counts.get("default"):
            warnings.append(
                f"{source_counts['default']} transaction(s) could not be categorized "
                "and were filed under Other"
            )

        with session_scope(database_url=self._database_url) as session:
            duplicates = find_duplicates(
                session, canonical, epsilon=self._settings.duplicate_epsilon
            )
            duplicate_ids = {id(d.candidate) for d in duplicates}
            accepted = [
                c for c in canonical if not (skip_duplicates and id(c) in duplicate_ids)
            ]
            if dry_run:
                imported: Sequence[CanonicalTransaction] = accepted
            else:
                imported = insert_transactions(session, accepted)

        _logger.info(
            "import:done filename=%s imported=%d duplicates=%d warnings=%d dry_run=%s",
            filename,
            len(imported),
            len(duplicates),
            len(warnings),
            dry_run,
        )
        return ImportReport(
            filename=filename,
            format=parsed.format,
            status="imported",
            headers=parsed.headers,
            imported=tuple(imported),
            duplicates=tuple(duplicates),
            warnings=tuple(warnings),
            source_counts=dict(source_counts),
        )


__all__ = ["ImportOrchestrator"]
