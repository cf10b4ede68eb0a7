"""Row-to-``ParsedTransaction`` conversion shared by the tabular adapters."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..currency import sniff_currency
from ..errors import ParseError
from ..logging_setup import get_logger
from ..models import ColumnMapping, ParsedTransaction, ParseResult
from ..normalizers import parse_amount, parse_date
from .columns import detect_column_mapping
from .kinds import infer_transaction_kind

_logger = get_logger("expense_import.ingest.records")


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def row_to_transaction(row: Mapping[str, Any], mapping: ColumnMapping) -> ParsedTransaction | None:
    """Convert one row; ``None`` when a field is missing or unparseable."""

    date_raw = row.get(mapping.date)
    merchant = _cell_text(row.get(mapping.merchant))
    amount_raw = row.get(mapping.amount)
    if date_raw in (None, "") or not merchant or amount_raw in (None, ""):
        return None

    on = parse_date(date_raw)
    amount = parse_amount(amount_raw)
    if on is None or amount is None:
        _logger.debug(
            "ingest:row_skipped date=%r amount=%r merchant=%r", date_raw, amount_raw, merchant[:40]
        )
        return None

    return ParsedTransaction(
        date=on,
        merchant=merchant,
        amount=amount,
        raw_description=merchant,
        transaction_kind=infer_transaction_kind(merchant),
        currency=sniff_currency(_cell_text(amount_raw), merchant),
    )


def parse_rows(
    headers: Sequence[str],
    rows: Iterable[Mapping[str, Any]],
    *,
    fmt: str,
    manual_mapping: ColumnMapping | None = None,
) -> ParseResult:
    """Map ``rows`` through a manual or auto-detected column mapping.

    When no mapping can be determined, returns no transactions, the raw
    headers, and ``needs_mapping=True``.

    Raises
    ------
    ParseError
        When ``manual_mapping`` names a column that is not in ``headers``.
    """

    header_tuple = tuple(headers)
    if manual_mapping is not None:
        missing = [
            col
            for col in (manual_mapping.date, manual_mapping.merchant, manual_mapping.amount)
            if col not in header_tuple
        ]
        if missing:
            raise ParseError("Column mapping refers to unknown headers: " + ", ".join(missing))
        mapping: ColumnMapping | None = manual_mapping
    else:
        mapping = detect_column_mapping(header_tuple)

    if mapping is None:
        _logger.info("ingest:needs_mapping format=%s headers=%d", fmt, len(header_tuple))
        return ParseResult(transactions=(), format=fmt, headers=header_tuple, needs_mapping=True)

    out: list[ParsedTransaction] = []
    skipped = 0
    for row in rows:
        tx = row_to_transaction(row, mapping)
        if tx is None:
            skipped += 1
            continue
        out.append(tx)
    _logger.info("ingest:parsed format=%s transactions=%d skipped=%d", fmt, len(out), skipped)
    return ParseResult(transactions=tuple(out), format=fmt, headers=header_tuple)


__all__ = ["row_to_transaction", "parse_rows"]
