"""Adapter for plain-text ledger exports.

Expected line shapes (whitespace-separated, running balance optional)::

    01/15/2024    STARBUCKS #12345    -6.75    1,234.56
    01/15/2024    STARBUCKS #12345    6.75

Header and balance boilerplate lines are skipped, as is any line that does not
match; one bad line never aborts the rest.
"""

from __future__ import annotations

import re

from ...currency import sniff_currency
from ...logging_setup import get_logger
from ...models import ParsedTransaction, ParseResult
from ...normalizers import parse_amount, parse_date
from ..kinds import infer_transaction_kind

_logger = get_logger("expense_import.ingest.ledger_text")

_WITH_BALANCE_RE = re.compile(
    r"(\d{2}/\d{2}/\d{4})\s+(.+?)\s+(-?[\d,]+\.?\d{0,2})\s+([\d,]+\.\d{2})\s*$"
)
_WITHOUT_BALANCE_RE = re.compile(r"(\d{2}/\d{2}/\d{4})\s+(.+?)\s+(-?[\d,]+\.\d{2})\s*$")


def _is_boilerplate(lower: str) -> bool:
    return (
        "beginning balance" in lower
        or "ending balance" in lower
        or ("date" in lower and "description" in lower)
    )


def parse_ledger_line(line: str) -> ParsedTransaction | None:
    """Parse one ledger line; ``None`` for boilerplate or non-matching lines."""

    stripped = line.strip()
    if not stripped or _is_boilerplate(stripped.lower()):
        return None

    m = _WITH_BALANCE_RE.search(stripped) or _WITHOUT_BALANCE_RE.search(stripped)
    if m is None:
        return None

    date_raw, merchant_raw, amount_raw = m.group(1), m.group(2), m.group(3)
    merchant = merchant_raw.strip()
    on = parse_date(date_raw)
    amount = parse_amount(amount_raw)
    if not merchant or on is None or amount is None:
        return None

    return ParsedTransaction(
        date=on,
        merchant=merchant,
        amount=amount,
        raw_description=stripped,
        transaction_kind=infer_transaction_kind(merchant),
        currency=sniff_currency(amount_raw, merchant),
    )


def parse_ledger_text(data: bytes) -> ParseResult:
    text = data.decode("utf-8", errors="replace")
    out: list[ParsedTransaction] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        tx = parse_ledger_line(line)
        if tx is None:
            if line.strip():
                _logger.debug("ingest:txt_line_skipped lineno=%d", lineno)
            continue
        out.append(tx)
    _logger.info("ingest:parsed format=txt transactions=%d", len(out))
    return ParseResult(transactions=tuple(out), format="txt")


__all__ = ["parse_ledger_line", "parse_ledger_text"]
