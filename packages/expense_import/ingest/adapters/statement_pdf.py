"""Adapter for paged (PDF) card statements.

Text is pulled out with pdfplumber, then one of two line grammars is applied:

- **activity** dialect (section header "Account Activity"): single line
  ``MM/DD[/YY[YY]] DESCRIPTION AMOUNT``
- **transactions** dialect (standalone "Transactions" heading): a
  ``MM/DD MM/DD DESCRIPTION`` line, with ``AMOUNT CCY`` on the following line
  or an inline trailing amount

Statements usually omit the year on each line, so it is recovered from a
"statement/closing date" phrase, then a ``20xx`` token in the filename, then
the current year. Any failure while extracting or parsing yields an empty
result instead of aborting the import.
"""

from __future__ import annotations

import datetime as dt
import re
from io import BytesIO

import pdfplumber

from ...currency import sniff_currency
from ...logging_setup import get_logger
from ...models import ParsedTransaction, ParseResult
from ...normalizers import parse_amount, parse_date
from ..kinds import infer_transaction_kind

_logger = get_logger("expense_import.ingest.statement_pdf")

_YEAR_PHRASES: tuple[re.Pattern[str], ...] = (
    re.compile(r"statement\s+date[:\s]+(\d{1,2}/\d{1,2}/(\d{4}))", re.IGNORECASE),
    re.compile(r"closing\s+date[:\s]+(\d{1,2}/\d{1,2}/(\d{4}))", re.IGNORECASE),
    re.compile(r"(\d{1,2}/\d{1,2}/(\d{4}))\s*-\s*\d{1,2}/\d{1,2}/\d{4}"),
)
_FILENAME_YEAR_RE = re.compile(r"20\d{2}")

_TRANSACTIONS_HEADING_RE = re.compile(r"^transactions\s*$", re.IGNORECASE | re.MULTILINE)

_ACTIVITY_LINE_RE = re.compile(r"^(\d{1,2}/\d{1,2}(?:/\d{2,4})?)\s+(.+?)\s+(-?\$?[\d,]+\.?\d{0,2})$")
_TWO_DATE_LINE_RE = re.compile(r"^(\d{1,2}/\d{1,2})\s+(\d{1,2}/\d{1,2})\s+(.+)$")
_AMOUNT_CCY_LINE_RE = re.compile(r"^([\d,]+\.?\d{0,2})\s+([A-Z]{3})\s*$")
_INLINE_AMOUNT_RE = re.compile(r"\s+([\d,]+\.?\d{0,2})\s*$")
_LEADING_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}")

_EXACT_BOILERPLATE = frozenset({"ACCOUNT ACTIVITY", "TRANSACTIONS", "TRANSACTIONS CONTINUED", "PURCHASE"})
_CONTAINS_BOILERPLATE: tuple[str, ...] = (
    "PURCHASES AND ADJUSTMENTS",
    "MERCHANT NAME",
    "PAYMENTS AND OTHER CREDITS",
    "CONTINUED ON NEXT PAGE",
)
_ACTIVITY_SKIP_WORDS: tuple[str, ...] = ("balance", "payment", "thank you")


def _extract_text(data: bytes) -> str:
    with pdfplumber.open(BytesIO(data)) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    return "\n".join(p for p in pages if p.strip())


def detect_statement_year(text: str, filename: str, *, today: dt.date | None = None) -> int:
    """Return the statement's reporting year (2000 through next year)."""

    current = (today or dt.date.today()).year

    def plausible(year: int) -> bool:
        return 2000 <= year <= current + 1

    for pattern in _YEAR_PHRASES:
        m = pattern.search(text)
        if m and plausible(int(m.group(2))):
            return int(m.group(2))

    m = _FILENAME_YEAR_RE.search(filename)
    if m and plausible(int(m.group(0))):
        return int(m.group(0))

    return current


def _is_boilerplate(line: str) -> bool:
    upper = line.upper()
    if upper in _EXACT_BOILERPLATE:
        return True
    if any(phrase in upper for phrase in _CONTAINS_BOILERPLATE):
        return True
    # Column-title rows
    if "Transaction" in line and "Posting" in line and "Date" in line:
        return True
    if "Date" in line and "Description" in line and "Amount" in line:
        return True
    if "Reference" in line and "Number" in line and "Amount" in line:
        return True
    if "Posting" in line and "Date" in line and not _LEADING_DATE_RE.match(line):
        return True
    return False


def _with_year(date_text: str, year: int) -> dt.date | None:
    if date_text.count("/") == 1:
        date_text = f"{date_text}/{year}"
    return parse_date(date_text)


def _parse_activity_lines(lines: list[str], year: int) -> list[ParsedTransaction]:
    out: list[ParsedTransaction] = []
    for line in lines:
        m = _ACTIVITY_LINE_RE.match(line)
        if m is None:
            continue
        date_text, merchant, amount_text = m.group(1), m.group(2).strip(), m.group(3)
        amount = parse_amount(amount_text)
        if amount is None:
            continue
        lower = merchant.lower()
        if any(word in lower for word in _ACTIVITY_SKIP_WORDS):
            _logger.debug('ingest:pdf_line_skipped reason=balance_or_payment line="%s"', line[:60])
            continue
        on = _with_year(date_text, year)
        if on is None:
            continue
        out.append(
            ParsedTransaction(
                date=on,
                merchant=merchant,
                amount=amount,
                raw_description=line,
                transaction_kind=infer_transaction_kind(merchant),
                currency=sniff_currency(amount_text),
            )
        )
    return out


def _parse_two_line_dialect(lines: list[str], year: int) -> list[ParsedTransaction]:
    out: list[ParsedTransaction] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        i += 1
        m = _TWO_DATE_LINE_RE.match(line)
        if m is None:
            continue
        txn_date, merchant = m.group(1), m.group(3).strip()
        amount_text = ""
        currency: str | None = None

        if i < len(lines):
            nxt = _AMOUNT_CCY_LINE_RE.match(lines[i])
            if nxt:
                amount_text, currency = nxt.group(1), nxt.group(2)
                i += 1

        if not amount_text:
            inline = _INLINE_AMOUNT_RE.search(merchant)
            if inline:
                amount_text = inline.group(1)
                merchant = merchant[: inline.start()].strip()

        if not amount_text or not merchant:
            continue
        amount = parse_amount(amount_text)
        if amount is None or "balance" in merchant.lower():
            continue
        on = _with_year(txn_date, year)
        if on is None:
            continue
        out.append(
            ParsedTransaction(
                date=on,
                merchant=merchant,
                amount=amount,
                raw_description=f"{line} {amount_text} {currency or ''}".rstrip(),
                transaction_kind=infer_transaction_kind(merchant),
                currency=currency,
            )
        )
    return out


def parse_statement_text(text: str, filename: str = "") -> list[ParsedTransaction]:
    """Apply dialect detection and line grammars to already-extracted text."""

    year = detect_statement_year(text, filename)
    activity_idx = text.lower().find("account activity")
    heading = _TRANSACTIONS_HEADING_RE.search(text)

    if activity_idx != -1:
        dialect, section = "activity", text[activity_idx:]
    elif heading is not None:
        dialect, section = "transactions", text[heading.start() :]
    else:
        dialect, section = "activity", text

    lines = [ln.strip() for ln in section.splitlines()]
    lines = [ln for ln in lines if ln and not _is_boilerplate(ln)]
    _logger.info("ingest:pdf_dialect dialect=%s year=%d lines=%d", dialect, year, len(lines))

    if dialect == "transactions":
        return _parse_two_line_dialect(lines, year)
    return _parse_activity_lines(lines, year)


def parse_statement_pdf(data: bytes, filename: str = "") -> ParseResult:
    try:
        text = _extract_text(data)
        transactions = parse_statement_text(text, filename)
    except Exception as e:  # noqa: BLE001 - unreadable PDFs degrade to an empty result
        _logger.error("ingest:pdf_failed filename=%s error=%s", filename, e.__class__.__name__)
        return ParseResult(transactions=(), format="pdf")
    _logger.info("ingest:parsed format=pdf transactions=%d", len(transactions))
    return ParseResult(transactions=tuple(transactions), format="pdf")


__all__ = ["detect_statement_year", "parse_statement_text", "parse_statement_pdf"]
