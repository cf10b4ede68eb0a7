"""String, date and amount normalization shared by parsers and the pipeline.

- :func:`normalize_merchant` produces the merchant-cache key.
- :func:`normalize_date_to_iso` / :func:`parse_date` accept the date shapes seen
  in bank exports.
- :func:`parse_amount` turns an amount cell into an absolute ``Decimal``.
"""

from __future__ import annotations

import datetime as dt
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from dateutil import parser as date_parser

MERCHANT_KEY_MAX_LEN = 100

_NON_KEY_CHARS_RE = re.compile(r"[^A-Z0-9\s]")
_WS_RE = re.compile(r"\s+")

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_TS_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})T")
_YMD_SLASH_RE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
_MDY_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_MDY_SHORT_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$")

_CURRENCY_SYMBOLS_RE = re.compile(r"[$€£¥₹]")
_CURRENCY_CODE_RE = re.compile(r"[A-Za-z]{3}")

_CENT = Decimal("0.01")


def normalize_merchant(merchant: str) -> str:
    """Return the cache key for ``merchant``.

    Uppercases, drops everything outside ``[A-Z0-9 ]``, collapses whitespace,
    trims, and truncates to :data:`MERCHANT_KEY_MAX_LEN`. Idempotent.
    """

    s = _NON_KEY_CHARS_RE.sub("", merchant.upper())
    s = _WS_RE.sub(" ", s).strip()
    # Re-strip after truncation so a cut at a space stays a fixed point.
    return s[:MERCHANT_KEY_MAX_LEN].rstrip()


def parse_date(value: str | dt.date | dt.datetime | None) -> dt.date | None:
    """Parse the date shapes found in statements; ``None`` when unparseable.

    Accepted, in order: ``date``/``datetime`` objects, ``YYYY-MM-DD``, ISO
    timestamps, ``YYYY/MM/DD``, ``MM/DD/YYYY``, ``MM/DD/YY``, then a
    month-first python-dateutil parse for anything else.
    """

    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value

    s = value.strip()
    if not s:
        return None
    try:
        if _ISO_DATE_RE.match(s):
            return dt.date.fromisoformat(s)
        m = _ISO_TS_RE.match(s)
        if m:
            return dt.date.fromisoformat(m.group(1))
        m = _YMD_SLASH_RE.match(s)
        if m:
            return dt.date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        m = _MDY_SLASH_RE.match(s)
        if m:
            return dt.date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
        m = _MDY_SHORT_RE.match(s)
        if m:
            return dt.datetime.strptime(s, "%m/%d/%y").date()
        return date_parser.parse(s, dayfirst=False, fuzzy=False).date()
    except (ValueError, OverflowError):
        return None


def normalize_date_to_iso(value: str | dt.date | dt.datetime) -> str:
    """Return ``YYYY-MM-DD`` for ``value``; unparseable strings come back trimmed."""

    parsed = parse_date(value)
    if parsed is not None:
        return parsed.isoformat()
    return str(value).strip()


def parse_amount(raw: str | int | float | Decimal | None) -> Decimal | None:
    """Return the absolute amount in ``raw`` rounded to cents.

    Currency symbols and three-letter codes are stripped before parsing, as are
    thousands separators, signs and accounting parentheses. Returns ``None``
    for blank, non-numeric, or zero amounts.
    """

    if raw is None:
        return None
    if isinstance(raw, Decimal | int | float) and not isinstance(raw, bool):
        try:
            d = Decimal(str(raw))
        except InvalidOperation:
            return None
    else:
        s = _CURRENCY_SYMBOLS_RE.sub("", str(raw))
        s = _CURRENCY_CODE_RE.sub("", s)
        s = s.replace(",", "").strip()
        # Sign and parentheses only carry direction; magnitude is what we keep.
        while s[:1] in {"+", "-", "("} or s.endswith(")"):
            s = s.strip("+-()").strip()
            if not s:
                break
        if not s:
            return None
        try:
            d = Decimal(s)
        except InvalidOperation:
            return None
    if not d.is_finite():
        return None
    d = abs(d).quantize(_CENT, rounding=ROUND_HALF_UP)
    if d == 0:
        return None
    return d


__all__ = [
    "MERCHANT_KEY_MAX_LEN",
    "normalize_merchant",
    "parse_date",
    "normalize_date_to_iso",
    "parse_amount",
]
