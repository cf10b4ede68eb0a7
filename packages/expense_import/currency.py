"""Date-scoped exchange rates and currency formatting.

:class:`ExchangeRateService` resolves ``(from, to, date)`` in order:

1. identity pair: ``1.0``, marked cached, never stored
2. persistent cache (``ei_exchange_rates``)
3. primary remote source, then the fallback source (same contract)
4. :class:`~expense_import.errors.ConversionUnavailable`

Remote sources answer ``GET .../{date}/v1/currencies/{base}.json`` with
``{"date": "...", "<base>": {"<quote>": <rate>, ...}}`` (lowercase codes).
"""

from __future__ import annotations

import datetime as dt
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Any

import requests

from db.client import session_scope

from .config import ImportSettings
from .errors import ConversionUnavailable
from .logging_setup import get_logger
from .models import Conversion, RateQuote
from .persistence import lookup_cached_rate, to_usd, upsert_exchange_rate

_logger = get_logger("expense_import.currency")

type RateRequest = tuple[str, str, dt.date]


class ExchangeRateService:
    """Fetch and cache historical exchange rates."""

    def __init__(self, settings: ImportSettings, *, database_url: str | None = None) -> None:
        self._settings = settings
        self._database_url = database_url or settings.database_url

    # ------------------------------------------------------------------
    # Remote sources
    # ------------------------------------------------------------------
    def _fetch_from(self, template: str, src: str, dst: str, on: dt.date) -> float:
        base = src.lower()
        try:
            url = template.format(date=on.isoformat(), base=base)
        except (KeyError, IndexError) as e:
            raise ValueError(f"Bad rate URL template {template!r}: {e!r}") from e
        response = requests.get(url, timeout=self._settings.http_timeout)
        response.raise_for_status()
        payload: Any = response.json()
        rates = payload.get(base) if isinstance(payload, Mapping) else None
        value = rates.get(dst.lower()) if isinstance(rates, Mapping) else None
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValueError(f"No rate found for {src}->{dst} in {url}")
        return float(value)

    def _fetch_remote(self, src: str, dst: str, on: dt.date) -> tuple[float, str]:
        try:
            return self._fetch_from(self._settings.fx_primary_url, src, dst, on), "primary"
        except (requests.RequestException, ValueError) as primary_error:
            _logger.warning(
                "fx:fallback from=%s to=%s date=%s error=%s",
                src,
                dst,
                on.isoformat(),
                primary_error,
            )
            try:
                return self._fetch_from(self._settings.fx_fallback_url, src, dst, on), "fallback"
            except (requests.RequestException, ValueError) as fallback_error:
                raise ConversionUnavailable(
                    f"Both rate sources failed for {src}->{dst} on {on.isoformat()}. "
                    f"Primary: {primary_error}; Fallback: {fallback_error}"
                ) from fallback_error

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_rate(self, from_currency: str, to_currency: str, on: dt.date) -> RateQuote:
        """Return the rate converting one unit of ``from_currency`` into ``to_currency``.

        Raises
        ------
        ConversionUnavailable
            When the pair is not cached and both remote sources fail.
        """

        src, dst = from_currency.upper(), to_currency.upper()
        if src == dst:
            return RateQuote(rate=1.0, cached=True, date=on, source="identity")

        with session_scope(database_url=self._database_url) as session:
            cached = lookup_cached_rate(session, src, dst, on)
        if cached is not None:
            _logger.debug("fx:cache_hit from=%s to=%s date=%s", src, dst, on.isoformat())
            return RateQuote(rate=cached, cached=True, date=on, source="cache")

        rate, source = self._fetch_remote(src, dst, on)
        with session_scope(database_url=self._database_url) as session:
            upsert_exchange_rate(session, src, dst, on, rate)
        _logger.info(
            "fx:fetched from=%s to=%s date=%s rate=%.6f source=%s",
            src,
            dst,
            on.isoformat(),
            rate,
            source,
        )
        return RateQuote(rate=rate, cached=False, date=on, source=source)  # type: ignore[arg-type]

    def convert(
        self, amount: Decimal, from_currency: str, to_currency: str, on: dt.date
    ) -> Conversion:
        """Convert ``amount``; identity pairs return it unchanged at rate ``1.0``."""

        quote = self.get_rate(from_currency, to_currency, on)
        if quote.source == "identity":
            return Conversion(converted_amount=Decimal(amount), rate=1.0)
        return Conversion(converted_amount=to_usd(Decimal(amount), quote.rate), rate=quote.rate)

    def batch_get_rates(self, requests_: Iterable[RateRequest]) -> dict[RateRequest, RateQuote]:
        """Resolve each ``(from, to, date)`` independently.

        A failed item becomes ``RateQuote(rate=1.0, cached=False,
        source="unavailable")`` instead of aborting the batch.
        """

        results: dict[RateRequest, RateQuote] = {}
        for req in requests_:
            if req in results:
                continue
            src, dst, on = req
            try:
                results[req] = self.get_rate(src, dst, on)
            except ConversionUnavailable as e:
                _logger.warning(
                    "fx:batch_item_failed from=%s to=%s date=%s error=%s",
                    src,
                    dst,
                    on.isoformat(),
                    e,
                )
                results[req] = RateQuote(rate=1.0, cached=False, date=on, source="unavailable")
        return results


# ---------------------------------------------------------------------------
# Currency sniffing and formatting
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CurrencyInfo:
    code: str
    symbol: str
    name: str
    decimals: int


SUPPORTED_CURRENCIES: Mapping[str, CurrencyInfo] = MappingProxyType(
    {
        "USD": CurrencyInfo("USD", "$", "US Dollar", 2),
        "EUR": CurrencyInfo("EUR", "€", "Euro", 2),
        "GBP": CurrencyInfo("GBP", "£", "British Pound", 2),
        "JPY": CurrencyInfo("JPY", "¥", "Japanese Yen", 0),
        "CAD": CurrencyInfo("CAD", "CA$", "Canadian Dollar", 2),
        "AUD": CurrencyInfo("AUD", "A$", "Australian Dollar", 2),
        "SEK": CurrencyInfo("SEK", "kr", "Swedish Krona", 2),
        "NOK": CurrencyInfo("NOK", "kr", "Norwegian Krone", 2),
        "DKK": CurrencyInfo("DKK", "kr", "Danish Krone", 2),
        "CHF": CurrencyInfo("CHF", "CHF", "Swiss Franc", 2),
        "CNY": CurrencyInfo("CNY", "¥", "Chinese Yuan", 2),
        "INR": CurrencyInfo("INR", "₹", "Indian Rupee", 2),
    }
)

_SUFFIX_SYMBOL = frozenset({"SEK", "NOK", "DKK"})

# Checked in order; the first hit wins.
_SNIFF_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\$|\bUSD\b", re.IGNORECASE), "USD"),
    (re.compile(r"€|\bEUR\b", re.IGNORECASE), "EUR"),
    (re.compile(r"£|\bGBP\b", re.IGNORECASE), "GBP"),
    (re.compile(r"¥|\bJPY\b", re.IGNORECASE), "JPY"),
    (re.compile(r"\bSEK\b", re.IGNORECASE), "SEK"),
    (re.compile(r"\bNOK\b", re.IGNORECASE), "NOK"),
    (re.compile(r"\bDKK\b", re.IGNORECASE), "DKK"),
    (re.compile(r"\bCHF\b", re.IGNORECASE), "CHF"),
    (re.compile(r"\bCAD\b", re.IGNORECASE), "CAD"),
    (re.compile(r"\bAUD\b", re.IGNORECASE), "AUD"),
    (re.compile(r"\bCNY\b", re.IGNORECASE), "CNY"),
    (re.compile(r"\bINR\b|₹", re.IGNORECASE), "INR"),
)


def sniff_currency(*texts: str | None) -> str | None:
    """Return the first currency whose symbol or code appears in ``texts``."""

    combined = " ".join(t for t in texts if t)
    for pattern, code in _SNIFF_PATTERNS:
        if pattern.search(combined):
            return code
    return None


def _quantize(amount: Decimal | float, decimals: int) -> Decimal:
    exp = Decimal(1).scaleb(-decimals)
    return Decimal(str(amount)).quantize(exp, rounding=ROUND_HALF_UP)


def format_usd(amount: Decimal | float) -> str:
    return f"${_quantize(amount, 2):.2f}"


def format_amount(amount: Decimal | float, currency: str) -> str:
    """Format ``amount`` with the currency's symbol and decimal places."""

    code = currency.upper()
    info = SUPPORTED_CURRENCIES.get(code)
    if info is None:
        return f"{_quantize(amount, 2):.2f} {code}"
    formatted = f"{_quantize(amount, info.decimals):.{info.decimals}f}"
    if code in _SUFFIX_SYMBOL:
        return f"{formatted} {info.symbol}"
    return f"{info.symbol}{formatted}"


def format_transaction_amount(
    usd_amount: Decimal | float,
    original_amount: Decimal | float,
    original_currency: str,
    *,
    show_original: bool = True,
) -> str:
    """``$12.34`` or ``$12.34 (€11.20)`` when the original currency differs."""

    usd = format_usd(usd_amount)
    if not show_original or original_currency.upper() == "USD":
        return usd
    return f"{usd} ({format_amount(original_amount, original_currency)})"


__all__ = [
    "ExchangeRateService",
    "CurrencyInfo",
    "SUPPORTED_CURRENCIES",
    "sniff_currency",
    "format_usd",
    "format_amount",
    "format_transaction_amount",
]
