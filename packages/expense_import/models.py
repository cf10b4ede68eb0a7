"""Data models for ``expense_import``.

Plain frozen dataclasses carry values between pipeline stages; the one Pydantic
model (:class:`LlmCategorization`) validates untrusted payloads coming back from
the remote categorization provider.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .categories import Category, TransactionKind, coerce_category, coerce_kind

type SimilarityMethod = Literal["exact", "token", "edit-distance"]
type CategorizationSource = Literal["pattern", "cache", "llm", "manual", "default"]
type RateSource = Literal["identity", "cache", "primary", "fallback", "unavailable"]
type FxStatus = Literal["converted", "identity", "unconverted"]
type ImportStatus = Literal["imported", "needs_mapping", "empty"]

# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """One statement line as extracted by a parser.

    ``amount`` is always the absolute magnitude; direction lives in
    ``transaction_kind`` (a provisional guess from description keywords that
    the categorization pipeline may override). ``currency`` is a best-effort
    sniff and ``None`` means "assume the base currency".
    """

    date: dt.date
    merchant: str
    amount: Decimal
    raw_description: str
    transaction_kind: TransactionKind | None = None
    currency: str | None = None


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """Header names selecting the date, merchant and amount columns."""

    date: str
    merchant: str
    amount: str


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Output of :func:`expense_import.ingest.parse_file`.

    When ``needs_mapping`` is true, ``transactions`` is empty and ``headers``
    lists the raw header names so the caller can supply a
    :class:`ColumnMapping` and parse again.
    """

    transactions: tuple[ParsedTransaction, ...]
    format: str
    headers: tuple[str, ...] | None = None
    needs_mapping: bool = False


# ---------------------------------------------------------------------------
# Vendor matching
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VendorExtraction:
    core_name: str
    original_merchant: str
    store_id: str | None = None
    location: str | None = None


@dataclass(frozen=True, slots=True)
class SimilarityScore:
    score: float
    method: SimilarityMethod


# ---------------------------------------------------------------------------
# Categorization
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MerchantPattern:
    """A rule-table entry; any keyword substring hit yields ``category``/``kind``."""

    keywords: tuple[str, ...]
    category: Category
    kind: TransactionKind
    priority: int


@dataclass(frozen=True, slots=True)
class Categorization:
    category: Category
    kind: TransactionKind
    confidence: float
    source: CategorizationSource

    @property
    def is_default(self) -> bool:
        return self.source == "default"


DEFAULT_CATEGORIZATION = Categorization(
    category=Category.OTHER,
    kind=TransactionKind.PURCHASE,
    confidence=0.0,
    source="default",
)


class LlmCategorization(BaseModel):
    """Typed, validated view of one remote categorization answer.

    Off-vocabulary categories and kinds coerce to ``Other``/``purchase``;
    confidence must fall within ``[0, 1]``.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

    category: Category
    transaction_kind: TransactionKind = Field(
        default=TransactionKind.PURCHASE, alias="transactionType"
    )
    confidence: float = 0.0

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, v: object) -> Category:
        return coerce_category(v if isinstance(v, str) else None)

    @field_validator("transaction_kind", mode="before")
    @classmethod
    def _coerce_kind(cls, v: object) -> TransactionKind:
        return coerce_kind(v if isinstance(v, str) else None)

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_interval(cls, v: float) -> float:
        fv = float(v)
        if 0.0 <= fv <= 1.0:
            return fv
        raise ValueError("confidence must be within [0,1]")

    def to_categorization(self) -> Categorization:
        return Categorization(
            category=self.category,
            kind=self.transaction_kind,
            confidence=self.confidence,
            source="llm",
        )


# ---------------------------------------------------------------------------
# Currency
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RateQuote:
    """A resolved exchange rate for ``(from, to, date)``.

    ``cached`` is true for identity pairs and persistent-cache hits, false for
    fresh remote lookups and for batch placeholders (``source="unavailable"``).
    """

    rate: float
    cached: bool
    date: dt.date
    source: RateSource


@dataclass(frozen=True, slots=True)
class Conversion:
    converted_amount: Decimal
    rate: float


# ---------------------------------------------------------------------------
# Canonical records and reports
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CanonicalTransaction:
    """A fully resolved transaction as written to (or read from) the store.

    ``usd_amount`` equals ``original_amount * exchange_rate`` (rounded to
    cents) at write time; ``amount`` is the base-currency display amount.
    ``id`` is ``None`` until the record has been persisted.
    """

    date: dt.date
    merchant: str
    amount: Decimal
    raw_description: str
    category: Category
    transaction_kind: TransactionKind
    original_currency: str
    original_amount: Decimal
    exchange_rate: float
    usd_amount: Decimal
    fx_status: FxStatus = "identity"
    source_file: str | None = None
    id: int | None = None


@dataclass(frozen=True, slots=True)
class DuplicateMatch:
    """A candidate that collides with one or more stored records."""

    candidate: CanonicalTransaction | ParsedTransaction
    existing_matches: tuple[CanonicalTransaction, ...]

    @property
    def match_count(self) -> int:
        return len(self.existing_matches)


@dataclass(frozen=True, slots=True)
class TransactionFilters:
    """Optional filters for listing/exporting stored transactions."""

    search: str | None = None
    category: str | None = None
    transaction_kind: str | None = None
    date_from: dt.date | None = None
    date_to: dt.date | None = None
    currency: str | None = None


@dataclass(frozen=True, slots=True)
class ImportReport:
    """Outcome of one :meth:`ImportOrchestrator.run` call."""

    filename: str
    format: str
    status: ImportStatus
    headers: tuple[str, ...] | None = None
    imported: tuple[CanonicalTransaction, ...] = ()
    duplicates: tuple[DuplicateMatch, ...] = ()
    warnings: tuple[str, ...] = ()
    source_counts: dict[str, int] = field(default_factory=dict)


__all__ = [
    "ParsedTransaction",
    "ColumnMapping",
    "ParseResult",
    "VendorExtraction",
    "SimilarityScore",
    "MerchantPattern",
    "Categorization",
    "DEFAULT_CATEGORIZATION",
    "LlmCategorization",
    "RateQuote",
    "Conversion",
    "CanonicalTransaction",
    "DuplicateMatch",
    "TransactionFilters",
    "ImportReport",
]
