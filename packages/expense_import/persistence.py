"""Store operations for transactions and the two long-lived caches.

Functions here take an open SQLAlchemy ``Session`` (see ``db.client``) and
never commit; the caller owns the transaction boundary. Cache writes are
atomic ``INSERT ... ON CONFLICT DO UPDATE`` statements so repeated imports are
safe against partially applied upserts.

Tables (``db.models.finance``):
- ``ei_transactions``: canonical transactions
- ``ei_merchant_mappings``: normalized merchant -> category/kind
- ``ei_exchange_rates``: ``(from, to, date)`` -> rate
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import Select, delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from db.models.finance import EiExchangeRate, EiMerchantMapping, EiTransaction

from .categories import Category, TransactionKind, coerce_category, coerce_kind
from .errors import TransactionNotFound
from .logging_setup import get_logger
from .models import CanonicalTransaction, Categorization, TransactionFilters
from .normalizers import normalize_merchant

_logger = get_logger("expense_import.persistence")

_CENT = Decimal("0.01")


def to_usd(original_amount: Decimal, rate: float) -> Decimal:
    """Return ``original_amount * rate`` rounded to cents."""

    return (original_amount * Decimal(str(rate))).quantize(_CENT, rounding=ROUND_HALF_UP)


def _insert_for(session: Session, table: Any) -> Any:
    """Return a dialect-native ``INSERT`` supporting ``on_conflict_do_update``."""

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Upserts are not supported for dialect {dialect!r}")


def row_to_canonical(row: EiTransaction) -> CanonicalTransaction:
    return CanonicalTransaction(
        id=row.id,
        date=row.date,
        merchant=row.merchant,
        amount=Decimal(row.amount),
        raw_description=row.raw_description or "",
        category=coerce_category(row.category),
        transaction_kind=coerce_kind(row.transaction_kind),
        original_currency=row.original_currency,
        original_amount=Decimal(row.original_amount),
        exchange_rate=float(row.exchange_rate),
        usd_amount=Decimal(row.usd_amount),
        fx_status=row.fx_status,  # type: ignore[arg-type]
        source_file=row.source_file,
    )


# ---------------------------------------------------------------------------
# Merchant cache
# ---------------------------------------------------------------------------


def lookup_merchant_mapping(session: Session, merchant: str) -> Categorization | None:
    """Return the cached categorization for ``merchant`` (normalized), if any."""

    key = normalize_merchant(merchant)
    if not key:
        return None
    row = session.get(EiMerchantMapping, key)
    if row is None:
        return None
    return Categorization(
        category=coerce_category(row.category),
        kind=coerce_kind(row.transaction_kind),
        confidence=1.0,
        source="cache",
    )


def lookup_manual_mapping(session: Session, merchant: str) -> Categorization | None:
    """Return the cached categorization only when it came from a user edit."""

    key = normalize_merchant(merchant)
    row = session.get(EiMerchantMapping, key) if key else None
    if row is None or row.source != "manual":
        return None
    return lookup_merchant_mapping(session, merchant)


def upsert_merchant_mapping(
    session: Session,
    merchant: str,
    category: Category | str,
    transaction_kind: TransactionKind | str,
    *,
    source: str = "llm",
) -> None:
    """Insert or overwrite the cache row for ``merchant``.

    Manual rows are only replaced by another manual write; rule and model
    results never overwrite a user's correction.
    """

    key = normalize_merchant(merchant)
    if not key:
        return
    values = {
        "merchant": key,
        "category": coerce_category(str(category)).value,
        "transaction_kind": coerce_kind(str(transaction_kind)).value,
        "source": source,
        "last_updated": func.now(),
    }
    stmt = _insert_for(session, EiMerchantMapping).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[EiMerchantMapping.merchant],
        set_={
            "category": stmt.excluded.category,
            "transaction_kind": stmt.excluded.transaction_kind,
            "source": stmt.excluded.source,
            "last_updated": func.now(),
        },
        where=None if source == "manual" else EiMerchantMapping.source != "manual",
    )
    session.execute(stmt)


# ---------------------------------------------------------------------------
# Exchange-rate cache
# ---------------------------------------------------------------------------


def lookup_cached_rate(
    session: Session, from_currency: str, to_currency: str, on: dt.date
) -> float | None:
    stmt = select(EiExchangeRate.rate).where(
        EiExchangeRate.from_currency == from_currency.upper(),
        EiExchangeRate.to_currency == to_currency.upper(),
        EiExchangeRate.date == on,
    )
    rate = session.execute(stmt).scalar_one_or_none()
    return float(rate) if rate is not None else None


def upsert_exchange_rate(
    session: Session, from_currency: str, to_currency: str, on: dt.date, rate: float
) -> None:
    """Cache ``rate`` for ``(from, to, on)``; identity pairs are never stored."""

    src, dst = from_currency.upper(), to_currency.upper()
    if src == dst:
        return
    stmt = _insert_for(session, EiExchangeRate).values(
        from_currency=src, to_currency=dst, date=on, rate=float(rate), cached_at=func.now()
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[
            EiExchangeRate.from_currency,
            EiExchangeRate.to_currency,
            EiExchangeRate.date,
        ],
        set_={"rate": stmt.excluded.rate, "cached_at": func.now()},
    )
    session.execute(stmt)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def insert_transactions(
    session: Session, transactions: Iterable[CanonicalTransaction]
) -> list[CanonicalTransaction]:
    """Insert canonical records and return them with their assigned ids."""

    rows: list[EiTransaction] = []
    for tx in transactions:
        rows.append(
            EiTransaction(
                date=tx.date,
                merchant=tx.merchant,
                amount=tx.amount,
                category=tx.category.value,
                transaction_kind=tx.transaction_kind.value,
                raw_description=tx.raw_description,
                original_currency=tx.original_currency,
                original_amount=tx.original_amount,
                exchange_rate=tx.exchange_rate,
                usd_amount=tx.usd_amount,
                fx_status=tx.fx_status,
                source_file=tx.source_file,
            )
        )
    session.add_all(rows)
    session.flush()
    _logger.info("persistence:inserted count=%d", len(rows))
    return [row_to_canonical(r) for r in rows]


def _apply_filters(
    stmt: Select[tuple[EiTransaction]], filters: TransactionFilters
) -> Select[tuple[EiTransaction]]:
    if filters.search:
        like = f"%{filters.search}%"
        stmt = stmt.where(
            or_(EiTransaction.merchant.ilike(like), EiTransaction.raw_description.ilike(like))
        )
    if filters.category and filters.category != "all":
        stmt = stmt.where(EiTransaction.category == filters.category)
    if filters.transaction_kind and filters.transaction_kind != "all":
        stmt = stmt.where(EiTransaction.transaction_kind == filters.transaction_kind)
    if filters.date_from is not None:
        stmt = stmt.where(EiTransaction.date >= filters.date_from)
    if filters.date_to is not None:
        stmt = stmt.where(EiTransaction.date <= filters.date_to)
    if filters.currency:
        stmt = stmt.where(EiTransaction.original_currency == filters.currency.upper())
    return stmt


def list_transactions(
    session: Session, filters: TransactionFilters | None = None
) -> list[CanonicalTransaction]:
    """Return stored transactions, newest first."""

    stmt = select(EiTransaction)
    if filters is not None:
        stmt = _apply_filters(stmt, filters)
    stmt = stmt.order_by(EiTransaction.date.desc(), EiTransaction.id.desc())
    return [row_to_canonical(r) for r in session.execute(stmt).scalars()]


def get_transaction(session: Session, tx_id: int) -> CanonicalTransaction:
    row = session.get(EiTransaction, tx_id)
    if row is None:
        raise TransactionNotFound(f"transaction {tx_id} not found")
    return row_to_canonical(row)


def update_transaction(
    session: Session,
    tx_id: int,
    *,
    category: Category | str | None = None,
    transaction_kind: TransactionKind | str | None = None,
    original_amount: Decimal | None = None,
    original_currency: str | None = None,
    exchange_rate: float | None = None,
    base_currency: str = "USD",
) -> CanonicalTransaction:
    """Edit one stored transaction.

    Category edits also overwrite the merchant cache (source ``manual``) so
    future imports of the same merchant inherit the correction. Amount,
    currency, or rate edits recompute ``(original_amount, exchange_rate,
    usd_amount)`` together; switching to a foreign currency requires an
    explicit ``exchange_rate``.

    Raises
    ------
    TransactionNotFound
        When ``tx_id`` does not exist.
    ValueError
        When a foreign-currency edit has no rate or the rate is not positive.
    """

    row = session.get(EiTransaction, tx_id)
    if row is None:
        raise TransactionNotFound(f"transaction {tx_id} not found")

    if category is not None:
        row.category = coerce_category(str(category)).value
    if transaction_kind is not None:
        row.transaction_kind = coerce_kind(str(transaction_kind)).value

    if original_amount is not None or original_currency is not None or exchange_rate is not None:
        base = base_currency.upper()
        new_currency = (original_currency or row.original_currency).upper()
        new_amount = abs(Decimal(original_amount)) if original_amount is not None else Decimal(
            row.original_amount
        )
        if exchange_rate is not None:
            new_rate = float(exchange_rate)
        elif new_currency == base:
            new_rate = 1.0
        elif original_currency is not None and new_currency != row.original_currency:
            raise ValueError(
                f"exchange_rate is required when changing currency to {new_currency}"
            )
        else:
            new_rate = float(row.exchange_rate)
        if new_rate <= 0:
            raise ValueError("exchange_rate must be positive")

        usd = to_usd(new_amount, new_rate)
        row.original_currency = new_currency
        row.original_amount = new_amount
        row.exchange_rate = new_rate
        row.usd_amount = usd
        row.amount = usd
        row.fx_status = "identity" if new_currency == base else "converted"

    row.updated_at = func.now()
    session.flush()

    if category is not None:
        upsert_merchant_mapping(
            session, row.merchant, row.category, row.transaction_kind, source="manual"
        )
    session.refresh(row)
    return row_to_canonical(row)


def recategorize_merchant(
    session: Session,
    merchant: str,
    category: Category | str,
    transaction_kind: TransactionKind | str | None = None,
) -> int:
    """Re-categorize every stored transaction for ``merchant`` (case-insensitive).

    Overwrites the merchant cache as a manual edit. Returns the row count.
    """

    cat = coerce_category(str(category)).value
    values: dict[str, Any] = {"category": cat, "updated_at": func.now()}
    if transaction_kind is not None:
        values["transaction_kind"] = coerce_kind(str(transaction_kind)).value
    stmt = (
        update(EiTransaction)
        .where(func.upper(EiTransaction.merchant) == merchant.strip().upper())
        .values(**values)
    )
    count = session.execute(stmt).rowcount or 0

    kind = values.get("transaction_kind")
    if kind is None:
        cached = lookup_merchant_mapping(session, merchant)
        kind = cached.kind.value if cached is not None else TransactionKind.PURCHASE.value
    upsert_merchant_mapping(session, merchant, cat, kind, source="manual")
    _logger.info('persistence:recategorized merchant="%s" rows=%d', merchant[:40], count)
    return count


def batch_update_transactions(
    session: Session,
    ids: Sequence[int],
    *,
    category: Category | str | None = None,
    transaction_kind: TransactionKind | str | None = None,
) -> int:
    """Apply the same category and/or kind to many transactions by id."""

    if not ids or (category is None and transaction_kind is None):
        return 0
    values: dict[str, Any] = {"updated_at": func.now()}
    if category is not None:
        values["category"] = coerce_category(str(category)).value
    if transaction_kind is not None:
        values["transaction_kind"] = coerce_kind(str(transaction_kind)).value
    stmt = update(EiTransaction).where(EiTransaction.id.in_(list(ids))).values(**values)
    return session.execute(stmt).rowcount or 0


def delete_transaction(session: Session, tx_id: int) -> bool:
    result = session.execute(delete(EiTransaction).where(EiTransaction.id == tx_id))
    return bool(result.rowcount)


def delete_all_transactions(session: Session) -> int:
    return session.execute(delete(EiTransaction)).rowcount or 0


def wipe_all_data(session: Session) -> dict[str, int]:
    """Delete transactions and both caches; the only path that removes cache rows."""

    counts = {
        "transactions": session.execute(delete(EiTransaction)).rowcount or 0,
        "merchant_mappings": session.execute(delete(EiMerchantMapping)).rowcount or 0,
        "exchange_rates": session.execute(delete(EiExchangeRate)).rowcount or 0,
    }
    _logger.warning(
        "persistence:wiped transactions=%d merchant_mappings=%d exchange_rates=%d",
        counts["transactions"],
        counts["merchant_mappings"],
        counts["exchange_rates"],
    )
    return counts


__all__ = [
    "to_usd",
    "row_to_canonical",
    "lookup_merchant_mapping",
    "lookup_manual_mapping",
    "upsert_merchant_mapping",
    "lookup_cached_rate",
    "upsert_exchange_rate",
    "insert_transactions",
    "list_transactions",
    "get_transaction",
    "update_transaction",
    "recategorize_merchant",
    "batch_update_transactions",
    "delete_transaction",
    "delete_all_transactions",
    "wipe_all_data",
]
