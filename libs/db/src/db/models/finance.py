from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

_BigIntPk = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: ei_transactions
# ---------------------------


class EiTransaction(Base):
    __tablename__ = "ei_transactions"

    # SQLite only autoincrements INTEGER PRIMARY KEY (rowid alias)
    id: Mapped[int] = mapped_column(
        _BigIntPk, primary_key=True, autoincrement=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    merchant: Mapped[str] = mapped_column(Text, nullable=False)
    # Display amount; always equal to ``usd_amount`` (base currency).
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, server_default="Other")
    transaction_kind: Mapped[str] = mapped_column(
        String, nullable=False, server_default="purchase"
    )
    raw_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Multi-currency triple. ``usd_amount == original_amount * exchange_rate``
    # at write time; edits recompute all three together.
    original_currency: Mapped[str] = mapped_column(CHAR(3), nullable=False, server_default="USD")
    original_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    exchange_rate: Mapped[float] = mapped_column(Float, nullable=False, server_default="1.0")
    usd_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    fx_status: Mapped[str] = mapped_column(String, nullable=False, server_default="identity")

    source_file: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    __table_args__ = (
        CheckConstraint(
            "transaction_kind in ('purchase','transfer','income')",
            name="ck_ei_tx_kind",
        ),
        CheckConstraint(
            "fx_status in ('converted','identity','unconverted')",
            name="ck_ei_tx_fx_status",
        ),
        Index("ix_ei_tx_date_merchant", "date", "merchant"),
    )


# ---------------------------
# Cache: ei_merchant_mappings
# ---------------------------


class EiMerchantMapping(Base):
    __tablename__ = "ei_merchant_mappings"

    # Normalized merchant key (see ``expense_import.normalizers.normalize_merchant``).
    merchant: Mapped[str] = mapped_column(String(100), primary_key=True)
    category: Mapped[str] = mapped_column(String, nullable=False)
    transaction_kind: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, server_default="llm")
    last_updated: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    __table_args__ = (
        CheckConstraint(
            "source in ('pattern','llm','manual')",
            name="ck_ei_mm_source",
        ),
    )


# ---------------------------
# Cache: ei_exchange_rates
# ---------------------------


class EiExchangeRate(Base):
    __tablename__ = "ei_exchange_rates"

    id: Mapped[int] = mapped_column(_BigIntPk, primary_key=True, autoincrement=True)
    from_currency: Mapped[str] = mapped_column(CHAR(3), nullable=False)
    to_currency: Mapped[str] = mapped_column(CHAR(3), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    rate: Mapped[float] = mapped_column(Float, nullable=False)
    cached_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    __table_args__ = (
        UniqueConstraint("from_currency", "to_currency", "date", name="uq_ei_fx_pair_date"),
        CheckConstraint("from_currency <> to_currency", name="ck_ei_fx_distinct_pair"),
    )


__all__ = [
    "Base",
    "EiTransaction",
    "EiMerchantMapping",
    "EiExchangeRate",
]
