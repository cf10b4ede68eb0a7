"""Category and transaction-kind vocabulary.

The vocabulary is fixed: rule-engine results, remote categorization answers,
and manual edits are all validated against it. Unknown values coerce to the
defaults (``Other`` / ``purchase``) rather than raising.
"""

from __future__ import annotations

from enum import StrEnum


class Category(StrEnum):
    DINING = "Dining"
    GROCERIES = "Groceries"
    GAS = "Gas"
    TRAVEL = "Travel"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    HEALTHCARE = "Healthcare"
    TRANSPORTATION = "Transportation"
    SUBSCRIPTIONS = "Subscriptions"
    HOME_GARDEN = "Home & Garden"
    BILLS_UTILITIES = "Bills & Utilities"
    PERSONAL_CARE = "Personal Care"
    OTHER = "Other"


class TransactionKind(StrEnum):
    PURCHASE = "purchase"
    TRANSFER = "transfer"
    INCOME = "income"


CATEGORY_NAMES: tuple[str, ...] = tuple(c.value for c in Category)
KIND_NAMES: tuple[str, ...] = tuple(k.value for k in TransactionKind)

DEFAULT_CATEGORY = Category.OTHER
DEFAULT_KIND = TransactionKind.PURCHASE

_CATEGORY_BY_FOLDED = {c.value.casefold(): c for c in Category}


def coerce_category(value: str | None) -> Category:
    """Map ``value`` onto the vocabulary case-insensitively; unknown → ``Other``."""

    if not value:
        return DEFAULT_CATEGORY
    return _CATEGORY_BY_FOLDED.get(value.strip().casefold(), DEFAULT_CATEGORY)


def coerce_kind(value: str | None) -> TransactionKind:
    """Map ``value`` onto the kind vocabulary; unknown → ``purchase``."""

    if not value:
        return DEFAULT_KIND
    try:
        return TransactionKind(value.strip().lower())
    except ValueError:
        return DEFAULT_KIND


__all__ = [
    "Category",
    "TransactionKind",
    "CATEGORY_NAMES",
    "KIND_NAMES",
    "DEFAULT_CATEGORY",
    "DEFAULT_KIND",
    "coerce_category",
    "coerce_kind",
]
