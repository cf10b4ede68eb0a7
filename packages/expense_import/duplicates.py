"""Duplicate detection against stored transactions.

A candidate duplicates a stored record when the calendar dates are equal, the
merchants are equal ignoring case and surrounding whitespace, and the amounts
(in the statement's original currency) differ by at most ``epsilon``.

Read-only: nothing here mutates the store; callers decide what to do with the
matches.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.finance import EiTransaction

from .models import CanonicalTransaction, DuplicateMatch, ParsedTransaction
from .persistence import row_to_canonical

DEFAULT_EPSILON = Decimal("0.01")


def _merchant_key(merchant: str) -> str:
    return " ".join(merchant.split()).casefold()


def _candidate_amount(candidate: CanonicalTransaction | ParsedTransaction) -> Decimal:
    if isinstance(candidate, CanonicalTransaction):
        return candidate.original_amount
    return candidate.amount


def find_duplicates(
    session: Session,
    candidates: Sequence[CanonicalTransaction | ParsedTransaction],
    *,
    epsilon: Decimal | float = DEFAULT_EPSILON,
) -> list[DuplicateMatch]:
    """Return one :class:`DuplicateMatch` per candidate with stored collisions.

    Candidates without any match are omitted, so absence means "not a
    duplicate". Output order follows ``candidates``.
    """

    if not candidates:
        return []
    eps = Decimal(str(epsilon))

    dates = {c.date for c in candidates}
    stmt = select(EiTransaction).where(EiTransaction.date.in_(dates)).order_by(EiTransaction.id)
    by_key: dict[tuple[object, str], list[CanonicalTransaction]] = {}
    for row in session.execute(stmt).scalars():
        stored = row_to_canonical(row)
        by_key.setdefault((stored.date, _merchant_key(stored.merchant)), []).append(stored)

    out: list[DuplicateMatch] = []
    for candidate in candidates:
        pool: Iterable[CanonicalTransaction] = by_key.get(
            (candidate.date, _merchant_key(candidate.merchant)), ()
        )
        amount = _candidate_amount(candidate)
        matches = tuple(s for s in pool if abs(s.original_amount - amount) <= eps)
        if matches:
            out.append(DuplicateMatch(candidate=candidate, existing_matches=matches))
    return out


__all__ = ["DEFAULT_EPSILON", "find_duplicates"]
