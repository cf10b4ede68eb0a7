"""Provisional transaction-kind inference from description keywords.

Explicit transfer phrases outrank income phrases, which outrank the default
``purchase``. The categorization pipeline may later override the result.
"""

from __future__ import annotations

from ..categories import TransactionKind

# Always transfers, whatever else the description says.
_HARD_TRANSFER_PHRASES: tuple[str, ...] = (
    "fid bkg svc llc",
    "zelle payment from",
    "zelle payment to",
    "zelle sent",
    "online banking transfer",
    "autopay",
    "automatic payment",
    "credit crd des:autopay",
    "chase credit crd",
)

_TRANSFER_PHRASES: tuple[str, ...] = (
    "transfer to",
    "transfer from",
    "payment to",
    "online transfer",
    "mobile transfer",
    "wire transfer",
    "wire sent",
    "ach transfer",
    "ach payment",
    "bill pay",
    "external transfer",
    "p2p payment",
    "venmo",
    "paypal transfer",
    "cash app",
    "transfer",
)

_INCOME_PHRASES: tuple[str, ...] = (
    "direct deposit",
    "payroll",
    "refund",
    "reimbursement",
)


def infer_transaction_kind(description: str) -> TransactionKind:
    lower = description.lower()

    if any(p in lower for p in _HARD_TRANSFER_PHRASES):
        return TransactionKind.TRANSFER
    if any(p in lower for p in _TRANSFER_PHRASES):
        return TransactionKind.TRANSFER

    if any(p in lower for p in _INCOME_PHRASES):
        return TransactionKind.INCOME
    if "deposit" in lower and "atm" not in lower:
        return TransactionKind.INCOME
    if "credit" in lower and "credit card" not in lower and "autopay" not in lower:
        return TransactionKind.INCOME

    return TransactionKind.PURCHASE


__all__ = ["infer_transaction_kind"]
