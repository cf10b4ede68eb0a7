"""Exception taxonomy and the explicit remote-call outcome type.

Only :class:`ParseError` is allowed to escape an import; remote failures are
carried as values (:class:`RemoteOutcome`) or caught per item and replaced by a
defined fallback.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class ExpenseImportError(Exception):
    """Base class for errors raised by ``expense_import``."""


class ParseError(ExpenseImportError, ValueError):
    """Malformed or unsupported statement file (aborts that file only)."""


class TransactionNotFound(ExpenseImportError, LookupError):
    """No stored transaction has the requested id."""


class RemoteError(ExpenseImportError):
    """A remote collaborator could not produce a usable answer."""


class CategorizationUnavailable(RemoteError):
    """Remote categorization failed: network, missing credential, or bad payload."""


class ConversionUnavailable(RemoteError):
    """Both exchange-rate sources failed for a ``(from, to, date)`` lookup."""


@dataclass(frozen=True, slots=True)
class RemoteOutcome(Generic[T]):
    """Either a value or a :class:`RemoteError`, never both."""

    value: T | None = None
    error: RemoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> RemoteOutcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: RemoteError) -> RemoteOutcome[T]:
        return cls(error=error)


__all__ = [
    "ExpenseImportError",
    "ParseError",
    "TransactionNotFound",
    "RemoteError",
    "CategorizationUnavailable",
    "ConversionUnavailable",
    "RemoteOutcome",
]
