"""Statement ingestion: dispatch raw bytes to a format adapter by extension."""

from __future__ import annotations

from pathlib import PurePath

from ..errors import ParseError
from ..models import ColumnMapping, ParseResult
from .adapters.delimited import parse_delimited
from .adapters.ledger_text import parse_ledger_text
from .adapters.spreadsheet import parse_legacy_spreadsheet, parse_spreadsheet
from .adapters.statement_pdf import parse_statement_pdf
from .columns import detect_column_mapping
from .kinds import infer_transaction_kind

SUPPORTED_EXTENSIONS: tuple[str, ...] = ("csv", "xlsx", "xls", "txt", "pdf")


def parse_file(
    data: bytes,
    filename: str,
    manual_mapping: ColumnMapping | None = None,
) -> ParseResult:
    """Parse a statement file into ``ParsedTransaction`` records.

    ``manual_mapping`` only applies to tabular formats (csv, xlsx, xls) and is
    needed only when a previous call returned ``needs_mapping=True``.

    Raises
    ------
    ParseError
        For unsupported extensions and unreadable tabular files.
    """

    ext = PurePath(filename).suffix.lower().lstrip(".")
    if ext == "csv":
        return parse_delimited(data, manual_mapping)
    if ext == "xlsx":
        return parse_spreadsheet(data, manual_mapping)
    if ext == "xls":
        return parse_legacy_spreadsheet(data, manual_mapping)
    if ext == "txt":
        return parse_ledger_text(data)
    if ext == "pdf":
        return parse_statement_pdf(data, PurePath(filename).name)
    raise ParseError(f"Unsupported file format: {ext or '(none)'}")


__all__ = [
    "SUPPORTED_EXTENSIONS",
    "parse_file",
    "detect_column_mapping",
    "infer_transaction_kind",
]
