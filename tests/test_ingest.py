from __future__ import annotations

import datetime as dt
import textwrap
from decimal import Decimal
from io import BytesIO

import pytest
import xlrd
from openpyxl import Workbook
from xlrd.sheet import Cell

from expense_import.categories import TransactionKind
from expense_import.errors import ParseError
from expense_import.ingest import detect_column_mapping, infer_transaction_kind, parse_file
from expense_import.ingest.adapters import spreadsheet, statement_pdf
from expense_import.ingest.adapters.ledger_text import parse_ledger_line
from expense_import.ingest.adapters.statement_pdf import (
    detect_statement_year,
    parse_statement_text,
)
from expense_import.models import ColumnMapping


def _dedent(s: str) -> str:
    return textwrap.dedent(s).lstrip("\n")


def _xlsx(rows: list[list[object]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


# ---- Column detection and kinds ----------------------------------------------


def test_detect_column_mapping_skips_balance_columns() -> None:
    mapping = detect_column_mapping(["Posted Date", "Payee", "Balance", "Debit"])
    assert mapping == ColumnMapping(date="Posted Date", merchant="Payee", amount="Debit")


def test_detect_column_mapping_returns_none_when_incomplete() -> None:
    assert detect_column_mapping(["When", "What", "HowMuch"]) is None


@pytest.mark.parametrize(
    "description, kind",
    [
        ("ZELLE PAYMENT TO JOHN", TransactionKind.TRANSFER),
        ("CHASE CREDIT CRD AUTOPAY", TransactionKind.TRANSFER),
        ("ONLINE TRANSFER FROM SAVINGS", TransactionKind.TRANSFER),
        ("DIRECT DEPOSIT ACME CORP", TransactionKind.INCOME),
        ("MOBILE DEPOSIT", TransactionKind.INCOME),
        ("INTEREST CREDIT", TransactionKind.INCOME),
        ("ATM DEPOSIT", TransactionKind.PURCHASE),
        ("STARBUCKS #12345", TransactionKind.PURCHASE),
    ],
)
def test_infer_transaction_kind(description: str, kind: TransactionKind) -> None:
    assert infer_transaction_kind(description) is kind


# ---- Delimited text ----------------------------------------------------------


def test_csv_single_row() -> None:
    data = b"Date,Description,Amount\n01/15/2024,STARBUCKS #12345,-6.75\n"

    result = parse_file(data, "checking.csv")

    assert result.format == "csv"
    assert result.needs_mapping is False
    assert result.headers == ("Date", "Description", "Amount")
    [tx] = result.transactions
    assert tx.date == dt.date(2024, 1, 15)
    assert tx.merchant == "STARBUCKS #12345"
    assert tx.amount == Decimal("6.75")
    assert tx.transaction_kind is TransactionKind.PURCHASE
    assert tx.currency is None


def test_csv_skips_unparseable_rows_and_sniffs_currency() -> None:
    data = _dedent(
        """
        Transaction Date,Merchant,Amount,Running Balance
        2024-02-01,CAFE ROMA,EUR 12.50,100.00
        2024-02-02,BROKEN ROW,abc,90.00
        2024-02-03,,4.00,86.00
        2024-02-04,ZELLE PAYMENT TO JOHN,-40.00,46.00
        """
    ).encode("utf-8-sig")

    result = parse_file(data, "export.CSV")

    assert [t.merchant for t in result.transactions] == ["CAFE ROMA", "ZELLE PAYMENT TO JOHN"]
    assert result.transactions[0].currency == "EUR"
    assert result.transactions[0].amount == Decimal("12.50")
    assert result.transactions[1].transaction_kind is TransactionKind.TRANSFER


def test_csv_without_recognizable_headers_needs_mapping() -> None:
    data = b"When,What,HowMuch\n01/15/2024,STARBUCKS,6.75\n"

    result = parse_file(data, "odd.csv")

    assert result.needs_mapping is True
    assert result.transactions == ()
    assert result.headers == ("When", "What", "HowMuch")

    mapping = ColumnMapping(date="When", merchant="What", amount="HowMuch")
    remapped = parse_file(data, "odd.csv", mapping)
    assert remapped.needs_mapping is False
    assert len(remapped.transactions) == 1


def test_manual_mapping_with_unknown_header_raises() -> None:
    data = b"When,What,HowMuch\n01/15/2024,STARBUCKS,6.75\n"
    with pytest.raises(ParseError):
        parse_file(data, "odd.csv", ColumnMapping(date="Date", merchant="What", amount="HowMuch"))


def test_unsupported_extension_raises() -> None:
    with pytest.raises(ParseError, match="Unsupported file format"):
        parse_file(b"...", "statement.ofx")


# ---- Spreadsheets ------------------------------------------------------------


def test_xlsx_typed_cells() -> None:
    data = _xlsx(
        [
            ["Date", "Description", "Amount"],
            [dt.datetime(2024, 1, 15), "STARBUCKS #12345", -6.75],
            [None, None, None],
            ["01/16/2024", "PAYROLL ACME", 2500],
        ]
    )

    result = parse_file(data, "statement.xlsx")

    assert result.format == "xlsx"
    assert [(t.date, t.amount) for t in result.transactions] == [
        (dt.date(2024, 1, 15), Decimal("6.75")),
        (dt.date(2024, 1, 16), Decimal("2500.00")),
    ]
    assert result.transactions[1].transaction_kind is TransactionKind.INCOME


def test_empty_spreadsheet_raises() -> None:
    with pytest.raises(ParseError):
        parse_file(_xlsx([]), "empty.xlsx")


def test_unreadable_spreadsheet_raises() -> None:
    with pytest.raises(ParseError):
        parse_file(b"definitely not a zip archive", "broken.xlsx")


class _XlsSheet:
    def __init__(self, rows: list[list[Cell]]) -> None:
        self._rows = rows
        self.nrows = len(rows)

    def row(self, i: int) -> list[Cell]:
        return self._rows[i]


class _XlsBook:
    datemode = 0

    def __init__(self, rows: list[list[Cell]]) -> None:
        self.nsheets = 1
        self._sheet = _XlsSheet(rows)
        self.released = False

    def sheet_by_index(self, idx: int) -> _XlsSheet:
        assert idx == 0
        return self._sheet

    def release_resources(self) -> None:
        self.released = True


def test_xls_typed_cells(monkeypatch: pytest.MonkeyPatch) -> None:
    text, num, date, empty = (
        xlrd.XL_CELL_TEXT,
        xlrd.XL_CELL_NUMBER,
        xlrd.XL_CELL_DATE,
        xlrd.XL_CELL_EMPTY,
    )
    book = _XlsBook(
        [
            [Cell(text, "Date"), Cell(text, "Description"), Cell(text, "Amount")],
            # 45306 is 2024-01-15 in the 1900 date system.
            [Cell(date, 45306.0), Cell(text, "STARBUCKS #12345"), Cell(num, -6.75)],
            [Cell(empty, ""), Cell(empty, ""), Cell(empty, "")],
            [Cell(text, "01/16/2024"), Cell(text, "PAYROLL ACME"), Cell(num, 2500.0)],
        ]
    )
    seen: dict[str, object] = {}

    def _open_workbook(*, file_contents: bytes, on_demand: bool) -> _XlsBook:
        seen["data"] = file_contents
        return book

    monkeypatch.setattr(spreadsheet.xlrd, "open_workbook", _open_workbook)

    result = parse_file(b"legacy-bytes", "statement.xls")

    assert seen["data"] == b"legacy-bytes"
    assert book.released is True
    assert result.format == "xls"
    assert [(t.date, t.merchant, t.amount) for t in result.transactions] == [
        (dt.date(2024, 1, 15), "STARBUCKS #12345", Decimal("6.75")),
        (dt.date(2024, 1, 16), "PAYROLL ACME", Decimal("2500.00")),
    ]
    assert result.transactions[1].transaction_kind is TransactionKind.INCOME


def test_unreadable_xls_raises() -> None:
    with pytest.raises(ParseError, match="Unreadable spreadsheet"):
        parse_file(b"definitely not a workbook", "broken.xls")


# ---- Ledger text -------------------------------------------------------------


def test_ledger_line_with_running_balance() -> None:
    tx = parse_ledger_line("01/15/2024    STARBUCKS #12345    -6.75    1,234.56")
    assert tx is not None
    assert tx.merchant == "STARBUCKS #12345"
    assert tx.amount == Decimal("6.75")
    assert tx.date == dt.date(2024, 1, 15)


@pytest.mark.parametrize(
    "line",
    [
        "Beginning Balance 01/01/2024 1,000.00",
        "Date        Description        Amount",
        "random words without numbers",
        "",
    ],
)
def test_ledger_boilerplate_and_noise_are_skipped(line: str) -> None:
    assert parse_ledger_line(line) is None


def test_txt_file_parses_each_matching_line() -> None:
    data = _dedent(
        """
        Date        Description        Amount     Balance
        01/15/2024  STARBUCKS #12345   -6.75      993.25
        garbage line
        01/16/2024  DIRECT DEPOSIT ACME 1,500.00
        Ending balance 2,493.25
        """
    ).encode("utf-8")

    result = parse_file(data, "ledger.txt")

    assert result.format == "txt"
    assert [t.merchant for t in result.transactions] == ["STARBUCKS #12345", "DIRECT DEPOSIT ACME"]
    assert result.transactions[1].amount == Decimal("1500.00")
    assert result.transactions[1].transaction_kind is TransactionKind.INCOME


# ---- Paged statements --------------------------------------------------------

_ACTIVITY_TEXT = _dedent(
    """
    Statement Date: 02/05/2024
    ACCOUNT ACTIVITY
    Date of Transaction Merchant Name or Transaction Description $ Amount
    01/15 STARBUCKS STORE 123 6.75
    01/16 PAYMENT THANK YOU -500.00
    01/17 AMAZON MKTPL $23.45
    """
)

_TRANSACTIONS_TEXT = _dedent(
    """
    Closing Date 03/10/2023
    Transactions
    Transaction Posting Date Description Amount
    02/01 02/02 HOTEL PARIS
    120.50 EUR
    02/03 02/04 CAFE ROMA 15.00
    02/05 02/06 PREVIOUS BALANCE 99.00
    """
)


def test_activity_dialect() -> None:
    txs = parse_statement_text(_ACTIVITY_TEXT, "statement.pdf")

    assert [(t.date, t.merchant, t.amount) for t in txs] == [
        (dt.date(2024, 1, 15), "STARBUCKS STORE 123", Decimal("6.75")),
        (dt.date(2024, 1, 17), "AMAZON MKTPL", Decimal("23.45")),
    ]
    assert txs[1].currency == "USD"


def test_transactions_dialect_with_amount_on_next_line() -> None:
    txs = parse_statement_text(_TRANSACTIONS_TEXT, "statement.pdf")

    assert [(t.date, t.merchant, t.amount, t.currency) for t in txs] == [
        (dt.date(2023, 2, 1), "HOTEL PARIS", Decimal("120.50"), "EUR"),
        (dt.date(2023, 2, 3), "CAFE ROMA", Decimal("15.00"), None),
    ]


def test_statement_year_detection() -> None:
    today = dt.date(2024, 6, 1)
    assert detect_statement_year("Closing Date 12/31/2023", "x.pdf", today=today) == 2023
    assert detect_statement_year("no dates here", "stmt_2022-05.pdf", today=today) == 2022
    assert detect_statement_year("Statement Date: 01/01/1999", "x.pdf", today=today) == 2024
    assert detect_statement_year("no dates here", "stmt_2031.pdf", today=today) == 2024


def test_pdf_dispatch_uses_extracted_text(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(statement_pdf, "_extract_text", lambda _data: _ACTIVITY_TEXT)

    result = parse_file(b"%PDF-1.7", "card_2024.pdf")

    assert result.format == "pdf"
    assert len(result.transactions) == 2


def test_unreadable_pdf_yields_empty_result(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(_data: bytes) -> str:
        raise ValueError("corrupt xref table")

    monkeypatch.setattr(statement_pdf, "_extract_text", _boom)

    result = parse_file(b"%PDF-1.7", "card.pdf")

    assert result.format == "pdf"
    assert result.transactions == ()
