"""Spreadsheet parsing into candidate accounts.

The first sheet is read; row 1 is the header and is always skipped. Each data
row is cleaned and validated independently, so a bad row becomes a
``SkippedRow`` diagnostic and never aborts the parse.

Workbook formats:
    .xlsx / .xlsm  read with openpyxl (read-only, cached values)
    .xls           read with xlrd (detected by the OLE2 signature)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Iterable, Sequence

from ingest_platform.pipeline.errors import SpreadsheetError
from ingest_platform.pipeline.records import FIELDS, CandidateAccount

INSUFFICIENT_COLUMNS = "insufficient columns"
INVALID_DATA = "invalid data"

_OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


@dataclass(frozen=True)
class SkippedRow:
    row_index: int      # 1-based spreadsheet row number; first data row is 2
    reason: str


@dataclass
class ParseResult:
    valid_rows: list[CandidateAccount] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)


def _trim_trailing_empty(cells: Sequence[Any]) -> list[Any]:
    trimmed = list(cells)
    while trimmed and (trimmed[-1] is None or (isinstance(trimmed[-1], str) and not trimmed[-1].strip())):
        trimmed.pop()
    return trimmed


def parse_rows(rows: Iterable[Sequence[Any] | None]) -> ParseResult:
    """Clean and validate already-extracted rows, header included."""
    result = ParseResult()
    for offset, raw in enumerate(rows):
        if offset == 0:
            continue
        row_index = offset + 1
        cells = _trim_trailing_empty(raw or ())
        if len(cells) < len(FIELDS):
            result.skipped.append(SkippedRow(row_index, INSUFFICIENT_COLUMNS))
            continue
        candidate = CandidateAccount.from_row(cells)
        if candidate.is_valid():
            result.valid_rows.append(candidate)
        else:
            result.skipped.append(SkippedRow(row_index, INVALID_DATA))
    return result


def parse_workbook(data: bytes) -> ParseResult:
    """Parse raw workbook bytes. Raises SpreadsheetError if unreadable."""
    if data.startswith(_OLE2_SIGNATURE):
        rows = _read_xls(data)
    else:
        rows = _read_xlsx(data)
    return parse_rows(rows)


def _read_xlsx(data: bytes) -> list[tuple[Any, ...]]:
    from openpyxl import load_workbook

    try:
        workbook = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:
        raise SpreadsheetError(f"Unreadable workbook: {exc}") from exc
    try:
        if not workbook.worksheets:
            return []
        return list(workbook.worksheets[0].iter_rows(values_only=True))
    finally:
        workbook.close()


def _read_xls(data: bytes) -> list[list[Any]]:
    import xlrd

    try:
        book = xlrd.open_workbook(file_contents=data)
    except Exception as exc:
        raise SpreadsheetError(f"Unreadable workbook: {exc}") from exc
    if book.nsheets == 0:
        return []
    sheet = book.sheet_by_index(0)
    return [sheet.row_values(i) for i in range(sheet.nrows)]
