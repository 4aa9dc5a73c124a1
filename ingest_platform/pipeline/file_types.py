"""Excel file-type gate for upload events."""

from __future__ import annotations

from pathlib import PurePath

EXCEL_EXTENSIONS = frozenset({".xlsx", ".xls", ".xlsm"})

EXCEL_MIME_TYPES = frozenset({
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
    "application/vnd.ms-excel.sheet.macroEnabled.12",
})


def is_excel_file(file_name: str, mime_type: str) -> bool:
    """True when either the extension or the MIME type names an Excel workbook."""
    return PurePath(file_name).suffix.lower() in EXCEL_EXTENSIONS or mime_type in EXCEL_MIME_TYPES
