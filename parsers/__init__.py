"""
Spreadsheet parsers module.
"""

from parsers.spreadsheet_parser import (
    RawGrid,
    SpreadsheetWorkbook,
    MERGE_ALL_SHEETS,
    read_workbook,
    resolve_sheet_index,
    select_grid,
    build_columns,
    column_letter,
    data_rows,
)

__all__ = [
    "RawGrid",
    "SpreadsheetWorkbook",
    "MERGE_ALL_SHEETS",
    "read_workbook",
    "resolve_sheet_index",
    "select_grid",
    "build_columns",
    "column_letter",
    "data_rows",
]
