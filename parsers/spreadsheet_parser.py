"""
Spreadsheet reader for price-list uploads.

Turns an uploaded .xlsx or .csv file into raw grids (one per sheet) of
untyped cells. No interpretation happens here: mapping and validation are
done downstream on the grid.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from io import BytesIO
from typing import Any, Optional
import structlog

import pandas as pd

from exceptions import SpreadsheetParseError, EmptyUploadError
from models.imports import ColumnInfo
from utils.text_utils import cell_to_text

logger = structlog.get_logger(__name__)

RawGrid = list[list[Any]]

MERGE_ALL_SHEETS = -1
CSV_EXTENSIONS = (".csv", ".txt")
CSV_ENCODINGS = ("utf-8-sig", "cp1255", "latin-1")


@dataclass
class SpreadsheetWorkbook:
    """All sheets of an uploaded file."""
    sheet_names: list[str] = field(default_factory=list)
    sheets: list[RawGrid] = field(default_factory=list)

    @property
    def sheet_count(self) -> int:
        return len(self.sheets)


def read_workbook(content: bytes, filename: Optional[str] = None) -> SpreadsheetWorkbook:
    """
    Read an uploaded spreadsheet into raw grids.

    Args:
        content: File bytes
        filename: Original file name, used to tell CSV from Excel

    Returns:
        SpreadsheetWorkbook with one grid per sheet

    Raises:
        EmptyUploadError: If the file has no bytes
        SpreadsheetParseError: If the file cannot be read
    """
    if not content:
        raise EmptyUploadError()

    name = (filename or "").lower()
    logger.info("reading_spreadsheet", filename=filename, size_bytes=len(content))

    if name.endswith(CSV_EXTENSIONS):
        workbook = _read_csv(content, filename)
    else:
        workbook = _read_excel(content)

    logger.info(
        "spreadsheet_read",
        sheets=workbook.sheet_count,
        rows=[len(grid) for grid in workbook.sheets]
    )
    return workbook


def _read_excel(content: bytes) -> SpreadsheetWorkbook:
    try:
        excel = pd.ExcelFile(BytesIO(content), engine="openpyxl")
    except Exception as e:
        logger.error("excel_read_failed", error=str(e))
        raise SpreadsheetParseError(
            message="Failed to read Excel file",
            details={"original_error": str(e)}
        )

    workbook = SpreadsheetWorkbook()
    for sheet_name in excel.sheet_names:
        try:
            df = excel.parse(sheet_name, header=None, dtype=object)
        except Exception as e:
            logger.warning("excel_sheet_read_failed", sheet=sheet_name, error=str(e))
            df = pd.DataFrame()
        workbook.sheet_names.append(str(sheet_name))
        workbook.sheets.append(_frame_to_grid(df))
    return workbook


def _read_csv(content: bytes, filename: Optional[str]) -> SpreadsheetWorkbook:
    last_error: Optional[Exception] = None
    for encoding in CSV_ENCODINGS:
        try:
            df = pd.read_csv(
                BytesIO(content),
                header=None,
                dtype=str,
                keep_default_na=False,
                encoding=encoding,
                sep=None,
                engine="python",
            )
            break
        except UnicodeDecodeError as e:
            last_error = e
            continue
        except Exception as e:
            logger.error("csv_read_failed", error=str(e))
            raise SpreadsheetParseError(
                message="Failed to read CSV file",
                details={"original_error": str(e)}
            )
    else:
        raise SpreadsheetParseError(
            message="Unsupported CSV encoding",
            details={"original_error": str(last_error)}
        )

    sheet_name = (filename or "Sheet1").rsplit("/", 1)[-1]
    return SpreadsheetWorkbook(sheet_names=[sheet_name], sheets=[_frame_to_grid(df)])


def _frame_to_grid(df: pd.DataFrame) -> RawGrid:
    """DataFrame → list of rows, NaN/"" → None, trailing blanks trimmed."""
    grid = [[_clean_cell(value) for value in row] for row in df.itertuples(index=False, name=None)]

    while grid and all(cell is None for cell in grid[-1]):
        grid.pop()

    width = 0
    for row in grid:
        for i in range(len(row) - 1, -1, -1):
            if row[i] is not None:
                width = max(width, i + 1)
                break
    return [row[:width] for row in grid]


def _clean_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.isoformat()
    if isinstance(value, str):
        value = value.strip()
        return value or None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if hasattr(value, "item"):
        # numpy scalar
        return value.item()
    return value


# ===================
# SHEET SELECTION
# ===================

def resolve_sheet_index(sheet_index: Optional[int], sheet_count: int) -> int:
    """
    Clamp a requested sheet index.

    -1 selects all sheets merged; anything out of range falls back to 0.
    """
    if sheet_index == MERGE_ALL_SHEETS:
        return MERGE_ALL_SHEETS
    if sheet_index is None or sheet_index < 0 or sheet_index >= sheet_count:
        return 0
    return sheet_index


def select_grid(workbook: SpreadsheetWorkbook, sheet_index: int, has_header: bool) -> RawGrid:
    """
    Pick one sheet, or merge all of them.

    When merging with headers, the first sheet's header row is kept and the
    header rows of later sheets are dropped.

    Raises:
        EmptyUploadError: If the workbook has no sheets
    """
    if not workbook.sheets:
        raise EmptyUploadError("Workbook has no sheets")

    index = resolve_sheet_index(sheet_index, workbook.sheet_count)
    if index != MERGE_ALL_SHEETS:
        return workbook.sheets[index]

    merged: RawGrid = []
    for grid in workbook.sheets:
        if not grid:
            continue
        if merged and has_header:
            merged.extend(grid[1:])
        else:
            merged.extend(grid)
    return merged


# ===================
# COLUMNS
# ===================

def column_letter(index: int) -> str:
    """0 → "A", 25 → "Z", 26 → "AA"."""
    letters = ""
    n = index + 1
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def grid_width(grid: RawGrid) -> int:
    return max((len(row) for row in grid), default=0)


def build_columns(grid: RawGrid, has_header: bool) -> list[ColumnInfo]:
    """
    Describe each column for the mapping UI.

    Header text comes from the first row when has_header is set; otherwise
    (or for blank header cells) the Excel column letter is used.
    """
    header_row = grid[0] if (has_header and grid) else []
    columns = []
    for index in range(grid_width(grid)):
        text = cell_to_text(header_row[index]) if index < len(header_row) else ""
        columns.append(ColumnInfo(index=index, header=text or f"Column {column_letter(index)}"))
    return columns


def data_rows(grid: RawGrid, has_header: bool) -> list[tuple[int, list[Any]]]:
    """(grid index, row) pairs below the header."""
    start = 1 if has_header else 0
    return [(index, grid[index]) for index in range(start, len(grid))]
