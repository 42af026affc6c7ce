"""Spreadsheet extraction.

Reads the first sheet of an Excel workbook (or a CSV file) into a header
row plus one dict per data row, every value as a string. Rows are not
interpreted here; mapping and normalization happen later.
"""

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from .errors import SpreadsheetError

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = (".xlsx", ".xls")
CSV_EXTENSIONS = (".csv",)
SUPPORTED_EXTENSIONS = EXCEL_EXTENSIONS + CSV_EXTENSIONS

SpreadsheetSource = Union[str, Path, bytes]


@dataclass
class SheetData:
    """Header row and data rows of one sheet."""

    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def _detect_encoding(data: bytes) -> str:
    """Detect CSV encoding, defaulting to utf-8."""
    for encoding in ("utf-8-sig", "utf-8", "latin-1", "cp1252"):
        try:
            data[:4096].decode(encoding)
            return encoding
        except UnicodeDecodeError:
            continue
    return "utf-8"


def _cell(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def _read_frame(data: bytes, extension: str) -> pd.DataFrame:
    if extension in CSV_EXTENSIONS:
        return pd.read_csv(
            io.BytesIO(data),
            header=None,
            dtype=str,
            encoding=_detect_encoding(data),
            skip_blank_lines=True,
            keep_default_na=False,
        )
    return pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=str)


def read_spreadsheet(
    source: SpreadsheetSource,
    filename: Optional[str] = None,
) -> SheetData:
    """Read the first sheet of a spreadsheet.

    Args:
        source: Path to the file, or its raw bytes
        filename: Name used to pick the reader when source is bytes

    Returns:
        SheetData with trimmed headers and one dict per non-blank data row

    Raises:
        SpreadsheetError: If the file is missing, unsupported, unreadable
            or has no header row
    """
    if isinstance(source, bytes):
        data = source
        name = filename or ""
    else:
        path = Path(source)
        if not path.exists():
            raise SpreadsheetError(f"File not found: {path}")
        data = path.read_bytes()
        name = filename or path.name

    extension = Path(name).suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise SpreadsheetError(
            f"Unsupported file type '{extension or name}' "
            f"(expected one of: {', '.join(SUPPORTED_EXTENSIONS)})"
        )
    if not data:
        raise SpreadsheetError("Spreadsheet file is empty")

    try:
        df = _read_frame(data, extension)
    except Exception as e:
        raise SpreadsheetError(f"Failed to read spreadsheet: {e}") from e

    if df.empty:
        raise SpreadsheetError("Spreadsheet is empty or has no data")

    header_cells = [_cell(v) for v in df.iloc[0].tolist()]
    if not any(header_cells):
        raise SpreadsheetError("Spreadsheet has no header row")

    rows = []
    for values in df.iloc[1:].itertuples(index=False, name=None):
        cells = [_cell(v) for v in values]
        if not any(cells):
            continue
        row = {}
        for header, value in zip(header_cells, cells):
            if header:
                row[header] = value
        rows.append(row)

    headers = [h for h in header_cells if h]
    logger.debug("Read %d data rows with headers %s from %s", len(rows), headers, name)
    return SheetData(headers=headers, rows=rows)
