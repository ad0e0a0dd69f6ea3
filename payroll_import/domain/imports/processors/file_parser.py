"""
Turn uploaded CSV and Excel files into headers plus raw rows.

Raw rows keep the cell values as the file carries them (strings for CSV,
plain scalars for spreadsheets); coercion happens later in the normalizers.
"""
import csv
import io
import logging
import math
import os
from dataclasses import dataclass, field
from datetime import date, datetime, time
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from payroll_import.core.config import settings
from payroll_import.core.exceptions import ParseError

logger = logging.getLogger(__name__)

EXCEL_ENGINES = {".xlsx": "openpyxl", ".xls": "xlrd"}


@dataclass(frozen=True)
class ParsedRow:
    row_number: int  # Source line; the header is line 1
    values: Mapping[str, Any]

    def get(self, header: str, default: Any = None) -> Any:
        return self.values.get(header, default)


@dataclass(frozen=True)
class ParsedFile:
    file_name: str
    headers: List[str]
    rows: List[ParsedRow] = field(default_factory=list)
    dropped_rows: int = 0

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    def preview(self, limit: int = 5) -> List[Dict[str, Any]]:
        return [dict(row.values) for row in self.rows[:limit]]


def _file_extension(file_name: str) -> str:
    return os.path.splitext(file_name or "")[1].lower()


def _clean_headers(raw_headers: Sequence[Any]) -> List[str]:
    """Trim headers, name blank ones ``column_<n>`` and suffix repeats like pandas does."""
    headers: List[str] = []
    seen: Dict[str, int] = {}
    for index, raw in enumerate(raw_headers, start=1):
        text = "" if _is_blank(raw) else str(raw).strip()
        if not text:
            text = f"column_{index}"
        if text in seen:
            seen[text] += 1
            text = f"{text}.{seen[text]}"
        else:
            seen[text] = 0
        headers.append(text)
    return headers


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _to_scalar(value: Any) -> Any:
    """Convert a spreadsheet cell to a plain ``str | int | float | bool | None``."""
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, (pd.Timestamp, datetime)):
        if pd.isna(value):
            return None
        if (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, str):
        return value if value.strip() else None
    return value


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.info("File is not valid UTF-8; decoding as latin-1")
        return content.decode("latin-1")


def _build_file(file_name: str, headers: List[str], rows: List[ParsedRow], dropped: int) -> ParsedFile:
    if not rows:
        if dropped:
            raise ParseError(
                "no_valid_rows",
                f"No rows in '{file_name}' match the header's {len(headers)} columns "
                f"({dropped} rows dropped).",
                file_name=file_name,
            )
        raise ParseError("no_data_rows", f"File '{file_name}' has a header row but no data rows.", file_name=file_name)

    if dropped:
        logger.warning("Dropped %d malformed rows from %s", dropped, file_name)
    logger.info("Parsed %s: %d rows, columns: %s", file_name, len(rows), headers)
    return ParsedFile(file_name=file_name, headers=headers, rows=rows, dropped_rows=dropped)


def parse_csv(content: bytes, file_name: str = "upload.csv") -> ParsedFile:
    """
    Parse comma-delimited text whose first non-blank line is the header.

    Lines whose column count disagrees with the header are dropped and
    counted; entirely blank lines are ignored.
    """
    reader = csv.reader(io.StringIO(_decode(content)))

    headers: Optional[List[str]] = None
    rows: List[ParsedRow] = []
    dropped = 0

    for cells in reader:
        if not cells or all(not cell.strip() for cell in cells):
            continue
        if headers is None:
            headers = _clean_headers(cells)
            continue
        if len(cells) != len(headers):
            logger.debug("Dropping line %d of %s: %d columns, expected %d", reader.line_num, file_name, len(cells), len(headers))
            dropped += 1
            continue
        values = {header: (cell if cell.strip() else None) for header, cell in zip(headers, cells)}
        rows.append(ParsedRow(row_number=reader.line_num, values=MappingProxyType(values)))

    if headers is None:
        raise ParseError("missing_header", f"File '{file_name}' is empty or has no header row.", file_name=file_name)

    return _build_file(file_name, headers, rows, dropped)


def parse_excel(content: bytes, file_name: str = "upload.xlsx") -> ParsedFile:
    """Parse the first sheet of a workbook; the first non-empty row is the header."""
    engine = EXCEL_ENGINES.get(_file_extension(file_name), "openpyxl")
    try:
        df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=object, engine=engine)
    except Exception as e:
        raise ParseError("unreadable", f"Could not read Excel file '{file_name}': {str(e)}", file_name=file_name) from e

    headers: Optional[List[str]] = None
    rows: List[ParsedRow] = []

    for position, raw_cells in enumerate(df.itertuples(index=False, name=None)):
        cells = [_to_scalar(cell) for cell in raw_cells]
        if all(cell is None for cell in cells):
            continue
        if headers is None:
            headers = _clean_headers(cells)
            continue
        values = dict(zip(headers, cells))
        rows.append(ParsedRow(row_number=position + 1, values=MappingProxyType(values)))

    if headers is None:
        raise ParseError("missing_header", f"Workbook '{file_name}' has no header row.", file_name=file_name)

    return _build_file(file_name, headers, rows, 0)


def max_upload_bytes(max_size_mb: Optional[int] = None) -> int:
    limit_mb = settings.upload_max_file_size_mb if max_size_mb is None else max_size_mb
    return limit_mb * 1024 * 1024


def check_file_size(size: int, file_name: str, max_size_mb: Optional[int] = None) -> None:
    """Raise ``ParseError('file_too_large')`` when ``size`` bytes exceeds the upload limit."""
    limit_mb = settings.upload_max_file_size_mb if max_size_mb is None else max_size_mb
    if size > limit_mb * 1024 * 1024:
        raise ParseError(
            "file_too_large",
            f"File '{file_name}' exceeds the {limit_mb} MB upload limit.",
            file_name=file_name,
        )


def parse_file(
    content: bytes,
    file_name: str,
    max_size_mb: Optional[int] = None,
    allowed_extensions: Optional[Iterable[str]] = None,
) -> ParsedFile:
    """
    Parse an uploaded file into a :class:`ParsedFile`.

    Args:
        content: Raw file bytes
        file_name: Original file name; its extension selects the reader
        max_size_mb: Size limit, defaults to ``settings.upload_max_file_size_mb``
        allowed_extensions: Defaults to ``settings.allowed_extensions``

    Raises:
        ParseError: unsupported extension, oversized file, missing header,
            no data rows, or no row surviving column-count filtering
    """
    extension = _file_extension(file_name)
    allowed = [ext.lower() for ext in (allowed_extensions or settings.allowed_extensions)]
    if extension not in allowed:
        raise ParseError(
            "unsupported_extension",
            f"Unsupported file type '{extension or file_name}'. Allowed: {', '.join(allowed)}",
            file_name=file_name,
        )

    check_file_size(len(content), file_name, max_size_mb)

    if extension == ".csv":
        return parse_csv(content, file_name)
    return parse_excel(content, file_name)
