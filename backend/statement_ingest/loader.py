"""Tabular loader: raw upload bytes -> 2-D grid of cell values."""

from __future__ import annotations

import io
import logging
import math
from datetime import date, datetime
from typing import Any, List, NamedTuple, Tuple, Union

import pandas as pd

from .config import ParserOptions
from .constants import (
    ALT_SEPARATORS,
    SPREADSHEET_EXTENSIONS,
    SPREADSHEET_MIME_TYPES,
    TEXT_ENCODINGS,
    TEXT_EXTENSIONS,
)
from .errors import EmptyFileError, OversizedFileError, UnsupportedFormatError

logger = logging.getLogger(__name__)

Cell = Union[str, int, float, date]
RawGrid = List[List[Cell]]


class SourceFile(NamedTuple):
    filename: str
    content: bytes
    mime: str = ""
    size: int | None = None  # declared size; defaults to len(content)

    @property
    def byte_size(self) -> int:
        return self.size if self.size is not None else len(self.content)


class LoadedGrid(NamedTuple):
    rows: RawGrid
    source_format: str  # "csv" | "spreadsheet"
    sheet_name: str | None = None
    delimiter: str | None = None
    original_row_count: int = 0
    truncated: bool = False


def is_spreadsheet(filename: str, mime: str = "") -> bool:
    """Decide by extension; the MIME type only counts for unknown extensions.

    Browsers on Windows often label plain .csv uploads as
    ``application/vnd.ms-excel``.
    """
    name = (filename or "").lower()
    if name.endswith(TEXT_EXTENSIONS):
        return False
    if name.endswith(SPREADSHEET_EXTENSIONS):
        return True
    return (mime or "").lower() in SPREADSHEET_MIME_TYPES


def detect_separator(text: str) -> str:
    """Pick the separator from counts in the first line.

    "," is the default; ";" or a tab wins only when strictly more frequent.
    """
    first_line = text.split("\n", 1)[0]
    best, best_count = ",", first_line.count(",")
    for candidate in ALT_SEPARATORS:
        count = first_line.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def split_csv_line(line: str, separator: str) -> List[str]:
    """Split one delimited line honouring double-quoted segments.

    A quote toggles the in-quotes state; ``""`` inside quotes is a literal
    quote. Fields are trimmed.
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == separator and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current).strip())
    return fields


def decode_text(content: bytes) -> str:
    for encoding in TEXT_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    return content.decode("utf-8", errors="replace")


def read_delimited(content: bytes) -> Tuple[RawGrid, str]:
    text = decode_text(content).replace("\r\n", "\n").replace("\r", "\n")
    separator = detect_separator(text)
    rows: RawGrid = []
    for line in text.split("\n"):
        if not line.strip():
            continue
        # not stripped: a leading tab is an empty first field
        rows.append(split_csv_line(line, separator))
    return rows, separator


def _spreadsheet_cell(value: Any) -> Cell:
    if value is None:
        return ""
    if isinstance(value, datetime):  # includes pandas.Timestamp
        if pd.isna(value):
            return ""
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        return int(value) if value.is_integer() else value
    if isinstance(value, int):
        return value
    return str(value)


def read_spreadsheet(content: bytes) -> Tuple[RawGrid, str]:
    """First sheet of a workbook as raw cells (no locale formatting)."""
    try:
        xl = pd.ExcelFile(io.BytesIO(content))
    except Exception as e:
        logger.warning("Spreadsheet open failed: %s", e)
        raise UnsupportedFormatError(f"Could not read spreadsheet: {e}") from e
    if not xl.sheet_names:
        raise EmptyFileError("Workbook has no sheets")
    sheet_name = str(xl.sheet_names[0])
    df = xl.parse(sheet_name, header=None, dtype=object)
    rows: RawGrid = [
        [_spreadsheet_cell(v) for v in record]
        for record in df.itertuples(index=False, name=None)
    ]
    return rows, sheet_name


def load_grid(source: SourceFile, options: ParserOptions | None = None) -> LoadedGrid:
    """Turn an uploaded file into a RawGrid.

    Raises OversizedFileError / EmptyFileError / UnsupportedFormatError.
    Rows beyond ``options.max_rows`` are truncated (logged, not an error).
    """
    options = options or ParserOptions()
    actual = len(source.content)
    if max(source.byte_size, actual) > options.max_file_bytes:
        limit_mb = options.max_file_bytes / (1024 * 1024)
        raise OversizedFileError(
            f"File too large ({max(source.byte_size, actual)} bytes); "
            f"maximum allowed is {limit_mb:g}MB"
        )
    if actual == 0:
        raise EmptyFileError("File is empty")

    sheet_name = delimiter = None
    if is_spreadsheet(source.filename, source.mime):
        rows, sheet_name = read_spreadsheet(source.content)
        fmt = "spreadsheet"
    else:
        rows, delimiter = read_delimited(source.content)
        fmt = "csv"

    if not rows:
        raise EmptyFileError("File contains no rows")

    original_count = len(rows)
    truncated = original_count > options.max_rows
    if truncated:
        logger.warning(
            "%s has %d rows; truncating to %d",
            source.filename,
            original_count,
            options.max_rows,
        )
        rows = rows[: options.max_rows]

    return LoadedGrid(
        rows=rows,
        source_format=fmt,
        sheet_name=sheet_name,
        delimiter=delimiter,
        original_row_count=original_count,
        truncated=truncated,
    )


__all__ = [
    "Cell",
    "RawGrid",
    "SourceFile",
    "LoadedGrid",
    "is_spreadsheet",
    "detect_separator",
    "split_csv_line",
    "decode_text",
    "read_delimited",
    "read_spreadsheet",
    "load_grid",
]
