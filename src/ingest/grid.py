"""Load uploaded spreadsheet bytes into plain 2-D grids of cells."""

import asyncio
import io
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from .base import Cell, GradebookError, Grid

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}
CSV_SUFFIXES = {".csv", ".txt"}
# xlsx/xlsm files are zip archives
ZIP_MAGIC = b"PK\x03\x04"
# legacy .xls (OLE2 compound document)
OLE_MAGIC = b"\xd0\xcf\x11\xe0"


class UnreadableFileError(GradebookError):
    """The bytes could not be read as a spreadsheet at all."""


def _is_excel(data: bytes, filename: str) -> bool:
    suffix = Path(filename).suffix.lower() if filename else ""
    if suffix in EXCEL_SUFFIXES:
        return True
    if suffix in CSV_SUFFIXES:
        return False
    return data.startswith(ZIP_MAGIC) or data.startswith(OLE_MAGIC)


def _normalize_cell(value) -> Cell:
    """Reduce a pandas/numpy cell to str | int | float | None."""
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        if pd.isna(value):
            return None
        return value.strftime("%Y-%m-%d")
    if hasattr(value, "item"):
        # numpy scalar
        value = value.item()
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        if pd.isna(value):
            return None
        return int(value) if value.is_integer() else value
    if isinstance(value, int):
        return value
    text = str(value)
    return text if text.strip() else None


def _frame_to_grid(df: pd.DataFrame) -> Grid:
    grid = []
    for row in df.itertuples(index=False, name=None):
        cells = [_normalize_cell(v) for v in row]
        # Trim trailing empty cells so row length reflects actual content
        while cells and cells[-1] is None:
            cells.pop()
        grid.append(cells)
    # Trailing blank rows carry no information
    while grid and not grid[-1]:
        grid.pop()
    return grid


# Tried in order; cp1252 is what Excel writes for "CSV" on Windows
CSV_ENCODINGS = ("utf-8-sig", "cp1252")


def _csv_width(data: bytes) -> int:
    # Preamble rows are shorter than the header, so size the frame by the
    # widest record. Quoted commas can only overcount; empty columns are trimmed.
    widest = commas = 0
    in_quotes = False
    for line in data.splitlines():
        commas += line.count(b",")
        # An odd number of quotes leaves a quoted field open onto the next line
        if line.count(b'"') % 2:
            in_quotes = not in_quotes
        if not in_quotes:
            widest = max(widest, commas)
            commas = 0
    return max(widest, commas) + 1


def _read_csv(data: bytes) -> Grid:
    if b"\x00" in data:
        raise UnreadableFileError("File looks binary, not CSV")

    width = _csv_width(data)
    for encoding in CSV_ENCODINGS:
        try:
            df = pd.read_csv(
                io.BytesIO(data),
                header=None,
                names=list(range(width)),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                engine="python",
                encoding=encoding,
            )
            break
        except UnicodeDecodeError:
            logger.debug("CSV is not %s, trying next encoding", encoding)
            continue
        except pd.errors.EmptyDataError:
            return []
        except pd.errors.ParserError as e:
            logger.error("Failed to parse CSV: %s", e)
            raise UnreadableFileError(f"Could not read CSV: {e}") from e
    else:
        raise UnreadableFileError("File is not valid UTF-8 or Windows-1252 text")

    return _frame_to_grid(df)


def load_workbook_grids(data: bytes, filename: str = "") -> dict[str, Grid]:
    """
    Every sheet of an uploaded file as a grid, keyed by sheet name.

    CSV input yields a single sheet named after the file stem ("Sheet1" if
    unnamed). Raises UnreadableFileError when the bytes are not a readable
    spreadsheet.
    """
    if not data:
        raise UnreadableFileError("File is empty")

    if not _is_excel(data, filename):
        name = Path(filename).stem if filename else "Sheet1"
        return {name: _read_csv(data)}

    try:
        frames = pd.read_excel(io.BytesIO(data), sheet_name=None, header=None)
    except Exception as e:
        logger.error("Failed to read workbook %s: %s", filename or "<upload>", e)
        raise UnreadableFileError(f"Could not read spreadsheet: {e}") from e

    return {str(name): _frame_to_grid(df) for name, df in frames.items()}


def load_grid(data: bytes, filename: str = "", sheet_name: Optional[str] = None) -> Grid:
    """The first sheet (or the named one) of an uploaded file as a grid."""
    sheets = load_workbook_grids(data, filename)
    if sheet_name is not None:
        if sheet_name not in sheets:
            raise UnreadableFileError(f'Sheet "{sheet_name}" not found')
        return sheets[sheet_name]
    return next(iter(sheets.values()), [])


async def read_upload(source: Union[str, Path]) -> bytes:
    """
    Read an entire uploaded file into memory.

    This is the only I/O in the ingestion layer; OSError propagates so the
    caller can report it separately from data-quality problems.
    """
    path = Path(source)
    data = await asyncio.to_thread(path.read_bytes)
    logger.debug("Read %d bytes from %s", len(data), path.name)
    return data
