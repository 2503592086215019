"""
Order export file reader.
Loads CSV and Excel exports into raw rows for the normalizer.
"""

from pathlib import Path
from typing import Any, Optional
import logging

import pandas as pd

from ..utils.exceptions import FileReadError

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


def read_export_file(
    file_path: Path,
    sheet_name: Optional[str] = None,
    encoding: str = "utf-8",
) -> list[dict[str, Any]]:
    """
    Read an export file into a list of row dictionaries.

    Args:
        file_path: Path to a .csv, .xlsx or .xls export
        sheet_name: Worksheet to read (first sheet when omitted)
        encoding: Text encoding for CSV files

    Returns:
        Rows keyed by column header, in file order

    Raises:
        FileReadError: If the file cannot be read
    """
    logger.info(f"Reading export file: {file_path}")
    suffix = file_path.suffix.lower()

    try:
        if suffix in EXCEL_SUFFIXES:
            df = pd.read_excel(file_path, sheet_name=sheet_name or 0)
        elif suffix == ".csv":
            df = pd.read_csv(file_path, encoding=encoding)
        else:
            raise FileReadError(f"Unsupported export file type: {file_path.name}")
    except FileReadError:
        raise
    except Exception as e:
        logger.error(f"Failed to read export file: {e}")
        raise FileReadError(f"Failed to read {file_path.name}: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    df = df.dropna(how="all")

    rows = df.to_dict(orient="records")
    logger.info(f"Read {len(rows)} rows from {file_path.name}")
    return rows


def read_export_files(
    file_paths: list[Path],
    sheet_name: Optional[str] = None,
) -> list[dict[str, Any]]:
    """Read several exports of the same platform and concatenate their rows."""
    rows: list[dict[str, Any]] = []
    for file_path in file_paths:
        rows.extend(read_export_file(file_path, sheet_name=sheet_name))
    return rows
