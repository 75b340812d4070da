"""Read POS sales exports (xlsx/xls/csv) into raw rows.

Exports sometimes start with a title block above the header row; the header
row is detected by looking for known column names in the first rows.

Examples:
    >>> rows = read_sales_file(Path("exports/ventes-janvier.xlsx"))
    >>> rows[0]["Produit"]
    'VERRE VN TROPEZ'
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pandas as pd

from pos_bundles.cleaning import normalize_header, strip_invisibles
from pos_bundles.exceptions import DataQualityError
from pos_bundles.sales.mapping import FIELD_SYNONYMS

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 20
MIN_HEADER_HITS = 2

_KNOWN_HEADERS = {syn for syns in FIELD_SYNONYMS.values() for syn in syns}


def find_sheet_case_insensitive(xls: pd.ExcelFile, target: str) -> str:
    """Find a sheet by name: exact case-insensitive match, then substring.

    Raises:
        DataQualityError: If no sheet matches.
    """
    t = target.lower()
    for n in xls.sheet_names:
        if n.lower().strip() == t:
            return n
    for n in xls.sheet_names:
        if t in n.lower():
            return n
    raise DataQualityError(f"Sheet like '{target}' not found. Available: {xls.sheet_names}")


def detect_header_row(df_no_header: pd.DataFrame) -> int:
    """Index of the first row holding at least two known column names.

    Scans the first ``HEADER_SCAN_ROWS`` rows; falls back to 0.
    """
    max_scan = min(HEADER_SCAN_ROWS, len(df_no_header))
    for i in range(max_scan):
        cells = [normalize_header(c) for c in df_no_header.iloc[i].tolist() if strip_invisibles(c)]
        hits = sum(1 for c in cells if c in _KNOWN_HEADERS)
        if hits >= MIN_HEADER_HITS:
            return i
    return 0


def _to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    df = df.loc[:, ~df.columns.astype(str).str.startswith("Unnamed")]
    df = df.dropna(how="all")
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def read_sales_frame(path: Path, sheet: str | None = None) -> pd.DataFrame:
    """Read an export with its detected header row."""
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xls"):
        xls = pd.ExcelFile(path)
        sheet_name = find_sheet_case_insensitive(xls, sheet) if sheet else xls.sheet_names[0]
        df0 = pd.read_excel(xls, sheet_name=sheet_name, header=None, dtype=object)
        header_row = detect_header_row(df0)
        return pd.read_excel(xls, sheet_name=sheet_name, header=header_row, dtype=object)
    if suffix == ".csv":
        df0 = pd.read_csv(
            path, sep=None, engine="python", header=None, dtype=object, encoding="utf-8-sig"
        )
        header_row = detect_header_row(df0)
        return pd.read_csv(
            path,
            sep=None,
            engine="python",
            header=0,
            skiprows=header_row,
            dtype=object,
            encoding="utf-8-sig",
        )
    raise DataQualityError(f"Unsupported sales file format: {path.name}")


def read_sales_file(path: str | Path, sheet: str | None = None) -> list[dict[str, Any]]:
    """Raw rows of a sales export as ``{header: value}`` dicts.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        DataQualityError: Unsupported format or missing sheet.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Sales file not found: {path}")
    df = read_sales_frame(path, sheet)
    df.columns = [strip_invisibles(c) or f"Unnamed: {i}" for i, c in enumerate(df.columns)]
    rows = _to_records(df)
    logger.info("Read %d rows from %s", len(rows), path)
    return rows
