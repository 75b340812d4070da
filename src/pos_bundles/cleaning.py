"""Shared utilities for cleaning POS export values.

This module provides the value-level parsers used by the catalog loader,
the sales column mapping and the JSON import:

- Text normalization: strip invisible characters, remove accents
- Number parsing: robust handling of EU and US number formats
- Money parsing: optional cents-to-units conversion
- Date parsing: multiple date formats and Excel serial numbers
- Boolean parsing: French and English yes/no spellings

Examples:
    >>> from pos_bundles.cleaning import to_float, to_date, normalize_header
    >>> to_float("1.234,56")
    1234.56
    >>> to_date("15/01/2025")
    datetime.datetime(2025, 1, 15, 0, 0)
    >>> normalize_header("  Qté ")
    'qte'
"""

from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime
from typing import Any

import numpy as np
import pandas as pd

# Unicode characters that should be stripped from text
NBSP = "\u00a0"  # Non-breaking space
NNBSP = "\u202f"  # Narrow non-breaking space
ZW = "".join(chr(c) for c in (0x200B, 0x200C, 0x200D, 0xFEFF))  # Zero-width characters

# Regex to strip currency symbols while preserving number separators
_CURRENCY_RE = re.compile(r"[^\d,.\-\(\)\s]")

# Excel serial day 0
_EXCEL_EPOCH = datetime(1899, 12, 30)

TRUE_VALUES = {"oui", "o", "yes", "y", "true", "vrai", "1", "x", "si", "sí"}
FALSE_VALUES = {"non", "n", "no", "false", "faux", "0", ""}


def is_missing(x: Any) -> bool:
    """True for None, NaN and pandas NA/NaT."""
    if x is None:
        return True
    try:
        return bool(pd.isna(x))
    except (TypeError, ValueError):
        return False


def strip_invisibles(x: Any) -> str | None:
    """Remove invisible and problematic whitespace characters from text.

    Examples:
        >>> strip_invisibles("  VERRE VN  ")
        'VERRE VN'
        >>> strip_invisibles(None)
    """
    if is_missing(x):
        return None
    s = str(x)
    s = s.replace("\r", "").replace("\t", " ").replace(NBSP, " ").replace(NNBSP, " ")
    s = re.sub(r"[%s]" % re.escape(ZW), "", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def remove_accents(s: str) -> str:
    """Remove accents and diacritics from string.

    Examples:
        >>> remove_accents("Catégorie")
        'Categorie'
    """
    return "".join(c for c in unicodedata.normalize("NFD", s) if unicodedata.category(c) != "Mn")


def normalize_header(s: Any) -> str:
    """Normalize a header or name for comparison.

    Strips invisible characters and accents, collapses whitespace and
    lowercases.

    Examples:
        >>> normalize_header("Prix Achat HT")
        'prix achat ht'
        >>> normalize_header("Désignation")
        'designation'
    """
    base = strip_invisibles(s if s is not None else "")
    if base is None:
        return ""
    base = unicodedata.normalize("NFKD", base)
    base = "".join(ch for ch in base if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", base).strip().lower()


def to_float(x: Any) -> float | None:
    """Robustly parse numbers in various formats.

    Handles:
    - US format: '1,234.56'
    - EU format: '1.234,56'
    - Negative in parentheses: '(1,234.56)'
    - Currency symbols: '1 234,56 €'

    Returns:
        Parsed float value or None if parsing fails.

    Examples:
        >>> to_float("1,234.56")
        1234.56
        >>> to_float("12,50 €")
        12.5
        >>> to_float("(3,00)")
        -3.0
    """
    if is_missing(x):
        return None
    if isinstance(x, bool):
        return float(x)
    if isinstance(x, (int, float, np.integer, np.floating)):
        v = float(x)
        return None if math.isnan(v) or math.isinf(v) else v
    s = str(x).strip()
    if not s:
        return None

    neg = False
    if s.startswith("(") and s.endswith(")"):
        neg, s = True, s[1:-1].strip()

    s = _CURRENCY_RE.sub("", s)
    s = re.sub(r"\s+", "", s)
    if not s:
        return None

    has_dot = "." in s
    has_com = "," in s

    def _finalize(num_str: str, negative: bool) -> float | None:
        try:
            v = float(num_str)
        except ValueError:
            return None
        return -v if negative else v

    # 1.234,56 (EU)
    if re.fullmatch(r"-?\d{1,3}(?:\.\d{3})+,\d{1,2}", s):
        return _finalize(s.replace(".", "").replace(",", "."), neg)

    # 1,234.56 (US)
    if re.fullmatch(r"-?\d{1,3}(?:,\d{3})+\.\d{1,2}", s):
        return _finalize(s.replace(",", ""), neg)

    if has_com and not has_dot:
        if re.fullmatch(r"-?\d{1,3}(?:,\d{3})+", s):
            return _finalize(s.replace(",", ""), neg)
        return _finalize(s.replace(",", "."), neg)

    if has_dot and not has_com:
        if s.count(".") == 1:
            return _finalize(s, neg)
        if re.fullmatch(r"-?\d{1,3}(?:\.\d{3})+", s):
            return _finalize(s.replace(".", ""), neg)
        return _finalize(s, neg)

    return _finalize(s.replace(",", "."), neg)


def to_money(x: Any, in_cents: bool = False) -> float | None:
    """Parse a money amount, dividing by 100 when the source is in cents.

    Examples:
        >>> to_money("1250", in_cents=True)
        12.5
        >>> to_money("12,50")
        12.5
    """
    v = to_float(x)
    if v is None:
        return None
    return v / 100 if in_cents else v


def to_date(val: Any) -> datetime | None:
    """Parse a date from the formats seen in POS exports.

    Attempts, in order: datetime/date objects, Excel serial numbers,
    ``YYYY-MM-DD`` (with optional time), ``DD/MM/YYYY``, ``DD-MM-YYYY``,
    ``DD.MM.YYYY``, then pandas auto-detection with day first.

    Returns:
        Naive datetime, or None if the value cannot be parsed.

    Examples:
        >>> to_date("2025-01-15")
        datetime.datetime(2025, 1, 15, 0, 0)
        >>> to_date("15/01/2025 10:30")
        datetime.datetime(2025, 1, 15, 10, 30)
    """
    if is_missing(val):
        return None
    if isinstance(val, pd.Timestamp):
        return val.to_pydatetime().replace(tzinfo=None)
    if isinstance(val, datetime):
        return val.replace(tzinfo=None)
    if isinstance(val, date):
        return datetime(val.year, val.month, val.day)
    if isinstance(val, np.datetime64):
        return pd.Timestamp(val).to_pydatetime()
    if isinstance(val, (int, float, np.integer, np.floating)) and not isinstance(val, bool):
        # Excel serial (days since 1899-12-30), plausible range only
        if 1 <= float(val) < 100000:
            return _EXCEL_EPOCH + pd.Timedelta(days=float(val)).to_pytimedelta()
        return None
    s = strip_invisibles(val)
    if not s:
        return None
    for fmt in (
        "%Y-%m-%d",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%dT%H:%M:%S.%f",
        "%Y-%m-%d %H:%M:%S",
        "%d/%m/%Y",
        "%d/%m/%Y %H:%M",
        "%d/%m/%Y %H:%M:%S",
        "%d-%m-%Y",
        "%d.%m.%Y",
    ):
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            pass
    ts = pd.to_datetime(s, errors="coerce", dayfirst=True, utc=True)
    if pd.isna(ts):
        return None
    return ts.tz_convert(None).to_pydatetime()


def to_bool(val: Any) -> bool | None:
    """Parse yes/no flags.

    Examples:
        >>> to_bool("Oui")
        True
        >>> to_bool(0)
        False
        >>> to_bool("peut-être")
    """
    if is_missing(val):
        return None
    if isinstance(val, bool):
        return val
    s = str(val).strip().lower()
    if s in TRUE_VALUES:
        return True
    if s in FALSE_VALUES:
        return False
    try:
        f = float(s)
    except ValueError:
        return None
    return bool(int(f)) if f in (0, 1) else None


def to_text(val: Any) -> str:
    """Cleaned text, empty string for missing values.

    Integral floats coming from spreadsheet cells lose their ``.0``.

    Examples:
        >>> to_text(4021.0)
        '4021'
        >>> to_text(None)
        ''
    """
    if is_missing(val):
        return ""
    if isinstance(val, (float, np.floating)) and float(val).is_integer():
        return str(int(val))
    return strip_invisibles(val) or ""
