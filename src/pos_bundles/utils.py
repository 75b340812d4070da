"""Shared identifier and date helpers.

Examples:
    >>> synthetic_id("Verre VN Tropez (clear)")
    'VERRE_VN_TROPEZ_CLEAR'
    >>> month_key(datetime(2025, 1, 15))
    '2025-01'
"""

from __future__ import annotations

import re
import unicodedata
from datetime import datetime, timezone


def synthetic_id(name: str) -> str:
    """Derive a stable id from a product name.

    Accents are folded to ASCII, other non-alphanumeric characters are
    dropped (spaces kept), whitespace runs become underscores and the result
    is uppercased. A name with no ASCII letter or digit left gets
    ``ID_<hash>`` instead of an empty id.

    Examples:
        >>> synthetic_id("  sac trio  sunset! ")
        'SAC_TRIO_SUNSET'
        >>> synthetic_id("Thé Glacé")
        'THE_GLACE'
    """
    name = (name or "").strip()
    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", "", folded)
    synthetic = re.sub(r"\s+", "_", cleaned.strip()).upper()
    if not synthetic and name:
        return f"ID_{string_hash(name)}"
    return synthetic


def string_hash(text: str) -> str:
    """Short numeric hash of a name, used for temporary product ids.

    32-bit signed rolling hash (``h * 31 + ord(c)``); returns the first six
    digits of its absolute value.

    Examples:
        >>> string_hash("")
        '0'
    """
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return str(abs(h))[:6]


def slugify(text: str) -> str:
    """Make a filesystem-friendly slug.

    Examples:
        >>> slugify("Boutique Saint-Tropez")
        'boutique_saint_tropez'
    """
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^a-zA-Z0-9]+", "_", text).strip("_").lower()
    return text or "unknown"


def format_day(dt: datetime | None) -> str:
    """``YYYY-MM-DD`` or empty string when the date is missing."""
    return dt.strftime("%Y-%m-%d") if dt is not None else ""


def month_key(dt: datetime) -> str:
    """``YYYY-MM`` month key."""
    return dt.strftime("%Y-%m")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()
