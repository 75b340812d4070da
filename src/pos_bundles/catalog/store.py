"""Catalog store: the external product/price reference.

The catalog is an immutable snapshot loaded once per session from a
spreadsheet (``.xlsx``, ``.xls``, ``.csv``) or a JSON document. Columns are
discovered by matching headers against per-field synonyms
(case-insensitive, accent-insensitive substring match).

Accepted JSON shapes:
    - ``[{"id": ..., "nom": ...}, ...]``
    - ``{"headers": [...], "data": [[...], ...]}``
    - ``{"produits": [...]}``
"""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any, Iterator

import pandas as pd
import requests

from pos_bundles.cleaning import normalize_header, to_float, to_text
from pos_bundles.exceptions import DataQualityError
from pos_bundles.sources import fetch_bytes, source_name
from pos_bundles.types import CatalogEntry

logger = logging.getLogger(__name__)

# field -> synonyms (normalized, in priority order)
COLUMN_SYNONYMS: dict[str, tuple[str, ...]] = {
    "id": ("identifiant mere", "id", "reference", "ref"),
    "name": ("produit", "nom", "designation", "libelle", "description", "name"),
    "category": ("categorie", "cat"),
    "purchase": ("prix achat ht", "prix achat", "pa ht", "purchase"),
    "sale": ("prix vente", "pv ttc", "prix ttc", "saleprice", "sale price"),
}

REQUIRED_FIELDS = ("id", "name")


def discover_columns(headers: list[Any]) -> dict[str, int]:
    """Map catalog fields to column indexes.

    Fields are resolved in ``COLUMN_SYNONYMS`` order and a column is claimed
    by at most one field. ``id`` and ``name`` fall back to the first
    unclaimed column when no header matches; the optional fields are left
    out.

    Examples:
        >>> discover_columns(["Identifiant mère", "Désignation", "Prix vente TTC"])
        {'id': 0, 'name': 1, 'sale': 2}
    """
    normalized = [normalize_header(h) for h in headers]
    claimed: set[int] = set()
    out: dict[str, int] = {}
    for fld, synonyms in COLUMN_SYNONYMS.items():
        idx = next(
            (
                i
                for syn in synonyms
                for i, h in enumerate(normalized)
                if i not in claimed and h and syn in h
            ),
            None,
        )
        if idx is None and fld in REQUIRED_FIELDS:
            idx = next((i for i in range(len(headers)) if i not in claimed), None)
        if idx is not None:
            out[fld] = idx
            claimed.add(idx)
    return out


class CatalogStore:
    """Catalog entries keyed by id, with a case-insensitive name index."""

    def __init__(self, entries: list[CatalogEntry] | None = None) -> None:
        self._entries: list[CatalogEntry] = []
        self._by_id: dict[str, CatalogEntry] = {}
        self._by_name: dict[str, CatalogEntry] = {}
        for entry in entries or []:
            if entry.id in self._by_id:
                logger.debug("Duplicate catalog id %s ignored", entry.id)
                continue
            self._entries.append(entry)
            self._by_id[entry.id] = entry
            self._by_name.setdefault(entry.name.strip().lower(), entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)

    def entries(self) -> list[CatalogEntry]:
        return list(self._entries)

    def by_id(self, product_id: str) -> CatalogEntry | None:
        return self._by_id.get(str(product_id).strip())

    def by_name(self, name: str) -> CatalogEntry | None:
        """Exact, case-insensitive name lookup."""
        return self._by_name.get((name or "").strip().lower())

    # ------------------------------------------------------------------ loading

    @classmethod
    def from_rows(cls, headers: list[Any], rows: list[list[Any]]) -> CatalogStore:
        """Build from a header row and data rows.

        Rows without an id or a name are dropped.
        """
        cols = discover_columns(headers)
        if "id" not in cols:
            raise DataQualityError("Catalog has no columns", {"headers": headers})

        def cell(row: list[Any], fld: str) -> Any:
            idx = cols.get(fld)
            return row[idx] if idx is not None and idx < len(row) else None

        entries = []
        dropped = 0
        for row in rows:
            pid = to_text(cell(row, "id"))
            name = to_text(cell(row, "name"))
            if not pid or not name:
                dropped += 1
                continue
            entries.append(
                CatalogEntry(
                    id=pid,
                    name=name,
                    category=to_text(cell(row, "category")),
                    purchase_price_excl_tax=to_float(cell(row, "purchase")) or 0.0,
                    sale_price_incl_tax=to_float(cell(row, "sale")) or 0.0,
                )
            )
        if dropped:
            logger.info("Catalog: dropped %d rows without id or name", dropped)
        return cls(entries)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> CatalogStore:
        df = df.loc[:, ~df.columns.astype(str).str.startswith("Unnamed")]
        return cls.from_rows(list(df.columns), df.astype(object).values.tolist())

    @classmethod
    def from_json(cls, data: Any) -> CatalogStore:
        """Build from one of the accepted JSON shapes."""
        if isinstance(data, dict) and "headers" in data and "data" in data:
            return cls.from_rows(list(data["headers"]), [list(r) for r in data["data"]])
        if isinstance(data, dict) and isinstance(data.get("produits"), list):
            data = data["produits"]
        if isinstance(data, list) and all(isinstance(r, dict) for r in data):
            if not data:
                return cls()
            return cls.from_dataframe(pd.DataFrame.from_records(data))
        raise DataQualityError("Unrecognised catalog JSON shape")

    @classmethod
    def from_bytes(cls, payload: bytes, name: str) -> CatalogStore:
        suffix = Path(name).suffix.lower()
        if suffix in (".xlsx", ".xls"):
            df = pd.read_excel(io.BytesIO(payload), sheet_name=0, dtype=object)
            return cls.from_dataframe(df)
        if suffix == ".csv":
            df = pd.read_csv(
                io.BytesIO(payload), sep=None, engine="python", dtype=object, encoding="utf-8-sig"
            )
            return cls.from_dataframe(df)
        if suffix == ".json":
            return cls.from_json(json.loads(payload.decode("utf-8-sig")))
        raise DataQualityError(f"Unsupported catalog format: {name}")

    @classmethod
    def load(
        cls, source: str | Path | None, session: requests.Session | None = None
    ) -> CatalogStore:
        """Load the catalog from a path or URL.

        Never raises: any failure is logged and yields an empty catalog, in
        which case every component resolution falls back to synthetic ids.
        """
        if not source:
            logger.warning("No catalog source configured; catalog is empty")
            return cls()
        try:
            store = cls.from_bytes(fetch_bytes(source, session), source_name(source))
        except Exception as e:
            logger.warning("Catalog load failed from %s: %s", source, e)
            return cls()
        logger.info("Loaded %d catalog entries from %s", len(store), source)
        return store
