"""Import of sales batches delivered as JSON.

Two shapes are accepted:

- ``{"ventes": [...]}``: lines already decomposed (an export of this tool);
  they are taken as they are.
- converted spreadsheets, ``{"data": [{header: value}, ...]}`` or
  ``{"headers": [...], "data": [[...], ...]}``: rows are mapped with the
  default POS headers (money in cents) and then decomposed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pos_bundles.decompose.engine import Decomposer, DecompositionResult
from pos_bundles.exceptions import DataQualityError
from pos_bundles.fusion.service import parse_sales_document
from pos_bundles.sales.mapping import MappingReport, map_rows
from pos_bundles.types import SalesLine

logger = logging.getLogger(__name__)

# Column names of the POS "Excel to JSON" conversion
DEFAULT_JSON_MAPPING: dict[str, str] = {
    "Date": "date",
    "Id": "id",
    "Produit": "product_name",
    "Qté": "quantity",
    "Boutique": "store",
    "Montant TTC": "amount",
    "Prix unitaire TTC": "unit_price",
    "Prix TTC": "unit_price",
    "Prix d'achat": "purchase_price",
    "TVA": "vat",
    "Remise TTC": "discount",
    "Cat. défaut": "category",
    "#Op": "operation_number",
    "Retour": "is_return",
}


@dataclass
class ImportResult:
    """One imported sales batch, before and after decomposition."""

    original: list[SalesLine] = field(default_factory=list)
    lines: list[SalesLine] = field(default_factory=list)
    already_decomposed: bool = False
    mapping: MappingReport | None = None
    decomposition: DecompositionResult | None = None

    @property
    def components_added(self) -> int:
        return self.decomposition.components_added if self.decomposition else 0


def _rows_of(data: dict[str, Any]) -> list[dict[str, Any]]:
    rows = data["data"]
    headers = data.get("headers")
    if headers is not None:
        return [dict(zip([str(h) for h in headers], r)) for r in rows if isinstance(r, list)]
    if not all(isinstance(r, dict) for r in rows):
        raise DataQualityError("'data' must hold objects when no 'headers' are given")
    return rows


def load_sales_json(
    data: Any,
    decomposer: Decomposer,
    money_in_cents: bool = True,
    assign_missing_ids: bool = True,
) -> ImportResult:
    """Turn a JSON document into decomposed sales lines.

    Raises:
        DataQualityError: If the document is neither shape.
    """
    if isinstance(data, dict) and isinstance(data.get("ventes"), list):
        lines = parse_sales_document(data)
        logger.info("JSON import: %d already decomposed lines", len(lines))
        return ImportResult(original=lines, lines=lines, already_decomposed=True)

    if isinstance(data, dict) and isinstance(data.get("data"), list):
        rows = _rows_of(data)
        mapping = {h: f for h, f in DEFAULT_JSON_MAPPING.items() if rows and h in rows[0]}
        report = map_rows(
            rows,
            mapping or None,
            money_in_cents=money_in_cents,
            assign_missing_ids=assign_missing_ids,
        )
        result = decomposer.decompose(report.lines)
        logger.info(
            "JSON import: %d lines -> %d after decomposition (+%d components)",
            len(report.lines),
            len(result.expanded),
            result.components_added,
        )
        return ImportResult(
            original=report.lines,
            lines=result.expanded,
            mapping=report,
            decomposition=result,
        )

    raise DataQualityError("Unrecognised sales JSON: expected 'ventes' or 'data'")


def load_sales_json_file(path: str | Path, decomposer: Decomposer, **kwargs: Any) -> ImportResult:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise DataQualityError(f"{path.name} is not valid JSON: {e}") from e
    return load_sales_json(data, decomposer, **kwargs)
