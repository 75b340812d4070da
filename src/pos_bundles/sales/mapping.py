"""Column mapping: raw POS export rows -> canonical SalesLine.

A mapping is a ``{source header: canonical field}`` dict. It can be given by
the caller or built from the headers with ``build_column_mapping``, which
matches normalized headers exactly against ``FIELD_SYNONYMS``.

Required fields for a line to be accepted: date, id, quantity and amount.
The amount may be derived from the unit price (and the unit price from the
amount). Lines missing a required field are skipped with a warning.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

from pos_bundles.cleaning import is_missing, normalize_header, to_bool, to_date, to_float, to_money, to_text
from pos_bundles.types import SalesLine
from pos_bundles.utils import string_hash

logger = logging.getLogger(__name__)

# canonical field -> normalized header synonyms
FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "date": ("date", "date et heure", "date de vente", "sale date"),
    "id": ("id", "identifiant", "id produit", "product id"),
    "product_name": ("produit", "nom", "nom article", "designation", "article", "product"),
    "quantity": ("qte", "qte.", "quantite", "quantity", "qty"),
    "unit_price": (
        "prix unitaire ttc",
        "prix unitaire",
        "prix de vente ttc unitaire",
        "prix ttc",
        "unit price",
    ),
    "amount": ("montant ttc", "montant", "amount", "total ttc"),
    "store": ("boutique", "magasin", "store", "shop"),
    "category": ("cat. defaut", "cat. racine", "categorie", "category"),
    "operation_number": ("#op", "op", "operation", "numero operation", "n operation"),
    "is_return": ("retour", "return"),
    "purchase_price": ("prix d'achat", "prix achat", "prix achat ht", "purchase price"),
    "vat": ("tva", "vat"),
    "discount": ("remise ttc", "remise", "discount"),
}

MONEY_FIELDS = frozenset({"unit_price", "amount", "purchase_price", "vat", "discount"})
REQUIRED_FIELDS = ("date", "id", "quantity", "amount")

SERVICE_KEYWORDS = ("frais de port", "livraison", "transport", "service")


@dataclass
class MappingReport:
    """Outcome of mapping a batch of raw rows.

    Attributes:
        lines: Accepted lines, in input order.
        skipped: Rows rejected for a missing required field.
        missing: Count of rejections per missing field.
        assigned_ids: Rows kept with a generated ``SERVICE_``/``TEMP_`` id.
    """

    lines: list[SalesLine] = field(default_factory=list)
    skipped: int = 0
    missing: Counter = field(default_factory=Counter)
    assigned_ids: int = 0


def build_column_mapping(headers: Iterable[Any]) -> dict[str, str]:
    """Guess ``{header: field}`` from header names.

    The first header matching a field wins; headers with no match are left
    out (their values are kept as provenance extras).

    Examples:
        >>> build_column_mapping(["Date", "Id", "Produit", "Qté", "Montant TTC", "Vendeur"])
        {'Date': 'date', 'Id': 'id', 'Produit': 'product_name', 'Qté': 'quantity', 'Montant TTC': 'amount'}
    """
    lookup = {syn: fld for fld, syns in FIELD_SYNONYMS.items() for syn in syns}
    mapping: dict[str, str] = {}
    taken: set[str] = set()
    for header in headers:
        fld = lookup.get(normalize_header(header))
        if fld and fld not in taken:
            mapping[str(header)] = fld
            taken.add(fld)
    return mapping


def is_service_product(name: str) -> bool:
    lowered = (name or "").lower()
    return any(k in lowered for k in SERVICE_KEYWORDS)


def generated_id(name: str) -> str:
    """``SERVICE_<hash>`` for shipping/service lines, ``TEMP_<hash>`` otherwise.

    Examples:
        >>> generated_id("Frais de port").startswith("SERVICE_")
        True
        >>> generated_id("verre vn") == generated_id("VERRE-VN")
        True
    """
    if is_service_product(name):
        return f"SERVICE_{string_hash(name)}"
    return f"TEMP_{string_hash(re.sub(r'[^a-zA-Z0-9]', '', name).upper())}"


def map_row(
    row: dict[str, Any],
    mapping: dict[str, str],
    money_in_cents: bool = False,
    assign_missing_ids: bool = False,
) -> tuple[SalesLine | None, list[str]]:
    """Map one raw row.

    Returns:
        ``(line, [])`` on success, ``(None, missing_fields)`` otherwise.
    """
    values: dict[str, Any] = {}
    extras: dict[str, Any] = {}
    for header, raw in row.items():
        fld = mapping.get(str(header))
        if fld is None:
            if not is_missing(raw):
                extras[str(header)] = raw if isinstance(raw, (int, float, bool)) else to_text(raw)
            continue
        if is_missing(raw) or (isinstance(raw, str) and not raw.strip()):
            continue
        if fld in MONEY_FIELDS:
            values[fld] = to_money(raw, money_in_cents)
        elif fld == "quantity":
            values[fld] = to_float(raw)
        elif fld == "date":
            values[fld] = to_date(raw)
        elif fld == "is_return":
            values[fld] = to_bool(raw)
        else:
            values[fld] = to_text(raw)

    quantity = values.get("quantity")
    amount = values.get("amount")
    unit_price = values.get("unit_price")
    if amount is None and unit_price is not None and quantity is not None:
        amount = unit_price * quantity
    if unit_price is None and amount is not None:
        unit_price = amount / quantity if quantity else 0.0

    name = values.get("product_name") or ""
    product_id = values.get("id") or ""
    generated = False
    if not product_id and assign_missing_ids and name:
        product_id = generated_id(name)
        generated = True

    present = {
        "date": values.get("date"),
        "id": product_id or None,
        "quantity": quantity,
        "amount": amount,
    }
    missing = [f for f in REQUIRED_FIELDS if present[f] is None]
    if missing:
        return None, missing

    if generated:
        extras["generatedId"] = True
    is_return = bool(values.get("is_return")) or amount < 0 or quantity < 0
    line = SalesLine(
        id=product_id,
        product_name=name,
        quantity=quantity,
        unit_price_incl_tax=unit_price,
        amount_incl_tax=amount,
        date=values["date"],
        store=values.get("store") or "",
        category=values.get("category") or None,
        operation_number=values.get("operation_number") or None,
        is_return=is_return,
        purchase_price_excl_tax=values.get("purchase_price") or 0.0,
        vat=values.get("vat") or 0.0,
        discount=values.get("discount") or 0.0,
        extras=extras,
    )
    return line, []


def map_rows(
    rows: Iterable[dict[str, Any]],
    mapping: dict[str, str] | None = None,
    money_in_cents: bool = False,
    assign_missing_ids: bool = False,
) -> MappingReport:
    """Map raw rows to sales lines, skipping malformed ones.

    Args:
        rows: Raw rows as ``{header: value}`` dicts.
        mapping: ``{header: field}``; guessed from the first row's headers
            when omitted.
        money_in_cents: Divide money columns by 100.
        assign_missing_ids: Keep rows without an id, giving them a
            ``SERVICE_``/``TEMP_`` id.
    """
    report = MappingReport()
    for i, row in enumerate(rows):
        if mapping is None:
            mapping = build_column_mapping(row.keys())
            logger.debug("Guessed column mapping: %s", mapping)
        line, missing = map_row(row, mapping, money_in_cents, assign_missing_ids)
        if line is None:
            report.skipped += 1
            report.missing.update(missing)
            logger.warning("Row %d skipped: missing %s", i + 1, ", ".join(missing))
            continue
        if line.extras.get("generatedId"):
            report.assigned_ids += 1
        report.lines.append(line)
    logger.info("Mapped %d lines (%d skipped)", len(report.lines), report.skipped)
    return report
