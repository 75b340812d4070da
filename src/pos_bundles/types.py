"""Core record types shared by the catalog, registry, engine and fusion layers.

JSON documents written by the store and the exports use camelCase keys
(``productName``, ``amountInclTax`` ...). ``from_dict`` constructors also
accept the French keys found in older exports (``produit``, ``quantite``,
``montantTTC``, ``boutique`` ...).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from pos_bundles.cleaning import to_bool, to_date, to_float, to_text

logger = logging.getLogger(__name__)

COMPOSITION_TYPES = ("pack", "vasque", "trio", "other")

LINE_ORIGINAL = "original"
LINE_COMPONENT = "component"


def _first(data: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return None


@dataclass(frozen=True)
class CatalogEntry:
    """One product of the external reference catalog."""

    id: str
    name: str
    category: str = ""
    purchase_price_excl_tax: float = 0.0
    sale_price_incl_tax: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "purchasePriceExclTax": self.purchase_price_excl_tax,
            "salePriceInclTax": self.sale_price_incl_tax,
        }


@dataclass(frozen=True)
class CompositionComponent:
    """A component of a bundle.

    ``quantity`` is the number of catalog units consumed by one unit of the
    parent bundle.
    """

    id: str
    name: str
    quantity: int = 1
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "nom": self.name, "quantite": self.quantity}
        if self.category:
            out["categorie"] = self.category
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompositionComponent:
        qty = to_float(_first(data, "quantite", "quantity", "qte"))
        return cls(
            id=to_text(_first(data, "id")),
            name=to_text(_first(data, "nom", "name", "produit")),
            quantity=max(1, int(qty)) if qty else 1,
            category=to_text(_first(data, "categorie", "category")) or None,
        )


def normalize_composition_type(raw: Any) -> str:
    """Map a declared bundle type onto pack/vasque/trio/other.

    Examples:
        >>> normalize_composition_type("Vasques")
        'vasque'
        >>> normalize_composition_type("coffret")
        'other'
    """
    s = to_text(raw).lower()
    for t in ("vasque", "trio", "pack"):
        if t in s:
            return t
    return "other"


@dataclass
class Composition:
    """Bundle definition.

    Exactly one of the two encodings is usually populated: ``components``
    (structured) or ``legacy_components`` (``"<name> (<qty>)"`` strings).
    Use ``CompositionRegistry.components_of`` to get the normalized list.
    """

    id: str
    name: str
    type: str = "other"
    components: list[CompositionComponent] = field(default_factory=list)
    legacy_components: list[str] = field(default_factory=list)

    def to_dict(self, components: list[CompositionComponent] | None = None) -> dict[str, Any]:
        comps = self.components if components is None else components
        out: dict[str, Any] = {
            "id": self.id,
            "nom": self.name,
            "type": self.type,
            "composants": [c.to_dict() for c in comps],
        }
        if not comps and self.legacy_components:
            out["compositions"] = list(self.legacy_components)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_type: str | None = None) -> Composition:
        structured = data.get("composants") or data.get("components") or []
        legacy = data.get("compositions") or []
        return cls(
            id=to_text(_first(data, "id")),
            name=to_text(_first(data, "nom", "name")),
            type=normalize_composition_type(data.get("type") or default_type),
            components=[
                CompositionComponent.from_dict(c) for c in structured if isinstance(c, dict)
            ],
            legacy_components=[str(s) for s in legacy if isinstance(s, str)],
        )


# camelCase key -> legacy aliases accepted on read
_LINE_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "productName": ("productName", "produit", "nom", "product_name"),
    "quantity": ("quantity", "quantite", "qte"),
    "unitPriceInclTax": ("unitPriceInclTax", "prixUnitaire", "prix_ttc"),
    "amountInclTax": ("amountInclTax", "montantTTC", "montant_ttc"),
    "date": ("date",),
    "store": ("store", "boutique"),
    "category": ("category", "categorie"),
    "operationNumber": ("operationNumber", "numeroOperation", "operationId"),
    "isReturn": ("isReturn", "retour"),
    "purchasePriceExclTax": ("purchasePriceExclTax", "prixAchat", "prix_achat"),
    "vat": ("vat", "tva"),
    "discount": ("discount", "remise", "remiseTTC", "remise_ttc"),
    "lineType": ("lineType", "type"),
    "parentBundleId": ("parentBundleId",),
}
_KNOWN_KEYS = {alias for aliases in _LINE_ALIASES.values() for alias in aliases}


@dataclass
class SalesLine:
    """Canonical sold-line record.

    For non-component lines ``amount_incl_tax`` equals
    ``unit_price_incl_tax * quantity``. Lines synthesized by decomposition
    have both at 0 and ``line_type == "component"``.

    Attributes:
        extras: Other provenance fields from the source export (seller,
            customer, payment method, raw date ...), kept verbatim.
    """

    id: str
    product_name: str
    quantity: float
    unit_price_incl_tax: float
    amount_incl_tax: float
    date: datetime | None
    store: str = ""
    category: str | None = None
    operation_number: str | None = None
    is_return: bool = False
    purchase_price_excl_tax: float = 0.0
    vat: float = 0.0
    discount: float = 0.0
    line_type: str = LINE_ORIGINAL
    parent_bundle_id: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def is_component(self) -> bool:
        return self.line_type == LINE_COMPONENT

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extras)
        out.update(
            {
                "id": self.id,
                "productName": self.product_name,
                "quantity": self.quantity,
                "unitPriceInclTax": self.unit_price_incl_tax,
                "amountInclTax": self.amount_incl_tax,
                "date": self.date.isoformat() if self.date else None,
                "store": self.store,
                "category": self.category,
                "operationNumber": self.operation_number,
                "isReturn": self.is_return,
                "purchasePriceExclTax": self.purchase_price_excl_tax,
                "vat": self.vat,
                "discount": self.discount,
                "lineType": self.line_type,
            }
        )
        if self.parent_bundle_id:
            out["parentBundleId"] = self.parent_bundle_id
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SalesLine:
        """Build a line from a persisted or exported dict.

        An unparsable date becomes ``None`` and the raw value is kept in
        ``extras["rawDate"]``.
        """

        def get(key: str) -> Any:
            return _first(data, *_LINE_ALIASES[key])

        quantity = to_float(get("quantity")) or 0.0
        amount = to_float(get("amountInclTax"))
        unit_price = to_float(get("unitPriceInclTax"))
        if amount is None:
            amount = (unit_price or 0.0) * quantity
        if unit_price is None:
            unit_price = amount / quantity if quantity else 0.0

        extras = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}
        raw_date = get("date")
        parsed = to_date(raw_date)
        if parsed is None and raw_date not in (None, ""):
            extras["rawDate"] = raw_date

        line_type = to_text(get("lineType")).lower()
        if line_type in ("decompose", "décomposé", LINE_COMPONENT):
            line_type = LINE_COMPONENT
        else:
            line_type = LINE_ORIGINAL

        return cls(
            id=to_text(get("id")),
            product_name=to_text(get("productName")),
            quantity=quantity,
            unit_price_incl_tax=unit_price,
            amount_incl_tax=amount,
            date=parsed,
            store=to_text(get("store")),
            category=to_text(get("category")) or None,
            operation_number=to_text(get("operationNumber")) or None,
            is_return=bool(to_bool(get("isReturn"))),
            purchase_price_excl_tax=to_float(get("purchasePriceExclTax")) or 0.0,
            vat=to_float(get("vat")) or 0.0,
            discount=to_float(get("discount")) or 0.0,
            line_type=line_type,
            parent_bundle_id=to_text(get("parentBundleId")) or None,
            extras=extras,
        )


@dataclass
class DatasetMetadata:
    """Metadata of the cumulative dataset."""

    known_months: list[str] = field(default_factory=list)
    period_start: str | None = None  # YYYY-MM-DD
    period_end: str | None = None  # YYYY-MM-DD
    last_updated: str | None = None  # ISO timestamp
    line_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatasetMetadata:
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class CumulativeDataset:
    """All sales lines merged so far plus their metadata."""

    lines: list[SalesLine] = field(default_factory=list)
    metadata: DatasetMetadata = field(default_factory=DatasetMetadata)

    def __len__(self) -> int:
        return len(self.lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "ventes": [line.to_dict() for line in self.lines],
        }
