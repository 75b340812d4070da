"""Products sold without a usable catalog id.

A line is "unclassified" when its id is not a positive number (missing, or a
generated ``TEMP_``/``SERVICE_`` id) or when its name looks like a service
(shipping, delivery). ``find_unclassified`` groups such lines by product
name with a suggested category, and a ``RuleBook`` of user rules assigns
them a category and id on later imports.

Examples:
    >>> suggest_category("Verre VN Tropez")
    'VERRE'
    >>> has_valid_id("4012"), has_valid_id("TEMP_12345")
    (True, False)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable

from pos_bundles.sales.mapping import generated_id, is_service_product
from pos_bundles.storage import JsonStore, save_with_retry
from pos_bundles.types import SalesLine
from pos_bundles.utils import format_day, utc_now_iso

logger = logging.getLogger(__name__)

RULES_KEY = "classification_rules"
SERVICES_CATEGORY = "SERVICES ET FRAIS"
TO_CLASSIFY = "À classer"

# (keywords, category); first match wins, order matters ("vn" after "vasque")
CATEGORY_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("verre", "glass"), "VERRE"),
    (("assiette", "plate"), "ASSIETTE"),
    (("vasque", "bowl"), "VASQUE ET SEAU"),
    (("seau", "bucket"), "VASQUE ET SEAU"),
    (("ice", "glace"), "ICE TROPEZ"),
    (("carton", "box"), "EMBALLAGE"),
    (("sac", "bag"), "EMBALLAGE"),
    (("vn", "vin"), "VERRE"),
    (("bk", "bock"), "VERRE"),
    (("sunset",), "VERRE"),
    (("flute",), "VERRE"),
    (("sobag",), "VASQUE ET SEAU"),
    (("air beach",), "VERRE"),
]


def has_valid_id(product_id: Any) -> bool:
    """True for a positive numeric id."""
    try:
        return float(str(product_id).strip()) > 0
    except (TypeError, ValueError):
        return False


def suggest_category(name: str) -> str:
    lowered = (name or "").lower()
    for keywords, category in CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return TO_CLASSIFY


def needs_classification(line: SalesLine) -> bool:
    return not has_valid_id(line.id) or is_service_product(line.product_name)


@dataclass
class UnclassifiedProduct:
    """Lines of one product name that could not be tied to the catalog."""

    name: str
    occurrences: int = 0
    quantity: float = 0.0
    amount: float = 0.0
    stores: list[str] = field(default_factory=list)
    first_date: datetime | None = None
    suggested_category: str = TO_CLASSIFY
    proposed_id: str = ""
    is_service: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "occurrences": self.occurrences,
            "quantity": self.quantity,
            "amount": round(self.amount, 2),
            "stores": list(self.stores),
            "firstDate": format_day(self.first_date),
            "suggestedCategory": self.suggested_category,
            "proposedId": self.proposed_id,
            "isService": self.is_service,
        }


def find_unclassified(lines: Iterable[SalesLine]) -> list[UnclassifiedProduct]:
    """Group lines needing classification by product name.

    Component lines are ignored: their ids come from the composition
    registry.

    Returns:
        Products sorted by amount, highest first.
    """
    grouped: dict[str, UnclassifiedProduct] = {}
    for line in lines:
        if line.is_component or not needs_classification(line):
            continue
        name = line.product_name or line.id or "?"
        product = grouped.get(name)
        if product is None:
            service = is_service_product(name)
            product = UnclassifiedProduct(
                name=name,
                suggested_category=SERVICES_CATEGORY if service else suggest_category(name),
                proposed_id=generated_id(name),
                is_service=service,
            )
            grouped[name] = product
        product.occurrences += 1
        product.quantity += line.quantity
        product.amount += line.amount_incl_tax
        if line.store and line.store not in product.stores:
            product.stores.append(line.store)
        if line.date and (product.first_date is None or line.date < product.first_date):
            product.first_date = line.date
    products = sorted(grouped.values(), key=lambda p: p.amount, reverse=True)
    logger.info("Found %d unclassified products", len(products))
    return products


def summary(products: list[UnclassifiedProduct]) -> dict[str, Any]:
    by_category: dict[str, int] = defaultdict(int)
    for p in products:
        by_category[p.suggested_category] += 1
    return {
        "products": len(products),
        "services": sum(1 for p in products if p.is_service),
        "occurrences": sum(p.occurrences for p in products),
        "quantity": sum(p.quantity for p in products),
        "amount": round(sum(p.amount for p in products), 2),
        "by_category": dict(by_category),
    }


@dataclass
class ClassificationRule:
    name_pattern: str
    category: str
    product_id: str | None = None
    description: str = ""

    def matches(self, name: str) -> bool:
        pattern = self.name_pattern.strip().lower()
        return bool(pattern) and pattern in (name or "").lower()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClassificationRule":
        return cls(
            name_pattern=str(data.get("name_pattern") or data.get("pattern") or ""),
            category=str(data.get("category") or data.get("categorie") or TO_CLASSIFY),
            product_id=data.get("product_id") or data.get("id") or None,
            description=str(data.get("description") or ""),
        )


class RuleBook:
    """User classification rules, persisted under ``classification_rules``."""

    def __init__(self, store: JsonStore) -> None:
        self.store = store
        self._rules: list[ClassificationRule] | None = None

    def rules(self) -> list[ClassificationRule]:
        if self._rules is None:
            data = self.store.load(RULES_KEY)
            items = data.get("rules", []) if isinstance(data, dict) else data or []
            self._rules = [
                ClassificationRule.from_dict(d) for d in items if isinstance(d, dict)
            ]
            self._rules = [r for r in self._rules if r.name_pattern]
        return list(self._rules)

    def _save(self, rules: list[ClassificationRule]) -> None:
        save_with_retry(self.store, RULES_KEY, {"rules": [r.to_dict() for r in rules]})
        self._rules = rules

    def add(self, rule: ClassificationRule) -> None:
        """Add ``rule``, replacing any rule with the same pattern."""
        key = rule.name_pattern.strip().lower()
        rules = [r for r in self.rules() if r.name_pattern.strip().lower() != key]
        rules.append(rule)
        self._save(rules)
        logger.info("Classification rule '%s' -> %s", rule.name_pattern, rule.category)

    def remove(self, name_pattern: str) -> bool:
        key = name_pattern.strip().lower()
        current = self.rules()
        rules = [r for r in current if r.name_pattern.strip().lower() != key]
        if len(rules) == len(current):
            return False
        self._save(rules)
        return True

    def match(self, name: str) -> ClassificationRule | None:
        for rule in self.rules():
            if rule.matches(name):
                return rule
        return None

    def apply(self, lines: Iterable[SalesLine]) -> list[SalesLine]:
        """Copies of ``lines`` with rules applied to the lines needing them.

        Lines with a valid catalog id that are not services are returned
        unchanged, as are component lines.
        """
        out = []
        applied = 0
        for line in lines:
            if line.is_component or not needs_classification(line):
                out.append(replace(line, extras=dict(line.extras)))
                continue
            rule = self.match(line.product_name)
            if rule is not None:
                out.append(
                    replace(
                        line,
                        id=rule.product_id or generated_id(line.product_name),
                        category=rule.category,
                        extras=dict(line.extras),
                    )
                )
                applied += 1
            elif is_service_product(line.product_name):
                new_id = line.id if line.id.startswith("SERVICE_") else generated_id(line.product_name)
                out.append(
                    replace(line, id=new_id, category=SERVICES_CATEGORY, extras=dict(line.extras))
                )
                applied += 1
            else:
                out.append(replace(line, extras=dict(line.extras)))
        logger.info("Classification rules applied to %d lines", applied)
        return out

    def export_rules(self) -> dict[str, Any]:
        rules = self.rules()
        return {
            "rules": [r.to_dict() for r in rules],
            "metadata": {"count": len(rules), "exported_at": utc_now_iso()},
        }

    def import_rules(self, data: Any, replace_existing: bool = False) -> int:
        """Merge rules from an ``export_rules`` document (or a plain list).

        Returns:
            Number of rules imported.
        """
        items = data.get("rules", []) if isinstance(data, dict) else data
        incoming = [ClassificationRule.from_dict(d) for d in items or [] if isinstance(d, dict)]
        incoming = [r for r in incoming if r.name_pattern]
        rules = [] if replace_existing else self.rules()
        keys = {r.name_pattern.strip().lower() for r in incoming}
        rules = [r for r in rules if r.name_pattern.strip().lower() not in keys] + incoming
        self._save(rules)
        logger.info("Imported %d classification rules", len(incoming))
        return len(incoming)
