"""Duplicate keys for sales lines.

Two lines are duplicates iff their keys are identical::

    YYYY-MM-DD|id|productName|store|quantity|amount

Amounts are compared exactly (no rounding). Integral numbers are written
without a decimal part so that ``3`` and ``3.0`` produce the same key.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from pos_bundles.types import SalesLine
from pos_bundles.utils import format_day


def format_number(value: float) -> str:
    """Exact, stable text form of a number.

    Examples:
        >>> format_number(3.0)
        '3'
        >>> format_number(12.5)
        '12.5'
        >>> format_number(0.1 + 0.2)
        '0.30000000000000004'
    """
    v = float(value)
    if v.is_integer():
        return str(int(v))
    return repr(v)


def sale_key(line: SalesLine) -> str:
    return "|".join(
        [
            format_day(line.date),
            line.id,
            line.product_name,
            line.store,
            format_number(line.quantity),
            format_number(line.amount_incl_tax),
        ]
    )


@dataclass
class DuplicateDetail:
    date: str
    product: str
    store: str
    quantity: float
    amount: float
    occurrence_count: int
    key: str = ""


@dataclass
class DuplicateReport:
    """Internal duplicates of one batch.

    Attributes:
        total: Excess occurrences (a line present twice counts 1).
        details: One entry per key occurring more than once, in first-seen order.
    """

    total: int = 0
    details: list[DuplicateDetail] = field(default_factory=list)

    @property
    def has_duplicates(self) -> bool:
        return self.total > 0


def detect_internal_duplicates(lines: list[SalesLine]) -> DuplicateReport:
    """Count key collisions inside ``lines`` alone."""
    keys = [sale_key(line) for line in lines]
    counts = Counter(keys)
    report = DuplicateReport()
    seen: set[str] = set()
    for line, key in zip(lines, keys):
        n = counts[key]
        if n < 2 or key in seen:
            continue
        seen.add(key)
        report.total += n - 1
        report.details.append(
            DuplicateDetail(
                date=format_day(line.date),
                product=line.product_name,
                store=line.store,
                quantity=line.quantity,
                amount=line.amount_incl_tax,
                occurrence_count=n,
                key=key,
            )
        )
    return report
