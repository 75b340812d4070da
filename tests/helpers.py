"""Shared test helpers."""

from datetime import datetime

from pos_bundles.types import SalesLine


def make_line(
    id: str,
    quantity: float = 1,
    amount: float | None = None,
    unit_price: float = 0.0,
    name: str | None = None,
    day: datetime | None = datetime(2025, 1, 15),
    store: str = "Saint-Tropez",
    **kwargs,
) -> SalesLine:
    """Build a sales line; the amount defaults to ``unit_price * quantity``."""
    return SalesLine(
        id=id,
        product_name=name if name is not None else f"PRODUCT {id}",
        quantity=quantity,
        unit_price_incl_tax=unit_price,
        amount_incl_tax=unit_price * quantity if amount is None else amount,
        date=day,
        store=store,
        **kwargs,
    )
