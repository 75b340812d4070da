"""Grouped sums over decomposed / cumulative sales lines.

``by_product`` and ``by_category`` count every line, component lines
included: that is where bundle contents show up as physical units sold.
``by_store`` and ``by_day`` describe transactions and leave component
lines (zero unit price and zero amount) out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from pos_bundles.sales.mapping import is_service_product
from pos_bundles.types import SalesLine

logger = logging.getLogger(__name__)

UNCLASSIFIED = "unclassified"
SERVICES_CATEGORY = "SERVICES ET FRAIS"
TOP_N = 10

COLUMNS = [
    "id",
    "product_name",
    "category",
    "store",
    "day",
    "quantity",
    "unit_price",
    "amount",
    "operation_number",
    "is_return",
    "is_component",
    "parent_bundle_id",
]


def _category_of(line: SalesLine) -> str:
    if line.category:
        return line.category
    if (not line.id or line.id.startswith("SERVICE_")) and is_service_product(line.product_name):
        return SERVICES_CATEGORY
    return UNCLASSIFIED


def lines_to_frame(lines: list[SalesLine]) -> pd.DataFrame:
    """One row per sales line with the columns used by the aggregations."""
    records = [
        {
            "id": line.id,
            "product_name": line.product_name,
            "category": _category_of(line),
            "store": line.store or "",
            "day": pd.Timestamp(line.date).normalize() if line.date else pd.NaT,
            "quantity": float(line.quantity),
            "unit_price": float(line.unit_price_incl_tax),
            "amount": float(line.amount_incl_tax),
            "operation_number": line.operation_number,
            "is_return": bool(line.is_return),
            "is_component": line.is_component,
            "parent_bundle_id": line.parent_bundle_id,
        }
        for line in lines
    ]
    df = pd.DataFrame.from_records(records, columns=COLUMNS)
    df["day"] = pd.to_datetime(df["day"])
    df = df.astype({"quantity": float, "amount": float, "is_return": bool, "is_component": bool})
    return df


def _grouped(df: pd.DataFrame, keys: list[str]) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=keys + ["lines", "quantity", "amount"])
    out = (
        df.groupby(keys, dropna=False)
        .agg(lines=("id", "size"), quantity=("quantity", "sum"), amount=("amount", "sum"))
        .reset_index()
    )
    out["amount"] = out["amount"].round(2)
    return out


@dataclass
class SalesStatistics:
    totals: dict[str, Any] = field(default_factory=dict)
    by_product: pd.DataFrame = field(default_factory=pd.DataFrame)
    by_category: pd.DataFrame = field(default_factory=pd.DataFrame)
    by_store: pd.DataFrame = field(default_factory=pd.DataFrame)
    by_day: pd.DataFrame = field(default_factory=pd.DataFrame)
    top_products: pd.DataFrame = field(default_factory=pd.DataFrame)
    returns: dict[str, Any] = field(default_factory=dict)
    compositions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        def records(df: pd.DataFrame) -> list[dict]:
            out = df.copy()
            if "day" in out.columns:
                out["day"] = pd.to_datetime(out["day"]).dt.strftime("%Y-%m-%d")
            return out.replace({np.nan: None}).to_dict(orient="records")

        return {
            "totals": self.totals,
            "by_product": records(self.by_product),
            "by_category": records(self.by_category),
            "by_store": records(self.by_store),
            "by_day": records(self.by_day),
            "top_products": records(self.top_products),
            "returns": self.returns,
            "compositions": self.compositions,
        }


def compute_statistics(lines: list[SalesLine]) -> SalesStatistics:
    """Aggregate ``lines`` by product, category, store and day."""
    df = lines_to_frame(lines)
    sales = df[~df["is_component"]]

    by_product = _grouped(df, ["id", "product_name"]).sort_values(
        ["amount", "quantity"], ascending=False, ignore_index=True
    )
    by_category = _grouped(df, ["category"]).sort_values("amount", ascending=False, ignore_index=True)
    by_store = _grouped(sales, ["store"]).sort_values("amount", ascending=False, ignore_index=True)
    by_day = _grouped(sales.dropna(subset=["day"]), ["day"]).sort_values("day", ignore_index=True)
    top_products = by_product.sort_values("quantity", ascending=False, ignore_index=True).head(TOP_N)

    returns = df[df["is_return"]]
    days = df["day"].dropna()
    operations = sales["operation_number"].dropna()
    totals = {
        "lines": int(len(df)),
        "sales_lines": int(len(sales)),
        "quantity": float(df["quantity"].sum()) if len(df) else 0.0,
        "revenue": round(float(df["amount"].sum()), 2) if len(df) else 0.0,
        "distinct_products": int(df["id"].nunique()),
        "distinct_operations": int(operations[operations != ""].nunique()),
        "period_start": days.min().strftime("%Y-%m-%d") if len(days) else None,
        "period_end": days.max().strftime("%Y-%m-%d") if len(days) else None,
    }
    components = df[df["is_component"]]
    compositions = {
        "component_lines": int(len(components)),
        "component_quantity": float(components["quantity"].sum()) if len(components) else 0.0,
        "bundles": int(components["parent_bundle_id"].nunique()),
    }
    stats = SalesStatistics(
        totals=totals,
        by_product=by_product,
        by_category=by_category,
        by_store=by_store,
        by_day=by_day,
        top_products=top_products,
        returns={
            "count": int(len(returns)),
            "amount": round(float(returns["amount"].sum()), 2) if len(returns) else 0.0,
        },
        compositions=compositions,
    )
    logger.info(
        "Statistics: %d lines, revenue %.2f, %d products",
        totals["lines"],
        totals["revenue"],
        totals["distinct_products"],
    )
    return stats
