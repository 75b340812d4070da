"""Bundle decomposition.

Expands bundle sales lines into their components so that per-product
quantities can be computed without counting bundle revenue twice.

Two passes over the input batch, in input order:

1. every input line is copied to the output unchanged. Bundle lines keep
   their full price; this is the only place bundle revenue is recorded.
2. for every line whose id is a known composition, each component
   contributes ``line.quantity * component.quantity`` units:

   - if the output already holds a line with the component's resolved id
     (a standalone sale from pass 1, or a component added earlier in pass
     2), that line's quantity grows and its amount is recomputed from its
     own unit price;
   - otherwise a zero-priced component line is appended.

Pass 2 relies on pass 1 being complete. Expansion is one level deep: a
component that is itself a bundle is not expanded again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from pos_bundles.catalog.store import CatalogStore
from pos_bundles.compositions.registry import CompositionRegistry
from pos_bundles.reconcile.resolver import NameResolver, Resolution
from pos_bundles.types import LINE_COMPONENT, CompositionComponent, SalesLine

logger = logging.getLogger(__name__)

UNCLASSIFIED = "unclassified"


@dataclass
class DecompositionResult:
    """Output of ``decompose``.

    Attributes:
        expanded: Input lines (copied) followed by synthesized component lines.
        components_added: Number of component lines appended.
        components_merged: Number of contributions merged into existing lines.
        bundles_expanded: Number of input lines recognised as bundles.
        unresolved: Component names that fell back to a synthetic id.
    """

    expanded: list[SalesLine] = field(default_factory=list)
    components_added: int = 0
    components_merged: int = 0
    bundles_expanded: int = 0
    unresolved: list[str] = field(default_factory=list)


def _copy(line: SalesLine) -> SalesLine:
    return replace(line, extras=dict(line.extras))


def _component_category(component: CompositionComponent, resolution: Resolution) -> str:
    if component.category:
        return component.category
    if resolution.entry is not None and resolution.entry.category:
        return resolution.entry.category
    return UNCLASSIFIED


class Decomposer:
    """Decomposition engine bound to one registry, catalog and resolver."""

    def __init__(
        self,
        registry: CompositionRegistry,
        catalog: CatalogStore,
        resolver: NameResolver | None = None,
    ) -> None:
        self.registry = registry
        self.catalog = catalog
        self.resolver = resolver or NameResolver()

    def decompose(self, batch: list[SalesLine]) -> DecompositionResult:
        """Expand the bundles of ``batch``. The input lines are not modified."""
        result = DecompositionResult()
        output = result.expanded
        first_index: dict[str, int] = {}

        # pass 1
        for line in batch:
            first_index.setdefault(line.id, len(output))
            output.append(_copy(line))

        # pass 2
        unresolved: set[str] = set()
        for line in batch:
            composition = self.registry.find_by_id(line.id)
            if composition is None:
                continue
            components = self.registry.components_of(composition)
            if not components:
                logger.warning("Composition %s has no usable components", composition.id)
                continue
            result.bundles_expanded += 1

            for component in components:
                contributed = line.quantity * component.quantity
                resolution = self.resolver.resolve(
                    component.name, self.catalog, declared_id=component.id
                )
                if not resolution.resolved and component.name not in unresolved:
                    unresolved.add(component.name)
                    result.unresolved.append(component.name)
                if resolution.id in self.registry:
                    logger.debug(
                        "Component %s of %s is itself a bundle; not expanded",
                        resolution.id,
                        composition.id,
                    )

                idx = first_index.get(resolution.id)
                if idx is not None:
                    existing = output[idx]
                    existing.quantity += contributed
                    existing.amount_incl_tax = existing.unit_price_incl_tax * existing.quantity
                    result.components_merged += 1
                    continue

                first_index[resolution.id] = len(output)
                output.append(
                    replace(
                        line,
                        id=resolution.id,
                        product_name=resolution.name,
                        quantity=contributed,
                        unit_price_incl_tax=0.0,
                        amount_incl_tax=0.0,
                        purchase_price_excl_tax=0.0,
                        vat=0.0,
                        discount=0.0,
                        category=_component_category(component, resolution),
                        line_type=LINE_COMPONENT,
                        parent_bundle_id=line.id,
                        extras=dict(line.extras),
                    )
                )
                result.components_added += 1

        logger.info(
            "Decomposed %d lines: %d bundles, %d component lines added, %d merged",
            len(batch),
            result.bundles_expanded,
            result.components_added,
            result.components_merged,
        )
        if result.unresolved:
            logger.warning(
                "%d component names not found in catalog: %s",
                len(result.unresolved),
                ", ".join(result.unresolved[:10]),
            )
        return result


def decompose(
    batch: list[SalesLine],
    registry: CompositionRegistry,
    catalog: CatalogStore,
    resolver: NameResolver | None = None,
) -> DecompositionResult:
    """Expand the bundles of ``batch``; see ``Decomposer``."""
    return Decomposer(registry, catalog, resolver).decompose(batch)
