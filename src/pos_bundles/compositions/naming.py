"""Descriptive names for compositions.

Bundles imported from older registries often carry generic names
("Composition 3105", or just the id). ``descriptive_name`` builds a readable
name from the components, main container first:

    VASQUE INOX + VERRE VN x6 + SEAU GLACE
"""

from __future__ import annotations

import logging

from pos_bundles.compositions.registry import CompositionRegistry
from pos_bundles.types import Composition, CompositionComponent

logger = logging.getLogger(__name__)

MAIN_COMPONENT_KEYWORDS = ("VASQUE", "SEAU", "SOBAG")
MAX_OTHER_COMPONENTS = 3
MAX_NAME_LENGTH = 80


def _label(component: CompositionComponent) -> str:
    name = component.name.strip()
    return f"{name} x{component.quantity}" if component.quantity > 1 else name


def descriptive_name(composition: Composition, components: list[CompositionComponent]) -> str:
    """Build a name from the composition's components.

    Examples:
        >>> comp = Composition(id="3105", name="")
        >>> descriptive_name(comp, [])
        'Composition 3105'
    """
    if not components:
        return f"Composition {composition.id}"

    main = next(
        (c for c in components if any(k in c.name.upper() for k in MAIN_COMPONENT_KEYWORDS)),
        None,
    )
    others = [c for c in components if c is not main]
    parts = [_label(main)] if main else []
    parts.extend(_label(c) for c in others[:MAX_OTHER_COMPONENTS])
    remaining = len(others) - MAX_OTHER_COMPONENTS
    if remaining > 0:
        parts.append(f"et {remaining} autres")

    name = " + ".join(parts)
    if len(name) > MAX_NAME_LENGTH:
        name = name[: MAX_NAME_LENGTH - 3] + "..."
    return name


def is_generic_name(composition: Composition) -> bool:
    name = composition.name.strip()
    return not name or name == composition.id or name.startswith("Composition ")


def fix_names(registry: CompositionRegistry) -> int:
    """Rename compositions with generic names.

    Returns:
        Number of compositions renamed and persisted.
    """
    fixed = 0
    for comp in registry:
        if not is_generic_name(comp):
            continue
        components = registry.components_of(comp)
        new_name = descriptive_name(comp, components)
        if new_name == comp.name:
            continue
        updated = Composition(
            id=comp.id,
            name=new_name,
            type=comp.type,
            components=list(components),
        )
        if registry.modify(comp.id, updated):
            logger.debug("Renamed composition %s -> %s", comp.id, new_name)
            fixed += 1
    logger.info("Fixed %d composition names", fixed)
    return fixed
