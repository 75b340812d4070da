"""Normalization of composition documents and legacy component strings.

Two encodings of a bundle's components exist in persisted registries:

- structured: ``{"composants": [{"id": "4021", "nom": "VERRE VN", "quantite": 2}]}``
- legacy strings: ``{"compositions": ["VERRE VN 4021 (2)", "SEAU INOX (1)"]}``

Both are converted to ``CompositionComponent`` lists. Registry documents
themselves come as a flat array, ``{"compositions": [...]}`` or an object
keyed by bundle type (``{"vasque": [...], "pack": [...], "trio": [...]}``).
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pos_bundles.exceptions import DataQualityError
from pos_bundles.types import Composition, CompositionComponent
from pos_bundles.utils import synthetic_id

logger = logging.getLogger(__name__)

LEGACY_COMPONENT_RE = re.compile(r"^(.+?)\s*\((\d+)\)$")
CATALOG_ID_RE = re.compile(r"\b(\d{4})\b")


def parse_legacy_component(text: str) -> CompositionComponent | None:
    """Parse ``"<name> (<qty>)"``.

    The name is kept verbatim (trimmed). A 4-digit token in the name is used
    as the component id, otherwise the id is derived from the name.

    Returns:
        The component, or None when the string does not match the pattern.

    Examples:
        >>> parse_legacy_component("WIDGET (3)")
        CompositionComponent(id='WIDGET', name='WIDGET', quantity=3, category=None)
        >>> parse_legacy_component("VERRE VN 4021 (2)").id
        '4021'
        >>> parse_legacy_component("WIDGET x3") is None
        True
    """
    m = LEGACY_COMPONENT_RE.match((text or "").strip())
    if not m:
        return None
    name = m.group(1).strip()
    quantity = int(m.group(2))
    if not name or quantity < 1:
        return None
    id_match = CATALOG_ID_RE.search(name)
    component_id = id_match.group(1) if id_match else synthetic_id(name)
    return CompositionComponent(id=component_id, name=name, quantity=quantity)


def parse_legacy_components(composition_id: str, strings: list[str]) -> list[CompositionComponent]:
    out = []
    for s in strings:
        comp = parse_legacy_component(s)
        if comp is None:
            logger.warning("Composition %s: ignoring malformed component %r", composition_id, s)
            continue
        out.append(comp)
    return out


def parse_registry_document(data: Any) -> list[Composition]:
    """Read every accepted registry shape into a flat list.

    Entries without an id are skipped.

    Raises:
        DataQualityError: If ``data`` is none of the accepted shapes.
    """
    if isinstance(data, list):
        raw: list[tuple[dict, str | None]] = [(d, None) for d in data]
    elif isinstance(data, dict):
        raw = []
        for key, value in data.items():
            if not isinstance(value, list):
                continue
            default_type = None if key == "compositions" else key
            raw.extend((d, default_type) for d in value)
        if not raw and not any(isinstance(v, list) for v in data.values()):
            raise DataQualityError("Composition document has no composition list")
    else:
        raise DataQualityError(f"Unsupported composition document: {type(data).__name__}")

    compositions = []
    for entry, default_type in raw:
        if not isinstance(entry, dict):
            logger.warning("Ignoring non-object composition entry: %r", entry)
            continue
        comp = Composition.from_dict(entry, default_type=default_type)
        if not comp.id:
            logger.warning("Ignoring composition without id: %r", comp.name)
            continue
        compositions.append(comp)
    return compositions
