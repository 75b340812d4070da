"""Composition registry: bundle id -> definition.

Load order (first non-empty source wins):
    1. store key ``compositions``
    2. legacy store key ``compositions-unifiees``
    3. bundled reference file or URL

When the registry comes from 2 or 3 it is written back under
``compositions``. If every source fails the registry is empty.

Mutations (add/modify/remove) re-persist the whole registry; when the write
fails the in-memory registry is left as it was.
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Any, Iterator

import requests

from pos_bundles.compositions.normalize import parse_legacy_components, parse_registry_document
from pos_bundles.exceptions import PosBundlesError
from pos_bundles.sources import fetch_json
from pos_bundles.storage import JsonStore, save_with_retry
from pos_bundles.types import Composition, CompositionComponent
from pos_bundles.utils import utc_now_iso

logger = logging.getLogger(__name__)

STORE_KEY = "compositions"
LEGACY_STORE_KEY = "compositions-unifiees"


class CompositionRegistry:
    def __init__(
        self,
        store: JsonStore,
        fallback_source: str | Path | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.store = store
        self.fallback_source = fallback_source
        self.session = session
        self._items: dict[str, Composition] = {}
        self._components: dict[str, tuple[tuple[str, ...], list[CompositionComponent]]] = {}
        self.loaded_from: str | None = None

    # ----------------------------------------------------------------- loading

    def _from_store(self, key: str) -> list[Composition] | None:
        try:
            data = self.store.load(key)
            return parse_registry_document(data) if data is not None else None
        except Exception as e:
            logger.warning("Could not read compositions from store key '%s': %s", key, e)
            return None

    def _from_fallback(self) -> list[Composition] | None:
        if not self.fallback_source:
            return None
        try:
            return parse_registry_document(fetch_json(self.fallback_source, self.session))
        except Exception as e:
            logger.warning("Could not read bundled compositions %s: %s", self.fallback_source, e)
            return None

    def load(self) -> int:
        """Load from the first available source.

        A source is available when its document exists and can be read; an
        empty stored registry is used as is, so removed bundles stay removed.

        Returns:
            Number of compositions loaded (0 when every source failed).
        """
        sources = [
            (STORE_KEY, lambda: self._from_store(STORE_KEY)),
            (LEGACY_STORE_KEY, lambda: self._from_store(LEGACY_STORE_KEY)),
            ("fallback", self._from_fallback),
        ]
        self._items.clear()
        self._components.clear()
        self.loaded_from = None
        for label, loader in sources:
            compositions = loader()
            if compositions is None:
                continue
            for comp in compositions:
                if comp.id in self._items:
                    logger.warning("Duplicate composition id %s; keeping the first", comp.id)
                    continue
                self._items[comp.id] = comp
            self.loaded_from = label
            break

        if self.loaded_from is None:
            logger.warning("No composition source available; registry is empty")
            return 0

        logger.info("Loaded %d compositions from %s", len(self._items), self.loaded_from)
        if self.loaded_from != STORE_KEY and not self._persist(list(self._items.values())):
            logger.warning("Compositions loaded from %s could not be saved", self.loaded_from)
        return len(self._items)

    # ----------------------------------------------------------------- lookup

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Composition]:
        return iter(list(self._items.values()))

    def __contains__(self, composition_id: object) -> bool:
        return str(composition_id) in self._items

    def ids(self) -> list[str]:
        return list(self._items)

    def find_by_id(self, composition_id: str) -> Composition | None:
        return self._items.get(str(composition_id).strip())

    def components_of(self, composition: Composition) -> list[CompositionComponent]:
        """Normalized component list of a composition.

        Structured components are returned as they are. Legacy strings are
        parsed once per composition and memoized; malformed strings are
        dropped with a warning.
        """
        if composition.components:
            return composition.components
        signature = tuple(composition.legacy_components)
        cached = self._components.get(composition.id)
        if cached is not None and cached[0] == signature:
            return cached[1]
        parsed = parse_legacy_components(composition.id, composition.legacy_components)
        self._components[composition.id] = (signature, parsed)
        return parsed

    def search(self, text: str) -> list[Composition]:
        """Case-insensitive substring search over id and name."""
        needle = (text or "").strip().lower()
        if not needle:
            return list(self._items.values())
        return [
            c for c in self._items.values() if needle in c.id.lower() or needle in c.name.lower()
        ]

    # ----------------------------------------------------------------- mutation

    def _persist(self, compositions: list[Composition]) -> bool:
        document = {"compositions": [c.to_dict(self.components_of(c)) for c in compositions]}
        try:
            save_with_retry(self.store, STORE_KEY, document)
        except (PosBundlesError, OSError) as e:
            logger.error("Saving compositions failed: %s", e)
            return False
        return True

    def _commit(self, items: dict[str, Composition]) -> bool:
        if not self._persist(list(items.values())):
            return False
        self._items = items
        return True

    def add(self, composition: Composition) -> bool:
        """Add a new composition. Fails if the id already exists."""
        if not composition.id or composition.id in self._items:
            logger.warning("Cannot add composition %r: id missing or already used", composition.id)
            return False
        items = dict(self._items)
        items[composition.id] = composition
        return self._commit(items)

    def modify(self, composition_id: str, updated: Composition) -> bool:
        """Replace an existing composition. Fails if ``composition_id`` is unknown.

        ``updated`` may carry a new id as long as it is not used by another
        composition.
        """
        if composition_id not in self._items:
            logger.warning("Cannot modify composition %r: not found", composition_id)
            return False
        if updated.id != composition_id and updated.id in self._items:
            logger.warning("Cannot rename composition %s to %s: id in use", composition_id, updated.id)
            return False
        items: dict[str, Composition] = {}
        for key, comp in self._items.items():
            if key == composition_id:
                items[updated.id] = updated
            else:
                items[key] = comp
        if not self._commit(items):
            return False
        self._components.pop(composition_id, None)
        return True

    def remove(self, composition_id: str) -> bool:
        """Remove a composition. Fails if ``composition_id`` is unknown."""
        if composition_id not in self._items:
            logger.warning("Cannot remove composition %r: not found", composition_id)
            return False
        items = {k: v for k, v in self._items.items() if k != composition_id}
        if not self._commit(items):
            return False
        self._components.pop(composition_id, None)
        return True

    def save(self) -> bool:
        """Persist the current registry as it is."""
        return self._persist(list(self._items.values()))

    def export(self) -> dict[str, Any]:
        """Registry document plus summary metadata."""
        comps = list(self._items.values())
        return {
            "compositions": [c.to_dict(self.components_of(c)) for c in comps],
            "metadata": {
                "count": len(comps),
                "by_type": dict(Counter(c.type for c in comps)),
                "exported_at": utc_now_iso(),
            },
        }
