"""Shared fixtures: small in-memory store, catalog and registry."""

import pytest

from pos_bundles.catalog.store import CatalogStore
from pos_bundles.compositions.registry import CompositionRegistry
from pos_bundles.storage import MemoryJsonStore
from pos_bundles.types import CatalogEntry


@pytest.fixture
def store() -> MemoryJsonStore:
    return MemoryJsonStore()


@pytest.fixture
def catalog() -> CatalogStore:
    """Three products, one glass and two bowl accessories."""
    return CatalogStore(
        [
            CatalogEntry(id="200", name="GLASS", category="VERRE", sale_price_incl_tax=1.5),
            CatalogEntry(id="4010", name="VASQUE INOX", category="VASQUE ET SEAU"),
            CatalogEntry(id="4030", name="SEAU A GLACE", category="VASQUE ET SEAU"),
        ]
    )


@pytest.fixture
def registry(store: MemoryJsonStore) -> CompositionRegistry:
    """Registry with pack 100 (2 x GLASS), loaded from the store."""
    store.save(
        "compositions",
        {
            "compositions": [
                {
                    "id": "100",
                    "nom": "PACK A",
                    "type": "pack",
                    "composants": [{"nom": "GLASS", "quantite": 2}],
                },
                {
                    "id": "300",
                    "nom": "VASQUE SUNSET",
                    "type": "vasque",
                    "compositions": ["VASQUE INOX (1)", "GLASS (4)", "PAILLE BAMBOU (2)"],
                },
            ]
        },
    )
    reg = CompositionRegistry(store)
    reg.load()
    return reg
