"""Product reference catalog."""

from pos_bundles.catalog.store import CatalogStore, discover_columns

__all__ = ["CatalogStore", "discover_columns"]
