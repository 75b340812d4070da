"""POS Bundles - bundle decomposition and monthly fusion of POS sales.

A POS export records a bundle (a "vasque", a "trio", a "pack") as one sales
line. This package expands those lines into the products they contain, so
per-product quantities are right, and merges monthly batches into one
persisted cumulative dataset.

Module Structure:
    pos_bundles.compositions: Composition registry, legacy normalization, naming
    pos_bundles.catalog: Product reference catalog
    pos_bundles.reconcile: Component name -> catalog id resolution
    pos_bundles.decompose: Bundle decomposition engine
    pos_bundles.fusion: Cumulative dataset, duplicate keys, merge sessions
    pos_bundles.sales: Sales export reading and column mapping
    pos_bundles.stats: Grouped sums over sales lines
    pos_bundles.classify: Products sold without a catalog id
    pos_bundles.storage: Injectable JSON document stores

Quick Start:
    >>> from pos_bundles import PosBundles, Settings
    >>>
    >>> app = PosBundles.from_settings(Settings.from_env())
    >>>
    >>> # Import and decompose a month of sales
    >>> batch = app.import_sales("exports/ventes-janvier.xlsx")
    >>> print(batch.components_added)
    >>>
    >>> # Merge it into the cumulative dataset
    >>> result = app.merge_month(batch.lines, month="2025-01")
    >>> print(result.merged_count)
"""

__version__ = "0.1.0"

from pos_bundles.api import PosBundles
from pos_bundles.config import DataPaths, SaveConfig, Settings
from pos_bundles.decompose.engine import Decomposer, decompose
from pos_bundles.exceptions import (
    ConfigError,
    DataQualityError,
    MergeStateError,
    PersistError,
    PosBundlesError,
    StorageQuotaError,
)
from pos_bundles.storage import DirectoryJsonStore, MemoryJsonStore

__all__ = [
    "ConfigError",
    "DataPaths",
    "DataQualityError",
    "Decomposer",
    "DirectoryJsonStore",
    "MemoryJsonStore",
    "MergeStateError",
    "PersistError",
    "PosBundles",
    "PosBundlesError",
    "SaveConfig",
    "Settings",
    "StorageQuotaError",
    "__version__",
    "decompose",
]
