"""Public API: one object wiring store, catalog, registry and fusion.

Examples:
    >>> from pos_bundles import PosBundles, Settings
    >>> app = PosBundles.from_settings(Settings.from_env())
    >>> batch = app.import_sales("exports/ventes-janvier.xlsx")
    >>> result = app.merge_month(batch.lines, month="2025-01")
    >>> result.success
    True
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import requests

from pos_bundles.catalog.store import CatalogStore
from pos_bundles.classify.unclassified import RuleBook, UnclassifiedProduct, find_unclassified
from pos_bundles.compositions.registry import CompositionRegistry
from pos_bundles.config import SaveConfig, Settings
from pos_bundles.decompose.engine import Decomposer
from pos_bundles.fusion.merge import MergeResult
from pos_bundles.fusion.service import MonthlyFusionService
from pos_bundles.fusion.session import MergeSession
from pos_bundles.reconcile.resolver import NameResolver
from pos_bundles.sales.extract import read_sales_file
from pos_bundles.sales.json_import import ImportResult, load_sales_json_file
from pos_bundles.sales.mapping import map_rows
from pos_bundles.sources import make_session
from pos_bundles.stats.aggregate import SalesStatistics, compute_statistics
from pos_bundles.storage import DirectoryJsonStore, JsonStore

logger = logging.getLogger(__name__)

SPREADSHEET_SUFFIXES = (".xlsx", ".xls", ".csv")


class PosBundles:
    """Import, decompose and merge monthly POS sales.

    Every collaborator can be injected; ``from_settings`` builds the
    default directory-backed setup.
    """

    def __init__(
        self,
        store: JsonStore,
        catalog: CatalogStore | None = None,
        registry: CompositionRegistry | None = None,
        resolver: NameResolver | None = None,
        exports_dir: Path | None = None,
        save_config: SaveConfig | None = None,
        compositions_source: str | Path | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.store = store
        self.catalog = catalog if catalog is not None else CatalogStore()
        if registry is None:
            registry = CompositionRegistry(store, compositions_source, session)
            registry.load()
        self.registry = registry
        self.resolver = resolver or NameResolver()
        self.decomposer = Decomposer(self.registry, self.catalog, self.resolver)
        self.fusion = MonthlyFusionService(store, exports_dir, save_config)
        self.rules = RuleBook(store)

    @classmethod
    def from_settings(
        cls, settings: Settings, resolver: NameResolver | None = None
    ) -> PosBundles:
        """Directory store under ``settings.paths``, catalog and registry loaded.

        Catalog or registry load failures are logged and leave them empty.
        """
        paths = settings.paths
        paths.ensure_dirs()
        session = make_session(timeout=settings.http_timeout)
        store = DirectoryJsonStore(paths.store_dir, settings.quota_bytes)
        catalog = CatalogStore.load(settings.catalog_source, session)
        return cls(
            store,
            catalog=catalog,
            resolver=resolver,
            exports_dir=paths.exports_dir,
            compositions_source=settings.compositions_source,
            session=session,
        )

    # ----------------------------------------------------------------- import

    def import_sales(
        self,
        path: str | Path,
        sheet: str | None = None,
        money_in_cents: bool = False,
        assign_missing_ids: bool = False,
        apply_rules: bool = True,
    ) -> ImportResult:
        """Read a sales export and decompose its bundles.

        Spreadsheets (xlsx/xls/csv) are mapped from their headers; JSON files
        are either already decomposed (``ventes``) or converted rows
        (``data``, money in cents).

        Args:
            path: Sales export.
            sheet: Sheet name for workbooks (first sheet by default).
            money_in_cents: Spreadsheet money columns are in cents.
            assign_missing_ids: Keep spreadsheet rows without an id.
            apply_rules: Apply the saved classification rules to the result.

        Raises:
            FileNotFoundError: If ``path`` does not exist.
            DataQualityError: Unsupported format or unrecognised JSON.
        """
        path = Path(path)
        if path.suffix.lower() == ".json":
            if not path.exists():
                raise FileNotFoundError(f"Sales file not found: {path}")
            result = load_sales_json_file(path, self.decomposer)
        else:
            rows = read_sales_file(path, sheet)
            report = map_rows(
                rows, money_in_cents=money_in_cents, assign_missing_ids=assign_missing_ids
            )
            decomposition = self.decomposer.decompose(report.lines)
            result = ImportResult(
                original=report.lines,
                lines=decomposition.expanded,
                mapping=report,
                decomposition=decomposition,
            )
        if apply_rules and self.rules.rules():
            result.lines = self.rules.apply(result.lines)
        logger.info(
            "Imported %s: %d lines, %d after decomposition",
            path.name,
            len(result.original),
            len(result.lines),
        )
        return result

    # ----------------------------------------------------------------- fusion

    def merge_month(
        self,
        batch: list,
        month: str | None = None,
        eliminate_duplicates: bool = False,
    ) -> MergeResult:
        """Merge a decomposed batch into the cumulative dataset."""
        return self.fusion.merge(batch, eliminate_duplicates=eliminate_duplicates, month=month)

    def merge_session(self, month: str | None = None) -> MergeSession:
        return MergeSession(self.fusion, month)

    def restore(self, path: str | Path) -> MergeResult:
        return self.fusion.restore_from_file(path)

    # ----------------------------------------------------------------- reports

    def statistics(self) -> SalesStatistics:
        """Statistics over the cumulative dataset."""
        return compute_statistics(self.fusion.load().lines)

    def unclassified(self) -> list[UnclassifiedProduct]:
        return find_unclassified(self.fusion.load().lines)

    def summary(self) -> dict[str, Any]:
        return {
            "compositions": len(self.registry),
            "catalog_entries": len(self.catalog),
            "dataset": self.fusion.statistics(),
            "rules": len(self.rules.rules()),
        }
