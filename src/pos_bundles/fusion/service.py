"""Monthly fusion service: the persisted cumulative dataset.

The dataset and its metadata live in one store document
(``cumulative_dataset`` -> ``{"metadata": {...}, "ventes": [...]}``) so that a
merge is a single write. Each merge also appends a summary to
``merge_history`` and, when an exports directory is configured, writes a
month file and a cumulative file laid out by ``SaveConfig``.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import date
from pathlib import Path
from typing import Any

from pos_bundles.config import SaveConfig
from pos_bundles.exceptions import ConfigError, DataQualityError, PosBundlesError
from pos_bundles.fusion.keys import DuplicateReport, detect_internal_duplicates
from pos_bundles.fusion.merge import MergeResult, build_metadata, merge_datasets
from pos_bundles.storage import JsonStore, save_with_retry
from pos_bundles.types import CumulativeDataset, DatasetMetadata, SalesLine
from pos_bundles.utils import month_key, utc_now_iso

logger = logging.getLogger(__name__)

DATASET_KEY = "cumulative_dataset"
HISTORY_KEY = "merge_history"
MAX_HISTORY = 50


def parse_sales_document(data: Any) -> list[SalesLine]:
    """Read ``{"ventes": [...]}`` or a bare array of sales lines.

    Raises:
        DataQualityError: If no sales array is present.
    """
    if isinstance(data, dict) and isinstance(data.get("ventes"), list):
        records = data["ventes"]
    elif isinstance(data, list):
        records = data
    else:
        raise DataQualityError("No sales array found (expected {'ventes': [...]} or a list)")
    if not all(isinstance(r, dict) for r in records):
        raise DataQualityError("Sales array must contain objects")
    return [SalesLine.from_dict(r) for r in records]


class MonthlyFusionService:
    def __init__(
        self,
        store: JsonStore,
        exports_dir: Path | None = None,
        save_config: SaveConfig | None = None,
    ) -> None:
        self.store = store
        self.exports_dir = Path(exports_dir) if exports_dir else None
        self.save_config = save_config or SaveConfig()

    # ----------------------------------------------------------------- dataset

    def load(self) -> CumulativeDataset:
        """Current cumulative dataset (empty when nothing was merged yet).

        Raises:
            DataQualityError: If the stored document is unreadable; merging
                over it would lose history.
        """
        try:
            data = self.store.load(DATASET_KEY)
        except ValueError as e:
            raise DataQualityError(f"Stored dataset is not valid JSON: {e}") from e
        if data is None:
            return CumulativeDataset()
        lines = parse_sales_document(data)
        meta = data.get("metadata") if isinstance(data, dict) else None
        metadata = DatasetMetadata.from_dict(meta) if meta else build_metadata(lines)
        return CumulativeDataset(lines=lines, metadata=metadata)

    def _persist(self, dataset: CumulativeDataset) -> None:
        save_with_retry(self.store, DATASET_KEY, dataset.to_dict())

    def _record_history(self, result: MergeResult) -> None:
        history = self.store.load(HISTORY_KEY) or []
        entry = result.summary()
        entry["at"] = utc_now_iso()
        history = (history + [entry])[-MAX_HISTORY:]
        try:
            self.store.save(HISTORY_KEY, history)
        except PosBundlesError as e:
            logger.warning("Merge history not saved: %s", e)

    def merge_history(self) -> list[dict]:
        return self.store.load(HISTORY_KEY) or []

    # ----------------------------------------------------------------- merge

    def detect_duplicates(self, incoming: list[SalesLine]) -> DuplicateReport:
        report = detect_internal_duplicates(incoming)
        if report.has_duplicates:
            logger.warning("%d internal duplicates in incoming batch", report.total)
        return report

    def merge(
        self,
        incoming: list[SalesLine],
        eliminate_duplicates: bool = False,
        month: str | None = None,
    ) -> MergeResult:
        """Merge ``incoming`` into the stored dataset and persist it.

        Args:
            incoming: Decomposed sales lines.
            eliminate_duplicates: Skip lines whose key already exists.
            month: ``YYYY-MM`` of the month export file; defaults to the most
                frequent month of ``incoming``.
        """
        try:
            existing = self.load()
        except DataQualityError as e:
            return MergeResult(success=False, message=f"Stored dataset unreadable: {e}")

        result = merge_datasets(existing, incoming, eliminate_duplicates)
        try:
            self._persist(result.dataset)
        except (PosBundlesError, OSError) as e:
            logger.error("Persisting merged dataset failed: %s", e)
            return MergeResult(
                success=False,
                message=f"Save failed: {e}",
                existing_count=result.existing_count,
                incoming_count=result.incoming_count,
                internal_duplicates=result.internal_duplicates,
            )

        if self.exports_dir is not None:
            month = month or self._dominant_month(incoming)
            try:
                result.saved_files = self.export_files(result.dataset, month)
            except OSError as e:
                logger.warning("Export files not written: %s", e)
        self._record_history(result)
        return result

    @staticmethod
    def _dominant_month(lines: list[SalesLine]) -> str | None:
        months = Counter(month_key(line.date) for line in lines if line.date is not None)
        return months.most_common(1)[0][0] if months else None

    # ----------------------------------------------------------------- export

    def _file_name(self, stem: str) -> str:
        if self.save_config.automatic_naming:
            return f"{stem}-{date.today().isoformat()}.json"
        return f"{stem}.json"

    def export_files(self, dataset: CumulativeDataset, month: str | None) -> list[str]:
        """Write the month file (when ``month`` is known) and the cumulative file.

        Returns:
            Paths written, relative to the exports directory.

        Raises:
            ConfigError: If no exports directory is configured.
        """
        if self.exports_dir is None:
            raise ConfigError("No exports directory configured")
        written = []
        if month:
            month_lines = [
                line for line in dataset.lines if line.date and month_key(line.date) == month
            ]
            month_meta = build_metadata(month_lines)
            rel = self.save_config.month_folder(month) / self._file_name(f"ventes-{month}")
            self._write_json(rel, CumulativeDataset(month_lines, month_meta).to_dict())
            written.append(rel.as_posix())

        rel = Path(self.save_config.base_folder) / self._file_name("ventes-cumulatives")
        self._write_json(rel, dataset.to_dict())
        written.append(rel.as_posix())
        return written

    def _write_json(self, rel: Path, document: dict) -> None:
        path = self.exports_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
        logger.info("Wrote %s", path)

    def export_cumulative(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.load().to_dict(), f, indent=2, ensure_ascii=False)
        return path

    # ----------------------------------------------------------------- restore

    def restore_from_json(self, data: Any) -> MergeResult:
        """Replace the dataset with the lines of ``data``.

        On any format or save error the stored dataset is left untouched.
        """
        try:
            lines = parse_sales_document(data)
        except DataQualityError as e:
            return MergeResult(success=False, message=str(e))
        dataset = CumulativeDataset(lines=lines, metadata=build_metadata(lines))
        try:
            self._persist(dataset)
        except (PosBundlesError, OSError) as e:
            return MergeResult(success=False, message=f"Save failed: {e}")
        logger.info("Restored %d lines", len(lines))
        return MergeResult(
            success=True,
            message=f"{len(lines)} lines restored",
            incoming_count=len(lines),
            merged_count=len(lines),
            period_start=dataset.metadata.period_start,
            period_end=dataset.metadata.period_end,
            months_added=list(dataset.metadata.known_months),
            dataset=dataset,
        )

    def restore_from_file(self, path: str | Path) -> MergeResult:
        try:
            with open(path, "r", encoding="utf-8-sig") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Restore failed for %s: %s", path, e)
            return MergeResult(success=False, message=f"Cannot read {path}: {e}")
        return self.restore_from_json(data)

    # ----------------------------------------------------------------- admin

    def statistics(self) -> dict[str, Any]:
        dataset = self.load()
        meta = dataset.metadata
        return {
            "line_count": len(dataset),
            "known_months": list(meta.known_months),
            "period_start": meta.period_start,
            "period_end": meta.period_end,
            "last_updated": meta.last_updated,
            "merges": len(self.merge_history()),
        }

    def wipe(self) -> None:
        """Delete the cumulative dataset and its merge history."""
        self.store.delete(DATASET_KEY)
        self.store.delete(HISTORY_KEY)
        logger.info("Cumulative dataset wiped")
