"""Pure merge of an incoming batch into a cumulative dataset.

Nothing here touches storage; ``MonthlyFusionService`` persists the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pos_bundles.fusion.keys import DuplicateReport, detect_internal_duplicates, sale_key
from pos_bundles.types import CumulativeDataset, DatasetMetadata, SalesLine
from pos_bundles.utils import format_day, month_key, utc_now_iso

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    success: bool
    message: str
    existing_count: int = 0
    incoming_count: int = 0
    merged_count: int = 0
    duplicates_eliminated: int = 0
    internal_duplicates: DuplicateReport | None = None
    period_start: str | None = None
    period_end: str | None = None
    months_added: list[str] = field(default_factory=list)
    saved_files: list[str] = field(default_factory=list)
    dataset: CumulativeDataset | None = None

    def summary(self) -> dict:
        """JSON-friendly summary (used for merge history and the CLI)."""
        return {
            "success": self.success,
            "message": self.message,
            "existing_count": self.existing_count,
            "incoming_count": self.incoming_count,
            "merged_count": self.merged_count,
            "duplicates_eliminated": self.duplicates_eliminated,
            "internal_duplicates": self.internal_duplicates.total if self.internal_duplicates else 0,
            "period_start": self.period_start,
            "period_end": self.period_end,
            "months_added": self.months_added,
            "saved_files": self.saved_files,
        }


def extend_metadata(metadata: DatasetMetadata, lines: list[SalesLine]) -> DatasetMetadata:
    """Return ``metadata`` widened to cover ``lines``.

    Lines without a parsable date are ignored here; they still belong to
    the dataset.
    """
    months = set(metadata.known_months)
    start, end = metadata.period_start, metadata.period_end
    for line in lines:
        if line.date is None:
            continue
        months.add(month_key(line.date))
        day = format_day(line.date)
        if start is None or day < start:
            start = day
        if end is None or day > end:
            end = day
    return DatasetMetadata(
        known_months=sorted(months),
        period_start=start,
        period_end=end,
        last_updated=utc_now_iso(),
        line_count=metadata.line_count,
    )


def build_metadata(lines: list[SalesLine]) -> DatasetMetadata:
    """Metadata computed from scratch (restore)."""
    meta = extend_metadata(DatasetMetadata(), lines)
    meta.line_count = len(lines)
    return meta


def merge_datasets(
    existing: CumulativeDataset,
    incoming: list[SalesLine],
    eliminate_duplicates: bool = False,
) -> MergeResult:
    """Merge ``incoming`` into a copy of ``existing``.

    With ``eliminate_duplicates`` an incoming line is added only when its key
    is neither in ``existing`` nor among the incoming lines already added.
    Without it every incoming line is appended.
    """
    internal = detect_internal_duplicates(incoming)
    merged = list(existing.lines)
    eliminated = 0

    if eliminate_duplicates:
        keys = {sale_key(line) for line in existing.lines}
        for line in incoming:
            key = sale_key(line)
            if key in keys:
                eliminated += 1
                continue
            keys.add(key)
            merged.append(line)
    else:
        merged.extend(incoming)

    metadata = extend_metadata(existing.metadata, incoming)
    metadata.line_count = len(merged)
    months_added = sorted(set(metadata.known_months) - set(existing.metadata.known_months))
    undated = sum(1 for line in incoming if line.date is None)
    if undated:
        logger.warning("%d incoming lines have no parsable date", undated)

    added = len(merged) - len(existing.lines)
    message = f"{added} lines added"
    if eliminated:
        message += f", {eliminated} duplicates eliminated"
    logger.info(
        "Merged %d incoming lines into %d existing: %s",
        len(incoming),
        len(existing.lines),
        message,
    )
    return MergeResult(
        success=True,
        message=message,
        existing_count=len(existing.lines),
        incoming_count=len(incoming),
        merged_count=len(merged),
        duplicates_eliminated=eliminated,
        internal_duplicates=internal,
        period_start=metadata.period_start,
        period_end=metadata.period_end,
        months_added=months_added,
        dataset=CumulativeDataset(lines=merged, metadata=metadata),
    )
