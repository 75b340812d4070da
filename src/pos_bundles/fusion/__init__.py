"""Monthly fusion of decomposed batches into the cumulative dataset."""

from pos_bundles.fusion.keys import DuplicateReport, detect_internal_duplicates, sale_key
from pos_bundles.fusion.merge import MergeResult, merge_datasets
from pos_bundles.fusion.service import MonthlyFusionService
from pos_bundles.fusion.session import MergeSession, MergeState

__all__ = [
    "DuplicateReport",
    "MergeResult",
    "MergeSession",
    "MergeState",
    "MonthlyFusionService",
    "detect_internal_duplicates",
    "merge_datasets",
    "sale_key",
]
