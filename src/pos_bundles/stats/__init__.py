"""Sales statistics over decomposed datasets."""

from pos_bundles.stats.aggregate import SalesStatistics, compute_statistics, lines_to_frame

__all__ = ["SalesStatistics", "compute_statistics", "lines_to_frame"]
