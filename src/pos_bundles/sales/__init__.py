"""Sales batch import: file reading, column mapping and JSON payloads."""

from pos_bundles.sales.extract import read_sales_file
from pos_bundles.sales.json_import import ImportResult, load_sales_json, load_sales_json_file
from pos_bundles.sales.mapping import MappingReport, build_column_mapping, map_rows

__all__ = [
    "ImportResult",
    "MappingReport",
    "build_column_mapping",
    "load_sales_json",
    "load_sales_json_file",
    "map_rows",
    "read_sales_file",
]
