"""Unified configuration for POS Bundles.

This module provides the filesystem layout (DataPaths) and the runtime
settings (Settings) read from environment variables, plus the export
layout used when a merged month is written to disk (SaveConfig).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from pos_bundles.exceptions import ConfigError

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024
DEFAULT_HTTP_TIMEOUT = 30.0


@dataclass
class DataPaths:
    """All filesystem paths used by the import and fusion pipelines.

    Attributes:
        data_root: Root directory for all data.

    Directory Structure:
        data_root/
        ├── reference/       # catalog and bundled composition reference
        │   ├── catalog.xlsx
        │   └── compositions.json
        ├── store/           # persisted JSON documents (registry, dataset)
        └── exports/         # month and cumulative exports
            └── Ventes-Mensuelles/
    """

    data_root: Path

    @classmethod
    def from_root(cls, data_root: str | Path) -> DataPaths:
        """Create DataPaths from a root directory.

        Examples:
            >>> paths = DataPaths.from_root("data")
            >>> paths.store_dir
            PosixPath('data/store')
        """
        if isinstance(data_root, str):
            data_root = Path(data_root)
        return cls(data_root=data_root)

    @property
    def reference_dir(self) -> Path:
        """Catalog and bundled reference files."""
        return self.data_root / "reference"

    @property
    def catalog_file(self) -> Path:
        return self.reference_dir / "catalog.xlsx"

    @property
    def compositions_file(self) -> Path:
        """Bundled composition reference, used when the store is empty."""
        return self.reference_dir / "compositions.json"

    @property
    def store_dir(self) -> Path:
        """Root of the directory-backed JSON store."""
        return self.data_root / "store"

    @property
    def exports_dir(self) -> Path:
        return self.data_root / "exports"

    def ensure_dirs(self) -> None:
        """Create all directories in the data structure."""
        for path in [self.reference_dir, self.store_dir, self.exports_dir]:
            path.mkdir(parents=True, exist_ok=True)


@dataclass
class Settings:
    """Runtime settings.

    Attributes:
        paths: Filesystem layout.
        compositions_source: Path or http(s) URL of the bundled composition
            reference.
        catalog_source: Path or http(s) URL of the product catalog.
        quota_bytes: Size quota of the directory store, 0 for unlimited.
        http_timeout: Timeout in seconds for reference downloads.
    """

    paths: DataPaths
    compositions_source: str
    catalog_source: str
    quota_bytes: int = DEFAULT_QUOTA_BYTES
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Build settings from ``POS_BUNDLES_*`` environment variables.

        Raises:
            ConfigError: If the quota or the timeout is not a valid number.
        """
        env = os.environ if environ is None else environ
        paths = DataPaths.from_root(env.get("POS_BUNDLES_DATA_ROOT", "data"))
        try:
            quota = int(env.get("POS_BUNDLES_STORE_QUOTA", str(DEFAULT_QUOTA_BYTES)))
            timeout = float(env.get("POS_BUNDLES_HTTP_TIMEOUT", str(DEFAULT_HTTP_TIMEOUT)))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e
        if quota < 0:
            raise ConfigError(f"POS_BUNDLES_STORE_QUOTA must be >= 0, got {quota}")
        if timeout <= 0:
            raise ConfigError(f"POS_BUNDLES_HTTP_TIMEOUT must be > 0, got {timeout}")
        return cls(
            paths=paths,
            compositions_source=env.get(
                "POS_BUNDLES_COMPOSITIONS_SOURCE", str(paths.compositions_file)
            ),
            catalog_source=env.get("POS_BUNDLES_CATALOG_SOURCE", str(paths.catalog_file)),
            quota_bytes=quota,
            http_timeout=timeout,
        )


@dataclass
class SaveConfig:
    """Layout of month and cumulative export files.

    With the defaults a January 2025 merge lands in
    ``Ventes-Mensuelles/2025/01-Janvier/ventes-2025-01-<today>.json``.
    """

    base_folder: str = "Ventes-Mensuelles"
    organize_by_year: bool = True
    organize_by_month: bool = True
    automatic_naming: bool = True
    month_names: list[str] = field(
        default_factory=lambda: [
            "Janvier",
            "Fevrier",
            "Mars",
            "Avril",
            "Mai",
            "Juin",
            "Juillet",
            "Aout",
            "Septembre",
            "Octobre",
            "Novembre",
            "Decembre",
        ]
    )

    def month_folder(self, month: str) -> Path:
        """Relative folder for a ``YYYY-MM`` month."""
        year, mm = month.split("-")
        folder = Path(self.base_folder)
        if self.organize_by_year:
            folder = folder / year
        if self.organize_by_month:
            folder = folder / f"{mm}-{self.month_names[int(mm) - 1]}"
        return folder
