"""Tests for paths, environment settings and the export layout."""

from pathlib import Path

import pytest

from pos_bundles.config import DEFAULT_QUOTA_BYTES, DataPaths, SaveConfig, Settings
from pos_bundles.exceptions import ConfigError


def test_data_paths(tmp_path: Path) -> None:
    paths = DataPaths.from_root(str(tmp_path))
    paths.ensure_dirs()

    assert paths.store_dir == tmp_path / "store"
    assert paths.compositions_file == tmp_path / "reference" / "compositions.json"
    assert paths.exports_dir.is_dir()


def test_settings_defaults() -> None:
    settings = Settings.from_env({})
    assert settings.paths.data_root == Path("data")
    assert settings.compositions_source == str(Path("data/reference/compositions.json"))
    assert settings.quota_bytes == DEFAULT_QUOTA_BYTES


def test_settings_from_env() -> None:
    settings = Settings.from_env(
        {
            "POS_BUNDLES_DATA_ROOT": "/srv/pos",
            "POS_BUNDLES_COMPOSITIONS_SOURCE": "https://example.com/compositions.json",
            "POS_BUNDLES_STORE_QUOTA": "0",
            "POS_BUNDLES_HTTP_TIMEOUT": "5",
        }
    )
    assert settings.paths.store_dir == Path("/srv/pos/store")
    assert settings.compositions_source.startswith("https://")
    assert settings.quota_bytes == 0
    assert settings.http_timeout == 5.0


@pytest.mark.parametrize(
    "env",
    [
        {"POS_BUNDLES_STORE_QUOTA": "lots"},
        {"POS_BUNDLES_STORE_QUOTA": "-1"},
        {"POS_BUNDLES_HTTP_TIMEOUT": "0"},
    ],
)
def test_invalid_settings(env: dict) -> None:
    with pytest.raises(ConfigError):
        Settings.from_env(env)


def test_month_folder() -> None:
    assert SaveConfig().month_folder("2025-08") == Path("Ventes-Mensuelles/2025/08-Aout")
    flat = SaveConfig(organize_by_year=False, organize_by_month=False)
    assert flat.month_folder("2025-08") == Path("Ventes-Mensuelles")
