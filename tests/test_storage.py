"""Tests for the JSON stores and the quota recovery policy."""

from pathlib import Path

import pytest

from pos_bundles.exceptions import PersistError, StorageQuotaError
from pos_bundles.storage import (
    DirectoryJsonStore,
    MemoryJsonStore,
    cleanup_old_entries,
    save_with_retry,
)


@pytest.fixture(params=["memory", "directory"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        return MemoryJsonStore()
    return DirectoryJsonStore(tmp_path / "store")


def test_save_load_delete(any_store) -> None:
    any_store.save("compositions", {"compositions": [{"id": "1", "nom": "Vasque été"}]})
    any_store.save("imports/2025-01", [1, 2, 3])

    assert any_store.load("compositions")["compositions"][0]["nom"] == "Vasque été"
    assert any_store.keys() == ["compositions", "imports/2025-01"]
    assert any_store.delete("imports/2025-01")
    assert not any_store.delete("imports/2025-01")
    assert any_store.load("imports/2025-01") is None


def test_clear(any_store) -> None:
    any_store.save("a", 1)
    any_store.save("b", 2)
    any_store.clear()
    assert any_store.keys() == []


def test_directory_store_layout(tmp_path: Path) -> None:
    store = DirectoryJsonStore(tmp_path)
    store.save("imports/2025-01", {"ok": True})
    assert (tmp_path / "imports" / "2025-01.json").exists()
    assert list(tmp_path.rglob("*.tmp")) == []


def test_quota_is_enforced() -> None:
    store = MemoryJsonStore(quota_bytes=20)
    with pytest.raises(StorageQuotaError):
        store.save("big", "x" * 50)


def test_cleanup_removes_oldest_disposable_entries() -> None:
    store = MemoryJsonStore()
    store.save("imports/old", 1)
    store.save("compositions", 2)
    store.save("imports/new", 3)

    deleted = cleanup_old_entries(store, keep=["imports/new"])

    assert deleted == ["imports/old"]
    assert store.keys() == ["compositions", "imports/new"]


class TestSaveWithRetry:
    def test_retry_after_cleanup(self) -> None:
        store = MemoryJsonStore()
        store.save("imports/2025-01", "x" * 200)
        store.save("merge_history", ["y" * 100])
        store.quota_bytes = 150

        save_with_retry(store, "cumulative_dataset", {"ventes": []})

        assert store.load("cumulative_dataset") == {"ventes": []}
        assert store.keys() == ["cumulative_dataset"]

    def test_second_failure_raises(self) -> None:
        store = MemoryJsonStore(quota_bytes=10)
        with pytest.raises(PersistError):
            save_with_retry(store, "cumulative_dataset", {"ventes": ["x" * 100]})

    def test_non_disposable_entries_are_kept(self) -> None:
        store = MemoryJsonStore()
        store.save("compositions", "x" * 200)
        store.quota_bytes = 210

        with pytest.raises(PersistError):
            save_with_retry(store, "cumulative_dataset", {"ventes": []})
        assert store.load("compositions") == "x" * 200
