"""Injectable JSON document stores.

The registry, the cumulative dataset, merge history and classification
rules are persisted through a ``JsonStore``: a key/value store of JSON
documents. Two implementations are provided:

- ``DirectoryJsonStore``: one ``<root>/<key>.json`` file per key, written
  atomically (temp file + ``os.replace``).
- ``MemoryJsonStore``: dict-backed, for tests and dry runs.

Both accept an optional size quota. ``save_with_retry`` implements the
quota recovery policy: drop older disposable entries, retry once.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Iterable, Protocol

from pos_bundles.exceptions import PersistError, StorageQuotaError

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_PREFIXES = ("imports/", "merge_history")


class JsonStore(Protocol):
    def load(self, key: str) -> Any | None: ...

    def save(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...

    def clear(self) -> None: ...

    def modified_at(self, key: str) -> float: ...


def _encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


class MemoryJsonStore:
    """Dict-backed store. Values are round-tripped through JSON."""

    def __init__(self, quota_bytes: int = 0) -> None:
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}
        self._mtime: dict[str, float] = {}
        self._clock = 0

    def _used(self, exclude: str | None = None) -> int:
        return sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != exclude)

    def load(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def save(self, key: str, value: Any) -> None:
        encoded = _encode(value)
        if self.quota_bytes:
            needed = self._used(exclude=key) + len(encoded.encode("utf-8"))
            if needed > self.quota_bytes:
                raise StorageQuotaError(
                    f"Saving '{key}' needs {needed} bytes, quota is {self.quota_bytes}"
                )
        self._data[key] = encoded
        # monotonic counter keeps ordering stable within one test
        self._clock += 1
        self._mtime[key] = float(self._clock)

    def delete(self, key: str) -> bool:
        self._mtime.pop(key, None)
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return sorted(self._data)

    def clear(self) -> None:
        self._data.clear()
        self._mtime.clear()

    def modified_at(self, key: str) -> float:
        return self._mtime.get(key, 0.0)


class DirectoryJsonStore:
    """One JSON file per key under ``root``.

    Keys may contain ``/`` to group documents in subdirectories
    (``imports/2025-01``).
    """

    def __init__(self, root: Path, quota_bytes: int = 0) -> None:
        self.root = Path(root)
        self.quota_bytes = quota_bytes

    def _path(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p and p not in (".", "..")]
        if not parts:
            raise ValueError(f"Invalid store key: {key!r}")
        return self.root.joinpath(*parts[:-1], f"{parts[-1]}.json")

    def _used(self, exclude: Path | None = None) -> int:
        if not self.root.exists():
            return 0
        return sum(p.stat().st_size for p in self.root.rglob("*.json") if p != exclude)

    def load(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save(self, key: str, value: Any) -> None:
        path = self._path(key)
        encoded = _encode(value).encode("utf-8")
        if self.quota_bytes:
            needed = self._used(exclude=path) + len(encoded)
            if needed > self.quota_bytes:
                raise StorageQuotaError(
                    f"Saving '{key}' needs {needed} bytes, quota is {self.quota_bytes}"
                )
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(encoded)
            os.replace(tmp, path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        logger.debug("Wrote %s (%d bytes)", path, len(encoded))

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def keys(self) -> list[str]:
        if not self.root.exists():
            return []
        out = []
        for p in self.root.rglob("*.json"):
            rel = p.relative_to(self.root).with_suffix("")
            out.append("/".join(rel.parts))
        return sorted(out)

    def clear(self) -> None:
        for key in self.keys():
            self.delete(key)

    def modified_at(self, key: str) -> float:
        path = self._path(key)
        return path.stat().st_mtime if path.exists() else 0.0


def cleanup_old_entries(
    store: JsonStore,
    prefixes: Iterable[str] = DEFAULT_CLEANUP_PREFIXES,
    keep: Iterable[str] = (),
) -> list[str]:
    """Delete disposable entries, oldest first.

    Returns:
        Deleted keys.
    """
    keep_set = set(keep)
    prefixes = tuple(prefixes)
    candidates = [k for k in store.keys() if k.startswith(prefixes) and k not in keep_set]
    candidates.sort(key=store.modified_at)
    deleted = []
    for key in candidates:
        if store.delete(key):
            deleted.append(key)
    if deleted:
        logger.warning("Storage quota reached: removed %d old entries", len(deleted))
    return deleted


def save_with_retry(
    store: JsonStore,
    key: str,
    value: Any,
    cleanup_prefixes: Iterable[str] = DEFAULT_CLEANUP_PREFIXES,
) -> None:
    """Save ``value``; on quota error clean up older entries and retry once.

    Raises:
        PersistError: If the retry also fails.
    """
    try:
        store.save(key, value)
        return
    except StorageQuotaError as e:
        logger.warning("Quota exceeded while saving '%s': %s", key, e)

    started = time.perf_counter()
    cleanup_old_entries(store, cleanup_prefixes, keep=[key])
    try:
        store.save(key, value)
    except StorageQuotaError as e:
        raise PersistError(f"Could not save '{key}' after cleanup: {e}") from e
    logger.info("Saved '%s' after cleanup in %.2fs", key, time.perf_counter() - started)
