"""Synchronous key-value stores that hold the persisted collections.

Every value is serialized text. A missing key reads as ``None``; callers treat
that as the empty or default collection. Stores raise
:class:`~headspace.errors.StorageWriteFailed` when a write cannot be applied,
and never partially apply one.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from ..errors import StorageWriteFailed

logger = logging.getLogger(__name__)


class PersistedStore:
    def read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def write(self, key: str, text: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> Iterator[str]:
        raise NotImplementedError


class MemoryStore(PersistedStore):
    """Dict-backed store with an optional byte quota, like a browser's local storage."""

    def __init__(self, initial: Optional[Dict[str, str]] = None, quota_bytes: Optional[int] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self.quota_bytes = quota_bytes

    def _usage_with(self, key: str, text: str) -> int:
        total = len(key.encode("utf-8")) + len(text.encode("utf-8"))
        for existing_key, value in self._data.items():
            if existing_key == key:
                continue
            total += len(existing_key.encode("utf-8")) + len(value.encode("utf-8"))
        return total

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, text: str) -> None:
        if not isinstance(text, str):
            raise StorageWriteFailed(key, "value must be serialized text")
        if self.quota_bytes is not None and self._usage_with(key, text) > self.quota_bytes:
            raise StorageWriteFailed(key, "quota exceeded")
        self._data[key] = text

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data.keys()))


class JsonFileStore(PersistedStore):
    """Keeps every key in one JSON document on disk.

    The document is re-read on each access so that other processes sharing the
    file are observed; writes replace the file atomically.
    """

    def __init__(self, path: os.PathLike | str) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as error:
            logger.warning("Store file %s unreadable, treating as empty: %s", self.path, error)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _save(self, key: str, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except OSError as error:
            raise StorageWriteFailed(key, str(error)) from error

    def read(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def write(self, key: str, text: str) -> None:
        data = self._load()
        data[key] = text
        self._save(key, data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        del data[key]
        self._save(key, data)

    def keys(self) -> Iterator[str]:
        return iter(list(self._load().keys()))


def read_json(store: PersistedStore, key: str, default: Any) -> Any:
    raw = store.read(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Stored value for %s is not valid JSON, using default", key)
        return default


def write_json(store: PersistedStore, key: str, value: Any) -> str:
    text = json.dumps(value)
    store.write(key, text)
    return text
