"""Durable string key-value storage used by the local fallback layer."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

_logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """Key-value interface with string values."""

    def get_item(self, key: str) -> str | None:
        """Return the stored value for a key, if present."""

    def set_item(self, key: str, value: str) -> None:
        """Store a value under a key."""

    def remove_item(self, key: str) -> None:
        """Remove a key if present."""


@dataclass
class MemoryStorage(KeyValueStorage):
    """In-memory storage for tests and ephemeral sessions."""

    items: dict[str, str] = field(default_factory=dict)

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


@dataclass
class JsonFileStorage(KeyValueStorage):
    """Storage persisted as one JSON object on disk.

    Every write rewrites the whole file through a temporary file and an
    atomic rename, so a committed write survives a restart. Two processes
    sharing the file overwrite each other's last write.
    """

    path: Path
    _items: dict[str, str] | None = None

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._flush(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key not in items:
            return
        items.pop(key)
        self._flush(items)

    def _load(self) -> dict[str, str]:
        if self._items is not None:
            return self._items
        self._items = {}
        if not self.path.exists():
            return self._items
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.warning("Unreadable storage file %s, starting empty", self.path)
            return self._items
        if isinstance(payload, dict):
            self._items = {str(key): str(value) for key, value in payload.items()}
        return self._items

    def _flush(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def read_json(storage: KeyValueStorage, key: str) -> object | None:
    """Return the decoded JSON value for a key; corrupt values read as None."""
    raw = storage.get_item(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        _logger.warning("Discarding corrupt JSON under key %s", key)
        return None


def write_json(storage: KeyValueStorage, key: str, value: object) -> None:
    """Encode a value as JSON and store it."""
    storage.set_item(key, json.dumps(value, ensure_ascii=False))
