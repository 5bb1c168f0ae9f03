"""Local key-value storage backends.

The sync layer keeps a handful of small string values locally (cached
document id, last sync time, merge base, creation lock, local snapshot).
Two backends are provided:

* ``MemoryStore`` -- a dict, for tests and short-lived processes.
* ``JsonFileStore`` -- one JSON file, shared by every process that points
  at it.  Each access re-reads the file, and every write goes to a temp
  file followed by ``os.replace()`` so readers never see partial data.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Protocol that all local storage backends must satisfy."""

    def get(self, key: str) -> str | None:
        ...  # pragma: no cover

    def set(self, key: str, value: str) -> None:
        ...  # pragma: no cover

    def delete(self, key: str) -> None:
        ...  # pragma: no cover


class MemoryStore:
    """In-process storage backed by a dict."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """Storage persisted to a single JSON file.

    Args:
        path: Location of the JSON file.  Its directory is created on the
            first write.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt state file %s", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object state file %s", self.path)
            return {}
        return data

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # KeyValueStore
    # ------------------------------------------------------------------

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)
