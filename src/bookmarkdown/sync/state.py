"""Sync state persistence layer.

Typed accessors over a ``KeyValueStore`` for everything the sync shell
remembers between runs:

* the cached remote document id,
* per-document ``last_synced`` time and merge base (the tree both sides
  agreed on at that time),
* per-document remote version the local tree last incorporated
  (every update is conditioned on it),
* the cooperative creation lock,
* the last local tree snapshot, for offline-first reload.

Key design choices:

* **Local only** -- nothing here is ever written to the remote document.
* **Per-document keys** -- sync time, base and version are keyed by
  document id, so switching documents never compares against the wrong
  base or writes with the wrong version.
* **Best-effort lock** -- the creation lock is a timestamp plus owner
  token.  It narrows the window in which two processes both create a
  document; it is not a mutual-exclusion guarantee.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from ..tree.metadata import now
from ..tree.models import Root
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

DOCUMENT_ID_KEY = "bookmarkdown_data_gist_id"
CREATE_LOCK_KEY = "bookmarkdown_gist_create_lock"
LOCAL_ROOT_KEY = "bookmarkdown_local_root"
LAST_SYNCED_PREFIX = "bookmarkdown_last_synced_"
BASE_PREFIX = "bookmarkdown_base_"
VERSION_PREFIX = "bookmarkdown_version_"


class SyncState:
    """Load, save, and query local sync state.

    Args:
        store: Backend holding the raw string values.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._lock_token: str | None = None

    # ------------------------------------------------------------------
    # Document id
    # ------------------------------------------------------------------

    def get_document_id(self) -> str | None:
        return self.store.get(DOCUMENT_ID_KEY) or None

    def set_document_id(self, document_id: str) -> None:
        self.store.set(DOCUMENT_ID_KEY, document_id)

    def clear_document_id(self) -> None:
        self.store.delete(DOCUMENT_ID_KEY)

    # ------------------------------------------------------------------
    # Last sync time
    # ------------------------------------------------------------------

    def get_last_synced(self, document_id: str) -> datetime | None:
        """Return when *document_id* was last synced, or ``None``."""
        raw = self.store.get(LAST_SYNCED_PREFIX + document_id)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning(
                "Ignoring invalid last-synced value for %s: %r",
                document_id,
                raw,
            )
            return None

    def set_last_synced(
        self, document_id: str, at: datetime | None = None
    ) -> datetime:
        at = at or now()
        self.store.set(LAST_SYNCED_PREFIX + document_id, at.isoformat())
        return at

    # ------------------------------------------------------------------
    # Merge base
    # ------------------------------------------------------------------

    def get_base(self, document_id: str) -> Root | None:
        """Return the stored merge base for *document_id*, or ``None``."""
        return self._read_root(BASE_PREFIX + document_id)

    def set_base(self, document_id: str, root: Root) -> None:
        self.store.set(BASE_PREFIX + document_id, root.to_json())

    # ------------------------------------------------------------------
    # Remote version
    # ------------------------------------------------------------------

    def get_version(self, document_id: str) -> str | None:
        """Remote version the local tree last incorporated, or ``None``."""
        return self.store.get(VERSION_PREFIX + document_id) or None

    def set_version(self, document_id: str, version: str) -> None:
        self.store.set(VERSION_PREFIX + document_id, version)

    def clear_document(self, document_id: str) -> None:
        """Forget sync time, base and version for *document_id*."""
        self.store.delete(LAST_SYNCED_PREFIX + document_id)
        self.store.delete(BASE_PREFIX + document_id)
        self.store.delete(VERSION_PREFIX + document_id)

    # ------------------------------------------------------------------
    # Local snapshot
    # ------------------------------------------------------------------

    def get_local_root(self) -> Root | None:
        return self._read_root(LOCAL_ROOT_KEY)

    def set_local_root(self, root: Root) -> None:
        self.store.set(LOCAL_ROOT_KEY, root.to_json())

    # ------------------------------------------------------------------
    # Creation lock
    # ------------------------------------------------------------------

    def is_create_locked(self, timeout: float) -> bool:
        """Return ``True`` if another holder's lock is younger than *timeout*."""
        holder = self._read_lock()
        if holder is None:
            return False
        token, taken_at = holder
        if token == self._lock_token:
            return False
        return now() - taken_at < timedelta(seconds=timeout)

    def acquire_create_lock(self, timeout: float) -> bool:
        """Take the creation lock unless someone else holds a fresh one.

        Args:
            timeout: Seconds after which a held lock is considered stale.

        Returns:
            ``True`` if this instance now holds the lock.
        """
        if self.is_create_locked(timeout):
            return False
        token = uuid.uuid4().hex
        self.store.set(
            CREATE_LOCK_KEY,
            json.dumps({"token": token, "at": now().isoformat()}),
        )
        # Someone may have written between our check and our write.
        holder = self._read_lock()
        if holder is None or holder[0] != token:
            return False
        self._lock_token = token
        return True

    def release_create_lock(self) -> None:
        """Release the lock if this instance holds it."""
        holder = self._read_lock()
        if holder is not None and holder[0] == self._lock_token:
            self.store.delete(CREATE_LOCK_KEY)
        self._lock_token = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_lock(self) -> tuple[str, datetime] | None:
        raw = self.store.get(CREATE_LOCK_KEY)
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return str(data["token"]), datetime.fromisoformat(data["at"])
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring malformed creation lock: %r", raw)
            return None

    def _read_root(self, key: str) -> Root | None:
        raw = self.store.get(key)
        if not raw:
            return None
        try:
            return Root.from_json(raw)
        except PydanticValidationError as exc:
            logger.warning("Ignoring invalid stored tree %s: %s", key, exc)
            return None
