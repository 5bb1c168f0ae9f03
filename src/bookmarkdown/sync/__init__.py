"""Conflict-aware sync between a local bookmark tree and a remote document.

Public API for keeping a ``Root`` in step with its Markdown copy in a
GitHub Gist (or any ``RemoteRepository``).

Architecture
------------
Sync is a **structural three-way merge**.  The remote text is parsed back
into a tree and merged node by node with the local tree, against the
base both sides agreed on at the last sync.  Writes are guarded by the
remote version read just before, so a concurrent writer is detected
rather than overwritten.

Modules:

- ``engine``     -- ``SyncShell``: load, save, sync and batch operations.
- ``merger``     -- ``merge_roots``, ``resolve_conflicts``,
  ``propagate_remote_deletions``: the pure merge engine.
- ``resolver``   -- Conflict resolution strategies (timestamp,
  local-wins, remote-wins, manual).
- ``lifecycle``  -- Sync phases as a pure state machine plus event
  dispatch.
- ``remote``     -- ``RemoteRepository`` protocol, Gist and in-memory
  stores.
- ``state``      -- ``SyncState``: cached document id, sync times,
  merge bases and the creation lock.
- ``storage``    -- Key-value backends for ``SyncState``.
- ``detector``   -- ``RemoteChangeDetector``: version polling.
- ``models``     -- ``MergeConflict``, ``MergeResult``, ``SyncResult``
  and friends.
- ``reporter``   -- Human-readable and JSON result formatting.

Usage example
-------------
::

    from bookmarkdown.config import load_config
    from bookmarkdown.core.client import GistClient
    from bookmarkdown.sync import (
        GistRepository, JsonFileStore, SyncShell, SyncState,
        format_sync_result,
    )

    config = load_config()
    shell = SyncShell(
        repository=GistRepository(GistClient(config)),
        state=SyncState(JsonFileStore(".bookmarkdown/state.json")),
        config=config,
    )

    result = await shell.sync(local_root)
    if result.ok:
        print(format_sync_result(result.value))
"""

from .detector import RemoteChangeDetector
from .engine import SyncShell
from .lifecycle import EventDispatcher, Trigger, transition
from .merger import (
    get_conflicts,
    has_conflicts,
    merge_roots,
    propagate_remote_deletions,
    resolve_conflicts,
)
from .models import (
    ConflictReason,
    ConflictResolution,
    MergeConflict,
    MergeResult,
    MergeStrategy,
    NodeKind,
    NodePath,
    SyncEvent,
    SyncPhase,
    SyncResult,
)
from .remote import GistRepository, InMemoryRepository, RemoteRepository
from .reporter import format_conflicts, format_sync_result, result_to_json
from .resolver import create_resolver
from .state import SyncState
from .storage import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "ConflictReason",
    "ConflictResolution",
    "EventDispatcher",
    "GistRepository",
    "InMemoryRepository",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "MergeConflict",
    "MergeResult",
    "MergeStrategy",
    "NodeKind",
    "NodePath",
    "RemoteChangeDetector",
    "RemoteRepository",
    "SyncEvent",
    "SyncPhase",
    "SyncResult",
    "SyncShell",
    "SyncState",
    "Trigger",
    "create_resolver",
    "format_conflicts",
    "format_sync_result",
    "get_conflicts",
    "has_conflicts",
    "merge_roots",
    "propagate_remote_deletions",
    "resolve_conflicts",
    "result_to_json",
    "transition",
]
