"""Pydantic models for merging and syncing.

Defines the data contracts shared by the sync modules:

- ``MergeStrategy``: How two-sided edits are settled.
- ``NodeKind`` / ``ConflictReason`` / ``NodePath``: Addressing a node.
- ``MergeConflict``: Both versions of a node that could not be merged.
- ``ConflictResolution``: A caller's choice for one conflict.
- ``MergeResult``: Output of the merge engine.
- ``SyncPhase`` / ``SyncEvent``: Sync lifecycle states and notifications.
- ``SyncResult``: Outcome of one shell operation.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field

from ..tree.models import Bookmark, Bundle, Category, Root

NodeData = Union[Category, Bundle, Bookmark]


class MergeStrategy(str, Enum):
    """How nodes changed on both sides are settled."""

    TIMESTAMP = "timestamp-based"
    LOCAL_WINS = "local-wins"
    REMOTE_WINS = "remote-wins"


class NodeKind(str, Enum):
    CATEGORY = "category"
    BUNDLE = "bundle"
    BOOKMARK = "bookmark"


class ConflictReason(str, Enum):
    """Why a node could not be merged automatically."""

    BOTH_MODIFIED = "both_modified"
    DELETED_MODIFIED = "deleted_modified"


class NodePath(BaseModel):
    """Location of a node: category name, optional bundle and bookmark id."""

    category: str
    bundle: str | None = None
    bookmark_id: str | None = None

    model_config = {"frozen": True}

    @property
    def kind(self) -> NodeKind:
        if self.bookmark_id is not None:
            return NodeKind.BOOKMARK
        if self.bundle is not None:
            return NodeKind.BUNDLE
        return NodeKind.CATEGORY

    def __str__(self) -> str:
        parts = [self.category]
        if self.bundle is not None:
            parts.append(self.bundle)
        if self.bookmark_id is not None:
            parts.append(self.bookmark_id)
        return " / ".join(parts)


class MergeConflict(BaseModel):
    """A node changed on both sides (or deleted on one, changed on the other).

    Attributes:
        path: Where the node lives.
        kind: Category, bundle or bookmark.
        reason: ``both_modified`` or ``deleted_modified``.
        local_data: Local version, ``None`` if deleted locally.
        remote_data: Remote version, ``None`` if deleted remotely.
        local_last_modified: Local modification time, if known.
        remote_last_modified: Remote modification time, if known.
    """

    path: NodePath
    kind: NodeKind
    reason: ConflictReason
    local_data: NodeData | None = None
    remote_data: NodeData | None = None
    local_last_modified: datetime | None = None
    remote_last_modified: datetime | None = None

    model_config = {"frozen": True}

    @property
    def label(self) -> str:
        """Short human-readable description of the conflicted node."""
        data = self.local_data or self.remote_data
        if isinstance(data, Bookmark):
            return f"{self.path.category} / {self.path.bundle} / {data.title}"
        return str(self.path)


class ConflictResolution(BaseModel):
    """Caller's choice for one conflict."""

    path: NodePath
    choice: Literal["local", "remote"]

    model_config = {"frozen": True}


class MergeResult(BaseModel):
    """Output of ``merge_roots``.

    Attributes:
        merged_root: Merged tree; conflicted nodes hold their local version.
        conflicts: Unresolved conflicts.
        has_changes: ``False`` only when the merged tree renders exactly
            like the remote copy, so no remote write is needed.
    """

    merged_root: Root
    conflicts: list[MergeConflict] = []
    has_changes: bool = False

    model_config = {"frozen": True}

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class SyncPhase(str, Enum):
    """States of one sync cycle."""

    IDLE = "idle"
    LOADING_REMOTE = "loading_remote"
    MERGING = "merging"
    CONFLICT_PENDING = "conflict_pending"
    SAVING = "saving"
    ERROR = "error"


class SyncEvent(BaseModel):
    """Notification emitted by a lifecycle transition."""

    name: str
    phase: SyncPhase
    previous: SyncPhase
    detail: str | None = None
    at: datetime

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Outcome of a shell operation.

    Attributes:
        document_id: Remote document the operation targeted.
        version: Remote version after the operation, if known.
        merged_root: Tree the caller should adopt (``None`` when the
            operation stopped on conflicts).
        conflicts: Conflicts that stopped the operation.
        has_changes: Whether local and remote differed.
        written: Whether the remote document was written.
        created: Whether a new remote document was created.
        events: Lifecycle events emitted during the operation.
    """

    document_id: str | None = None
    version: str | None = None
    merged_root: Root | None = None
    conflicts: list[MergeConflict] = []
    has_changes: bool = False
    written: bool = False
    created: bool = False
    events: list[SyncEvent] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)
