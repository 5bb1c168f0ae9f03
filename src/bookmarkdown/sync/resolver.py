"""Conflict resolution strategies for the merge engine.

Provides the ways a node changed on both sides can be settled:

- ``TimestampResolver``: Picks the side with the strictly newer, known
  modification time; anything else stays a conflict.
- ``LocalWinsResolver``: Always picks the local version.
- ``RemoteWinsResolver``: Always picks the remote version.
- ``ManualResolver``: Applies caller-supplied per-node choices, deferring
  to a fallback resolver for nodes it has no choice for.

A resolver returns ``"local"``, ``"remote"`` or ``None`` (leave the
conflict for the caller).  The ``create_resolver()`` factory maps config
strategy strings to resolver instances.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Literal, Optional, Protocol

from ..tree.metadata import EPOCH
from .models import ConflictResolution, MergeConflict, MergeStrategy, NodePath

logger = logging.getLogger(__name__)

Choice = Optional[Literal["local", "remote"]]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    def resolve(self, conflict: MergeConflict) -> Choice:
        """Determine the resolution for a conflict.

        Args:
            conflict: Both versions of the conflicted node.

        Returns:
            ``"local"``, ``"remote"``, or ``None`` to keep the conflict.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Timestamp resolver
# ---------------------------------------------------------------------------


def _known(ts: datetime | None) -> bool:
    return ts is not None and ts > EPOCH


class TimestampResolver:
    """Resolve by modification time.

    Only decides when both sides carry a real timestamp and one is
    strictly newer.  Equal or unknown timestamps keep the conflict so
    neither side is preferred by fiat.
    """

    def resolve(self, conflict: MergeConflict) -> Choice:
        local_ts = conflict.local_last_modified
        remote_ts = conflict.remote_last_modified
        if not (_known(local_ts) and _known(remote_ts)):
            return None
        assert local_ts is not None and remote_ts is not None
        if local_ts > remote_ts:
            return "local"
        if remote_ts > local_ts:
            return "remote"
        logger.info(
            "Equal timestamps for %s -- leaving conflict for review",
            conflict.path,
        )
        return None


# ---------------------------------------------------------------------------
# Simple resolvers
# ---------------------------------------------------------------------------


class LocalWinsResolver:
    """Always resolve conflicts in favour of the local version."""

    def resolve(self, conflict: MergeConflict) -> Choice:
        return "local"


class RemoteWinsResolver:
    """Always resolve conflicts in favour of the remote version."""

    def resolve(self, conflict: MergeConflict) -> Choice:
        return "remote"


# ---------------------------------------------------------------------------
# Manual resolver
# ---------------------------------------------------------------------------


class ManualResolver:
    """Apply explicit per-node choices.

    Args:
        resolutions: Caller decisions keyed by node path.
        fallback: Resolver consulted for nodes without a decision.
    """

    def __init__(
        self,
        resolutions: Iterable[ConflictResolution],
        fallback: ConflictResolver | None = None,
    ) -> None:
        self.choices: dict[NodePath, str] = {
            r.path: r.choice for r in resolutions
        }
        self.fallback = fallback
        self.applied: set[NodePath] = set()

    def resolve(self, conflict: MergeConflict) -> Choice:
        choice = self.choices.get(conflict.path)
        if choice is not None:
            self.applied.add(conflict.path)
            return choice  # type: ignore[return-value]
        if self.fallback is not None:
            return self.fallback.resolve(conflict)
        return None

    @property
    def unused(self) -> set[NodePath]:
        """Paths that had a decision but never matched a conflict."""
        return set(self.choices) - self.applied


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    MergeStrategy.TIMESTAMP.value: TimestampResolver,
    MergeStrategy.LOCAL_WINS.value: LocalWinsResolver,
    MergeStrategy.REMOTE_WINS.value: RemoteWinsResolver,
}


def create_resolver(strategy: str | MergeStrategy) -> ConflictResolver:
    """Create a conflict resolver for the given strategy.

    Args:
        strategy: One of ``"timestamp-based"``, ``"local-wins"``,
            ``"remote-wins"`` (or the matching ``MergeStrategy``).

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    key = strategy.value if isinstance(strategy, MergeStrategy) else strategy
    cls = _STRATEGY_MAP.get(key)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
