"""Tests for sync conflict resolver strategies."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from bookmarkdown.sync.models import (
    ConflictReason,
    ConflictResolution,
    MergeConflict,
    MergeStrategy,
    NodeKind,
    NodePath,
)
from bookmarkdown.sync.resolver import (
    LocalWinsResolver,
    ManualResolver,
    RemoteWinsResolver,
    TimestampResolver,
    create_resolver,
)
from bookmarkdown.tree.metadata import EPOCH
from bookmarkdown.tree.models import Bookmark

T1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T2 = datetime(2024, 1, 2, tzinfo=timezone.utc)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_conflict(
    *,
    local_ts: datetime | None = T1,
    remote_ts: datetime | None = T2,
    bookmark_id: str = "bm-1",
) -> MergeConflict:
    """Build a minimal both-modified bookmark conflict."""
    return MergeConflict(
        path=NodePath(category="Dev", bundle="Tools", bookmark_id=bookmark_id),
        kind=NodeKind.BOOKMARK,
        reason=ConflictReason.BOTH_MODIFIED,
        local_data=Bookmark(id=bookmark_id, title="Local", url="https://l"),
        remote_data=Bookmark(id=bookmark_id, title="Remote", url="https://r"),
        local_last_modified=local_ts,
        remote_last_modified=remote_ts,
    )


# ---------------------------------------------------------------------------
# TimestampResolver
# ---------------------------------------------------------------------------


class TestTimestampResolver:
    """Tests for TimestampResolver."""

    def test_newer_remote_wins(self) -> None:
        assert TimestampResolver().resolve(_make_conflict()) == "remote"

    def test_newer_local_wins(self) -> None:
        conflict = _make_conflict(local_ts=T2, remote_ts=T1)
        assert TimestampResolver().resolve(conflict) == "local"

    def test_equal_timestamps_stay_conflicted(self) -> None:
        """Equal timestamps never silently pick a side."""
        conflict = _make_conflict(local_ts=T1, remote_ts=T1)
        assert TimestampResolver().resolve(conflict) is None

    @pytest.mark.parametrize(
        "local_ts, remote_ts",
        [(None, T1), (T1, None), (EPOCH, T1), (T1, EPOCH), (None, None)],
    )
    def test_unknown_timestamps_stay_conflicted(self, local_ts, remote_ts) -> None:
        conflict = _make_conflict(local_ts=local_ts, remote_ts=remote_ts)
        assert TimestampResolver().resolve(conflict) is None


# ---------------------------------------------------------------------------
# Simple resolvers
# ---------------------------------------------------------------------------


class TestSimpleResolvers:
    """Tests for LocalWinsResolver and RemoteWinsResolver."""

    def test_local_wins(self) -> None:
        assert LocalWinsResolver().resolve(_make_conflict()) == "local"

    def test_remote_wins(self) -> None:
        conflict = _make_conflict(local_ts=T2, remote_ts=T1)
        assert RemoteWinsResolver().resolve(conflict) == "remote"


# ---------------------------------------------------------------------------
# ManualResolver
# ---------------------------------------------------------------------------


class TestManualResolver:
    """Tests for ManualResolver."""

    def test_applies_choice_by_path(self) -> None:
        conflict = _make_conflict()
        resolver = ManualResolver(
            [ConflictResolution(path=conflict.path, choice="local")]
        )
        assert resolver.resolve(conflict) == "local"
        assert resolver.unused == set()

    def test_unknown_path_without_fallback(self) -> None:
        resolver = ManualResolver([])
        assert resolver.resolve(_make_conflict()) is None

    def test_unknown_path_uses_fallback(self) -> None:
        resolver = ManualResolver([], fallback=RemoteWinsResolver())
        assert resolver.resolve(_make_conflict()) == "remote"

    def test_unused_choices_are_reported(self) -> None:
        other = NodePath(category="Dev", bundle="Tools", bookmark_id="gone")
        resolver = ManualResolver([ConflictResolution(path=other, choice="remote")])
        resolver.resolve(_make_conflict())
        assert resolver.unused == {other}


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreateResolver:
    """Tests for create_resolver()."""

    @pytest.mark.parametrize(
        "strategy, cls",
        [
            ("timestamp-based", TimestampResolver),
            ("local-wins", LocalWinsResolver),
            ("remote-wins", RemoteWinsResolver),
            (MergeStrategy.REMOTE_WINS, RemoteWinsResolver),
        ],
    )
    def test_known_strategies(self, strategy, cls) -> None:
        assert isinstance(create_resolver(strategy), cls)

    def test_unknown_strategy_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown conflict strategy"):
            create_resolver("newest")


class TestConflictLabel:
    """MergeConflict.label names the node for humans."""

    def test_bookmark_label_uses_title(self) -> None:
        assert _make_conflict().label == "Dev / Tools / Local"

    def test_category_label_uses_path(self) -> None:
        conflict = MergeConflict(
            path=NodePath(category="Dev"),
            kind=NodeKind.CATEGORY,
            reason=ConflictReason.DELETED_MODIFIED,
        )
        assert conflict.label == "Dev"
        assert conflict.path.kind is NodeKind.CATEGORY
