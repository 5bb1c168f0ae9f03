"""Tests for sync report formatting."""

from __future__ import annotations

import json

from bookmarkdown.codec import parse
from bookmarkdown.sync.lifecycle import Trigger, transition
from bookmarkdown.sync.models import (
    ConflictReason,
    MergeConflict,
    NodeKind,
    NodePath,
    SyncPhase,
    SyncResult,
)
from bookmarkdown.sync.reporter import (
    format_conflicts,
    format_sync_result,
    result_to_json,
)
from bookmarkdown.tree.models import Bookmark

ROOT_TEXT = "# Dev\n\n## Tools\n\n- [A](https://a.com)\n- [B](https://b.com)\n"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _conflict(remote_title: str | None = "Remote") -> MergeConflict:
    local = Bookmark(id="bm-1", title="Local", url="https://a.com")
    remote = (
        Bookmark(id="bm-1", title=remote_title, url="https://a.com")
        if remote_title
        else None
    )
    return MergeConflict(
        path=NodePath(category="Dev", bundle="Tools", bookmark_id="bm-1"),
        kind=NodeKind.BOOKMARK,
        reason=(
            ConflictReason.BOTH_MODIFIED if remote else ConflictReason.DELETED_MODIFIED
        ),
        local_data=local,
        remote_data=remote,
    )


# ---------------------------------------------------------------------------
# format_sync_result
# ---------------------------------------------------------------------------


class TestFormatSyncResult:
    """Tests for format_sync_result()."""

    def test_updated(self) -> None:
        result = SyncResult(
            document_id="abc",
            version="v2",
            merged_root=parse(ROOT_TEXT),
            has_changes=True,
            written=True,
        )
        assert format_sync_result(result) == (
            "Document: abc\nVersion: v2\n\n"
            "Remote document updated\n"
            "1 categories, 1 bundles, 2 bookmarks"
        )

    def test_created(self) -> None:
        result = SyncResult(
            document_id="abc", merged_root=parse(ROOT_TEXT), written=True, created=True
        )
        output = format_sync_result(result)
        assert "Version:" not in output
        assert "Created a new remote document" in output

    def test_up_to_date(self) -> None:
        result = SyncResult(document_id="abc", version="v1", merged_root=parse(ROOT_TEXT))
        assert "Already up to date" in format_sync_result(result)

    def test_conflicts(self) -> None:
        result = SyncResult(document_id="abc", version="v1", conflicts=[_conflict()])
        output = format_sync_result(result)
        assert "Sync stopped: 1 conflict(s) need a decision" in output
        assert "  [both_modified] Dev / Tools / Local" in output
        assert "bookmarks" not in output

    def test_no_document(self) -> None:
        assert format_sync_result(SyncResult()).startswith("Document: (none)")


# ---------------------------------------------------------------------------
# format_conflicts
# ---------------------------------------------------------------------------


class TestFormatConflicts:
    """Tests for format_conflicts()."""

    def test_empty(self) -> None:
        assert format_conflicts([]) == "No conflicts."

    def test_unified_diff(self) -> None:
        output = format_conflicts([_conflict()])
        assert output.startswith("Conflict (both_modified): Dev / Tools / Local\n")
        assert "--- local" in output
        assert "+++ remote" in output
        assert "-- [Local](https://a.com)" in output
        assert "+- [Remote](https://a.com)" in output

    def test_remote_deletion_diffs_against_nothing(self) -> None:
        output = format_conflicts([_conflict(remote_title=None)])
        assert "Conflict (deleted_modified)" in output
        assert "-- [Local](https://a.com)" in output

    def test_identical_text(self) -> None:
        output = format_conflicts([_conflict(remote_title="Local")])
        assert "(no textual differences)" in output

    def test_several_conflicts_are_separated(self) -> None:
        output = format_conflicts([_conflict(), _conflict(remote_title=None)])
        assert output.count("Conflict (") == 2
        assert "\n\nConflict (deleted_modified)" in output


# ---------------------------------------------------------------------------
# result_to_json
# ---------------------------------------------------------------------------


class TestResultToJson:
    """Tests for result_to_json()."""

    def test_structure(self) -> None:
        events = list(transition(SyncPhase.IDLE, Trigger.START).events)
        result = SyncResult(
            document_id="abc",
            version="v1",
            merged_root=parse(ROOT_TEXT),
            has_changes=True,
            written=True,
            events=events,
        )
        payload = result_to_json(result)
        assert payload["document_id"] == "abc"
        assert payload["written"] is True
        assert payload["events"] == ["start"]
        assert payload["stats"]["bookmark_count"] == 2
        json.dumps(payload)

    def test_conflicts(self) -> None:
        payload = result_to_json(SyncResult(conflicts=[_conflict()]))
        assert payload["conflicts"] == [
            {
                "path": {"category": "Dev", "bundle": "Tools", "bookmark_id": "bm-1"},
                "kind": "bookmark",
                "reason": "both_modified",
                "label": "Dev / Tools / Local",
            }
        ]
        assert "stats" not in payload
