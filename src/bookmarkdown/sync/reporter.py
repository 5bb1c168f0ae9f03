"""Sync report formatting functions.

Provides human-readable and machine-readable output for shell results:

- ``format_sync_result`` -- one-paragraph summary of a sync or save.
- ``format_conflicts`` -- unified diff per conflict for review.
- ``result_to_json`` -- structured dict for ``--json`` CLI output.
"""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING

from ..codec import render_node
from ..tree.edits import get_stats

if TYPE_CHECKING:
    from .models import MergeConflict, SyncResult


# ------------------------------------------------------------------
# Human-readable summary
# ------------------------------------------------------------------


def format_sync_result(result: SyncResult) -> str:
    """Format a shell result as human-readable text.

    Args:
        result: Outcome of ``sync``, ``save`` or a batch.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append(f"Document: {result.document_id or '(none)'}")
    if result.version:
        lines.append(f"Version: {result.version}")
    lines.append("")

    if result.has_conflicts:
        lines.append(
            f"Sync stopped: {len(result.conflicts)} conflict(s) need a decision"
        )
        for conflict in result.conflicts:
            lines.append(f"  [{conflict.reason.value}] {conflict.label}")
        return "\n".join(lines).rstrip()

    if result.created:
        lines.append("Created a new remote document")
    elif result.written:
        lines.append("Remote document updated")
    else:
        lines.append("Already up to date")

    if result.merged_root is not None:
        stats = get_stats(result.merged_root)
        lines.append(
            f"{stats.category_count} categories, {stats.bundle_count} bundles, "
            f"{stats.bookmark_count} bookmarks"
        )
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflicts(conflicts: list[MergeConflict]) -> str:
    """Format conflicts for review, one unified diff per node.

    A side that deleted the node shows as an empty file.
    """
    if not conflicts:
        return "No conflicts."

    blocks: list[str] = []
    for conflict in conflicts:
        lines = [f"Conflict ({conflict.reason.value}): {conflict.label}"]
        local_text = render_node(conflict.local_data) if conflict.local_data else ""
        remote_text = render_node(conflict.remote_data) if conflict.remote_data else ""
        diff = "".join(
            difflib.unified_diff(
                local_text.splitlines(keepends=True),
                remote_text.splitlines(keepends=True),
                fromfile="local",
                tofile="remote",
            )
        )
        lines.append(diff.rstrip() if diff else "(no textual differences)")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: SyncResult) -> dict:
    """Convert a shell result to a JSON-serialisable dict."""
    payload: dict = {
        "document_id": result.document_id,
        "version": result.version,
        "has_changes": result.has_changes,
        "written": result.written,
        "created": result.created,
        "conflicts": [
            {
                "path": conflict.path.model_dump(),
                "kind": conflict.kind.value,
                "reason": conflict.reason.value,
                "label": conflict.label,
            }
            for conflict in result.conflicts
        ],
        "events": [event.name for event in result.events],
    }
    if result.merged_root is not None:
        payload["stats"] = get_stats(result.merged_root).model_dump()
    return payload
