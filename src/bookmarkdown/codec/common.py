"""Common types and patterns for the bookmark Markdown dialect."""

import re
from dataclasses import dataclass, field
from enum import Enum

from ..tree.models import Root

# =============================================================================
# Line grammar
# =============================================================================
#
# # <category>
#
# ## <bundle>
#
# - [<title>](<url>)
#   - tags: a, b
#   - notes: free text
#
# Headings and bookmark lines are matched on the stripped line; the tags and
# notes lines must be indented by exactly two spaces.
# =============================================================================

CATEGORY_PREFIX = "# "
BUNDLE_PREFIX = "## "

BOOKMARK_RE = re.compile(r"^-\s+\[([^\]]+)\]\(([^)]+)\)")
TAGS_RE = re.compile(r"^ {2}- tags:\s*(.+)$")
NOTES_RE = re.compile(r"^ {2}- notes:\s*(.+)$")

FRONT_MATTER_DELIMITER = "---"

# Gists reject empty files; this comment is written instead and ignored on read.
EMPTY_DOCUMENT_PLACEHOLDER = "<!-- bookmarkdown: empty collection -->\n"


class ParseState(str, Enum):
    """Where the parser currently is in the hierarchy."""

    NONE = "none"
    IN_CATEGORY = "in_category"
    IN_BUNDLE = "in_bundle"
    IN_BOOKMARK = "in_bookmark"


@dataclass
class ParseResult:
    """Result of a Markdown parse with warnings about skipped lines.

    Attributes:
        root: The parsed collection.
        warnings: Human-readable notes about lines that were dropped
            because they had no valid parent.
    """

    root: Root
    warnings: list[str] = field(default_factory=list)


def split_tags(raw: str) -> tuple[str, ...]:
    """Split a ``tags:`` value on commas, dropping empty entries."""
    return tuple(t.strip() for t in raw.split(",") if t.strip())


def strip_front_matter(lines: list[str]) -> list[str]:
    """Drop a leading ``---`` ... ``---`` block (legacy documents)."""
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        return lines
    for i in range(1, len(lines)):
        if lines[i].strip() == FRONT_MATTER_DELIMITER:
            return lines[i + 1 :]
    # Unterminated front matter: treat the whole text as front matter.
    return []
