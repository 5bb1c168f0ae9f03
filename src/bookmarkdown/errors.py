"""Exception taxonomy and user-facing error descriptions.

Every failure raised inside the package derives from ``BookmarkError`` and
carries an ``ErrorKind`` so callers (the sync shell, the service, the CLI)
can branch on the category instead of the message text.
``describe_error()`` renders an error together with a corrective action,
for display on stderr.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .sync.models import MergeConflict


class ErrorKind(str, Enum):
    """Category of a failure."""

    NOT_FOUND = "not_found"
    PARSE_ERROR = "parse_error"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    VALIDATION_ERROR = "validation_error"
    CONFLICT_UNRESOLVED = "conflict_unresolved"
    TRANSPORT_ERROR = "transport_error"


class BookmarkError(Exception):
    """Base class for all bookmarkdown errors."""

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(BookmarkError):
    """The remote document (or a node inside the tree) does not exist."""

    kind = ErrorKind.NOT_FOUND


class ParseError(BookmarkError):
    """Markdown text could not be turned into a valid Root."""

    kind = ErrorKind.PARSE_ERROR


class ConcurrentModificationError(BookmarkError):
    """The remote version changed between read and write."""

    kind = ErrorKind.CONCURRENT_MODIFICATION

    def __init__(
        self,
        message: str,
        expected_version: str | None = None,
        actual_version: str | None = None,
    ) -> None:
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version


class ValidationError(BookmarkError):
    """A tree edit or input violated a structural rule."""

    kind = ErrorKind.VALIDATION_ERROR


class ConflictUnresolvedError(BookmarkError):
    """Conflicts remain after applying the supplied resolutions."""

    kind = ErrorKind.CONFLICT_UNRESOLVED

    def __init__(
        self, message: str, conflicts: list[MergeConflict] | None = None
    ) -> None:
        super().__init__(message)
        self.conflicts = list(conflicts or [])


class TransportError(BookmarkError):
    """Network or HTTP failure while talking to the remote store."""

    kind = ErrorKind.TRANSPORT_ERROR

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


# ---------------------------------------------------------------------------
# Corrective action messages
# ---------------------------------------------------------------------------

_CORRECTIVE_ACTIONS: dict[ErrorKind, str] = {
    ErrorKind.NOT_FOUND: (
        "Check BOOKMARKDOWN_GIST_ID or run 'bookmarkdown push' to create "
        "a new gist."
    ),
    ErrorKind.PARSE_ERROR: (
        "Fix the Markdown document (duplicate or empty category/bundle "
        "names) and retry."
    ),
    ErrorKind.CONCURRENT_MODIFICATION: (
        "The gist changed while saving. Run 'bookmarkdown sync' to merge "
        "the remote changes, then retry."
    ),
    ErrorKind.VALIDATION_ERROR: "Correct the input and retry.",
    ErrorKind.CONFLICT_UNRESOLVED: (
        "Re-run with 'bookmarkdown sync --resolve local' or "
        "'--resolve remote' to pick a side for every conflict."
    ),
    ErrorKind.TRANSPORT_ERROR: (
        "Check GITHUB_TOKEN and network connectivity, or retry later."
    ),
}


def error_kind(error: BaseException) -> ErrorKind:
    """Return the ``ErrorKind`` for *error* (transport for foreign errors)."""
    if isinstance(error, BookmarkError):
        return error.kind
    return ErrorKind.TRANSPORT_ERROR


def describe_error(error: BaseException, **context: Any) -> str:
    """Format *error* with its category and a corrective action.

    Args:
        error: The exception to describe.
        **context: Optional extra fields appended as ``key: value`` lines.

    Returns:
        Multi-line string of the form
        ``Error (<kind>): <message>\\n\\nAction: <action>``.
    """
    kind = error_kind(error)
    text = f"Error ({kind.value}): {error}\n\nAction: {_CORRECTIVE_ACTIONS[kind]}"
    for key, value in context.items():
        text += f"\n{key}: {value}"
    return text
