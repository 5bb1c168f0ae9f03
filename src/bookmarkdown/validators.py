"""
Input validation functions for bookmark tree edits.

Validates category/bundle names and bookmark fields before they enter the
tree, so every accepted value survives a Markdown round-trip unchanged.
"""

import unicodedata

# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Category name")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def has_line_break(value: str) -> bool:
    """True if *value* would not stay on one Markdown line."""
    return bool(value) and value.splitlines() != [value]


def normalize_name(name: str) -> str:
    """Return the comparison key for a sibling name (NFC, trimmed)."""
    return unicodedata.normalize("NFC", name).strip()


def validate_name(name: str, field_name: str = "Name") -> tuple[bool, str]:
    """
    Validate a category or bundle name.

    Args:
        name: The name to validate
        field_name: Label used in the error message

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot span multiple lines
    """
    if not name or not name.strip():
        return (False, format_validation_error(field_name, "cannot be empty"))

    if has_line_break(name):
        return (
            False,
            format_validation_error(field_name, "cannot contain line breaks"),
        )

    return (True, "")


def validate_bookmark_fields(
    title: str | None = None,
    url: str | None = None,
    tags: tuple[str, ...] | list[str] | None = None,
    notes: str | None = None,
) -> tuple[bool, str]:
    """
    Validate the editable fields of a bookmark.

    Only the fields that are passed (not ``None``) are checked, so the same
    function serves both creation and partial updates.

    Returns:
        Tuple of (is_valid, error_message).

    Validation rules:
        - Title cannot be empty and cannot contain ']' or line breaks
        - URL cannot be empty and cannot contain ')' or whitespace
        - Tags cannot be empty and cannot contain ',' or line breaks
        - Notes cannot contain line breaks
    """
    if title is not None:
        if not title.strip():
            return (False, format_validation_error("Title", "cannot be empty"))
        if "]" in title or has_line_break(title):
            return (
                False,
                format_validation_error(
                    "Title", "cannot contain ']' or line breaks"
                ),
            )

    if url is not None:
        if not url.strip():
            return (False, format_validation_error("URL", "cannot be empty"))
        if ")" in url or any(ch.isspace() for ch in url.strip()):
            return (
                False,
                format_validation_error(
                    "URL", "cannot contain ')' or whitespace"
                ),
            )

    for tag in tags or ():
        if not tag.strip():
            return (False, format_validation_error("Tag", "cannot be empty"))
        if "," in tag or has_line_break(tag):
            return (
                False,
                format_validation_error(
                    "Tag", f"'{tag}' cannot contain ',' or line breaks"
                ),
            )

    if notes is not None and has_line_break(notes):
        return (
            False,
            format_validation_error("Notes", "cannot contain line breaks"),
        )

    return (True, "")
