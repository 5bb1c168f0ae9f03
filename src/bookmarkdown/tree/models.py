"""Pydantic models for the bookmark tree.

Defines the immutable Root -> Category -> Bundle -> Bookmark hierarchy
plus the input and query types used by the tree-edit functions:

- ``NodeMetadata`` / ``RootMetadata``: modification, sync and tombstone
  markers.
- ``Bookmark``, ``Bundle``, ``Category``, ``Root``: the tree itself.
- ``BookmarkInput``, ``BookmarkUpdate``: edit payloads.
- ``BookmarkFilter``, ``BookmarkSearchResult``, ``BookmarkStats``: query
  types.

All models are frozen (immutable); every edit builds a new value.
``Root`` validates sibling-name uniqueness and global bookmark-id
uniqueness whenever it is constructed.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from ..validators import normalize_name, validate_bookmark_fields, validate_name


def new_id() -> str:
    """Return a fresh bookmark id."""
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class NodeMetadata(BaseModel):
    """Per-node bookkeeping.

    Attributes:
        last_modified: When this node or any descendant last changed.
        last_synced: When this node was last confirmed equal to the remote
            copy.  Local only, never written to the remote document.
        is_deleted: Tombstone flag for soft deletion.
    """

    last_modified: datetime | None = None
    last_synced: datetime | None = None
    is_deleted: bool = False

    model_config = {"frozen": True}


class RootMetadata(BaseModel):
    """Root bookkeeping (no ``last_synced``; that lives in local storage)."""

    last_modified: datetime | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Tree nodes
# ---------------------------------------------------------------------------


class _Node(BaseModel):
    metadata: NodeMetadata | None = None

    model_config = {"frozen": True}

    @property
    def is_deleted(self) -> bool:
        return self.metadata is not None and self.metadata.is_deleted

    @property
    def last_modified(self) -> datetime | None:
        return self.metadata.last_modified if self.metadata else None


class Bookmark(_Node):
    """A single link.

    Field values are trimmed on construction, empty ``tags`` and ``notes``
    collapse to ``None``, and anything the Markdown form cannot carry
    (``]`` in a title, whitespace in a url, line breaks) is rejected, so
    every valid bookmark renders and parses back unchanged.

    Attributes:
        id: Stable identifier, generated at creation and kept across edits
            and moves.
        title: Link text.
        url: Link target (non-empty).
        tags: Optional ordered tags.
        notes: Optional one-line notes.
    """

    id: str = Field(default_factory=new_id)
    title: str
    url: str
    tags: tuple[str, ...] | None = None
    notes: str | None = None

    @field_validator("title", "url")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("tags")
    @classmethod
    def _strip_tags(cls, value: tuple[str, ...] | None) -> tuple[str, ...] | None:
        if value is None:
            return None
        return tuple(tag.strip() for tag in value) or None

    @field_validator("notes")
    @classmethod
    def _strip_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def _representable(self) -> Bookmark:
        is_valid, message = validate_bookmark_fields(
            self.title, self.url, self.tags, self.notes
        )
        if not is_valid:
            raise ValueError(message)
        return self


class Bundle(_Node):
    """A named, ordered group of bookmarks inside a category."""

    name: str
    bookmarks: tuple[Bookmark, ...] = ()

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        is_valid, message = validate_name(value, "Bundle name")
        if not is_valid:
            raise ValueError(message)
        return value.strip()


class Category(_Node):
    """A named, ordered group of bundles."""

    name: str
    bundles: tuple[Bundle, ...] = ()

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        is_valid, message = validate_name(value, "Category name")
        if not is_valid:
            raise ValueError(message)
        return value.strip()

    @model_validator(mode="after")
    def _unique_bundle_names(self) -> Category:
        _check_unique_names(
            [b.name for b in self.bundles], f"bundle in '{self.name}'"
        )
        return self


class Root(BaseModel):
    """The whole collection."""

    version: Literal[1] = 1
    categories: tuple[Category, ...] = ()
    metadata: RootMetadata | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_invariants(self) -> Root:
        _check_unique_names([c.name for c in self.categories], "category")
        seen: set[str] = set()
        for category in self.categories:
            _check_unique_names(
                [b.name for b in category.bundles],
                f"bundle in '{category.name}'",
            )
            for bundle in category.bundles:
                for bookmark in bundle.bookmarks:
                    if bookmark.id in seen:
                        raise ValueError(
                            f"Duplicate bookmark id '{bookmark.id}'"
                        )
                    seen.add(bookmark.id)
        return self

    def to_json(self) -> str:
        """Serialize for local snapshots (metadata and ids included)."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, text: str) -> Root:
        return cls.model_validate_json(text)


def _check_unique_names(names: list[str], label: str) -> None:
    seen: set[str] = set()
    for name in names:
        key = normalize_name(name)
        if key in seen:
            raise ValueError(f"Duplicate {label} name '{name}'")
        seen.add(key)


# ---------------------------------------------------------------------------
# Edit payloads
# ---------------------------------------------------------------------------


class BookmarkInput(BaseModel):
    """Fields for a new bookmark."""

    title: str
    url: str
    tags: tuple[str, ...] | None = None
    notes: str | None = None

    model_config = {"frozen": True}


class BookmarkUpdate(BaseModel):
    """Partial bookmark update; only explicitly set fields are applied."""

    title: str | None = None
    url: str | None = None
    tags: tuple[str, ...] | None = None
    notes: str | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Query types
# ---------------------------------------------------------------------------


class BookmarkFilter(BaseModel):
    """Search criteria; unset fields do not filter."""

    category_name: str | None = None
    bundle_name: str | None = None
    tags: tuple[str, ...] | None = None
    search_term: str | None = None

    model_config = {"frozen": True}


class BookmarkSearchResult(BaseModel):
    bookmark: Bookmark
    category_name: str
    bundle_name: str

    model_config = {"frozen": True}


class BookmarkStats(BaseModel):
    """Counts of active (non-tombstoned) nodes."""

    category_count: int = 0
    bundle_count: int = 0
    bookmark_count: int = 0
    tag_count: int = 0

    model_config = {"frozen": True}
