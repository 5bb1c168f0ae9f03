"""Pure tree-edit functions.

Every function takes a ``Root`` and returns a new one; the input is never
modified.  Structural changes stamp ``last_modified`` on the changed node
and every ancestor up to the Root.  Invalid edits (empty or duplicate
names, missing parents, unknown ids) raise ``ValidationError`` before
anything is built, so the caller's Root stays valid.

Soft deletion (``mark_*_deleted``) leaves a tombstone that the sync layer
uses to propagate the deletion; hard deletion (``remove_*``) drops the
node immediately and is meant for collections that are not synced.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Sequence, TypeVar

from ..errors import ValidationError
from ..validators import normalize_name, validate_bookmark_fields, validate_name
from .metadata import filter_active, now, tombstone, touch
from .models import (
    Bookmark,
    BookmarkFilter,
    BookmarkInput,
    BookmarkSearchResult,
    BookmarkStats,
    BookmarkUpdate,
    Bundle,
    Category,
    NodeMetadata,
    Root,
    RootMetadata,
    new_id,
)

logger = logging.getLogger(__name__)

N = TypeVar("N", Bundle, Category)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _index_of(nodes: Sequence[N], name: str) -> int | None:
    """Index of the sibling called *name* (tombstones included)."""
    key = normalize_name(name)
    for i, node in enumerate(nodes):
        if normalize_name(node.name) == key:
            return i
    return None


def _active_index(nodes: Sequence[N], name: str, label: str) -> int:
    idx = _index_of(nodes, name)
    if idx is None or nodes[idx].is_deleted:
        raise ValidationError(f"{label} '{name}' not found")
    return idx


def _clean_name(name: str, label: str) -> str:
    ok, message = validate_name(name, f"{label} name")
    if not ok:
        raise ValidationError(message)
    return name.strip()


def _insert_named(
    nodes: Sequence[N], node: N, label: str, parent: str | None = None
) -> tuple[N, ...]:
    """Append *node*, replacing a tombstone of the same name if present."""
    idx = _index_of(nodes, node.name)
    if idx is not None:
        if not nodes[idx].is_deleted:
            where = f" in '{parent}'" if parent else ""
            raise ValidationError(
                f"{label} '{node.name}' already exists{where}"
            )
        items = list(nodes)
        items[idx] = node
        return tuple(items)
    return tuple(nodes) + (node,)


def _with_categories(
    root: Root, categories: Iterable[Category], at: datetime
) -> Root:
    return Root(
        version=1,
        categories=tuple(categories),
        metadata=RootMetadata(last_modified=at),
    )


def _update_category(
    root: Root,
    category_name: str,
    fn: Callable[[Category], Category],
    at: datetime,
) -> Root:
    idx = _active_index(root.categories, category_name, "Category")
    categories = list(root.categories)
    categories[idx] = touch(fn(categories[idx]), at)
    return _with_categories(root, categories, at)


def _update_bundle(
    root: Root,
    category_name: str,
    bundle_name: str,
    fn: Callable[[Bundle], Bundle],
    at: datetime,
) -> Root:
    def _apply(category: Category) -> Category:
        idx = _active_index(category.bundles, bundle_name, "Bundle")
        bundles = list(category.bundles)
        bundles[idx] = touch(fn(bundles[idx]), at)
        return category.model_copy(update={"bundles": tuple(bundles)})

    return _update_category(root, category_name, _apply, at)


def _bookmark_index(bundle: Bundle, bookmark_id: str) -> int:
    for i, bookmark in enumerate(bundle.bookmarks):
        if bookmark.id == bookmark_id and not bookmark.is_deleted:
            return i
    raise ValidationError(
        f"Bookmark '{bookmark_id}' not found in bundle '{bundle.name}'"
    )


def _new_bookmark(data: BookmarkInput, at: datetime) -> Bookmark:
    ok, message = validate_bookmark_fields(
        data.title, data.url, data.tags, data.notes
    )
    if not ok:
        raise ValidationError(message)
    return Bookmark(
        id=new_id(),
        title=data.title,
        url=data.url,
        tags=data.tags,
        notes=data.notes,
        metadata=NodeMetadata(last_modified=at),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


def create_root() -> Root:
    """Return an empty collection."""
    return Root(version=1, metadata=RootMetadata(last_modified=now()))


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def add_category(root: Root, name: str, at: datetime | None = None) -> Root:
    at = at or now()
    name = _clean_name(name, "Category")
    category = Category(name=name, metadata=NodeMetadata(last_modified=at))
    return _with_categories(
        root, _insert_named(root.categories, category, "Category"), at
    )


def rename_category(
    root: Root, old_name: str, new_name: str, at: datetime | None = None
) -> Root:
    at = at or now()
    new_name = _clean_name(new_name, "Category")
    idx = _active_index(root.categories, old_name, "Category")
    categories = list(root.categories)
    clash = _index_of(categories, new_name)
    if clash is not None and clash != idx:
        if not categories[clash].is_deleted:
            raise ValidationError(f"Category '{new_name}' already exists")
    categories[idx] = touch(
        categories[idx].model_copy(update={"name": new_name}), at
    )
    if clash is not None and clash != idx:
        del categories[clash]
    return _with_categories(root, categories, at)


def remove_category(root: Root, name: str, at: datetime | None = None) -> Root:
    """Drop the category immediately (no tombstone)."""
    at = at or now()
    idx = _active_index(root.categories, name, "Category")
    categories = list(root.categories)
    del categories[idx]
    return _with_categories(root, categories, at)


def mark_category_deleted(
    root: Root, name: str, at: datetime | None = None
) -> Root:
    """Tombstone the category together with all its bundles and bookmarks."""
    at = at or now()
    idx = _active_index(root.categories, name, "Category")
    categories = list(root.categories)
    categories[idx] = tombstone(categories[idx], at)
    logger.debug("Tombstoned category %s", name)
    return _with_categories(root, categories, at)


# ---------------------------------------------------------------------------
# Bundles
# ---------------------------------------------------------------------------


def add_bundle(
    root: Root, category_name: str, name: str, at: datetime | None = None
) -> Root:
    at = at or now()
    name = _clean_name(name, "Bundle")
    bundle = Bundle(name=name, metadata=NodeMetadata(last_modified=at))

    def _apply(category: Category) -> Category:
        bundles = _insert_named(category.bundles, bundle, "Bundle", category.name)
        return category.model_copy(update={"bundles": bundles})

    return _update_category(root, category_name, _apply, at)


def rename_bundle(
    root: Root,
    category_name: str,
    old_name: str,
    new_name: str,
    at: datetime | None = None,
) -> Root:
    at = at or now()
    new_name = _clean_name(new_name, "Bundle")

    def _apply(category: Category) -> Category:
        idx = _active_index(category.bundles, old_name, "Bundle")
        bundles = list(category.bundles)
        clash = _index_of(bundles, new_name)
        if clash is not None and clash != idx:
            if not bundles[clash].is_deleted:
                raise ValidationError(
                    f"Bundle '{new_name}' already exists in '{category.name}'"
                )
        bundles[idx] = touch(bundles[idx].model_copy(update={"name": new_name}), at)
        if clash is not None and clash != idx:
            del bundles[clash]
        return category.model_copy(update={"bundles": tuple(bundles)})

    return _update_category(root, category_name, _apply, at)


def remove_bundle(
    root: Root, category_name: str, name: str, at: datetime | None = None
) -> Root:
    at = at or now()

    def _apply(category: Category) -> Category:
        idx = _active_index(category.bundles, name, "Bundle")
        bundles = list(category.bundles)
        del bundles[idx]
        return category.model_copy(update={"bundles": tuple(bundles)})

    return _update_category(root, category_name, _apply, at)


def mark_bundle_deleted(
    root: Root, category_name: str, name: str, at: datetime | None = None
) -> Root:
    at = at or now()

    def _apply(category: Category) -> Category:
        idx = _active_index(category.bundles, name, "Bundle")
        bundles = list(category.bundles)
        bundles[idx] = tombstone(bundles[idx], at)
        return category.model_copy(update={"bundles": tuple(bundles)})

    return _update_category(root, category_name, _apply, at)


def move_bundle(
    root: Root,
    from_category: str,
    to_category: str,
    name: str,
    at: datetime | None = None,
) -> Root:
    """Move a bundle (with its bookmarks) to another category."""
    at = at or now()
    src_idx = _active_index(root.categories, from_category, "Category")
    dst_idx = _active_index(root.categories, to_category, "Category")
    if src_idx == dst_idx:
        return root

    categories = list(root.categories)
    source = categories[src_idx]
    b_idx = _active_index(source.bundles, name, "Bundle")
    bundle = source.bundles[b_idx]
    target = categories[dst_idx]
    clash = _index_of(target.bundles, bundle.name)
    if clash is not None and not target.bundles[clash].is_deleted:
        raise ValidationError(
            f"Bundle '{bundle.name}' already exists in '{target.name}'"
        )

    remaining = list(source.bundles)
    del remaining[b_idx]
    categories[src_idx] = touch(
        source.model_copy(update={"bundles": tuple(remaining)}), at
    )
    categories[dst_idx] = touch(
        target.model_copy(
            update={
                "bundles": _insert_named(
                    target.bundles, touch(bundle, at), "Bundle", target.name
                )
            }
        ),
        at,
    )
    return _with_categories(root, categories, at)


# ---------------------------------------------------------------------------
# Bookmarks
# ---------------------------------------------------------------------------


def add_bookmark(
    root: Root,
    category_name: str,
    bundle_name: str,
    data: BookmarkInput,
    at: datetime | None = None,
) -> Root:
    return add_bookmarks(root, category_name, bundle_name, [data], at)


def add_bookmarks(
    root: Root,
    category_name: str,
    bundle_name: str,
    items: Sequence[BookmarkInput],
    at: datetime | None = None,
) -> Root:
    """Append several bookmarks to one bundle in a single edit."""
    at = at or now()
    if not items:
        # Still validates the target so a bad path fails the same way.
        _update_bundle(root, category_name, bundle_name, lambda b: b, at)
        return root
    new = tuple(_new_bookmark(item, at) for item in items)

    def _apply(bundle: Bundle) -> Bundle:
        return bundle.model_copy(update={"bookmarks": bundle.bookmarks + new})

    return _update_bundle(root, category_name, bundle_name, _apply, at)


def update_bookmark(
    root: Root,
    category_name: str,
    bundle_name: str,
    bookmark_id: str,
    update: BookmarkUpdate,
    at: datetime | None = None,
) -> Root:
    at = at or now()
    changes = update.model_dump(exclude_unset=True)
    ok, message = validate_bookmark_fields(
        changes.get("title"),
        changes.get("url"),
        changes.get("tags"),
        changes.get("notes"),
    )
    if not ok:
        raise ValidationError(message)
    for key in ("title", "url"):
        if key in changes and changes[key] is None:
            raise ValidationError(f"Bookmark {key} cannot be removed")

    def _apply(bundle: Bundle) -> Bundle:
        idx = _bookmark_index(bundle, bookmark_id)
        bookmarks = list(bundle.bookmarks)
        # model_copy() would skip validation.
        edited = Bookmark(**{**bookmarks[idx].model_dump(), **changes})
        bookmarks[idx] = touch(edited, at)
        return bundle.model_copy(update={"bookmarks": tuple(bookmarks)})

    return _update_bundle(root, category_name, bundle_name, _apply, at)


def remove_bookmark(
    root: Root,
    category_name: str,
    bundle_name: str,
    bookmark_id: str,
    at: datetime | None = None,
) -> Root:
    at = at or now()

    def _apply(bundle: Bundle) -> Bundle:
        idx = _bookmark_index(bundle, bookmark_id)
        bookmarks = list(bundle.bookmarks)
        del bookmarks[idx]
        return bundle.model_copy(update={"bookmarks": tuple(bookmarks)})

    return _update_bundle(root, category_name, bundle_name, _apply, at)


def mark_bookmark_deleted(
    root: Root,
    category_name: str,
    bundle_name: str,
    bookmark_id: str,
    at: datetime | None = None,
) -> Root:
    at = at or now()

    def _apply(bundle: Bundle) -> Bundle:
        idx = _bookmark_index(bundle, bookmark_id)
        bookmarks = list(bundle.bookmarks)
        bookmarks[idx] = tombstone(bookmarks[idx], at)
        return bundle.model_copy(update={"bookmarks": tuple(bookmarks)})

    return _update_bundle(root, category_name, bundle_name, _apply, at)


def move_bookmark(
    root: Root,
    from_category: str,
    from_bundle: str,
    to_category: str,
    to_bundle: str,
    bookmark_id: str,
    at: datetime | None = None,
) -> Root:
    """Move a bookmark between bundles, keeping its id."""
    at = at or now()
    c_idx = _active_index(root.categories, from_category, "Category")
    b_idx = _active_index(root.categories[c_idx].bundles, from_bundle, "Bundle")
    source = root.categories[c_idx].bundles[b_idx]
    bookmark = source.bookmarks[_bookmark_index(source, bookmark_id)]

    # Validate the target before touching anything.
    t_idx = _active_index(root.categories, to_category, "Category")
    _active_index(root.categories[t_idx].bundles, to_bundle, "Bundle")

    if c_idx == t_idx and normalize_name(from_bundle) == normalize_name(to_bundle):
        return root

    logger.debug(
        "Moving bookmark %s from %s/%s to %s/%s",
        bookmark_id,
        from_category,
        from_bundle,
        to_category,
        to_bundle,
    )
    removed = remove_bookmark(
        root, from_category, from_bundle, bookmark_id, at
    )

    def _apply(bundle: Bundle) -> Bundle:
        return bundle.model_copy(
            update={"bookmarks": bundle.bookmarks + (touch(bookmark, at),)}
        )

    return _update_bundle(removed, to_category, to_bundle, _apply, at)


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def _move_to(items: list, old: int, new: int) -> list:
    item = items.pop(old)
    new = max(0, min(new, len(items)))
    items.insert(new, item)
    return items


def reorder_categories(
    root: Root, name: str, new_index: int, at: datetime | None = None
) -> Root:
    """Move category *name* to position *new_index* among active categories."""
    at = at or now()
    _active_index(root.categories, name, "Category")
    active = filter_active(root.categories)
    deleted = [c for c in root.categories if c.is_deleted]
    old = _index_of(active, name)
    assert old is not None
    return _with_categories(root, _move_to(active, old, new_index) + deleted, at)


def reorder_bundles(
    root: Root,
    category_name: str,
    name: str,
    new_index: int,
    at: datetime | None = None,
) -> Root:
    at = at or now()

    def _apply(category: Category) -> Category:
        _active_index(category.bundles, name, "Bundle")
        active = filter_active(category.bundles)
        deleted = [b for b in category.bundles if b.is_deleted]
        old = _index_of(active, name)
        assert old is not None
        bundles = _move_to(active, old, new_index) + deleted
        return category.model_copy(update={"bundles": tuple(bundles)})

    return _update_category(root, category_name, _apply, at)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def iter_bookmarks(root: Root):
    """Yield ``(category, bundle, bookmark)`` for every active bookmark."""
    for category in filter_active(root.categories):
        for bundle in filter_active(category.bundles):
            for bookmark in filter_active(bundle.bookmarks):
                yield category, bundle, bookmark


def find_bookmark(root: Root, bookmark_id: str) -> BookmarkSearchResult | None:
    for category, bundle, bookmark in iter_bookmarks(root):
        if bookmark.id == bookmark_id:
            return BookmarkSearchResult(
                bookmark=bookmark,
                category_name=category.name,
                bundle_name=bundle.name,
            )
    return None


def search_bookmarks(
    root: Root, criteria: BookmarkFilter | None = None
) -> list[BookmarkSearchResult]:
    """Return active bookmarks matching every set field of *criteria*.

    ``tags`` matches when any bookmark tag contains any filter tag
    (case-insensitive); ``search_term`` matches title, url, notes or tags.
    """
    criteria = criteria or BookmarkFilter()
    wanted_tags = [t.lower() for t in criteria.tags or ()]
    term = (criteria.search_term or "").strip().lower()
    results: list[BookmarkSearchResult] = []

    for category, bundle, bookmark in iter_bookmarks(root):
        if criteria.category_name and category.name != criteria.category_name:
            continue
        if criteria.bundle_name and bundle.name != criteria.bundle_name:
            continue
        own_tags = [t.lower() for t in bookmark.tags or ()]
        if wanted_tags and not any(
            wanted in tag for wanted in wanted_tags for tag in own_tags
        ):
            continue
        if term:
            haystack = [bookmark.title, bookmark.url, bookmark.notes or ""]
            haystack.extend(bookmark.tags or ())
            if not any(term in field.lower() for field in haystack):
                continue
        results.append(
            BookmarkSearchResult(
                bookmark=bookmark,
                category_name=category.name,
                bundle_name=bundle.name,
            )
        )
    return results


def get_stats(root: Root) -> BookmarkStats:
    categories = filter_active(root.categories)
    bundles = [b for c in categories for b in filter_active(c.bundles)]
    tags: set[str] = set()
    bookmark_count = 0
    for _, _, bookmark in iter_bookmarks(root):
        bookmark_count += 1
        tags.update(t.lower() for t in bookmark.tags or ())
    return BookmarkStats(
        category_count=len(categories),
        bundle_count=len(bundles),
        bookmark_count=bookmark_count,
        tag_count=len(tags),
    )

