"""Metadata helpers: timestamps, stamping and tombstones.

Pure functions, no I/O.  Missing timestamps are treated as infinitely
old.  ``EPOCH`` marks a timestamp that was filled in only to make the
tree well-formed (for example on a freshly parsed remote copy) and
therefore carries no information about when the node really changed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, TypeVar

from .models import (
    Bookmark,
    Bundle,
    Category,
    NodeMetadata,
    Root,
    RootMetadata,
)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

N = TypeVar("N", Bookmark, Bundle, Category)


def now() -> datetime:
    return datetime.now(timezone.utc)


# ------------------------------------------------------------------
# Comparison
# ------------------------------------------------------------------


def is_newer_than(a: datetime | None, b: datetime | None) -> bool:
    """Strict ``a > b`` where ``None`` is infinitely old.

    A concrete timestamp is always newer than ``None``; ``None`` is never
    newer than anything.
    """
    if a is None:
        return False
    if b is None:
        return True
    return a > b


def has_known_timestamp(node: Bookmark | Bundle | Category) -> bool:
    """Return ``True`` if *node* carries a real modification time."""
    lm = node.last_modified
    return lm is not None and lm > EPOCH


# ------------------------------------------------------------------
# Tombstones
# ------------------------------------------------------------------


def is_category_deleted(category: Category) -> bool:
    return category.is_deleted


def is_bundle_deleted(bundle: Bundle) -> bool:
    return bundle.is_deleted


def is_bookmark_deleted(bookmark: Bookmark) -> bool:
    return bookmark.is_deleted


def filter_active(nodes: Iterable[N]) -> list[N]:
    """Return the nodes that are not tombstoned, in order."""
    return [n for n in nodes if not n.is_deleted]


# ------------------------------------------------------------------
# Single-node stamping
# ------------------------------------------------------------------


def touch(node: N, at: datetime | None = None) -> N:
    """Return *node* with ``last_modified`` set to *at* (default now)."""
    at = at or now()
    meta = node.metadata or NodeMetadata()
    return node.model_copy(
        update={"metadata": meta.model_copy(update={"last_modified": at})}
    )


def tombstone(node: N, at: datetime | None = None) -> N:
    """Return *node* marked deleted at *at*; containers cascade."""
    at = at or now()
    meta = (node.metadata or NodeMetadata()).model_copy(
        update={"last_modified": at, "is_deleted": True}
    )
    update: dict = {"metadata": meta}
    if isinstance(node, Category):
        update["bundles"] = tuple(tombstone(b, at) for b in node.bundles)
    elif isinstance(node, Bundle):
        update["bookmarks"] = tuple(
            tombstone(bm, at) for bm in node.bookmarks
        )
    return node.model_copy(update=update)


def _fill(node: N, at: datetime) -> N:
    meta = node.metadata or NodeMetadata()
    if meta.last_modified is not None:
        return node
    return node.model_copy(
        update={"metadata": meta.model_copy(update={"last_modified": at})}
    )


# ------------------------------------------------------------------
# Whole-tree stamping
# ------------------------------------------------------------------


def _map_tree(root: Root, fn) -> Root:
    categories = []
    for category in root.categories:
        bundles = []
        for bundle in category.bundles:
            bookmarks = tuple(fn(bm) for bm in bundle.bookmarks)
            bundles.append(fn(bundle.model_copy(update={"bookmarks": bookmarks})))
        categories.append(
            fn(category.model_copy(update={"bundles": tuple(bundles)}))
        )
    return root.model_copy(update={"categories": tuple(categories)})


def ensure_root_metadata(root: Root, at: datetime | None = None) -> Root:
    """Give every node a ``last_modified``, stamping gaps with *at* (now)."""
    at = at or now()
    stamped = _map_tree(root, lambda n: _fill(n, at))
    if stamped.metadata is None or stamped.metadata.last_modified is None:
        stamped = stamped.model_copy(
            update={"metadata": RootMetadata(last_modified=at)}
        )
    return stamped


def ensure_root_metadata_without_timestamp(root: Root) -> Root:
    """Fill missing ``last_modified`` values with ``EPOCH``.

    Existing timestamps are never overwritten, so a remote copy read for
    comparison does not claim it was modified at read time.
    """
    stamped = _map_tree(root, lambda n: _fill(n, EPOCH))
    if stamped.metadata is None or stamped.metadata.last_modified is None:
        stamped = stamped.model_copy(
            update={"metadata": RootMetadata(last_modified=EPOCH)}
        )
    return stamped


def update_all_last_synced(root: Root, at: datetime | None = None) -> Root:
    """Stamp ``last_synced`` on every category, bundle and bookmark.

    The Root itself is left alone; its sync time is stored per document
    id in local storage.
    """
    at = at or now()

    def _stamp(node):
        meta = node.metadata or NodeMetadata(last_modified=at)
        return node.model_copy(
            update={"metadata": meta.model_copy(update={"last_synced": at})}
        )

    return _map_tree(root, _stamp)


def purge_deleted(root: Root) -> Root:
    """Physically drop every tombstoned node."""
    categories = []
    for category in filter_active(root.categories):
        bundles = []
        for bundle in filter_active(category.bundles):
            bundles.append(
                bundle.model_copy(
                    update={"bookmarks": tuple(filter_active(bundle.bookmarks))}
                )
            )
        categories.append(category.model_copy(update={"bundles": tuple(bundles)}))
    return root.model_copy(update={"categories": tuple(categories)})

