"""Immutable bookmark tree: models, metadata helpers and pure edits."""

from .edits import (
    add_bookmark,
    add_bookmarks,
    add_bundle,
    add_category,
    create_root,
    find_bookmark,
    get_stats,
    mark_bookmark_deleted,
    mark_bundle_deleted,
    mark_category_deleted,
    move_bookmark,
    move_bundle,
    remove_bookmark,
    remove_bundle,
    remove_category,
    rename_bundle,
    rename_category,
    reorder_bundles,
    reorder_categories,
    search_bookmarks,
    update_bookmark,
)
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
)

__all__ = [
    "Bookmark",
    "BookmarkFilter",
    "BookmarkInput",
    "BookmarkSearchResult",
    "BookmarkStats",
    "BookmarkUpdate",
    "Bundle",
    "Category",
    "NodeMetadata",
    "Root",
    "RootMetadata",
    "add_bookmark",
    "add_bookmarks",
    "add_bundle",
    "add_category",
    "create_root",
    "find_bookmark",
    "get_stats",
    "mark_bookmark_deleted",
    "mark_bundle_deleted",
    "mark_category_deleted",
    "move_bookmark",
    "move_bundle",
    "remove_bookmark",
    "remove_bundle",
    "remove_category",
    "rename_bundle",
    "rename_category",
    "reorder_bundles",
    "reorder_categories",
    "search_bookmarks",
    "update_bookmark",
]
