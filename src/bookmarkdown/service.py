"""Stateful bookmark service over the pure tree edits and the sync shell.

``BookmarkService`` keeps the current ``Root`` and a dirty flag.  Local
edits are synchronous and return ``Result[Root]``.  Remote operations are
coroutines delegating to a ``SyncShell`` when one is configured.

With sync configured, removals leave tombstones so the next sync can
propagate them; without it they drop the node immediately.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from .codec import generate
from .codec.markdown_to_root import MarkdownParser
from .errors import BookmarkError, ValidationError
from .file_handler import read_file_async, write_file_async
from .result import Result, failure, success
from .sync.engine import SyncShell
from .sync.models import ConflictResolution, MergeConflict, SyncResult
from .sync.state import SyncState
from .tree import edits
from .tree.models import (
    BookmarkFilter,
    BookmarkInput,
    BookmarkSearchResult,
    BookmarkStats,
    BookmarkUpdate,
    Root,
)

logger = logging.getLogger(__name__)


class BookmarkService:
    """Current bookmark tree plus the operations that change it.

    Args:
        shell: Sync shell; ``None`` keeps the service local-only.
        state: Local state used for the offline snapshot.  Defaults to the
            shell's state when a shell is given.
        root: Starting tree (default: the stored snapshot, else empty).
    """

    def __init__(
        self,
        shell: SyncShell | None = None,
        state: SyncState | None = None,
        root: Root | None = None,
    ) -> None:
        self.shell = shell
        self.state = state or (shell.state if shell is not None else None)
        self.is_dirty = False
        if root is None and self.state is not None:
            root = self.state.get_local_root()
            if root is not None:
                logger.info("Restored local snapshot")
        self._root = root or edits.create_root()

    @property
    def root(self) -> Root:
        return self._root

    @property
    def is_sync_configured(self) -> bool:
        return self.shell is not None

    def set_root(self, root: Root, dirty: bool = True) -> None:
        self._root = root
        self.is_dirty = dirty
        if self.state is not None:
            self.state.set_local_root(root)

    def _apply(self, edit: Callable[..., Root], *args) -> Result[Root]:
        try:
            updated = edit(self._root, *args)
        except BookmarkError as exc:
            logger.info("%s rejected: %s", edit.__name__, exc)
            return failure(exc)
        self.set_root(updated)
        return success(updated)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def add_category(self, name: str) -> Result[Root]:
        return self._apply(edits.add_category, name)

    def rename_category(self, old_name: str, new_name: str) -> Result[Root]:
        return self._apply(edits.rename_category, old_name, new_name)

    def remove_category(self, name: str) -> Result[Root]:
        if self.is_sync_configured:
            return self._apply(edits.mark_category_deleted, name)
        return self._apply(edits.remove_category, name)

    def reorder_categories(self, name: str, new_index: int) -> Result[Root]:
        return self._apply(edits.reorder_categories, name, new_index)

    # ------------------------------------------------------------------
    # Bundles
    # ------------------------------------------------------------------

    def add_bundle(self, category_name: str, name: str) -> Result[Root]:
        return self._apply(edits.add_bundle, category_name, name)

    def rename_bundle(
        self, category_name: str, old_name: str, new_name: str
    ) -> Result[Root]:
        return self._apply(edits.rename_bundle, category_name, old_name, new_name)

    def remove_bundle(self, category_name: str, name: str) -> Result[Root]:
        if self.is_sync_configured:
            return self._apply(edits.mark_bundle_deleted, category_name, name)
        return self._apply(edits.remove_bundle, category_name, name)

    def move_bundle(
        self, from_category: str, to_category: str, name: str
    ) -> Result[Root]:
        return self._apply(edits.move_bundle, from_category, to_category, name)

    def reorder_bundles(
        self, category_name: str, name: str, new_index: int
    ) -> Result[Root]:
        return self._apply(edits.reorder_bundles, category_name, name, new_index)

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------

    def add_bookmark(
        self, category_name: str, bundle_name: str, data: BookmarkInput
    ) -> Result[Root]:
        return self._apply(edits.add_bookmark, category_name, bundle_name, data)

    def update_bookmark(
        self,
        category_name: str,
        bundle_name: str,
        bookmark_id: str,
        update: BookmarkUpdate,
    ) -> Result[Root]:
        return self._apply(
            edits.update_bookmark, category_name, bundle_name, bookmark_id, update
        )

    def remove_bookmark(
        self, category_name: str, bundle_name: str, bookmark_id: str
    ) -> Result[Root]:
        edit = (
            edits.mark_bookmark_deleted
            if self.is_sync_configured
            else edits.remove_bookmark
        )
        return self._apply(edit, category_name, bundle_name, bookmark_id)

    def move_bookmark(
        self,
        from_category: str,
        from_bundle: str,
        to_category: str,
        to_bundle: str,
        bookmark_id: str,
    ) -> Result[Root]:
        return self._apply(
            edits.move_bookmark,
            from_category,
            from_bundle,
            to_category,
            to_bundle,
            bookmark_id,
        )

    async def add_bookmarks_batch(
        self,
        category_name: str,
        bundle_name: str,
        items: Sequence[BookmarkInput],
    ) -> Result[Root]:
        """Add several bookmarks with one remote read and one remote write.

        Without sync this is a plain local edit.
        """
        if self.shell is None:
            return self._apply(edits.add_bookmarks, category_name, bundle_name, items)

        result = await self.shell.run_batch(
            self._root,
            lambda root: edits.add_bookmarks(root, category_name, bundle_name, items),
        )
        if not result.ok:
            return failure(result.error)  # type: ignore[arg-type]
        synced = result.unwrap().merged_root
        assert synced is not None
        self.set_root(synced, dirty=False)
        return success(synced)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def search(self, criteria: BookmarkFilter | None = None) -> list[BookmarkSearchResult]:
        return edits.search_bookmarks(self._root, criteria)

    def get_stats(self) -> BookmarkStats:
        return edits.get_stats(self._root)

    # ------------------------------------------------------------------
    # Remote
    # ------------------------------------------------------------------

    def _require_shell(self) -> SyncShell:
        if self.shell is None:
            raise ValidationError("Sync is not configured")
        return self.shell

    def _adopt(self, result: Result[SyncResult]) -> Result[SyncResult]:
        if result.ok:
            outcome = result.unwrap()
            if outcome.merged_root is not None and not outcome.has_conflicts:
                self.set_root(outcome.merged_root, dirty=False)
        return result

    async def load_from_remote(self, document_id: str | None = None) -> Result[Root]:
        """Replace the current tree with the remote copy, discarding local edits."""
        try:
            shell = self._require_shell()
        except ValidationError as exc:
            return failure(exc)
        result = await shell.load(document_id)
        if result.ok:
            self.set_root(result.unwrap(), dirty=False)
        return result

    async def save_to_remote(
        self, document_id: str | None = None, description: str | None = None
    ) -> Result[SyncResult]:
        try:
            shell = self._require_shell()
        except ValidationError as exc:
            return failure(exc)
        return self._adopt(await shell.save(self._root, document_id, description))

    async def sync(self, document_id: str | None = None) -> Result[SyncResult]:
        """Merge with the remote copy; on conflicts the current tree is kept."""
        try:
            shell = self._require_shell()
        except ValidationError as exc:
            return failure(exc)
        return self._adopt(await shell.sync(self._root, document_id))

    async def resolve_and_sync(
        self,
        resolutions: Sequence[ConflictResolution],
        document_id: str | None = None,
    ) -> Result[SyncResult]:
        try:
            shell = self._require_shell()
        except ValidationError as exc:
            return failure(exc)
        return self._adopt(
            await shell.sync_with_conflict_resolution(
                self._root, list(resolutions), document_id
            )
        )

    async def check_conflicts(
        self, document_id: str | None = None
    ) -> Result[list[MergeConflict]]:
        try:
            shell = self._require_shell()
        except ValidationError as exc:
            return failure(exc)
        return await shell.check_conflicts(self._root, document_id)

    # ------------------------------------------------------------------
    # Markdown files
    # ------------------------------------------------------------------

    async def import_markdown(self, path: str) -> Result[Root]:
        """Replace the current tree with the contents of a Markdown file.

        Skipped lines are logged as warnings.
        """
        try:
            content, encoding, resolved = await read_file_async(path)
            parsed = MarkdownParser().parse_with_warnings(content)
        except ValueError as exc:
            return failure(ValidationError(str(exc)))
        except (BookmarkError, OSError) as exc:
            return failure(exc)
        for warning in parsed.warnings:
            logger.warning("%s: %s", resolved.name, warning)
        logger.info("Imported %s (%s)", resolved, encoding)
        self.set_root(parsed.root)
        return success(parsed.root)

    async def export_markdown(self, path: str) -> Result[int]:
        """Write the current tree to *path*; returns the byte count."""
        try:
            _, count = await write_file_async(path, generate(self._root))
        except ValueError as exc:
            return failure(ValidationError(str(exc)))
        except OSError as exc:
            return failure(exc)
        return success(count)
